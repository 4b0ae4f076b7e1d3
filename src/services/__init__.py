"""Triage pipeline stages.

Handlers reach these through handlers.dependencies, which builds the
orchestrator on first use so cold starts only pay for what a route needs.
"""
