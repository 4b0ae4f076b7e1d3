"""Thin Lambda handlers over the shared triage pipeline."""
