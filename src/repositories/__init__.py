"""Storage adapters consumed by the triage pipeline."""
