"""Runtime settings and rule tables for the triage pipeline."""
