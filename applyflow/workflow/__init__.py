"""Workflow engine, state envelopes and the application/discovery graphs."""
