"""Failure log of unsuccessful workflow runs."""
