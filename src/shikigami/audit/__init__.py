"""Append-only change history for fuda."""
