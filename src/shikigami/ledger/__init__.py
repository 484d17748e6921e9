"""Handoff / learning notes attached to fuda."""
