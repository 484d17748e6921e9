"""Ports (Protocols) and the AppState handle."""
