"""Shared helpers: structured logging and UTC date arithmetic."""
