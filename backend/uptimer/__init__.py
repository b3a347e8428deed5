"""Uptimer - uptime monitoring engine."""
