"""Polling notification feed for the admin portal header."""
