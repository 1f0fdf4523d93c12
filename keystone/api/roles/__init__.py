"""Role management module."""
