"""Audit log query module."""
