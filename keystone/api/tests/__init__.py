"""KEYSTONE API tests."""
