"""
KEYSTONE API

FastAPI service exposing the policy engine, session manager and audit engine.
"""
