"""
KEYSTONE - Role-based access control with a tamper-evident audit trail.
"""

__version__ = "1.0.0"
