"""
Career Tracker backend: identity, sessions, access gates and AI quota.
"""

__version__ = "0.1.0"
