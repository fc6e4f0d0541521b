"""
Core primitives shared by every subsystem: ids, clocks and the error taxonomy.
"""

from career_tracker.core.errors import AppError, ErrorKind, ERROR_STATUS
from career_tracker.core.utils import generate_id, utc_now, normalize_email

__all__ = [
    "AppError",
    "ErrorKind",
    "ERROR_STATUS",
    "generate_id",
    "utc_now",
    "normalize_email",
]
