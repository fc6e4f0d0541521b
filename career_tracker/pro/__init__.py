"""
Pro access requests and operator decisions.
"""

from career_tracker.pro.models import ProRequest, ProRequestStatus
from career_tracker.pro.workflow import ProRequestWorkflow

__all__ = ["ProRequest", "ProRequestStatus", "ProRequestWorkflow"]
