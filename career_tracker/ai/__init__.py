"""
AI features and the free-run quota that gates them.
"""

from career_tracker.ai.quota import AI_FREE_QUOTA, AiAccessStatus, AiTier, QuotaLedger

__all__ = ["AI_FREE_QUOTA", "AiAccessStatus", "AiTier", "QuotaLedger"]
