"""
Quota module for admission control.

Provides the immutable Quota policy and the QuotaManager that decides,
one operation at a time, whether work may start.
"""

from quotagate.quota.manager import QuotaManager, QuotaStatus
from quotagate.quota.models import Quota

__all__ = [
    "Quota",
    "QuotaManager",
    "QuotaStatus",
]
