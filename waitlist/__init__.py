"""Waitlist and admission allocation services."""

from .admission import (
    AdmissionDecision,
    AdmissionPassResult,
    AdmissionProcessor,
    LotteryDrawResult,
    ManualAdmissionResult,
    WaitlistStatistics,
)
from .audit import AdmissionAudit
from .capacity import CapacityTracker
from .class_matcher import find_eligible_class, format_age, months_between
from .locks import KeyedLocks
from .lottery import DrawOutcome, LotteryGrouping, SecureLottery, TierQuotas
from .queue_manager import QueueManager

__all__ = [
    "AdmissionAudit",
    "AdmissionDecision",
    "AdmissionPassResult",
    "AdmissionProcessor",
    "CapacityTracker",
    "DrawOutcome",
    "KeyedLocks",
    "LotteryDrawResult",
    "LotteryGrouping",
    "ManualAdmissionResult",
    "QueueManager",
    "SecureLottery",
    "TierQuotas",
    "WaitlistStatistics",
    "find_eligible_class",
    "format_age",
    "months_between",
]
