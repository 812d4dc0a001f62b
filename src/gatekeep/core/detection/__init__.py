"""Suspicious login detection."""

from gatekeep.core.detection.detector import SuspiciousActivityDetector
from gatekeep.core.detection.rules import DEFAULT_RULES, DetectionRule, evaluate
from gatekeep.core.detection.types import (
    DetectionVerdict,
    LoginAttempt,
    RiskLevel,
    RuleResult,
)

__all__ = [
    "DEFAULT_RULES",
    "DetectionRule",
    "DetectionVerdict",
    "LoginAttempt",
    "RiskLevel",
    "RuleResult",
    "SuspiciousActivityDetector",
    "evaluate",
]
