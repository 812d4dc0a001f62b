"""Types for suspicious login detection."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

_SEVERITY = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class RiskLevel(str, Enum):
    """Risk levels, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self.value]

    @classmethod
    def highest(cls, levels: list[RiskLevel]) -> RiskLevel:
        """Most severe of the given levels, LOW when empty."""
        return max(levels, key=lambda level: level.severity, default=cls.LOW)


class LoginAttempt(BaseModel):
    """A single login attempt, as seen by the detection rules."""

    model_config = ConfigDict(frozen=True)

    email: str
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime
    success: bool
    account_id: UUID | None = None


class RuleResult(BaseModel):
    """Outcome of one detection rule."""

    model_config = ConfigDict(frozen=True)

    triggered: bool
    risk_level: RiskLevel = RiskLevel.LOW
    reason: str | None = None
    recommended_action: str | None = None

    @classmethod
    def clear(cls) -> RuleResult:
        return cls(triggered=False)


class DetectionVerdict(BaseModel):
    """Aggregated detection outcome.

    reasons and recommended_actions are parallel lists in rule order.
    """

    model_config = ConfigDict(frozen=True)

    is_suspicious: bool = False
    risk_level: RiskLevel = RiskLevel.LOW
    reasons: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)

    @classmethod
    def safe(cls) -> DetectionVerdict:
        """The verdict used when nothing triggered or detection failed."""
        return cls()

    def to_metadata(self) -> dict[str, object]:
        """Serializable form for audit metadata."""
        return {
            "is_suspicious": self.is_suspicious,
            "risk_level": self.risk_level.value,
            "reasons": list(self.reasons),
            "recommended_actions": list(self.recommended_actions),
        }
