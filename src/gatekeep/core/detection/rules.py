"""Detection rules for suspicious login activity.

Each rule is a pure function of the attempt being scored and the recent
login history. Time windows are measured backward from the attempt's own
timestamp, and the attempt itself counts toward every window.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, timedelta

from gatekeep.core.detection.types import DetectionVerdict, LoginAttempt, RiskLevel, RuleResult

RuleCheck = Callable[[LoginAttempt, Sequence[LoginAttempt]], RuleResult]

# Failures from one IP
IP_FAILURE_WINDOW = timedelta(minutes=15)
IP_FAILURE_HIGH = 5
IP_FAILURE_MEDIUM = 3

# Attempts of any outcome
RAPID_WINDOW = timedelta(minutes=1)
RAPID_CRITICAL = 10
RAPID_HIGH = 5

# UTC hours considered unusual: 23:00 through 05:59
UNUSUAL_HOUR_START = 23
UNUSUAL_HOUR_END = 5

RECOVERY_WINDOW = timedelta(minutes=30)
RECOVERY_FAILURES = 3


@dataclass(frozen=True)
class DetectionRule:
    """A named detection rule."""

    name: str
    check: RuleCheck


def _identity(attempt: LoginAttempt) -> tuple[object, ...]:
    return (attempt.timestamp, attempt.ip_address, attempt.email.lower(), attempt.success)


def _with_current(attempt: LoginAttempt, history: Sequence[LoginAttempt]) -> list[LoginAttempt]:
    """History plus the attempt being scored, unless a provider already recorded it.

    Recorded rows are matched on time, IP, email and outcome; user agent and
    account id are not always carried by the history source.
    """
    attempts = list(history)
    current = _identity(attempt)
    if all(_identity(other) != current for other in attempts):
        attempts.append(attempt)
    return attempts


def _within(attempt: LoginAttempt, other: LoginAttempt, window: timedelta) -> bool:
    age = attempt.timestamp - other.timestamp
    return timedelta(0) <= age <= window


def repeated_ip_failures(attempt: LoginAttempt, history: Sequence[LoginAttempt]) -> RuleResult:
    """Failed attempts from the attempt's IP in the last 15 minutes."""
    if attempt.ip_address is None:
        return RuleResult.clear()

    failures = sum(
        1
        for other in _with_current(attempt, history)
        if not other.success
        and other.ip_address == attempt.ip_address
        and _within(attempt, other, IP_FAILURE_WINDOW)
    )

    if failures >= IP_FAILURE_HIGH:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.HIGH,
            reason=f"{failures} failed login attempts from same IP in 15 minutes",
            recommended_action="Consider IP-based rate limiting or temporary block",
        )
    if failures >= IP_FAILURE_MEDIUM:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.MEDIUM,
            reason=f"{failures} failed login attempts from same IP",
            recommended_action="Monitor for continued attempts",
        )
    return RuleResult.clear()


def rapid_succession(attempt: LoginAttempt, history: Sequence[LoginAttempt]) -> RuleResult:
    """Attempts of any outcome within one minute."""
    attempts = sum(
        1 for other in _with_current(attempt, history) if _within(attempt, other, RAPID_WINDOW)
    )

    if attempts >= RAPID_CRITICAL:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.CRITICAL,
            reason=f"{attempts} login attempts in 1 minute (possible brute force)",
            recommended_action="Immediate IP block and security team notification",
        )
    if attempts >= RAPID_HIGH:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.HIGH,
            reason=f"{attempts} rapid login attempts in 1 minute",
            recommended_action="Implement CAPTCHA or temporary delay",
        )
    return RuleResult.clear()


def unusual_hour(attempt: LoginAttempt, history: Sequence[LoginAttempt]) -> RuleResult:
    """Attempts late at night, by UTC hour."""
    timestamp = attempt.timestamp
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(UTC)
    hour = timestamp.hour

    if hour >= UNUSUAL_HOUR_START or hour <= UNUSUAL_HOUR_END:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.MEDIUM,
            reason=f"Login attempt at unusual hour ({hour}:00)",
            recommended_action="Verify user identity through additional authentication",
        )
    return RuleResult.clear()


def success_after_failures(attempt: LoginAttempt, history: Sequence[LoginAttempt]) -> RuleResult:
    """A successful login shortly after several failures for the same email."""
    if not attempt.success:
        return RuleResult.clear()

    failures = sum(
        1
        for other in history
        if not other.success
        and other.email == attempt.email
        and _within(attempt, other, RECOVERY_WINDOW)
    )

    if failures >= RECOVERY_FAILURES:
        return RuleResult(
            triggered=True,
            risk_level=RiskLevel.MEDIUM,
            reason=f"Successful login after {failures} failed attempts",
            recommended_action="Verify user identity and check for credential compromise",
        )
    return RuleResult.clear()


DEFAULT_RULES: tuple[DetectionRule, ...] = (
    DetectionRule("multiple_failed_attempts", repeated_ip_failures),
    DetectionRule("rapid_succession_attempts", rapid_succession),
    DetectionRule("unusual_time_access", unusual_hour),
    DetectionRule("success_after_failures", success_after_failures),
)


def evaluate(
    attempt: LoginAttempt,
    history: Sequence[LoginAttempt],
    rules: Sequence[DetectionRule] = DEFAULT_RULES,
) -> DetectionVerdict:
    """Run every rule and aggregate the triggered ones.

    The verdict's risk level is the highest among triggered rules; reasons
    and recommended actions keep rule order.
    """
    results = [rule.check(attempt, history) for rule in rules]
    triggered = [result for result in results if result.triggered]
    if not triggered:
        return DetectionVerdict.safe()

    return DetectionVerdict(
        is_suspicious=True,
        risk_level=RiskLevel.highest([result.risk_level for result in triggered]),
        reasons=[result.reason or "" for result in triggered],
        recommended_actions=[result.recommended_action or "" for result in triggered],
    )
