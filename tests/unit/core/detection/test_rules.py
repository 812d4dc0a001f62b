"""Tests for the detection rules."""

from datetime import UTC, datetime, timedelta, timezone
from uuid import uuid4

from gatekeep.core.detection.rules import (
    DEFAULT_RULES,
    DetectionRule,
    evaluate,
    rapid_succession,
    repeated_ip_failures,
    success_after_failures,
    unusual_hour,
)
from gatekeep.core.detection.types import LoginAttempt, RiskLevel, RuleResult

NOON = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)
IP = "203.0.113.10"


def attempt(
    at: datetime = NOON,
    success: bool = False,
    ip_address: str | None = IP,
    email: str = "user@example.com",
) -> LoginAttempt:
    return LoginAttempt(email=email, ip_address=ip_address, timestamp=at, success=success)


def failures(
    count: int, end: datetime = NOON, spacing: timedelta = timedelta(minutes=1)
) -> list[LoginAttempt]:
    """`count` failures ending just before `end`, oldest first."""
    return [attempt(end - spacing * (count - i)) for i in range(count)]


class TestRepeatedIpFailures:
    """Test the per-IP failure rule."""

    def test_two_failures_do_not_trigger(self) -> None:
        result = repeated_ip_failures(attempt(), failures(1))

        assert result.triggered is False

    def test_three_failures_is_medium(self) -> None:
        """The current attempt counts toward the window."""
        result = repeated_ip_failures(attempt(), failures(2))

        assert result.triggered is True
        assert result.risk_level is RiskLevel.MEDIUM
        assert result.reason == "3 failed login attempts from same IP"

    def test_five_failures_is_high(self) -> None:
        result = repeated_ip_failures(attempt(), failures(4))

        assert result.risk_level is RiskLevel.HIGH
        assert result.reason == "5 failed login attempts from same IP in 15 minutes"

    def test_failures_outside_window_ignored(self) -> None:
        old = failures(4, end=NOON - timedelta(minutes=20))

        result = repeated_ip_failures(attempt(), old)

        assert result.triggered is False

    def test_other_ips_and_successes_ignored(self) -> None:
        history = [attempt(NOON - timedelta(minutes=1), ip_address="198.51.100.7")] * 3 + [
            attempt(NOON - timedelta(minutes=2), success=True)
        ] * 3

        result = repeated_ip_failures(attempt(), history)

        assert result.triggered is False

    def test_missing_ip_never_triggers(self) -> None:
        history = [attempt(NOON - timedelta(seconds=i), ip_address=None) for i in range(1, 6)]

        result = repeated_ip_failures(attempt(ip_address=None), history)

        assert result == RuleResult.clear()

    def test_current_attempt_in_history_counted_once(self) -> None:
        """History that already contains the scored attempt does not double count it."""
        current = attempt()

        result = repeated_ip_failures(current, [*failures(1), current])

        assert result.triggered is False

    def test_recorded_copy_of_current_attempt_counted_once(self) -> None:
        """A history row for the same attempt matches even without agent or account id."""
        current = LoginAttempt(
            email="user@example.com",
            ip_address=IP,
            user_agent="Mozilla/5.0",
            timestamp=NOON,
            success=False,
            account_id=uuid4(),
        )
        recorded = attempt(email="User@Example.com")

        result = repeated_ip_failures(current, [*failures(1), recorded])

        assert result.triggered is False

    def test_distinct_attempt_at_same_instant_still_counts(self) -> None:
        """A different outcome at the same timestamp is a separate attempt."""
        recent = failures(3, spacing=timedelta(seconds=5))

        result = rapid_succession(attempt(), [*recent, attempt(success=True)])

        assert result.triggered is True


class TestRapidSuccession:
    """Test the rapid attempts rule."""

    def test_four_attempts_do_not_trigger(self) -> None:
        history = failures(3, spacing=timedelta(seconds=5))

        assert rapid_succession(attempt(), history).triggered is False

    def test_five_attempts_is_high(self) -> None:
        history = failures(4, spacing=timedelta(seconds=5))

        result = rapid_succession(attempt(), history)

        assert result.risk_level is RiskLevel.HIGH
        assert result.reason == "5 rapid login attempts in 1 minute"

    def test_ten_attempts_is_critical(self) -> None:
        history = failures(9, spacing=timedelta(seconds=5))

        result = rapid_succession(attempt(), history)

        assert result.risk_level is RiskLevel.CRITICAL
        assert result.reason is not None
        assert "brute force" in result.reason

    def test_successes_count(self) -> None:
        history = [
            attempt(NOON - timedelta(seconds=5 * i), success=True, ip_address=None)
            for i in range(1, 5)
        ]

        assert rapid_succession(attempt(success=True), history).triggered is True

    def test_attempts_older_than_a_minute_ignored(self) -> None:
        history = failures(9, end=NOON - timedelta(minutes=2), spacing=timedelta(seconds=1))

        assert rapid_succession(attempt(), history).triggered is False

    def test_future_history_ignored(self) -> None:
        history = [attempt(NOON + timedelta(seconds=i)) for i in range(1, 10)]

        assert rapid_succession(attempt(), history).triggered is False


class TestUnusualHour:
    """Test the unusual hour rule."""

    def test_daytime_is_clear(self) -> None:
        assert unusual_hour(attempt(), []).triggered is False

    def test_late_night(self) -> None:
        result = unusual_hour(attempt(NOON.replace(hour=23)), [])

        assert result.risk_level is RiskLevel.MEDIUM
        assert result.reason == "Login attempt at unusual hour (23:00)"

    def test_early_morning_boundary(self) -> None:
        assert unusual_hour(attempt(NOON.replace(hour=5, minute=59)), []).triggered is True
        assert unusual_hour(attempt(NOON.replace(hour=6)), []).triggered is False
        assert unusual_hour(attempt(NOON.replace(hour=22, minute=59)), []).triggered is False

    def test_hour_is_evaluated_in_utc(self) -> None:
        """01:00 at UTC-8 is 09:00 UTC."""
        pacific = timezone(timedelta(hours=-8))
        local = datetime(2024, 3, 5, 1, 0, tzinfo=pacific)

        assert unusual_hour(attempt(local), []).triggered is False


class TestSuccessAfterFailures:
    """Test the success-after-failures rule."""

    def test_triggers_after_three_failures(self) -> None:
        result = success_after_failures(attempt(success=True), failures(3))

        assert result.triggered is True
        assert result.risk_level is RiskLevel.MEDIUM
        assert result.reason == "Successful login after 3 failed attempts"

    def test_failed_attempt_never_triggers(self) -> None:
        assert success_after_failures(attempt(), failures(5)).triggered is False

    def test_only_same_email_counts(self) -> None:
        history = [
            attempt(NOON - timedelta(minutes=i), email="other@example.com") for i in range(1, 5)
        ]

        assert success_after_failures(attempt(success=True), history).triggered is False

    def test_window_is_thirty_minutes(self) -> None:
        history = failures(3, end=NOON - timedelta(minutes=31))

        assert success_after_failures(attempt(success=True), history).triggered is False


class TestEvaluate:
    """Test aggregation across rules."""

    def test_nothing_triggered_is_safe(self) -> None:
        verdict = evaluate(attempt(success=True), [])

        assert verdict.is_suspicious is False
        assert verdict.risk_level is RiskLevel.LOW
        assert verdict.reasons == []

    def test_highest_level_wins_and_order_is_kept(self) -> None:
        """Six failures at 02:00 UTC trip the IP rule (HIGH) and the hour rule (MEDIUM)."""
        night = NOON.replace(hour=2)
        history = failures(5, end=night, spacing=timedelta(minutes=2))

        verdict = evaluate(attempt(night), history)

        assert verdict.is_suspicious is True
        assert verdict.risk_level is RiskLevel.HIGH
        assert verdict.reasons == [
            "6 failed login attempts from same IP in 15 minutes",
            "Login attempt at unusual hour (2:00)",
        ]
        assert len(verdict.recommended_actions) == 2

    def test_custom_rules(self) -> None:
        always = DetectionRule(
            "always",
            lambda current, history: RuleResult(
                triggered=True, risk_level=RiskLevel.CRITICAL, reason="always"
            ),
        )

        verdict = evaluate(attempt(), [], rules=[always])

        assert verdict.risk_level is RiskLevel.CRITICAL
        assert verdict.reasons == ["always"]

    def test_default_rule_names(self) -> None:
        assert [rule.name for rule in DEFAULT_RULES] == [
            "multiple_failed_attempts",
            "rapid_succession_attempts",
            "unusual_time_access",
            "success_after_failures",
        ]

    def test_metadata_form(self) -> None:
        verdict = evaluate(attempt(), failures(4))

        metadata = verdict.to_metadata()

        assert metadata["is_suspicious"] is True
        assert metadata["risk_level"] == "high"


class TestRiskLevel:
    """Test risk level ordering."""

    def test_highest(self) -> None:
        levels = [RiskLevel.MEDIUM, RiskLevel.CRITICAL, RiskLevel.LOW]

        assert RiskLevel.highest(levels) is RiskLevel.CRITICAL

    def test_highest_of_nothing_is_low(self) -> None:
        assert RiskLevel.highest([]) is RiskLevel.LOW
