"""Suspicious login detector.

Fetches recent history, runs the rules and returns a verdict. Detection is
advisory: any error or timeout yields the safe verdict, never an exception.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from gatekeep.config import DetectionSettings
from gatekeep.core.detection.rules import DEFAULT_RULES, DetectionRule, evaluate
from gatekeep.core.detection.types import DetectionVerdict, LoginAttempt
from gatekeep.core.interfaces import LoginHistoryProvider

logger = structlog.get_logger()


class SuspiciousActivityDetector:
    """Scores login attempts against a set of detection rules.

    Usage:
        detector = SuspiciousActivityDetector(history_provider)
        verdict = await detector.analyze_login_attempt(attempt)
        if verdict.is_suspicious:
            ...
    """

    def __init__(
        self,
        history: LoginHistoryProvider,
        settings: DetectionSettings | None = None,
        rules: Sequence[DetectionRule] = DEFAULT_RULES,
    ) -> None:
        """Initialize the detector.

        Args:
            history: Source of recent login attempts.
            settings: Timeout settings. Uses defaults if not provided.
            rules: Rules to evaluate, in reporting order.
        """
        self._history = history
        self.settings = settings or DetectionSettings()
        self.rules = tuple(rules)

    async def _analyze(self, attempt: LoginAttempt) -> DetectionVerdict:
        history = await self._history.recent_attempts(attempt.email, attempt.ip_address)
        return evaluate(attempt, history, self.rules)

    async def analyze_login_attempt(self, attempt: LoginAttempt) -> DetectionVerdict:
        """Analyze a login attempt for suspicious activity.

        Args:
            attempt: The attempt to score.

        Returns:
            The aggregated verdict, or the safe verdict if detection failed.
        """
        try:
            verdict = await asyncio.wait_for(
                self._analyze(attempt), timeout=self.settings.timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "suspicious_activity_detection_timeout",
                email=attempt.email,
                timeout_seconds=self.settings.timeout_seconds,
            )
            return DetectionVerdict.safe()
        except Exception as e:
            logger.error(
                "suspicious_activity_detection_failed",
                email=attempt.email,
                error=str(e),
                exc_info=True,
            )
            return DetectionVerdict.safe()

        if verdict.is_suspicious:
            logger.warning(
                "suspicious_login_detected",
                email=attempt.email,
                ip_address=attempt.ip_address,
                risk_level=verdict.risk_level.value,
                reasons=verdict.reasons,
            )
        return verdict
