"""Account lockout state machine.

An account is UNLOCKED or LOCKED. Consecutive failed logins lock it once
the failure threshold is reached, and every further lockout lasts longer
than the previous one. Expiry is evaluated lazily: an account whose
``locked_until`` has passed reads as UNLOCKED, but its counters are only
cleared by a successful login or a manual unlock.

All transitions are pure: they return an updated copy of the account and
never touch storage.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from gatekeep.config import LockoutPolicy
from gatekeep.core.auth.types import Account, LockState


class AccountLockout:
    """Lockout transitions over a loaded account.

    Usage:
        lockout = AccountLockout(LockoutPolicy())
        if lockout.is_locked(account, now):
            ...
        account = lockout.record_failure(account, now)
    """

    def __init__(self, policy: LockoutPolicy | None = None) -> None:
        """Initialize the state machine.

        Args:
            policy: Threshold and duration policy. Uses defaults if not provided.
        """
        self.policy = policy or LockoutPolicy()

    def lockout_duration(self, lockout_count: int) -> timedelta:
        """Duration of the lockout with the given ordinal.

        Grows by ``multiplier`` per lockout, starting at the base duration
        for the first one. Durations strictly increase until they reach
        ``max_lockout_minutes``; every later lockout lasts exactly the ceiling.

        Raises:
            ValueError: If lockout_count is negative.
        """
        if lockout_count < 0:
            raise ValueError("lockout_count must be non-negative")
        minutes = self.policy.base_lockout_minutes * self.policy.multiplier ** (lockout_count - 1)
        return timedelta(minutes=min(minutes, self.policy.max_lockout_minutes))

    def is_locked(self, account: Account, now: datetime) -> bool:
        return account.locked_until is not None and now < account.locked_until

    def state(self, account: Account, now: datetime) -> LockState:
        return LockState.LOCKED if self.is_locked(account, now) else LockState.UNLOCKED

    def remaining_attempts(self, account: Account) -> int:
        return max(0, self.policy.max_failed_attempts - account.failed_login_attempts)

    def record_failure(self, account: Account, now: datetime) -> Account:
        """Count a failed login, locking the account at the threshold.

        Counters survive an expired lock, so the first failure after a
        lock expires relocks at the next escalation level.
        """
        failed = account.failed_login_attempts + 1
        update: dict[str, object] = {"failed_login_attempts": failed, "updated_at": now}

        if failed >= self.policy.max_failed_attempts and not self.is_locked(account, now):
            lockout_count = account.lockout_count + 1
            update["lockout_count"] = lockout_count
            update["locked_until"] = now + self.lockout_duration(lockout_count)

        return account.model_copy(update=update)

    def record_success(self, account: Account, now: datetime) -> Account:
        """Clear failures and any lock after a successful login.

        lockout_count is kept so that later abuse escalates further.
        """
        return account.model_copy(
            update={
                "failed_login_attempts": 0,
                "locked_until": None,
                "last_login_at": now,
                "updated_at": now,
            }
        )

    def manual_unlock(self, account: Account, now: datetime | None = None) -> Account:
        """Administrative unlock, effective immediately. lockout_count is kept."""
        update: dict[str, object] = {"failed_login_attempts": 0, "locked_until": None}
        if now is not None:
            update["updated_at"] = now
        return account.model_copy(update=update)
