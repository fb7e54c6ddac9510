"""
Replay and rate-limit guard for redemptions.

Tracks consumed session ids and the last successful redemption per
(user, campaign). Expired entries are swept opportunistically at the start of
a verification call, at most once per sweep interval, instead of by a
background timer.
"""

import threading
from enum import Enum
from typing import Optional

import structlog

from core.clock import Clock, now_ms
from services.session_store import InMemorySessionStore, SessionStoreProtocol

logger = structlog.get_logger(__name__)


class GuardConfig:
    """Guard windows (epoch millis)."""

    RATE_LIMIT_WINDOW_MS = 24 * 60 * 60 * 1000
    RETENTION_MS = 24 * 60 * 60 * 1000
    SWEEP_INTERVAL_MS = 5 * 60 * 1000


class GuardOutcome(str, Enum):
    """Result of trying to record a successful redemption."""

    ACCEPTED = "accepted"
    REPLAY_ATTACK = "replay_attack"
    RATE_LIMITED = "rate_limited"


class RedemptionGuard:
    """
    Replay and rate-limit checks over an injectable store.

    Read-then-write sequences run under one lock so two concurrent requests
    cannot both claim the same session id or the same daily redemption.
    """

    # Key prefixes for namespacing
    PREFIX_SESSION = "session:"
    PREFIX_REDEMPTION = "redemption:"

    def __init__(
        self,
        store: Optional[SessionStoreProtocol] = None,
        clock: Clock = now_ms,
    ):
        self.store: SessionStoreProtocol = store if store is not None else InMemorySessionStore()
        self._clock = clock
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _session_key(self, session_id: str) -> str:
        return f"{self.PREFIX_SESSION}{session_id}"

    def _redemption_key(self, user_id: str, campaign_id: str) -> str:
        return f"{self.PREFIX_REDEMPTION}{user_id}|{campaign_id}"

    def sweep(self) -> int:
        """
        Delete entries older than the retention window.

        No-op unless the sweep interval has elapsed since the last sweep.

        Returns:
            Number of entries deleted
        """
        now = self._clock()
        with self._lock:
            if now - self._last_sweep < GuardConfig.SWEEP_INTERVAL_MS:
                return 0
            self._last_sweep = now
            deleted = self.store.sweep(now - GuardConfig.RETENTION_MS)

        if deleted:
            logger.info("guard_swept", deleted=deleted)
        return deleted

    def is_replay(self, session_id: str) -> bool:
        """Whether this session id has already produced a redemption."""
        return self.store.get(self._session_key(session_id)) is not None

    def is_rate_limited(self, user_id: str, campaign_id: str) -> bool:
        """Whether the user already redeemed this campaign inside the window."""
        last_redemption = self.store.get(self._redemption_key(user_id, campaign_id))
        if last_redemption is None:
            return False
        return self._clock() - last_redemption < GuardConfig.RATE_LIMIT_WINDOW_MS

    def record(self, session_id: str, user_id: str, campaign_id: str) -> GuardOutcome:
        """
        Claim the session id and the user's daily redemption slot.

        Re-checks both conditions atomically, so a request that lost a race
        against a concurrent one is refused here even if its earlier checks
        passed.
        """
        with self._lock:
            if self.is_replay(session_id):
                return GuardOutcome.REPLAY_ATTACK
            if self.is_rate_limited(user_id, campaign_id):
                return GuardOutcome.RATE_LIMITED

            now = self._clock()
            if not self.store.set_if_absent(self._session_key(session_id), now):
                return GuardOutcome.REPLAY_ATTACK
            self.store.set(self._redemption_key(user_id, campaign_id), now)

        return GuardOutcome.ACCEPTED


redemption_guard = RedemptionGuard()


def get_redemption_guard() -> RedemptionGuard:
    """Get the process-wide guard."""
    return redemption_guard
