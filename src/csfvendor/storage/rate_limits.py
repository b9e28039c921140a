"""
Fixed-window rate limiting for the public vendor endpoints.

Counters live in the shared SQLite database so that limits hold across
service instances. The limiter fails open: if the counter cannot be read
or written the request is allowed and the failure is logged.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from csfvendor.config.settings import RateLimit
from csfvendor.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """
    Per-client, per-operation request counter.

    Example:
        limiter = RateLimiter(Database(data_dir))
        decision = limiter.check("203.0.113.9", "token_validation", RateLimit(10, 60))
        if not decision.allowed:
            ...  # respond 429 with Retry-After: decision.retry_after
    """

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.database = database
        self._clock = clock or (lambda: datetime.now(UTC))

    def check(self, client_id: str, operation: str, limit: RateLimit) -> RateLimitDecision:
        """
        Count a request and decide whether it is within the limit.

        Args:
            client_id: Client identifier, normally the remote IP address.
            operation: Limited operation name (e.g., "token_validation").
            limit: Allowed requests per window.
        """
        key = f"{operation}:{client_id}"
        now = self._clock().timestamp()

        try:
            with self.database.connection() as conn:
                try:
                    conn.execute("BEGIN IMMEDIATE TRANSACTION")
                    row = conn.execute(
                        "SELECT window_start, count FROM rate_limits WHERE key = ?",
                        (key,),
                    ).fetchone()

                    if row is None or now - row["window_start"] >= limit.window_seconds:
                        window_start = now
                        count = 1
                    else:
                        window_start = row["window_start"]
                        count = row["count"] + 1

                    conn.execute(
                        "INSERT OR REPLACE INTO rate_limits (key, window_start, count) "
                        "VALUES (?, ?, ?)",
                        (key, window_start, count),
                    )
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            logger.warning(f"Rate limit check failed for {operation}, allowing request: {e}")
            return RateLimitDecision(allowed=True, remaining=limit.requests)

        if count > limit.requests:
            retry_after = max(1, math.ceil(window_start + limit.window_seconds - now))
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        return RateLimitDecision(allowed=True, remaining=limit.requests - count)

    def reset(self, client_id: str | None = None) -> None:
        """Clear counters for one client, or all counters."""
        with self.database.connection() as conn:
            if client_id is None:
                conn.execute("DELETE FROM rate_limits")
            else:
                conn.execute("DELETE FROM rate_limits WHERE key LIKE ?", (f"%:{client_id}",))
