"""Quota-aware pool of API credentials.

Credentials share a monthly usage cap. The pool picks the credential with the
most remaining quota (credentials whose usage is still unknown come first),
records the usage counter the server reports after each request, and disables
credentials that fail authorization or reach their limit.

The server is the only source of usage numbers: counts are overwritten with
what a response reports, never incremented locally. All mutations happen
under one lock so concurrent tasks sharing a pool cannot corrupt its state.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from .constants import DEFAULT_MONTHLY_LIMIT
from .exceptions import InvalidIndexError, PoolExhaustedError, QuotaError, QuotaExhaustedError
from .models import CredentialStats, PoolSnapshot, PoolSummary
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Credential:
    """One API key and its tracked quota state."""

    secret: str = field(repr=False)
    index: int
    monthly_limit: int = DEFAULT_MONTHLY_LIMIT
    usage_count: Optional[int] = None  # None until a response reports it
    disabled: bool = False
    last_error: Optional[BaseException] = None
    last_updated: Optional[datetime] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.usage_count is None:
            return None
        return self.monthly_limit - self.usage_count

    @property
    def at_limit(self) -> bool:
        return self.usage_count is not None and self.usage_count >= self.monthly_limit

    @property
    def available(self) -> bool:
        return not self.disabled and not self.at_limit

    @property
    def out_of_quota(self) -> bool:
        return self.at_limit or isinstance(self.last_error, QuotaError)


def _selection_rank(credential: Credential) -> float:
    # Unknown usage ranks above any known remaining quota
    remaining = credential.remaining
    return float("inf") if remaining is None else float(remaining)


class CredentialPool:
    """Ordered, non-empty set of credentials with least-used selection."""

    def __init__(
        self,
        secrets: Sequence[str],
        monthly_limit: int = DEFAULT_MONTHLY_LIMIT,
        limit_overrides: Optional[Mapping[int, int]] = None,
    ):
        """Initialize the pool.

        Args:
            secrets: API keys, in pool order
            monthly_limit: Usage cap shared by every key
            limit_overrides: Per-index caps replacing monthly_limit

        Raises:
            TypeError: If secrets is a bare string or not a sequence
            ValueError: If no keys are given or a limit is not positive
        """
        if isinstance(secrets, (str, bytes)) or not isinstance(secrets, Sequence):
            raise TypeError("secrets must be a sequence of API keys")
        if len(secrets) == 0:
            raise ValueError("At least one API key is required")
        if monthly_limit <= 0:
            raise ValueError("monthly_limit must be positive")

        overrides = dict(limit_overrides or {})
        self._credentials: List[Credential] = [
            Credential(
                secret=secret,
                index=index,
                monthly_limit=overrides.get(index, monthly_limit),
            )
            for index, secret in enumerate(secrets)
        ]
        if any(c.monthly_limit <= 0 for c in self._credentials):
            raise ValueError("limit overrides must be positive")

        self._current_index = 0
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def size(self) -> int:
        return len(self._credentials)

    @property
    def current_index(self) -> int:
        return self._current_index

    def _get(self, index: int) -> Credential:
        if not isinstance(index, int) or not 0 <= index < len(self._credentials):
            raise InvalidIndexError(index, len(self._credentials))
        return self._credentials[index]

    def get(self, index: int) -> Credential:
        """Copy of the credential at index."""
        with self._lock:
            return replace(self._get(index))

    @property
    def current(self) -> Credential:
        """Copy of the most recently selected credential."""
        return self.get(self._current_index)

    def select(self) -> Credential:
        """Pick the credential with the most remaining quota.

        Ties keep pool order. Returns a copy; state changes go through
        update_usage / mark_failed.

        Raises:
            PoolExhaustedError: If every credential is disabled. The
                QuotaExhaustedError subclass is raised when every credential
                is out of quota, either at its known limit or rejected with a
                quota error
        """
        with self._lock:
            enabled = [c for c in self._credentials if not c.disabled]
            if not enabled:
                if all(c.out_of_quota for c in self._credentials):
                    raise QuotaExhaustedError()
                raise PoolExhaustedError()

            viable = [c for c in enabled if not c.at_limit]
            if not viable:
                raise QuotaExhaustedError()

            best = viable[0]
            for candidate in viable[1:]:
                if _selection_rank(candidate) > _selection_rank(best):
                    best = candidate

            self._current_index = best.index
            logger.debug(
                "Selected API key",
                key_index=best.index,
                usage_count=best.usage_count,
                remaining=best.remaining,
            )
            return replace(best)

    def acquire(self, index: int) -> Credential:
        """Select a specific credential, e.g. to retry on the same key.

        Raises:
            InvalidIndexError: If index is out of range
            PoolExhaustedError: If that credential is disabled
            QuotaExhaustedError: If that credential is at its limit
        """
        with self._lock:
            credential = self._get(index)
            if credential.out_of_quota:
                raise QuotaExhaustedError(f"API key {index} has reached its monthly limit")
            if credential.disabled:
                raise PoolExhaustedError(f"API key {index} is disabled")
            self._current_index = index
            return replace(credential)

    def is_available(self, index: int) -> bool:
        with self._lock:
            if not isinstance(index, int) or not 0 <= index < len(self._credentials):
                return False
            return self._credentials[index].available

    def update_usage(self, index: int, usage_count: Optional[int]) -> None:
        """Record a server-reported usage counter.

        A missing counter (None) leaves the known value untouched. Reaching the
        monthly limit disables the credential.
        """
        with self._lock:
            credential = self._get(index)
            if usage_count is None:
                return
            if isinstance(usage_count, bool) or not isinstance(usage_count, int):
                raise TypeError("usage_count must be an int or None")

            credential.usage_count = usage_count
            credential.last_updated = datetime.now(timezone.utc)

            if usage_count >= credential.monthly_limit and not credential.disabled:
                credential.disabled = True
                logger.warning(
                    "API key reached monthly limit",
                    key_index=index,
                    usage_count=usage_count,
                    monthly_limit=credential.monthly_limit,
                )

    def mark_failed(self, index: int, error: BaseException) -> None:
        """Disable a credential after an authorization or quota failure."""
        with self._lock:
            credential = self._get(index)
            credential.disabled = True
            credential.last_error = error
            logger.warning("API key disabled", key_index=index, reason=str(error))

    def reset(self) -> None:
        """Forget all usage and re-enable every credential (new billing period)."""
        with self._lock:
            for credential in self._credentials:
                credential.usage_count = None
                credential.disabled = False
                credential.last_error = None
                credential.last_updated = None
            self._current_index = 0
        logger.info("API key usage reset", total_keys=len(self._credentials))

    def stats(self) -> List[CredentialStats]:
        """Secret-free statistics per credential."""
        with self._lock:
            return [
                CredentialStats(
                    key_index=c.index,
                    usage_count=c.usage_count,
                    monthly_limit=c.monthly_limit,
                    remaining=c.remaining,
                    percent_used=(
                        None
                        if c.usage_count is None
                        else round(c.usage_count / c.monthly_limit * 100, 2)
                    ),
                    last_updated=c.last_updated,
                    disabled=c.disabled,
                    last_error=str(c.last_error) if c.last_error else None,
                )
                for c in self._credentials
            ]

    def summary(self) -> PoolSummary:
        """Aggregate statistics; totals stay None while every usage is unknown."""
        with self._lock:
            total = len(self._credentials)
            disabled = sum(1 for c in self._credentials if c.disabled)
            known = [c for c in self._credentials if c.usage_count is not None]

            totals: Dict[str, Optional[float]] = {
                "total_used": None,
                "total_limit": None,
                "total_remaining": None,
                "percent_used": None,
            }
            if known:
                used = sum(c.usage_count for c in known)
                limit = sum(c.monthly_limit for c in known)
                totals["total_used"] = used
                totals["total_limit"] = limit
                totals["total_remaining"] = sum(max(0, c.remaining) for c in known)
                totals["percent_used"] = round(used / limit * 100, 2)

            return PoolSummary(
                total_keys=total,
                active_keys=total - disabled,
                disabled_keys=disabled,
                unknown_keys=total - len(known),
                **totals,
            )

    def snapshot(self) -> PoolSnapshot:
        """Consistent read-only view of every credential plus totals."""
        with self._lock:
            return PoolSnapshot(
                credentials=self.stats(),
                summary=self.summary(),
                current_index=self._current_index,
            )
