"""Data models for rate limit decisions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from admission.app.exceptions import InvalidPolicyError, UnsupportedAlgorithmError


class Algorithm(str, Enum):
    """Rate limiting algorithms backed by the shared store."""
    FIXED_WINDOW = "fixed_window"
    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"
    LEAKY_BUCKET = "leaky_bucket"


class FailureStrategy(str, Enum):
    """What to do with a request when the shared store is unreachable."""
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
    LOCAL_FALLBACK = "local_fallback"


class DecisionSource(str, Enum):
    """Where a decision was produced."""
    STORE = "store"
    LOCAL = "local"
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class Outcome(str, Enum):
    """Terminal outcome of a rate limit decision."""
    ALLOWED = "allowed"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


def parse_algorithm(value: object) -> Algorithm:
    """Coerce a tag to an Algorithm, raising UnsupportedAlgorithmError otherwise."""
    if isinstance(value, Algorithm):
        return value
    try:
        return Algorithm(value)
    except ValueError:
        raise UnsupportedAlgorithmError(value) from None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-route rate limit configuration.

    Attributes:
        limit: Maximum units per window (bucket capacity for bucket algorithms)
        window_seconds: Window length; rates are limit / window_seconds
        algorithm: Algorithm tag, validated on construction
        failure_strategy: Behavior when the shared store is unavailable
    """
    limit: int
    window_seconds: int
    algorithm: Algorithm = Algorithm.FIXED_WINDOW
    failure_strategy: FailureStrategy = FailureStrategy.FAIL_OPEN

    def __post_init__(self) -> None:
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise InvalidPolicyError(f"limit must be a positive integer, got {self.limit!r}")
        if (
            isinstance(self.window_seconds, bool)
            or not isinstance(self.window_seconds, int)
            or self.window_seconds <= 0
        ):
            raise InvalidPolicyError(
                f"window_seconds must be a positive integer, got {self.window_seconds!r}"
            )
        object.__setattr__(self, "algorithm", parse_algorithm(self.algorithm))
        try:
            strategy = FailureStrategy(self.failure_strategy)
        except ValueError:
            raise InvalidPolicyError(
                f"Unknown failure strategy: {self.failure_strategy!r}"
            ) from None
        object.__setattr__(self, "failure_strategy", strategy)

    @property
    def rate(self) -> float:
        """Units replenished (or drained) per second."""
        return self.limit / self.window_seconds


@dataclass
class RateLimitResult:
    """Result of a rate limit decision.

    remaining and reset_at are None when quota is unknown, which happens
    on the fail-open and fail-closed paths.
    """
    allowed: bool
    remaining: Optional[int]
    reset_at: Optional[int]
    limit: int
    source: DecisionSource = field(default=DecisionSource.STORE)

    @property
    def outcome(self) -> Outcome:
        if self.source == DecisionSource.FAIL_CLOSED:
            return Outcome.UNAVAILABLE
        return Outcome.ALLOWED if self.allowed else Outcome.DENIED

