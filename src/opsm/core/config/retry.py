"""Retry and restart configuration models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for the bounded in-task retry tier.

    Defaults wait up to 60s for the secret store: four attempts with a
    fixed 15s delay between them.
    """

    max_attempts: int = 4
    """Maximum number of attempts (default: 4)"""

    initial_delay_seconds: float = 15.0
    """Delay between attempts in seconds (default: 15.0)"""

    max_delay_seconds: float = 15.0
    """Upper bound for any single delay in seconds (default: 15.0)"""

    backoff_multiplier: float = 1.0
    """Multiplier applied to the delay after each attempt (default: 1.0, fixed delay)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be non-negative")
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    @property
    def total_budget_seconds(self) -> float:
        """Return the worst-case time spent sleeping between attempts."""
        total = 0.0
        delay = self.initial_delay_seconds
        for _ in range(self.max_attempts - 1):
            total += min(delay, self.max_delay_seconds)
            delay *= self.backoff_multiplier
        return total


@dataclass(frozen=True)
class ProbeConfig:
    """Configuration for the connectivity probe run before each install."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    """Attempt budget and delay (default: 4 attempts, 15s apart)"""

    request_timeout_seconds: float = 10.0
    """Timeout for a single liveness request (default: 10.0)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")


@dataclass(frozen=True)
class RestartConfig:
    """Configuration for the supervisor restart tier.

    The policy itself is derived from the refresh setting: ``always`` when
    secrets are refreshed, ``on-failure`` otherwise.
    """

    backoff_seconds: float = 1.0
    """Fixed delay before restarting a finished task (default: 1.0)"""

    startup_timeout_seconds: float = 300.0
    """Time to wait for every secret to be ready before reporting a startup timeout (default: 300.0)"""

    max_restarts: int | None = None
    """Stop restarting after this many restarts; unbounded when unset (default: None)"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be non-negative")
        if self.startup_timeout_seconds <= 0:
            raise ValueError("startup_timeout_seconds must be positive")
        if self.max_restarts is not None and self.max_restarts < 0:
            raise ValueError("max_restarts must be non-negative")
