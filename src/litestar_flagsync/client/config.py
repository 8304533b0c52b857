"""Client SDK options."""

from __future__ import annotations

from dataclasses import dataclass, field

from litestar_flagsync.exceptions import ConfigurationError, TransportError
from litestar_flagsync.resilience import RetryPolicy

__all__ = ["ClientOptions"]


def _push_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=None,
        base_delay=0.5,
        max_delay=30.0,
        retryable_exceptions=(TransportError, ConnectionError, TimeoutError, OSError),
    )


def _fetch_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=2,
        base_delay=0.2,
        max_delay=1.0,
        retryable_exceptions=(TransportError, ConnectionError, TimeoutError, OSError),
    )


@dataclass
class ClientOptions:
    """Options of :class:`~litestar_flagsync.client.FlagSyncClient`.

    Attributes:
        base_url: Base URL of the distribution server, including the route
            prefix (e.g. ``https://flags.example.com/api/v1``).
        environment_key: Public key of the environment to follow.
        api_key: Sent as a bearer token when set.
        poll_interval: Seconds between conditional polls; ``None`` disables
            polling.
        push_enabled: Keep a push connection open for instant updates.
        request_timeout: Timeout of snapshot fetches in seconds.
        push_retry_policy: Reconnect backoff of the push connection.
        fetch_retry_policy: Retries of the initial fetch before falling back
            to polling; ``None`` disables them.
        project_id: Project used to scope uploaded telemetry.
        telemetry_enabled: Upload evaluation events in batches.
        telemetry_flush_interval: Seconds between telemetry uploads.
        telemetry_batch_size: Events per upload; reaching it flushes early.
        telemetry_buffer_size: Events kept while uploads are pending.

    """

    base_url: str
    environment_key: str
    api_key: str | None = None
    poll_interval: float | None = 10.0
    push_enabled: bool = True
    request_timeout: float = 5.0
    push_retry_policy: RetryPolicy = field(default_factory=_push_retry_policy)
    fetch_retry_policy: RetryPolicy | None = field(default_factory=_fetch_retry_policy)
    project_id: str | None = None
    telemetry_enabled: bool = False
    telemetry_flush_interval: float = 5.0
    telemetry_batch_size: int = 100
    telemetry_buffer_size: int = 10_000

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ConfigurationError("base_url is required")
        if not self.environment_key:
            raise ConfigurationError("environment_key is required")
        if self.poll_interval is not None and self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.telemetry_enabled and not self.project_id:
            raise ConfigurationError("project_id is required when telemetry is enabled")
        if self.telemetry_batch_size < 1:
            raise ConfigurationError("telemetry_batch_size must be at least 1")
