"""Structured logging integration.

:class:`LoggingHook` logs evaluations, snapshot updates and evaluation
events. It uses structlog when it is installed (``pip install
litestar-flagsync[structlog]``) and the standard library otherwise.

Example:
    >>> hook = LoggingHook(evaluation_level="INFO")
    >>> client = FlagSyncClient(options, telemetry=hook)  # doctest: +SKIP
    >>> client.on_update(hook.on_snapshot)  # doctest: +SKIP

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

try:
    import structlog

    STRUCTLOG_AVAILABLE = True
except ImportError:
    structlog = None  # type: ignore[assignment]
    STRUCTLOG_AVAILABLE = False

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_flagsync.context import EvaluationContext
    from litestar_flagsync.models.snapshot import Snapshot
    from litestar_flagsync.results import EvaluationResult
    from litestar_flagsync.telemetry import EvaluationEvent

__all__ = ["STRUCTLOG_AVAILABLE", "LoggingHook"]


def _get_default_logger() -> Any:
    if STRUCTLOG_AVAILABLE and structlog is not None:
        return structlog.get_logger("litestar_flagsync")
    return logging.getLogger("litestar_flagsync")


class LoggingHook:
    """Logs flag evaluations with structured data.

    Values are not logged unless ``log_values`` is set, since flag values can
    carry sensitive configuration.

    Args:
        logger: structlog or stdlib logger; a ``litestar_flagsync`` logger
            by default.
        evaluation_level: Level of successful evaluations.
        error_level: Level of ERROR and FALLBACK results.
        log_values: Include served values.
        include_context: Include the targeting key and attribute names.

    """

    def __init__(
        self,
        logger: Any = None,
        evaluation_level: str = "DEBUG",
        error_level: str = "ERROR",
        log_values: bool = False,
        include_context: bool = True,
    ) -> None:
        self._logger = logger if logger is not None else _get_default_logger()
        self._use_structlog = STRUCTLOG_AVAILABLE and not isinstance(self._logger, logging.Logger)
        self._evaluation_level = evaluation_level
        self._error_level = error_level
        self._log_values = log_values
        self._include_context = include_context

    @property
    def logger(self) -> Any:
        return self._logger

    def _get_log_method(self, level: str) -> Callable[..., Any]:
        methods = {
            "DEBUG": self._logger.debug,
            "INFO": self._logger.info,
            "WARNING": self._logger.warning,
            "ERROR": self._logger.error,
            "CRITICAL": self._logger.critical,
        }
        return methods.get(level.upper(), self._logger.debug)

    def _log_with_data(self, level: str, message: str, data: dict[str, Any]) -> None:
        method = self._get_log_method(level)
        if self._use_structlog:
            method(message, **data)
        else:
            method(message, extra=data)

    def _build_log_data(
        self,
        flag_key: str,
        result: EvaluationResult,
        context: EvaluationContext | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "flag_key": flag_key,
            "reason": result.reason.value,
            "variation_id": result.variation_id,
        }
        if self._log_values:
            data["value"] = result.value
        if result.matched_rule_id:
            data["matched_rule_id"] = result.matched_rule_id
        if result.bucket is not None:
            data["bucket"] = result.bucket
        if result.snapshot_version is not None:
            data["snapshot_version"] = result.snapshot_version
        if result.error_code:
            data["error_code"] = result.error_code.value
        if result.error_detail:
            data["error_detail"] = result.error_detail
        if context is not None and self._include_context:
            data.update(self._context_data(context))
        return data

    @staticmethod
    def _context_data(context: EvaluationContext) -> dict[str, Any]:
        data: dict[str, Any] = {"context_attributes": sorted(context.attributes)}
        if context.targeting_key:
            data["targeting_key"] = context.targeting_key
        return data

    def log_evaluation_sync(
        self,
        flag_key: str,
        result: EvaluationResult,
        context: EvaluationContext | None = None,
    ) -> None:
        data = self._build_log_data(flag_key, result, context)
        if result.is_error:
            self._log_with_data(self._error_level, f"Feature flag evaluation error: {flag_key}", data)
        else:
            self._log_with_data(self._evaluation_level, f"Feature flag evaluated: {flag_key}", data)

    async def log_evaluation(
        self,
        flag_key: str,
        result: EvaluationResult,
        context: EvaluationContext | None = None,
    ) -> None:
        self.log_evaluation_sync(flag_key, result, context)

    async def on_error(self, error: Exception, flag_key: str, context: EvaluationContext | None = None) -> None:
        data: dict[str, Any] = {
            "flag_key": flag_key,
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if context is not None and self._include_context:
            data.update(self._context_data(context))
        method = self._get_log_method(self._error_level)
        if self._use_structlog:
            method(f"Feature flag evaluation exception: {flag_key}", exc_info=error, **data)
        else:
            method(f"Feature flag evaluation exception: {flag_key}", exc_info=error, extra=data)

    def emit(self, event: EvaluationEvent) -> None:
        """Log an evaluation event; lets the hook stand in for telemetry upload."""
        data = event.to_dict()
        if not self._log_values:
            data.pop("value", None)
        if not self._include_context:
            data.pop("context_attributes", None)
        level = self._error_level if event.error_code else self._evaluation_level
        self._log_with_data(level, f"Feature flag evaluated: {event.flag_key}", data)

    def on_snapshot(self, snapshot: Snapshot) -> None:
        """Update listener logging every applied snapshot."""
        self._log_with_data(
            "INFO",
            f"Feature flag snapshot applied: v{snapshot.version}",
            {
                "environment_id": snapshot.environment_id,
                "version": snapshot.version,
                "flag_count": len(snapshot.flags),
                "segment_count": len(snapshot.segments),
            },
        )

    def bind(self, **kwargs: Any) -> LoggingHook:
        """Return a hook whose logger carries extra bound context (structlog only)."""
        logger = self._logger
        if self._use_structlog and structlog is not None:
            logger = self._logger.bind(**kwargs)
        hook = LoggingHook(
            logger=logger,
            evaluation_level=self._evaluation_level,
            error_level=self._error_level,
            log_values=self._log_values,
            include_context=self._include_context,
        )
        hook._use_structlog = self._use_structlog
        return hook
