from __future__ import annotations

from typing import Any, Optional


class OrchestratorError(Exception):
    """Request-level failure, rendered as the ``{ok: false, ...}`` envelope."""

    status_code = 500

    def __init__(self, message: str, *, upstream: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream = upstream


class ConfigError(OrchestratorError):
    pass


class UpstreamError(OrchestratorError):
    """Non-2xx response, timeout or transport error from the Pressero admin API."""

    def __init__(self, message: str, *, status: Optional[int] = None, upstream: Any = None) -> None:
        super().__init__(message, upstream=upstream)
        self.status = status
        if status is not None:
            self.status_code = status


class AddressResolutionError(OrchestratorError):
    pass
