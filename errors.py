"""Error taxonomy for the call pipeline.

Each error maps to one HTTP status in server.py:
  - MissingConfigError -> 503 (credentials/identifiers for a dependency unset)
  - UpstreamError      -> 502 (voice, diarization or rewrite provider failed)
  - PersistenceError   -> 500 (store unavailable or unexpected constraint error)

Unrecognized webhook payloads are not errors and never raise.
"""
from typing import Optional


class CallPulseError(Exception):
    """Base class for pipeline errors surfaced to the request caller."""

    status_code = 500


class MissingConfigError(CallPulseError):
    status_code = 503

    def __init__(self, variable: str, hint: str = ""):
        self.variable = variable
        message = f"{variable} not configured"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


class UpstreamError(CallPulseError):
    status_code = 502

    def __init__(
        self,
        service: str,
        detail: str,
        upstream_status: Optional[int] = None,
    ):
        self.service = service
        self.detail = detail
        self.upstream_status = upstream_status
        status = f" {upstream_status}" if upstream_status is not None else ""
        super().__init__(f"{service} error{status}: {detail}")


class PersistenceError(CallPulseError):
    status_code = 500
