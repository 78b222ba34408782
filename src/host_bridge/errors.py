"""
host-bridge error types.

TransportError and ValidationError are contained at the message boundary,
AuthError blocks gated content, FetchError goes to the requesting consumer only.
"""

from typing import Any, Optional


class HostBridgeError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class TransportError(HostBridgeError):
    def __init__(self, message: str, code: str = "transport_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class RequestTimeoutError(TransportError):
    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message, code="request_timeout", details={"request_id": request_id})
        self.request_id = request_id


class AuthError(HostBridgeError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class FetchError(HostBridgeError):
    def __init__(self, message: str, key: tuple = (), attempts: int = 1, code: str = "fetch_error"):
        super().__init__(code, message, {"key": list(key), "attempts": attempts})
        self.key = key
        self.attempts = attempts


class ValidationError(HostBridgeError):
    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__("validation_error", message, {"kind": kind})
        self.kind = kind


class InvalidTransitionError(HostBridgeError):
    def __init__(self, source: str, target: str):
        super().__init__("invalid_transition", f"Illegal session transition {source} -> {target}")
        self.source = source
        self.target = target
