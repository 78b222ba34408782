"""
Envelope kinds exchanged with the host: a closed, versioned enumeration.
"""

from enum import Enum

PROTOCOL_VERSION = 1


class OutboundKind(str, Enum):
    """Embedded runtime -> host."""
    PARAM_CHANGE = "paramChange"
    PATH_CHANGE = "pathChange"
    REQUEST_CONTEXT = "requestContext"


class InboundKind(str, Enum):
    """Host -> embedded runtime."""
    NAVIGATE = "navigate"
    SET_CONTEXT = "setContext"
    SIGN_OUT = "signOut"


class OriginTrust(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
