"""
Envelope construction and parsing for the host channel.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from host_bridge.models.envelope import EnvelopeMetadata, MessageEnvelope
from host_bridge.models.events import InboundKind, OriginTrust, OutboundKind


def build_envelope(
    kind: OutboundKind,
    payload: Any = None,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build an outbound envelope as a JSON-shaped dict ready for the channel."""
    envelope = MessageEnvelope(
        kind=kind,
        payload=payload,
        metadata=EnvelopeMetadata(
            event_id=str(uuid.uuid4()),
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ),
    )
    return envelope.model_dump(mode="json", include={"kind", "payload", "metadata"})


def resolve_trust(origin: Optional[str], trusted_origins: Iterable[str]) -> OriginTrust:
    if isinstance(origin, str) and origin.rstrip("/") in {o.rstrip("/") for o in trusted_origins}:
        return OriginTrust.VERIFIED
    return OriginTrust.UNVERIFIED


def parse_envelope(
    raw: Any,
    origin: Optional[str] = None,
    trusted_origins: Iterable[str] = (),
) -> Optional[MessageEnvelope]:
    """Parse an inbound envelope. Returns None for malformed data or unknown kinds."""
    if not isinstance(raw, dict):
        return None
    try:
        kind = InboundKind(raw.get("kind"))
    except ValueError:
        return None
    declared = origin if origin is not None else raw.get("origin")
    try:
        return MessageEnvelope.model_validate({
            "kind": kind,
            "payload": raw.get("payload"),
            "metadata": raw.get("metadata"),
            "origin": declared,
            "origin_trust": resolve_trust(declared, trusted_origins),
        })
    except Exception:
        return None
