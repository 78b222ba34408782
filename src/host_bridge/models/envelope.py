"""
Message envelope: one unit sent across the host/embedded boundary.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from host_bridge.models.events import PROTOCOL_VERSION, InboundKind, OriginTrust, OutboundKind


class EnvelopeMetadata(BaseModel):
    event_id: str
    request_id: Optional[str] = None
    timestamp: str
    version: int = PROTOCOL_VERSION


class MessageEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Union[InboundKind, OutboundKind]
    payload: Optional[Any] = None
    metadata: Optional[EnvelopeMetadata] = None
    origin: Optional[str] = None
    origin_trust: OriginTrust = OriginTrust.UNVERIFIED

    @property
    def verified(self) -> bool:
        return self.origin_trust is OriginTrust.VERIFIED

    @property
    def request_id(self) -> Optional[str]:
        return self.metadata.request_id if self.metadata else None


class PathChangePayload(BaseModel):
    """Outbound pathChange payload."""
    model_config = ConfigDict(populate_by_name=True)

    app_name: str = Field(alias="appName")
    url: str
