"""
Session models: accounts, tokens and the authentication state variants.

SessionState is a tagged union discriminated by ``phase``; callers branch on
the variant instead of catching exceptions for expected outcomes.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: Optional[str] = None
    tenant_id: Optional[str] = None


class AccessToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    expires_at: datetime
    scopes: frozenset[str] = frozenset()

    def valid_for(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at - margin > now

    def covers(self, scopes: frozenset[str]) -> bool:
        return scopes <= self.scopes


class AuthResult(BaseModel):
    """What an identity provider hands back after a successful acquisition."""
    account: Account
    token: AccessToken


class InteractionMode(str, Enum):
    OVERLAY = "overlay"
    HANDOFF = "handoff"


class _State(BaseModel):
    model_config = ConfigDict(frozen=True)


class Uninitialized(_State):
    phase: Literal["uninitialized"] = "uninitialized"


class ResolvingHandoff(_State):
    phase: Literal["resolving_handoff"] = "resolving_handoff"
    session_id: Optional[str] = None


class NoAccount(_State):
    phase: Literal["no_account"] = "no_account"


class AcquiringInteractive(_State):
    phase: Literal["acquiring_interactive"] = "acquiring_interactive"
    mode: InteractionMode = InteractionMode.OVERLAY


class Authenticated(_State):
    phase: Literal["authenticated"] = "authenticated"
    account: Account
    token: AccessToken


class SilentRefreshing(_State):
    phase: Literal["silent_refreshing"] = "silent_refreshing"
    account: Account


class Failed(_State):
    phase: Literal["failed"] = "failed"
    reason: str


SessionState = Annotated[
    Union[
        Uninitialized,
        ResolvingHandoff,
        NoAccount,
        AcquiringInteractive,
        Authenticated,
        SilentRefreshing,
        Failed,
    ],
    Field(discriminator="phase"),
]
