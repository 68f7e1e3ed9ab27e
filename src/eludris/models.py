"""Pydantic v2 models for the Eludris API.

Typed records for REST request/response bodies and gateway frames. Payload
shapes are passed through, not validated beyond their types: every response
model allows extra fields so newer servers don't break older clients.
All fields use snake_case matching Eludris' API convention.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Instance
# ---------------------------------------------------------------------------

class RateLimitConf(BaseModel):
    """A server advertised limit: ``limit`` calls every ``reset_after`` ms."""
    reset_after: int
    limit: int
    file_size_limit: Optional[int] = None

    model_config = {"extra": "allow"}


class InstanceRateLimits(BaseModel):
    """Per-service rate limit policy, keyed by route id."""
    oprish: Dict[str, RateLimitConf] = Field(default_factory=dict)
    pandemonium: Optional[RateLimitConf] = None
    effis: Dict[str, RateLimitConf] = Field(default_factory=dict)

    model_config = {"extra": "allow"}


class InstanceInfo(BaseModel):
    """GET /. Host URLs are what the client actually needs."""
    instance_name: str = ""
    description: Optional[str] = None
    version: str = ""
    message_limit: int = 0
    oprish_url: str = ""
    pandemonium_url: str
    effis_url: str
    file_size: int = 0
    attachment_file_size: int = 0
    rate_limits: Optional[InstanceRateLimits] = None

    model_config = {"extra": "allow", "frozen": True}


# ---------------------------------------------------------------------------
# Users & sessions
# ---------------------------------------------------------------------------

class Status(BaseModel):
    type: str = "OFFLINE"
    text: Optional[str] = None


class User(BaseModel):
    """A user as returned by the /users routes."""
    id: int
    username: str
    display_name: Optional[str] = None
    social_credit: int = 0
    status: Status = Field(default_factory=Status)
    bio: Optional[str] = None
    avatar: Optional[int] = None
    banner: Optional[int] = None
    badges: int = 0
    permissions: int = 0
    email: Optional[str] = None
    verified: Optional[bool] = None

    model_config = {"extra": "allow"}


class UserCreate(BaseModel):
    username: str
    email: str
    password: str


class UpdateUser(BaseModel):
    """PATCH /users. ``password`` is the current password."""
    password: str
    username: Optional[str] = None
    email: Optional[str] = None
    new_password: Optional[str] = None


class UpdateUserProfile(BaseModel):
    """PATCH /users/profile. Only fields that were explicitly set are sent."""
    display_name: Optional[str] = None
    status: Optional[str] = None
    status_type: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[int] = None
    banner: Optional[int] = None


class PasswordDeleteCredentials(BaseModel):
    password: str


class CreatePasswordResetCode(BaseModel):
    email: str


class ResetPassword(BaseModel):
    code: int
    email: str
    password: str


class SessionCreate(BaseModel):
    identifier: str  # username or email
    password: str
    platform: str = "python"
    client: str = "eludris.py"


class Session(BaseModel):
    id: int
    user_id: int
    platform: str = ""
    client: str = ""
    ip: Optional[str] = None

    model_config = {"extra": "allow"}


class SessionCreated(BaseModel):
    """POST /sessions response. ``token`` authenticates REST and gateway."""
    token: str
    session: Session

    model_config = {"extra": "allow"}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class MessageDisguise(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class MessageCreate(BaseModel):
    content: str
    disguise: Optional[MessageDisguise] = None


class Message(BaseModel):
    author: User
    content: str = ""
    disguise: Optional[MessageDisguise] = None

    model_config = {"extra": "allow"}


# ---------------------------------------------------------------------------
# Files (Effis)
# ---------------------------------------------------------------------------

class FileMetadata(BaseModel):
    type: str = "other"  # image / video / text / other
    width: Optional[int] = None
    height: Optional[int] = None

    model_config = {"extra": "allow"}


class FileData(BaseModel):
    """Upload response and GET /{bucket}/{id}/data."""
    id: int
    name: str = ""
    bucket: str = ""
    spoiler: bool = False
    metadata: FileMetadata = Field(default_factory=FileMetadata)

    model_config = {"extra": "allow"}


# ---------------------------------------------------------------------------
# Gateway (Pandemonium) payloads
# ---------------------------------------------------------------------------

class Hello(BaseModel):
    """HELLO frame data. ``heartbeat_interval`` is in milliseconds."""
    heartbeat_interval: int
    instance_info: Optional[InstanceInfo] = None
    rate_limit: Optional[RateLimitConf] = None

    model_config = {"extra": "allow"}


class GatewayRateLimit(BaseModel):
    """RATE_LIMIT frame data: milliseconds until the gateway accepts frames again."""
    wait: int


class PresenceUpdate(BaseModel):
    user_id: int
    status: Status


class ServerFrame(BaseModel):
    """A decoded inbound frame.

    ``d`` is the validated payload model for known ops and the raw JSON
    value for unknown ones. ``has_data`` records whether the frame carried
    a ``d`` field at all, since a payload can legitimately be null.
    """
    op: str
    d: Any = None
    has_data: bool = False


class ClientPayload(BaseModel):
    """An outbound frame: ``{"op": ..., "d": ...}`` with ``d`` omitted when absent."""
    op: str
    d: Any = None

    @classmethod
    def ping(cls) -> "ClientPayload":
        return cls(op="PING")

    @classmethod
    def authenticate(cls, token: str) -> "ClientPayload":
        return cls(op="AUTHENTICATE", d=token)

    def to_json(self) -> str:
        if self.d is None:
            return self.model_dump_json(include={"op"})
        return self.model_dump_json()


def dump_body(model: BaseModel, partial: bool = False) -> Dict[str, Any]:
    """JSON request body for a model.

    Unset optional fields are dropped. With ``partial`` only the fields the
    caller explicitly set are sent, so an explicit None clears a value.
    """
    if partial:
        return model.model_dump(mode="json", exclude_unset=True)
    return model.model_dump(mode="json", exclude_none=True)
