"""Monitor schemas shared by the engine and the API layer."""
import json
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, FrozenSet, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigError

DEFAULT_ALLOWED_CODES = (200,)
DEFAULT_MAX_RESPONSE_MS = 2000


class MonitorType(str, Enum):
    HTTP = "http"
    TCP = "tcp"
    MONGODB = "mongodb"
    REDIS = "redis"


class MonitorState(IntEnum):
    """Persisted health value of a monitor."""
    UP = 0
    DOWN = 1


class AuthMethod(str, Enum):
    NONE = "none"
    BASIC = "basic"
    TOKEN = "token"


def _json_list(value: Any, what: str) -> Any:
    """Accept legacy JSON-encoded text as well as real lists."""
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError(f"{what} must be a JSON list")
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError(f"{what} must be a list")
    return value


class AssertionConfig(BaseModel):
    """Pass/fail rules applied to every response of one monitor."""
    allowed_codes: FrozenSet[int] = frozenset(DEFAULT_ALLOWED_CODES)
    max_response_ms: int = Field(default=DEFAULT_MAX_RESPONSE_MS, gt=0)
    allowed_content_types: FrozenSet[str] = frozenset()

    class Config:
        frozen = True

    @field_validator("allowed_codes", mode="before")
    @classmethod
    def _parse_codes(cls, value):
        codes = _json_list(value, "status codes")
        return codes or list(DEFAULT_ALLOWED_CODES)

    @field_validator("allowed_codes")
    @classmethod
    def _check_codes(cls, value):
        for code in value:
            if not 100 <= code <= 599:
                raise ValueError(f"invalid HTTP status code: {code}")
        return value

    @field_validator("allowed_content_types", mode="before")
    @classmethod
    def _parse_content_types(cls, value):
        types = _json_list(value, "content types")
        return [str(t).split(";")[0].strip().lower() for t in types if str(t).strip()]


class MonitorConfig(BaseModel):
    """Validated, immutable view of one monitor as the engine sees it."""
    id: int
    user_id: int
    notification_id: Optional[int] = None
    name: str
    type: MonitorType = MonitorType.HTTP
    url: str
    port: Optional[int] = None
    frequency: int = Field(default=30, gt=0)
    method: str = "GET"
    headers: Optional[str] = None  # JSON map, parsed per request
    body: Optional[str] = None
    auth_method: AuthMethod = AuthMethod.NONE
    basic_auth_user: Optional[str] = None
    basic_auth_pass: Optional[str] = None
    bearer_token: Optional[str] = None
    timeout: int = Field(default=10, gt=0)
    redirects: int = Field(default=0, ge=0)
    assertions: AssertionConfig = AssertionConfig()
    alert_threshold: int = Field(default=1, ge=0)
    active: bool = True
    status: MonitorState = MonitorState.UP
    last_changed: Optional[datetime] = None

    class Config:
        frozen = True

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value):
        return (value or "GET").upper()

    @field_validator("auth_method", mode="before")
    @classmethod
    def _default_auth(cls, value):
        return value or AuthMethod.NONE

    @classmethod
    def from_model(cls, monitor) -> "MonitorConfig":
        """Build from a ``Monitor`` row, raising ConfigError on bad data."""
        try:
            return cls(
                id=monitor.id,
                user_id=monitor.user_id,
                notification_id=monitor.notification_id,
                name=monitor.name,
                type=monitor.type,
                url=monitor.url,
                port=monitor.port,
                frequency=monitor.frequency,
                method=monitor.method,
                headers=monitor.headers,
                body=monitor.body,
                auth_method=monitor.http_auth_method,
                basic_auth_user=monitor.basic_auth_user,
                basic_auth_pass=monitor.basic_auth_pass,
                bearer_token=monitor.bearer_token,
                timeout=monitor.timeout,
                redirects=monitor.redirects,
                assertions=AssertionConfig(
                    allowed_codes=monitor.status_codes,
                    max_response_ms=monitor.max_response_ms or DEFAULT_MAX_RESPONSE_MS,
                    allowed_content_types=monitor.content_types,
                ),
                alert_threshold=monitor.alert_threshold,
                active=bool(monitor.active),
                status=monitor.status,
                last_changed=monitor.last_changed,
            )
        except ValidationError as e:
            raise ConfigError(f"invalid monitor configuration: {e}", monitor_id=monitor.id, cause=e)


class MonitorCreate(BaseModel):
    """Schema for creating a new monitor."""
    user_id: int
    notification_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    type: MonitorType = MonitorType.HTTP
    url: str = Field(..., min_length=1)
    port: Optional[int] = Field(None, ge=1, le=65535)
    frequency: int = Field(default=30, ge=1, le=86400)
    method: str = Field(default="GET", pattern="^(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)$")
    headers: Optional[str] = None
    body: Optional[str] = None
    auth_method: AuthMethod = AuthMethod.NONE
    basic_auth_user: Optional[str] = None
    basic_auth_pass: Optional[str] = None
    bearer_token: Optional[str] = None
    timeout: int = Field(default=10, ge=1, le=300)
    redirects: int = Field(default=0, ge=0, le=20)
    assertions: AssertionConfig = AssertionConfig()
    alert_threshold: int = Field(default=1, ge=0)
    active: bool = True

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value):
        return (value or "GET").upper()
