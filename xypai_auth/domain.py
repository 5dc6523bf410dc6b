"""认证客户端的领域模型。

集中管理：
- 凭证（密码 / 验证码）、用户身份、会话；
- 重试策略与错误分类（ErrorKind + AuthError）；
- 会话状态机的状态枚举。

所有对外抛出的失败都必须是 AuthError，调用方只依赖 kind 做分支。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


UTC = timezone.utc

DEFAULT_REGION = "+86"
# 后端未返回 expiresIn 时的兜底有效期（秒）
DEFAULT_EXPIRES_IN = 3600


def now_utc() -> datetime:
    return datetime.now(UTC)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NETWORK = "network"
    SERVER_ERROR = "server_error"
    AUTH_REJECTED = "auth_rejected"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class AuthError(Exception):
    """认证层统一异常，携带分类后的错误种类。

    - kind: ErrorKind，调用方唯一可依赖的判别字段；
    - retryable: 是否允许按重试策略再次尝试；
    - status: HTTP 状态码（或信封中的业务码），SERVER_ERROR 时必有；
    - code: 后端返回的业务错误码（如有）；
    - field: 校验失败的字段名（仅 VALIDATION）。
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        *,
        retryable: bool = False,
        status: Optional[int] = None,
        code: Any = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.retryable = retryable
        self.status = status
        self.code = code
        self.field = field

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, status={self.status!r}, message={self.message!r})"


class CodePurpose(str, Enum):
    LOGIN = "LOGIN"
    REGISTER = "REGISTER"
    RESET_PASSWORD = "RESET_PASSWORD"


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class PasswordCredentials:
    phone: str
    password: str
    region: str = DEFAULT_REGION
    kind: str = field(default="password", init=False)


@dataclass(frozen=True)
class CodeCredentials:
    phone: str
    code: str
    region: str = DEFAULT_REGION
    kind: str = field(default="code", init=False)


Credentials = Union[PasswordCredentials, CodeCredentials]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")

    def delay_ms(self, attempt: int) -> float:
        """第 attempt 次（从 1 开始）失败后、下一次尝试前的等待毫秒数。"""
        return self.base_delay_ms * self.backoff_multiplier ** (attempt - 1)


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(frozen=True)
class Identity:
    id: str
    phone: str
    nickname: str = ""
    avatar: str = ""
    verified: bool = True
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "phone": self.phone,
            "nickname": self.nickname,
            "avatar": self.avatar,
            "verified": self.verified,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            id=str(data["id"]),
            phone=str(data["phone"]),
            nickname=data.get("nickname") or "",
            avatar=data.get("avatar") or "",
            verified=bool(data.get("verified", True)),
            created_at=data.get("created_at") or "",
        )


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: str
    expires_at: datetime
    identity: Identity

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or now_utc()) >= self.expires_at

    def expires_within(self, lead: timedelta, now: Optional[datetime] = None) -> bool:
        return (now or now_utc()) + lead >= self.expires_at

    def with_tokens(self, access_token: str, refresh_token: str, expires_at: datetime) -> "Session":
        return replace(self, access_token=access_token, refresh_token=refresh_token, expires_at=expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
            "identity": self.identity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=parse_ts(data["expires_at"]),
            identity=Identity.from_dict(data["identity"]),
        )


@dataclass(frozen=True)
class LoginResult:
    session: Session
    is_new_user: bool = False


def calc_expires_at(expires_in: Optional[int], now: Optional[datetime] = None) -> datetime:
    seconds = expires_in if expires_in and expires_in > 0 else DEFAULT_EXPIRES_IN
    return (now or now_utc()) + timedelta(seconds=seconds)


def parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), UTC)
    if isinstance(value, str):
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=UTC)
    raise ValueError("unsupported datetime format")


def mask_token(token: Optional[str]) -> str:
    if not token:
        return ""
    s = str(token)
    if len(s) <= 18:
        return s
    return f"{s[:12]}...{s[-4:]}"


__all__ = [
    "UTC",
    "DEFAULT_REGION",
    "DEFAULT_EXPIRES_IN",
    "now_utc",
    "ErrorKind",
    "AuthError",
    "CodePurpose",
    "SessionState",
    "PasswordCredentials",
    "CodeCredentials",
    "Credentials",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "Identity",
    "Session",
    "LoginResult",
    "calc_expires_at",
    "parse_ts",
    "mask_token",
]
