"""错误分类策略。

把传输层/HTTP 层的原始失败归一为封闭的 ErrorKind 集合，并给出是否可重试：

1. 没有响应对象（连接失败、超时等）→ NETWORK，可重试；
2. HTTP 5xx → SERVER_ERROR(status)，可重试；
3. HTTP 429 → RATE_LIMITED，可重试（与 5xx 同一退避策略）；
4. HTTP 401/403 → AUTH_REJECTED，不可重试；
5. 其它 4xx → 响应体是结构化错误时 VALIDATION，否则 UNKNOWN，不可重试；
6. 其它一律 UNKNOWN，不可重试。

会话层再用 session_action_for 判断失败是否“会话致命”。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import requests

from .domain import AuthError, ErrorKind
from .http_client import HttpStatusError


MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "request parameters are invalid",
    ErrorKind.NETWORK: "network connection failed",
    ErrorKind.SERVER_ERROR: "server is temporarily unavailable",
    ErrorKind.AUTH_REJECTED: "authentication was rejected",
    ErrorKind.RATE_LIMITED: "too many requests, try again later",
    ErrorKind.UNKNOWN: "request failed",
}


class SessionAction(str, Enum):
    LOGOUT = "logout"
    NOOP = "noop"


def _is_structured(body: Any) -> bool:
    return isinstance(body, dict) and any(k in body for k in ("message", "msg", "code"))


def _server_code(body: Any) -> Any:
    if isinstance(body, dict):
        return body.get("code") or body.get("error_code")
    return None


def classify_status(status: int, body: Any = None) -> AuthError:
    code = _server_code(body)
    if 500 <= status < 600:
        kind, retryable = ErrorKind.SERVER_ERROR, True
    elif status == 429:
        kind, retryable = ErrorKind.RATE_LIMITED, True
    elif status in (401, 403):
        kind, retryable = ErrorKind.AUTH_REJECTED, False
    elif 400 <= status < 500:
        kind = ErrorKind.VALIDATION if _is_structured(body) else ErrorKind.UNKNOWN
        retryable = False
    else:
        kind, retryable = ErrorKind.UNKNOWN, False
    return AuthError(kind, MESSAGES[kind], retryable=retryable, status=status, code=code)


def _response_of(exc: BaseException) -> Optional[requests.Response]:
    if isinstance(exc, requests.exceptions.RequestException):
        return exc.response
    return None


def classify_error(raw: BaseException) -> AuthError:
    if isinstance(raw, AuthError):
        return raw

    if isinstance(raw, HttpStatusError):
        return classify_status(raw.status_code, raw.data)

    if isinstance(raw, requests.exceptions.RequestException):
        resp = _response_of(raw)
        if resp is None:
            return AuthError(ErrorKind.NETWORK, MESSAGES[ErrorKind.NETWORK], retryable=True)
        body: Any = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        return classify_status(resp.status_code, body)

    # asyncio / socket 层面的连接失败
    if isinstance(raw, (ConnectionError, TimeoutError, OSError)):
        return AuthError(ErrorKind.NETWORK, MESSAGES[ErrorKind.NETWORK], retryable=True)

    return AuthError(ErrorKind.UNKNOWN, MESSAGES[ErrorKind.UNKNOWN], retryable=False)


def is_retryable(raw: BaseException) -> bool:
    return classify_error(raw).retryable


def session_action_for(error: AuthError) -> SessionAction:
    if error.kind == ErrorKind.AUTH_REJECTED:
        return SessionAction.LOGOUT
    return SessionAction.NOOP


__all__ = [
    "MESSAGES",
    "SessionAction",
    "classify_status",
    "classify_error",
    "is_retryable",
    "session_action_for",
]
