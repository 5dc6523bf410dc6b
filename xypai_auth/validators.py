"""凭证字段校验。

纯函数，无副作用；任何网络请求之前必须先通过这里的检查。
校验失败直接抛 VALIDATION，不进入重试层，也不会发出请求。
"""

from __future__ import annotations

import re
from typing import Dict, Pattern

from .domain import (
    DEFAULT_REGION,
    AuthError,
    CodeCredentials,
    Credentials,
    ErrorKind,
    PasswordCredentials,
)


PHONE_PATTERNS: Dict[str, Pattern[str]] = {
    "+86": re.compile(r"^1[3-9][0-9]{9}$"),
    "+1": re.compile(r"^[0-9]{10}$"),
    "+44": re.compile(r"^[0-9]{10}$"),
}

KNOWN_REGIONS = ("+86", "+1", "+44", "+81", "+82", "+852", "+853", "+886")

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 20

CODE_RE = re.compile(r"^[0-9]{6}$")


def validate_phone(phone: str, region: str = DEFAULT_REGION) -> bool:
    if not phone:
        return False
    pattern = PHONE_PATTERNS.get(region) or PHONE_PATTERNS[DEFAULT_REGION]
    return pattern.fullmatch(phone) is not None


def validate_password(password: str) -> bool:
    if not password:
        return False
    return PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH


def validate_code(code: str) -> bool:
    # re 的 [0-9] 只匹配 ASCII 数字，全角数字等会被拒绝
    return bool(code) and CODE_RE.fullmatch(code) is not None


def validate_region(region: str) -> bool:
    return region in KNOWN_REGIONS


def require_phone(phone: str, region: str) -> None:
    if not validate_phone(phone, region):
        raise AuthError(ErrorKind.VALIDATION, "invalid phone number", field="phone")


def require_password(password: str, field: str = "password") -> None:
    if not validate_password(password):
        raise AuthError(
            ErrorKind.VALIDATION,
            f"password length must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH}",
            field=field,
        )


def require_code(code: str) -> None:
    if not validate_code(code):
        raise AuthError(ErrorKind.VALIDATION, "verification code must be 6 digits", field="code")


def validate_credentials(credentials: Credentials) -> None:
    """按凭证类型逐项校验，遇到第一个不合法字段即抛出。"""

    require_phone(credentials.phone, credentials.region)
    if isinstance(credentials, PasswordCredentials):
        require_password(credentials.password)
    elif isinstance(credentials, CodeCredentials):
        require_code(credentials.code)
    else:
        raise AuthError(ErrorKind.VALIDATION, "unsupported credentials", field="kind")


__all__ = [
    "PHONE_PATTERNS",
    "KNOWN_REGIONS",
    "PASSWORD_MIN_LENGTH",
    "PASSWORD_MAX_LENGTH",
    "validate_phone",
    "validate_password",
    "validate_code",
    "validate_region",
    "require_phone",
    "require_password",
    "require_code",
    "validate_credentials",
]
