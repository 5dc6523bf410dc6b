"""认证相关 API 封装。

每个身份操作的固定流程：
1. 本地校验（失败立即抛 VALIDATION，不发请求、不重试）；
2. 组装请求体；
3. 交给 RetryExecutor 执行（默认 3 次重试，1 秒起的指数退避）；
4. 把响应信封适配为规范模型返回，失败则抛分类后的 AuthError。

后端标准信封为 {code, message, data}，code == 200 表示成功；
旧版 {success, message, data} 在这里统一转换，上层不再区分新旧格式。
本模块不持有任何会话状态，token 等都由调用方传入。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .domain import (
    DEFAULT_REGION,
    DEFAULT_RETRY_POLICY,
    AuthError,
    CodePurpose,
    Credentials,
    ErrorKind,
    PasswordCredentials,
    RetryPolicy,
)
from .http_client import HttpResponse, HttpStatusError
from .retry import RetryExecutor
from .validators import require_code, require_password, require_phone, validate_credentials

logger = logging.getLogger(__name__)


PASSWORD_LOGIN = "/auth/login/password"
SMS_LOGIN = "/auth/login/sms"
REFRESH_TOKEN = "/auth/token/refresh"
LOGOUT = "/auth/logout"
SEND_SMS = "/auth/sms/send"
VERIFY_RESET_CODE = "/auth/password/reset/verify"
RESET_PASSWORD = "/auth/password/reset/confirm"

SUCCESS_CODE = 200


class Transport(Protocol):
    async def post(
        self,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse: ...


@dataclass(frozen=True)
class Envelope:
    code: int
    message: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS_CODE


@dataclass(frozen=True)
class LoginPayload:
    token: str
    user_id: str
    nickname: str = ""
    avatar: str = ""
    is_new_user: bool = False
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    @classmethod
    def from_data(cls, data: Any) -> "LoginPayload":
        if not isinstance(data, dict):
            raise AuthError(ErrorKind.UNKNOWN, "malformed login response")
        token = data.get("token") or data.get("accessToken") or data.get("access_token")
        user_id = data.get("userId") or data.get("user_id")
        info = data.get("userInfo")
        if user_id is None and isinstance(info, dict):
            user_id = info.get("id")
        if not token or user_id is None:
            raise AuthError(ErrorKind.UNKNOWN, "malformed login response")
        nickname = data.get("nickname")
        avatar = data.get("avatar")
        if isinstance(info, dict):
            nickname = nickname or info.get("nickname")
            avatar = avatar or info.get("avatar")
        return cls(
            token=token,
            user_id=str(user_id),
            nickname=nickname or "",
            avatar=avatar or "",
            is_new_user=bool(data.get("isNewUser") or data.get("is_new_user")),
            refresh_token=data.get("refreshToken") or data.get("refresh_token") or None,
            expires_in=_as_int(data.get("expiresIn", data.get("expires_in"))),
        )


@dataclass(frozen=True)
class TokenPayload:
    token: str
    refresh_token: str
    expires_in: Optional[int] = None

    @classmethod
    def from_data(cls, data: Any) -> "TokenPayload":
        if not isinstance(data, dict):
            raise AuthError(ErrorKind.UNKNOWN, "malformed refresh response")
        token = data.get("token") or data.get("accessToken") or data.get("access_token")
        if not token:
            raise AuthError(ErrorKind.UNKNOWN, "malformed refresh response")
        # 后端可能不轮换 refreshToken，此时沿用新 token
        refresh = data.get("refreshToken") or data.get("refresh_token") or token
        return cls(
            token=token,
            refresh_token=refresh,
            expires_in=_as_int(data.get("expiresIn", data.get("expires_in"))),
        )


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def adapt_envelope(status_code: int, body: Any) -> Envelope:
    """把新旧两种响应格式统一为 Envelope。"""

    if body is None or body == "":
        return Envelope(code=status_code if status_code >= 300 else SUCCESS_CODE)
    if not isinstance(body, dict):
        raise AuthError(ErrorKind.UNKNOWN, "malformed response body", status=status_code)

    message = body.get("message") or body.get("msg") or ""
    if "code" in body:
        code = _as_int(body.get("code"))
        if code is None:
            # 非数字业务码（如 "OK"/"ERR_xxx"）按 success 字段或 HTTP 状态判断
            code = SUCCESS_CODE if body.get("success", status_code < 300) else 400
        return Envelope(code=code, message=message, data=body.get("data"))
    if "success" in body:
        return Envelope(code=SUCCESS_CODE if body["success"] else 400, message=message, data=body.get("data"))
    return Envelope(code=SUCCESS_CODE, message=message, data=body)


class AuthApiClient:
    def __init__(
        self,
        transport: Transport,
        *,
        executor: Optional[RetryExecutor] = None,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        device_id: Optional[str] = None,
    ) -> None:
        self._transport = transport
        self._executor = executor or RetryExecutor()
        self._policy = policy
        self.device_id = device_id

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        if self.device_id:
            headers["X-Device-Id"] = self.device_id
        return headers

    async def _call(
        self,
        name: str,
        path: str,
        body: Dict[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Any:
        headers = self._headers(access_token)

        async def operation() -> Any:
            resp = await self._transport.post(path, body, headers=headers)
            envelope = adapt_envelope(resp.status_code, resp.data)
            if not envelope.ok:
                # 信封业务码按 HTTP 状态同样的规则归类
                raise HttpStatusError(envelope.code, resp.data)
            return envelope.data

        return await self._executor.execute(operation, self._policy, name=name)

    # --- 登录 ---

    async def password_login(
        self,
        phone: str,
        password: str,
        region: str = DEFAULT_REGION,
        *,
        agree_to_terms: bool = True,
    ) -> LoginPayload:
        require_phone(phone, region)
        require_password(password)
        body = {
            "countryCode": region,
            "mobile": phone,
            "password": password,
            "agreeToTerms": agree_to_terms,
        }
        data = await self._call("password_login", PASSWORD_LOGIN, body)
        return LoginPayload.from_data(data)

    async def code_login(
        self,
        phone: str,
        code: str,
        region: str = DEFAULT_REGION,
        *,
        agree_to_terms: bool = True,
    ) -> LoginPayload:
        require_phone(phone, region)
        require_code(code)
        body = {
            "countryCode": region,
            "mobile": phone,
            "verificationCode": code,
            "agreeToTerms": agree_to_terms,
        }
        data = await self._call("code_login", SMS_LOGIN, body)
        return LoginPayload.from_data(data)

    async def login(self, credentials: Credentials) -> LoginPayload:
        validate_credentials(credentials)
        if isinstance(credentials, PasswordCredentials):
            return await self.password_login(credentials.phone, credentials.password, credentials.region)
        return await self.code_login(credentials.phone, credentials.code, credentials.region)

    # --- Token ---

    async def refresh_token(self, refresh_token: str) -> TokenPayload:
        if not refresh_token:
            raise AuthError(ErrorKind.VALIDATION, "refresh token is empty", field="refresh_token")
        data = await self._call("refresh_token", REFRESH_TOKEN, {"refreshToken": refresh_token})
        return TokenPayload.from_data(data)

    async def logout(self, access_token: Optional[str] = None, device_id: Optional[str] = None) -> None:
        if not access_token:
            logger.debug("logout without session, nothing to do")
            return
        body: Dict[str, Any] = {}
        device = device_id or self.device_id
        if device:
            body["deviceId"] = device
        await self._call("logout", LOGOUT, body, access_token=access_token)

    # --- 验证码 / 重置密码 ---

    async def send_code(self, phone: str, purpose: CodePurpose, region: str = DEFAULT_REGION) -> None:
        require_phone(phone, region)
        try:
            purpose = CodePurpose(purpose)
        except ValueError:
            raise AuthError(ErrorKind.VALIDATION, "unknown code purpose", field="purpose") from None
        body = {"countryCode": region, "phoneNumber": phone, "purpose": purpose.value}
        await self._call("send_code", SEND_SMS, body)

    async def send_login_code(self, phone: str, region: str = DEFAULT_REGION) -> None:
        await self.send_code(phone, CodePurpose.LOGIN, region)

    async def send_register_code(self, phone: str, region: str = DEFAULT_REGION) -> None:
        await self.send_code(phone, CodePurpose.REGISTER, region)

    async def send_reset_password_code(self, phone: str, region: str = DEFAULT_REGION) -> None:
        await self.send_code(phone, CodePurpose.RESET_PASSWORD, region)

    async def verify_reset_code(self, phone: str, code: str, region: str = DEFAULT_REGION) -> None:
        require_phone(phone, region)
        require_code(code)
        body = {"countryCode": region, "phoneNumber": phone, "verificationCode": code}
        await self._call("verify_reset_code", VERIFY_RESET_CODE, body)

    async def reset_password(
        self,
        phone: str,
        code: str,
        new_password: str,
        region: str = DEFAULT_REGION,
    ) -> None:
        require_phone(phone, region)
        require_code(code)
        require_password(new_password, field="new_password")
        body = {
            "countryCode": region,
            "phoneNumber": phone,
            "verificationCode": code,
            "newPassword": new_password,
        }
        await self._call("reset_password", RESET_PASSWORD, body)


__all__ = [
    "PASSWORD_LOGIN",
    "SMS_LOGIN",
    "REFRESH_TOKEN",
    "LOGOUT",
    "SEND_SMS",
    "VERIFY_RESET_CODE",
    "RESET_PASSWORD",
    "Transport",
    "Envelope",
    "LoginPayload",
    "TokenPayload",
    "adapt_envelope",
    "AuthApiClient",
]
