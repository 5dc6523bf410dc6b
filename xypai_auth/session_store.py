"""会话状态机：认证状态的唯一事实来源。

状态：UNINITIALIZED → INITIALIZING → {AUTHENTICATED, ANONYMOUS}

- initialize(): 从持久化存储恢复会话；未过期 → AUTHENTICATED；已过期 → 刷新一次，
  成功 → AUTHENTICATED，失败 → ANONYMOUS 并清除残留；不存在/损坏 → ANONYMOUS。
- login(credentials): 成功提交新会话并持久化；失败保持原状态，抛出分类后的错误。
- logout(): 尽力调用后端登出（失败只记日志），清理内存与存储 → ANONYMOUS；幂等。
  存储删除失败时仍进入 ANONYMOUS 并抛 UNKNOWN，下一次 logout() 会重试删除。
- refresh(): 与启动时的刷新路径一致，失败强制 ANONYMOUS。

所有变更操作经同一把 asyncio.Lock 串行执行；并发的 refresh() 合并为同一个在途任务。
其它层只允许依赖 is_initialized / is_authenticated 两个只读属性（以及只读的身份信息）。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .auth_api import AuthApiClient
from .domain import (
    AuthError,
    Credentials,
    ErrorKind,
    Identity,
    LoginResult,
    Session,
    SessionState,
    calc_expires_at,
    mask_token,
    now_utc,
)
from .error_handling import session_action_for
from .event_bus import SESSION_STATUS, EventBus
from .persistence import SessionPersistence

logger = logging.getLogger(__name__)

REFRESH_AHEAD = timedelta(minutes=5)


def default_nickname(phone: str) -> str:
    return f"用户_{phone[-4:] if phone else '0000'}"


class SessionStore:
    def __init__(
        self,
        api: AuthApiClient,
        persistence: SessionPersistence,
        *,
        bus: Optional[EventBus] = None,
        now_provider: Callable[[], datetime] = now_utc,
        refresh_ahead: timedelta = REFRESH_AHEAD,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._api = api
        self._persistence = persistence
        self.bus = bus or EventBus()
        self._now = now_provider
        self.refresh_ahead = refresh_ahead
        self._logger = log or logger

        self._state = SessionState.UNINITIALIZED
        self._session: Optional[Session] = None
        self._lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Future] = None
        # 上次清理存储失败，残留记录待删除
        self._clear_pending = False

    # --- 只读状态 ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def identity(self) -> Optional[Identity]:
        return self._session.identity if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def device_id(self) -> Optional[str]:
        return self._api.device_id

    @property
    def is_initialized(self) -> bool:
        return self._state in (SessionState.AUTHENTICATED, SessionState.ANONYMOUS)

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        if self._session is None:
            return False
        return self._session.expires_within(self.refresh_ahead, now or self._now())

    async def cached_profile(self) -> Optional[Dict[str, Any]]:
        """从通用存储读取昵称/头像镜像，不触发安全存储读取。"""
        return await self._persistence.load_profile()

    # --- 生命周期 ---

    async def initialize(self) -> SessionState:
        async with self._lock:
            if self._state != SessionState.UNINITIALIZED:
                return self._state
            self._state = SessionState.INITIALIZING

            try:
                stored = await self._persistence.load()
            except ValueError as exc:
                # 记录损坏：删除并视为无会话
                self._logger.warning("stored session is corrupted, purging: %s", exc)
                await self._clear_local()
                return self._state
            except OSError as exc:
                self._logger.warning("failed to read stored session: %s", exc)
                self._become_anonymous()
                return self._state

            if stored is None:
                self._become_anonymous()
            elif not stored.is_expired(self._now()):
                self._session = stored
                self._state = SessionState.AUTHENTICATED
                self._emit()
                self._logger.info("session restored for user %s", stored.identity.id)
            else:
                self._logger.info("stored session expired, refreshing")
                try:
                    await self._do_refresh(stored)
                except AuthError:
                    # _do_refresh 已清理本地会话
                    pass
            return self._state

    async def login(self, credentials: Credentials) -> LoginResult:
        async with self._lock:
            try:
                payload = await self._api.login(credentials)
            except AuthError as exc:
                self._logger.info("login failed: %s", exc.kind.value)
                raise

            now = self._now()
            identity = Identity(
                id=payload.user_id,
                phone=credentials.phone,
                nickname=payload.nickname or default_nickname(credentials.phone),
                avatar=payload.avatar,
                verified=True,
                created_at=now.isoformat(),
            )
            session = Session(
                access_token=payload.token,
                # 登录接口暂不返回 refreshToken 时，以 token 代替
                refresh_token=payload.refresh_token or payload.token,
                expires_at=calc_expires_at(payload.expires_in, now),
                identity=identity,
            )
            await self._commit(session)
            self._logger.info("login succeeded for user %s, token %s", identity.id, mask_token(session.access_token))
            return LoginResult(session=session, is_new_user=payload.is_new_user)

    async def logout(self) -> None:
        async with self._lock:
            session = self._session
            if session is None:
                if self._clear_pending:
                    await self._clear_local(strict=True)
                return
            try:
                await self._api.logout(session.access_token, self.device_id)
            except AuthError as exc:
                self._logger.warning("API logout failed, proceeding with local cleanup: %s", exc.kind.value)
            await self._clear_local(strict=True)
            self._logger.info("logged out user %s", session.identity.id)

    async def refresh(self) -> Session:
        """刷新令牌；同一时刻只有一个刷新在途，后来的调用方等待同一结果。"""

        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh_serialized())
            self._refresh_task = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._refresh_task is task and task.done():
                self._refresh_task = None

    async def handle_unauthorized(self, failed_token: Optional[str] = None) -> bool:
        """其它接口收到 401 时调用，返回会话是否仍然有效。

        failed_token 为出错请求所用的 token；若会话已在此期间换过 token，则无需再次刷新。
        """

        if failed_token and self._session is not None and self._session.access_token != failed_token:
            return True
        try:
            await self.refresh()
        except AuthError:
            return False
        return True

    async def update_identity(self, *, nickname: Optional[str] = None, avatar: Optional[str] = None) -> Identity:
        async with self._lock:
            if self._session is None:
                raise AuthError(ErrorKind.AUTH_REJECTED, "not authenticated")
            identity = self._session.identity
            identity = replace(
                identity,
                nickname=identity.nickname if nickname is None else nickname,
                avatar=identity.avatar if avatar is None else avatar,
            )
            await self._commit(replace(self._session, identity=identity))
            return identity

    # --- Internal ---

    async def _refresh_serialized(self) -> Session:
        async with self._lock:
            if self._session is None:
                raise AuthError(ErrorKind.AUTH_REJECTED, "no session to refresh")
            return await self._do_refresh(self._session)

    async def _do_refresh(self, current: Session) -> Session:
        try:
            payload = await self._api.refresh_token(current.refresh_token)
            session = current.with_tokens(
                payload.token,
                payload.refresh_token,
                calc_expires_at(payload.expires_in, self._now()),
            )
            await self._commit(session)
        except AuthError as exc:
            action = session_action_for(exc)
            self._logger.warning(
                "token refresh failed (%s, action=%s), dropping session", exc.kind.value, action.value
            )
            await self._clear_local()
            raise
        self._logger.info("token refreshed, expires at %s", session.expires_at.isoformat())
        return session

    async def _commit(self, session: Session) -> None:
        try:
            await self._persistence.save(session)
        except (OSError, ValueError) as exc:
            raise AuthError(ErrorKind.UNKNOWN, "failed to persist session") from exc
        self._session = session
        self._clear_pending = False
        self._state = SessionState.AUTHENTICATED
        self._emit()

    async def _clear_local(self, *, strict: bool = False) -> None:
        """strict 时清理存储失败抛 UNKNOWN；内存状态无论如何都会清空。"""

        try:
            await self._persistence.clear()
        except OSError as exc:
            self._logger.warning("failed to clear stored session: %s", exc)
            self._clear_pending = True
            self._become_anonymous()
            if strict:
                raise AuthError(ErrorKind.UNKNOWN, "failed to clear stored session") from exc
            return
        self._clear_pending = False
        self._become_anonymous()

    def _become_anonymous(self) -> None:
        self._session = None
        self._state = SessionState.ANONYMOUS
        self._emit()

    def _emit(self) -> None:
        identity = self._session.identity.to_dict() if self._session else None
        status = "active" if self.is_authenticated else "none"
        self.bus.emit(SESSION_STATUS, {"status": status, "identity": identity})


__all__ = ["SessionStore", "REFRESH_AHEAD", "default_nickname"]
