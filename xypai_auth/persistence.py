"""会话持久化统一入口。

一个逻辑会话对应两个物理存储：
- 安全存储 session.dat（完整会话，含 token）；
- 通用存储 profile.json（昵称/头像等展示字段的镜像）。

SessionPersistence 对外只暴露 load/save/clear/load_profile 一组读写契约，
写入时两边一起写，清理时两边一起删，读取时以 session.dat 为准修复镜像，
避免两个存储各自演化出不一致的状态。文件 I/O 放到线程中执行。
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Callable, Dict, Optional, Protocol

from .domain import Session
from .profile_cache import PROFILE_FILENAME, ProfileCache
from .session_file_manager import SESSION_FILENAME, SessionFileManager


class SessionPersistence(Protocol):
    async def load(self) -> Optional[Session]: ...

    async def save(self, session: Session) -> None: ...

    async def clear(self) -> None: ...

    async def load_profile(self) -> Optional[Dict[str, Any]]: ...


def profile_of(session: Session) -> Dict[str, Any]:
    identity = session.identity
    return {"id": identity.id, "nickname": identity.nickname, "avatar": identity.avatar}


class FileSessionPersistence:
    """基于本地文件的实现：load 找不到记录返回 None，记录损坏抛 ValueError。"""

    def __init__(
        self,
        directory: str,
        *,
        encoder: Optional[Callable[[str], str]] = None,
        decoder: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.directory = directory
        self.secure = SessionFileManager(os.path.join(directory, SESSION_FILENAME), encoder, decoder)
        self.profile = ProfileCache(os.path.join(directory, PROFILE_FILENAME))

    async def load(self) -> Optional[Session]:
        return await asyncio.to_thread(self._load)

    async def save(self, session: Session) -> None:
        await asyncio.to_thread(self._save, session)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)

    async def load_profile(self) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.profile.load)

    def _load(self) -> Optional[Session]:
        try:
            data = self.secure.read()
        except FileNotFoundError:
            # 没有会话就不应有镜像
            self.profile.delete()
            return None

        try:
            session = Session.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("session record is corrupted") from exc

        mirror = profile_of(session)
        if self.profile.load() != mirror:
            self.profile.save(mirror)
        return session

    def _save(self, session: Session) -> None:
        previous = self._previous_record()
        self.secure.write(session.to_dict())
        try:
            self.profile.save(profile_of(session))
        except OSError:
            # 镜像写失败时回滚安全存储，两边保持同一个会话
            if previous is None:
                self.secure.delete()
            else:
                self.secure.write(previous)
            raise

    def _previous_record(self) -> Optional[Dict[str, Any]]:
        try:
            return self.secure.read()
        except (FileNotFoundError, ValueError):
            return None

    def _clear(self) -> None:
        self.secure.delete()
        self.profile.delete()


class InMemorySessionPersistence:
    """内存实现，仅用于单元测试和多实例隔离场景。"""

    def __init__(self, session: Optional[Session] = None) -> None:
        self.record: Optional[Dict[str, Any]] = session.to_dict() if session else None
        self.profile: Optional[Dict[str, Any]] = profile_of(session) if session else None
        self.writes = 0
        self.clears = 0

    async def load(self) -> Optional[Session]:
        if self.record is None:
            self.profile = None
            return None
        try:
            session = Session.from_dict(self.record)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("session record is corrupted") from exc
        self.profile = profile_of(session)
        return session

    async def save(self, session: Session) -> None:
        self.writes += 1
        self.record = session.to_dict()
        self.profile = profile_of(session)

    async def clear(self) -> None:
        self.clears += 1
        self.record = None
        self.profile = None

    async def load_profile(self) -> Optional[Dict[str, Any]]:
        return dict(self.profile) if self.profile is not None else None


__all__ = [
    "SessionPersistence",
    "FileSessionPersistence",
    "InMemorySessionPersistence",
    "profile_of",
]
