"""Token 临期刷新调度。

只实现与时间相关的判断：tick() 在会话进入提前量窗口（SessionStore.refresh_ahead）时
触发一次 SessionStore.refresh()。定时器本身由宿主（事件循环 / 平台后台任务）驱动，
run() 提供一个最简的循环实现。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .domain import AuthError, now_utc
from .session_store import SessionStore

logger = logging.getLogger(__name__)

CHECK_INTERVAL = timedelta(minutes=1)


@dataclass
class RefreshState:
    last_success_at: Optional[datetime] = None
    last_error: Optional[AuthError] = None
    refresh_count: int = 0


class RefreshScheduler:
    def __init__(
        self,
        store: SessionStore,
        *,
        now_provider: Callable[[], datetime] = now_utc,
        interval: timedelta = CHECK_INTERVAL,
    ) -> None:
        self._store = store
        self._now = now_provider
        self.interval = interval
        self.state = RefreshState()

    async def tick(self, now: Optional[datetime] = None) -> bool:
        """检查一次，必要时刷新；返回本次是否执行了刷新且成功。"""

        if not self._store.is_authenticated:
            return False
        now = now or self._now()
        if not self._store.needs_refresh(now):
            return False

        try:
            await self._store.refresh()
        except AuthError as exc:
            # 刷新失败时会话已被清理，等待重新登录
            self.state.last_error = exc
            logger.warning("scheduled refresh failed: %s", exc.kind.value)
            return False

        self.state.last_success_at = now
        self.state.last_error = None
        self.state.refresh_count += 1
        return True

    async def run(self) -> None:
        """会话有效期间循环检查；会话失效（登出/刷新失败）后退出。"""

        while self._store.is_authenticated:
            await self.tick()
            await asyncio.sleep(self.interval.total_seconds())


__all__ = ["RefreshScheduler", "RefreshState", "CHECK_INTERVAL"]
