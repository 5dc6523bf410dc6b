"""会话状态事件总线。

- emit(event, payload): 记录并分发事件；
- on(event, handler) / off(event, handler): 注册 / 注销订阅者；
- SESSION_STATUS 事件的 payload 为 {"status": "active" | "none", "identity": {...} | None}。

SessionStore 每次提交状态变更后发出一次 SESSION_STATUS，路由守卫、资料页等据此刷新。
总线是实例而不是模块级单例，每个 SessionStore 持有自己的总线。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

SESSION_STATUS = "sessionStatus"

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self, *, history: int = 50) -> None:
        self.events: List[Dict[str, Any]] = []
        self.handlers: Dict[str, List[Callable[[Any], None]]] = {}
        self._history = history

    def emit(self, event: str, payload: Any = None) -> None:
        self.events.append({"event": event, "payload": payload})
        if len(self.events) > self._history:
            del self.events[: len(self.events) - self._history]
        for handler in list(self.handlers.get(event, [])):
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                # 订阅者异常不能打断会话状态提交
                logger.exception("handler for %s failed", event)

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        handlers = self.handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)


__all__ = ["EventBus", "SESSION_STATUS"]
