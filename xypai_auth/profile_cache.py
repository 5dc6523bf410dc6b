"""非敏感资料缓存（通用存储）。

只保存 id / nickname / avatar 等展示字段，读取不经过安全存储，避免每次渲染都付出解密开销。
内容始终是 session.dat 的派生镜像，由 SessionPersistence 负责保持一致。
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

PROFILE_FILENAME = "profile.json"

logger = logging.getLogger(__name__)


class ProfileCache:
    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("profile cache unreadable, ignoring: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    def save(self, payload: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def delete(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return


__all__ = ["ProfileCache", "PROFILE_FILENAME"]
