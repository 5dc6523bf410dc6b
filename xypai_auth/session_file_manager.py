"""本地会话记录（安全存储）管理。

- 路径：固定文件名 `session.dat`，目录由配置决定（见 config.default_session_dir）。
- 字段校验：access_token, refresh_token, expires_at, identity（含 id/phone）必填，
  只存“完整会话”，不会出现只有 token 没有身份的半截记录。
- 写入：临时文件 + os.replace 原子替换，权限收紧为 0600。
- encoder/decoder：可选加解密钩子（str -> str），默认明文。
- 调用约定：
  - 文件不存在 → FileNotFoundError
  - 解码/解析/校验失败 → ValueError（视为损坏）
"""

from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Callable, Dict, Optional

from .domain import parse_ts

SESSION_FILENAME = "session.dat"

REQUIRED_FIELDS = ("access_token", "refresh_token", "expires_at", "identity")
REQUIRED_IDENTITY_FIELDS = ("id", "phone")


class SessionFileManager:
    def __init__(
        self,
        path: str,
        encoder: Optional[Callable[[str], str]] = None,
        decoder: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.path = path
        self.encoder = encoder
        self.decoder = decoder

    # --- Public API ---
    def read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            raise FileNotFoundError(self.path)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as exc:
            raise ValueError(f"failed to read session file: {exc}") from exc

        if self.decoder:
            try:
                content = self.decoder(content)
            except Exception as exc:  # noqa: BLE001
                raise ValueError("failed to decode session file") from exc

        try:
            data = json.loads(content)
        except ValueError as exc:
            raise ValueError("session file is not valid JSON") from exc

        self._validate_payload(data)
        return data

    def write(self, payload: Dict[str, Any]) -> None:
        self._validate_payload(payload)
        parent = os.path.dirname(self.path) or "."
        os.makedirs(parent, exist_ok=True)
        content = json.dumps(payload, ensure_ascii=False)
        if self.encoder:
            try:
                content = self.encoder(content)
            except Exception as exc:  # noqa: BLE001
                raise ValueError("failed to encode session file") from exc

        # 原子写入：读方要么看到旧记录，要么看到完整的新记录
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=".xypai_session_", suffix=".tmp", dir=parent)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return

    def exists(self) -> bool:
        return os.path.exists(self.path)

    # --- Internal ---
    def _validate_payload(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValueError("session payload must be an object")
        for key in REQUIRED_FIELDS:
            if not data.get(key):
                raise ValueError(f"missing field: {key}")

        identity = data["identity"]
        if not isinstance(identity, dict):
            raise ValueError("identity must be an object")
        for key in REQUIRED_IDENTITY_FIELDS:
            if not identity.get(key):
                raise ValueError(f"missing identity field: {key}")

        try:
            parse_ts(data["expires_at"])
        except (TypeError, ValueError) as exc:
            raise ValueError("invalid expires_at") from exc


__all__ = ["SessionFileManager", "SESSION_FILENAME"]
