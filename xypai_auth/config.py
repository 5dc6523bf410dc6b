"""客户端配置。

来源优先级：环境变量 > 配置文件（JSON）> 内置默认值。

- XYPAI_API_ENV: development / staging / production / mock
- XYPAI_API_BASE_URL: 覆盖环境对应的基地址
- XYPAI_SESSION_DIR: 会话文件目录
- XYPAI_HTTP_TIMEOUT: 请求超时（秒）

配置文件缺失或内容非法时回退默认值，不抛异常。
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .domain import DEFAULT_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "xypai-client.json"

BASE_URLS: Dict[str, str] = {
    "development": "http://localhost:8080",
    "staging": "https://staging-api.xiangyupai.com",
    "production": "https://api.xiangyupai.com",
    "mock": "http://localhost:3000",
}
DEFAULT_ENVIRONMENT = "production"

# 网关路由前缀：/xypai-auth/api/auth/xxx → 认证服务 /api/auth/xxx
DEFAULT_API_PREFIX = "/xypai-auth/api"
DEFAULT_TIMEOUT = 10.0
DEFAULT_REFRESH_AHEAD = 300


def default_session_dir(environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    explicit = env.get("XYPAI_SESSION_DIR")
    if explicit:
        return explicit
    local_app_data = env.get("LOCALAPPDATA")
    if os.name == "nt" and local_app_data:
        return os.path.join(local_app_data, "Xypai")
    return os.path.join(os.path.expanduser("~"), ".xypai")


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> str:
    return os.path.join(default_session_dir(environ), CONFIG_FILENAME)


@dataclass
class ClientConfig:
    environment: str = DEFAULT_ENVIRONMENT
    base_url: str = BASE_URLS[DEFAULT_ENVIRONMENT]
    api_prefix: str = DEFAULT_API_PREFIX
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryPolicy = field(default_factory=lambda: DEFAULT_RETRY_POLICY)
    session_dir: str = ""
    refresh_ahead: int = DEFAULT_REFRESH_AHEAD
    device_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "base_url": self.base_url,
            "api_prefix": self.api_prefix,
            "timeout": self.timeout,
            "retry": {
                "max_retries": self.retry.max_retries,
                "base_delay_ms": self.retry.base_delay_ms,
                "backoff_multiplier": self.retry.backoff_multiplier,
            },
            "session_dir": self.session_dir,
            "refresh_ahead": self.refresh_ahead,
            "device_id": self.device_id,
        }


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return {}


def _retry_from(raw: Any) -> RetryPolicy:
    if not isinstance(raw, dict):
        return DEFAULT_RETRY_POLICY
    try:
        return RetryPolicy(
            max_retries=int(raw.get("max_retries", DEFAULT_RETRY_POLICY.max_retries)),
            base_delay_ms=int(raw.get("base_delay_ms", DEFAULT_RETRY_POLICY.base_delay_ms)),
            backoff_multiplier=float(raw.get("backoff_multiplier", DEFAULT_RETRY_POLICY.backoff_multiplier)),
        )
    except (TypeError, ValueError) as exc:
        logger.warning("invalid retry config, using defaults: %s", exc)
        return DEFAULT_RETRY_POLICY


def load_config(path: str = "", environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
    env = os.environ if environ is None else environ
    p = (path or "").strip() or default_config_path(env)
    data = _read_json(p)

    environment = env.get("XYPAI_API_ENV") or data.get("environment") or DEFAULT_ENVIRONMENT
    if environment not in BASE_URLS:
        logger.warning("unknown environment %r, falling back to %s", environment, DEFAULT_ENVIRONMENT)
        environment = DEFAULT_ENVIRONMENT

    base_url = env.get("XYPAI_API_BASE_URL") or data.get("base_url") or BASE_URLS[environment]

    timeout = DEFAULT_TIMEOUT
    raw_timeout = env.get("XYPAI_HTTP_TIMEOUT") or data.get("timeout")
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError):
            logger.warning("invalid timeout %r, using %s", raw_timeout, DEFAULT_TIMEOUT)

    refresh_ahead = data.get("refresh_ahead", DEFAULT_REFRESH_AHEAD)
    if not isinstance(refresh_ahead, int) or refresh_ahead < 0:
        refresh_ahead = DEFAULT_REFRESH_AHEAD

    return ClientConfig(
        environment=environment,
        base_url=base_url,
        api_prefix=data.get("api_prefix", DEFAULT_API_PREFIX),
        timeout=timeout,
        retry=_retry_from(data.get("retry")),
        session_dir=env.get("XYPAI_SESSION_DIR") or data.get("session_dir") or default_session_dir(env),
        refresh_ahead=refresh_ahead,
        device_id=data.get("device_id") or None,
    )


def save_config(path: str, config: ClientConfig) -> None:
    p = (path or "").strip() or default_config_path()
    os.makedirs(os.path.dirname(p) or ".", exist_ok=True)

    tmp = p + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, ensure_ascii=False, indent=2)
    os.replace(tmp, p)


__all__ = [
    "CONFIG_FILENAME",
    "BASE_URLS",
    "DEFAULT_API_PREFIX",
    "ClientConfig",
    "default_session_dir",
    "default_config_path",
    "load_config",
    "save_config",
]
