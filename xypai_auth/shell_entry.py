"""组合根：进程启动时构造一次 SessionStore，再按引用传给各消费方。

组合 ClientConfig + HttpClient + RetryExecutor + AuthApiClient + FileSessionPersistence，
transport / persistence 可替换，便于测试和多实例隔离。
"""

from __future__ import annotations

import logging
import random
import string
import time
from datetime import timedelta
from typing import Optional

from .auth_api import AuthApiClient, Transport
from .config import ClientConfig, default_session_dir
from .http_client import HttpClient
from .persistence import FileSessionPersistence, SessionPersistence
from .retry import RetryExecutor
from .session_store import SessionStore


def generate_device_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"device_{int(time.time() * 1000)}_{suffix}"


def build_session_store(
    config: Optional[ClientConfig] = None,
    *,
    transport: Optional[Transport] = None,
    persistence: Optional[SessionPersistence] = None,
    executor: Optional[RetryExecutor] = None,
    log: Optional[logging.Logger] = None,
) -> SessionStore:
    config = config or ClientConfig()
    transport = transport or HttpClient(
        config.base_url,
        api_prefix=config.api_prefix,
        timeout=config.timeout,
    )
    if config.device_id is None:
        config.device_id = generate_device_id()

    api = AuthApiClient(
        transport,
        executor=executor or RetryExecutor(log=log),
        policy=config.retry,
        device_id=config.device_id,
    )
    persistence = persistence or FileSessionPersistence(config.session_dir or default_session_dir())
    return SessionStore(
        api,
        persistence,
        refresh_ahead=timedelta(seconds=config.refresh_ahead),
        log=log,
    )


__all__ = ["build_session_store", "generate_device_id"]
