"""xypai 客户端认证与会话层。

对外入口：
- build_session_store(config) 构造唯一的 SessionStore；
- SessionStore.is_initialized / is_authenticated 供路由守卫等读取；
- AuthError.kind（ErrorKind）是所有失败的统一判别字段。
"""

from .auth_api import AuthApiClient
from .config import ClientConfig, load_config
from .domain import (
    AuthError,
    CodeCredentials,
    CodePurpose,
    ErrorKind,
    Identity,
    LoginResult,
    PasswordCredentials,
    RetryPolicy,
    Session,
    SessionState,
)
from .retry import RetryExecutor
from .session_store import SessionStore
from .shell_entry import build_session_store

__all__ = [
    "AuthApiClient",
    "AuthError",
    "ClientConfig",
    "CodeCredentials",
    "CodePurpose",
    "ErrorKind",
    "Identity",
    "LoginResult",
    "PasswordCredentials",
    "RetryExecutor",
    "RetryPolicy",
    "Session",
    "SessionState",
    "SessionStore",
    "build_session_store",
    "load_config",
]
