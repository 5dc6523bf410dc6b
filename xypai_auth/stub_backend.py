"""极简 stub 认证后端：按请求路径与当前模式返回约定的信封或错误。

仅用于本地集成测试，替代真实网关 + 认证服务。
模式（state.mode）：
  ok / legacy / internal / rate_limit / rejected / bad_request / envelope_error
"""

from __future__ import annotations

from typing import Any, Dict, List
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
import argparse
import json
import threading


class StubState:
    def __init__(self) -> None:
        self.mode = "ok"
        self.user_id = "10001"
        self.token_seq = 0
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self.mode = "ok"
            self.token_seq = 0
            self.calls = []

    def record(self, path: str, body: Dict[str, Any], headers: Dict[str, str]) -> None:
        with self._lock:
            self.calls.append({"path": path, "body": body, "headers": headers})

    def next_token(self, prefix: str) -> str:
        with self._lock:
            self.token_seq += 1
            return f"{prefix}-{self.token_seq}"

    def count(self, suffix: str) -> int:
        with self._lock:
            return sum(1 for c in self.calls if c["path"].endswith(suffix))


state = StubState()


def _send_json(handler: BaseHTTPRequestHandler, code: int, payload: Dict[str, Any]):
    body = json.dumps(payload).encode("utf-8")
    handler.send_response(code)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _ok(data: Any = None, message: str = "ok") -> Dict[str, Any]:
    if state.mode == "legacy":
        return {"success": True, "message": message, "data": data}
    return {"code": 200, "message": message, "data": data}


class StubHandler(BaseHTTPRequestHandler):
    def do_POST(self):  # noqa: N802
        try:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            body = json.loads(raw) if raw else {}
            state.record(self.path, body, dict(self.headers.items()))

            if self._apply_failure_mode():
                return
            if self.path.endswith("/auth/login/password") or self.path.endswith("/auth/login/sms"):
                return self._handle_login(body)
            if self.path.endswith("/auth/token/refresh"):
                return self._handle_refresh()
            if self.path.endswith("/auth/logout"):
                return _send_json(self, 200, _ok())
            if self.path.endswith("/auth/sms/send"):
                return _send_json(self, 200, _ok())
            if self.path.endswith("/auth/password/reset/verify"):
                return _send_json(self, 200, _ok())
            if self.path.endswith("/auth/password/reset/confirm"):
                return _send_json(self, 200, _ok())
            _send_json(self, 404, {"code": 404, "message": "not found"})
        except Exception as exc:  # noqa: BLE001
            _send_json(self, 500, {"code": 500, "message": str(exc)})

    def do_GET(self):  # noqa: N802
        if self.path == "/health":
            return _send_json(self, 200, {"ok": True})
        _send_json(self, 404, {"code": 404, "message": "not found"})

    def _apply_failure_mode(self) -> bool:
        mode = state.mode
        if mode == "internal":
            _send_json(self, 500, {"code": 500, "message": "internal error"})
        elif mode == "rate_limit":
            _send_json(self, 429, {"code": 429, "message": "too frequent"})
        elif mode == "rejected":
            _send_json(self, 401, {"code": 401, "message": "unauthorized"})
        elif mode == "bad_request":
            _send_json(self, 400, {"code": 400, "message": "bad request"})
        elif mode == "envelope_error":
            _send_json(self, 200, {"code": 500, "message": "service degraded", "data": None})
        else:
            return False
        return True

    def _handle_login(self, body: Dict[str, Any]):
        data = {
            "token": state.next_token("A"),
            "userId": state.user_id,
            "nickname": "stub-user",
            "avatar": "",
            "isNewUser": self.path.endswith("/sms") and body.get("mobile", "").endswith("0"),
        }
        return _send_json(self, 200, _ok(data))

    def _handle_refresh(self):
        data = {
            "token": state.next_token("A"),
            "refreshToken": state.next_token("R"),
            "expiresIn": 3600,
        }
        return _send_json(self, 200, _ok(data))

    def log_message(self, format: str, *args):  # noqa: A003
        return  # silence


class ThreadingHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True


def create_server(host: str = "127.0.0.1", port: int = 8090) -> HTTPServer:
    """用于测试的 server 工厂，可在测试中调用 shutdown() 结束。"""

    return ThreadingHTTPServer((host, port), StubHandler)


def run_stub_server(host: str = "127.0.0.1", port: int = 8090):
    httpd = create_server(host, port)
    httpd.serve_forever()


if __name__ == "__main__":  # pragma: no cover
    parser = argparse.ArgumentParser(description="xypai auth stub backend (for local integration tests)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8090)
    parser.add_argument("--mode", default="ok")
    args = parser.parse_args()

    state.mode = args.mode
    run_stub_server(host=args.host, port=args.port)
