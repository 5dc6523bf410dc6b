from __future__ import annotations

import unittest

import requests

from xypai_auth.domain import AuthError, ErrorKind
from xypai_auth.error_handling import (
    SessionAction,
    classify_error,
    classify_status,
    is_retryable,
    session_action_for,
)
from xypai_auth.http_client import HttpStatusError


def _response(status: int, body: bytes = b"") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body  # type: ignore[attr-defined]
    return resp


class ClassifyErrorTests(unittest.TestCase):
    def test_connection_level_failures_are_network(self) -> None:
        for exc in (
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.Timeout("slow"),
            ConnectionResetError(),
            TimeoutError(),
        ):
            with self.subTest(exc=type(exc).__name__):
                err = classify_error(exc)
                self.assertEqual(err.kind, ErrorKind.NETWORK)
                self.assertTrue(err.retryable)

    def test_5xx_is_retryable_server_error(self) -> None:
        for status in (500, 502, 503, 504):
            err = classify_error(HttpStatusError(status, {"code": status, "message": "x"}))
            self.assertEqual(err.kind, ErrorKind.SERVER_ERROR)
            self.assertEqual(err.status, status)
            self.assertTrue(err.retryable)

    def test_429_is_retryable_rate_limit(self) -> None:
        err = classify_error(HttpStatusError(429))
        self.assertEqual(err.kind, ErrorKind.RATE_LIMITED)
        self.assertTrue(err.retryable)

    def test_401_403_are_terminal(self) -> None:
        for status in (401, 403):
            err = classify_error(HttpStatusError(status, {"code": status, "message": "no"}))
            self.assertEqual(err.kind, ErrorKind.AUTH_REJECTED)
            self.assertFalse(err.retryable)

    def test_other_4xx_depends_on_body(self) -> None:
        structured = classify_error(HttpStatusError(400, {"code": 400, "message": "bad phone"}))
        self.assertEqual(structured.kind, ErrorKind.VALIDATION)
        self.assertFalse(structured.retryable)
        self.assertEqual(structured.code, 400)

        bare = classify_error(HttpStatusError(404, "<html>not found</html>"))
        self.assertEqual(bare.kind, ErrorKind.UNKNOWN)
        self.assertFalse(bare.retryable)

    def test_requests_http_error_uses_response(self) -> None:
        exc = requests.exceptions.HTTPError(response=_response(503, b'{"code": 503}'))
        err = classify_error(exc)
        self.assertEqual(err.kind, ErrorKind.SERVER_ERROR)
        self.assertEqual(err.status, 503)

        exc = requests.exceptions.HTTPError(response=_response(422, b"not json"))
        self.assertEqual(classify_error(exc).kind, ErrorKind.UNKNOWN)

    def test_anything_else_is_unknown(self) -> None:
        err = classify_error(RuntimeError("boom"))
        self.assertEqual(err.kind, ErrorKind.UNKNOWN)
        self.assertFalse(err.retryable)
        self.assertEqual(classify_status(302).kind, ErrorKind.UNKNOWN)

    def test_auth_error_passes_through(self) -> None:
        original = AuthError(ErrorKind.VALIDATION, "bad", field="phone")
        self.assertIs(classify_error(original), original)

    def test_messages_are_stable_per_kind(self) -> None:
        a = classify_error(HttpStatusError(500))
        b = classify_error(HttpStatusError(503))
        self.assertEqual(a.message, b.message)

    def test_is_retryable(self) -> None:
        self.assertTrue(is_retryable(HttpStatusError(500)))
        self.assertFalse(is_retryable(HttpStatusError(401)))


class SessionActionTests(unittest.TestCase):
    def test_auth_rejected_forces_logout(self) -> None:
        self.assertEqual(session_action_for(classify_status(401)), SessionAction.LOGOUT)

    def test_transient_errors_are_operation_fatal_only(self) -> None:
        self.assertEqual(session_action_for(classify_status(500)), SessionAction.NOOP)
        self.assertEqual(session_action_for(AuthError(ErrorKind.NETWORK)), SessionAction.NOOP)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
