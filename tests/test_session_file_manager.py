from __future__ import annotations

import json
import os
import stat
import unittest
from tempfile import TemporaryDirectory

from xypai_auth.session_file_manager import SESSION_FILENAME, SessionFileManager

from tests.stubs import make_session


class SessionFileManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = TemporaryDirectory()
        self.fm = SessionFileManager(path=os.path.join(self.tmpdir.name, SESSION_FILENAME))

    def tearDown(self) -> None:  # noqa: D401
        self.tmpdir.cleanup()

    def _payload(self):
        return make_session().to_dict()

    def test_write_and_read(self):
        self.fm.write(self._payload())
        data = self.fm.read()
        self.assertEqual(data["access_token"], "A-old")
        self.assertEqual(data["identity"]["id"], "10001")

    def test_missing_file_raises_not_found(self):
        with self.assertRaises(FileNotFoundError):
            self.fm.read()

    def test_missing_field_raises(self):
        bad = self._payload()
        del bad["refresh_token"]
        with self.assertRaises(ValueError):
            self.fm.write(bad)
        self.assertFalse(self.fm.exists())

    def test_identity_without_phone_raises(self):
        bad = self._payload()
        bad["identity"]["phone"] = ""
        with self.assertRaises(ValueError):
            self.fm.write(bad)

    def test_invalid_expires_at_raises(self):
        bad = self._payload()
        bad["expires_at"] = "not-a-date"
        with self.assertRaises(ValueError):
            self.fm.write(bad)

    def test_corrupted_file_raises_value_error(self):
        with open(self.fm.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertRaises(ValueError):
            self.fm.read()

    def test_half_record_on_disk_is_rejected(self):
        with open(self.fm.path, "w", encoding="utf-8") as f:
            json.dump({"access_token": "A"}, f)
        with self.assertRaises(ValueError):
            self.fm.read()

    @unittest.skipIf(os.name == "nt", "POSIX permissions only")
    def test_file_is_private(self):
        self.fm.write(self._payload())
        mode = stat.S_IMODE(os.stat(self.fm.path).st_mode)
        self.assertEqual(mode, 0o600)

    def test_overwrite_leaves_no_temp_files(self):
        self.fm.write(self._payload())
        payload = self._payload()
        payload["access_token"] = "A-new"
        self.fm.write(payload)
        self.assertEqual(self.fm.read()["access_token"], "A-new")
        self.assertEqual(os.listdir(self.tmpdir.name), [SESSION_FILENAME])

    def test_encoder_decoder_roundtrip(self):
        def enc(s: str) -> str:
            return s[::-1]

        def dec(s: str) -> str:
            return s[::-1]

        fm = SessionFileManager(os.path.join(self.tmpdir.name, "session-enc.dat"), encoder=enc, decoder=dec)
        fm.write(self._payload())
        with open(fm.path, "r", encoding="utf-8") as f:
            raw = f.read()
        self.assertNotIn('"access_token"', raw)
        self.assertEqual(fm.read()["refresh_token"], "R-old")

    def test_decoder_failure_is_corruption(self):
        def dec(s: str) -> str:
            raise RuntimeError("bad key")

        self.fm.write(self._payload())
        fm = SessionFileManager(self.fm.path, decoder=dec)
        with self.assertRaises(ValueError):
            fm.read()

    def test_delete_is_idempotent(self):
        self.fm.write(self._payload())
        self.fm.delete()
        self.fm.delete()
        self.assertFalse(self.fm.exists())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
