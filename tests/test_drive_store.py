import json
import os
import sys
import unittest

import httpx

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.drive import DriveObjectStore
from sheetkit.errors import BackendUnavailable, UpstreamError


class FakeTokens:
    def headers(self) -> dict:
        return {"Authorization": "Bearer test-token"}


class Recorder:
    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _store(recorder: Recorder) -> DriveObjectStore:
    return DriveObjectStore(FakeTokens(), client=httpx.Client(transport=httpx.MockTransport(recorder)))


class TestDriveObjectStore(unittest.TestCase):
    def test_find_folder_query(self) -> None:
        rec = Recorder([httpx.Response(200, json={"files": [{"id": "f1", "name": "Ada_u1"}]})])
        self.assertEqual(_store(rec).find_folder("Ada_u1", "root"), "f1")
        query = rec.requests[0].url.params["q"]
        self.assertIn("name='Ada_u1'", query)
        self.assertIn("'root' in parents", query)
        self.assertIn("mimeType='application/vnd.google-apps.folder'", query)
        self.assertIn("trashed=false", query)

    def test_find_folder_escapes_quotes(self) -> None:
        rec = Recorder([httpx.Response(200, json={"files": []})])
        self.assertIsNone(_store(rec).find_folder("O'Brien_u1", "root"))
        self.assertIn("name='O\\'Brien_u1'", rec.requests[0].url.params["q"])

    def test_create_folder(self) -> None:
        rec = Recorder([httpx.Response(200, json={"id": "f2"})])
        self.assertEqual(_store(rec).create_folder("Ada_u1", "root"), "f2")
        body = json.loads(rec.requests[0].content)
        self.assertEqual(body, {"name": "Ada_u1", "mimeType": "application/vnd.google-apps.folder", "parents": ["root"]})

    def test_create_file_multipart(self) -> None:
        rec = Recorder([httpx.Response(200, json={"id": "file-9"})])
        file_id = _store(rec).create_file(b"\x89PNGDATA", "profile.png", "image/png", "f1")
        self.assertEqual(file_id, "file-9")
        request = rec.requests[0]
        self.assertEqual(request.url.host, "www.googleapis.com")
        self.assertTrue(request.url.path.startswith("/upload/drive/v3/files"))
        self.assertEqual(request.url.params["uploadType"], "multipart")
        self.assertTrue(request.headers["Content-Type"].startswith("multipart/related; boundary="))
        self.assertIn(b'"parents": ["f1"]', request.content)
        self.assertIn(b"Content-Type: image/png", request.content)
        self.assertIn(b"\x89PNGDATA", request.content)

    def test_make_public(self) -> None:
        rec = Recorder([httpx.Response(200, json={"id": "perm"})])
        _store(rec).make_public("file-9")
        request = rec.requests[0]
        self.assertTrue(request.url.path.endswith("/files/file-9/permissions"))
        self.assertEqual(json.loads(request.content), {"role": "reader", "type": "anyone"})

    def test_delete_missing_file_is_ok(self) -> None:
        rec = Recorder([httpx.Response(404, json={}), httpx.Response(204)])
        store = _store(rec)
        store.delete_file("gone")
        store.delete_file("file-9")
        self.assertEqual([r.method for r in rec.requests], ["DELETE", "DELETE"])

    def test_errors_are_upstream_errors(self) -> None:
        rec = Recorder([httpx.Response(403, text="denied"), httpx.ReadTimeout("slow")])
        store = _store(rec)
        with self.assertRaises(UpstreamError):
            store.create_file(b"x", "a.png", "image/png", "f1")
        with self.assertRaises(UpstreamError):
            store.make_public("file-9")

    def test_unconfigured_fails_fast(self) -> None:
        store = DriveObjectStore(None)
        with self.assertRaises(BackendUnavailable):
            store.find_folder("Ada_u1", "root")


if __name__ == "__main__":
    unittest.main()
