from datetime import datetime, timezone

import pytest
import requests

from infrastructure.webdav import (
    WebDavClient,
    WebDavError,
    WebDavNotFoundError,
    WebDavPermissionError,
    depth_header,
)


class DummyResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content
        self.text = content.decode("utf-8", "replace")
        self.headers = {}


class DummySession:
    def __init__(self, responses=None):
        self.calls = []
        self.auth = None
        self._responses = list(responses or [])

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        if self._responses:
            return self._responses.pop(0)
        return DummyResponse(201)


class FlakySession(DummySession):
    def request(self, method, url, timeout=None, **kwargs):
        raise requests.ConnectionError("connection refused")


MULTISTATUS = b"""<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:">
  <d:response>
    <d:href>/dav/tasks/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/dav/tasks/My%20Tasks/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>https://dav.example.com/dav/tasks/notes.md</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype/>
        <d:getcontentlength>42</d:getcontentlength>
        <d:getlastmodified>Sat, 01 Mar 2025 10:00:00 GMT</d:getlastmodified>
        <d:getetag>"abc123"</d:getetag>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
    <d:propstat>
      <d:prop><d:quota-used-bytes/></d:prop>
      <d:status>HTTP/1.1 404 Not Found</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>
"""


def _client(session, base_path="/dav/tasks"):
    return WebDavClient("https://dav.example.com", "alice", "secret", base_path=base_path, session=session)


def test_auth_and_url_building():
    session = DummySession()
    client = _client(session)

    client.upload_file("My Tasks/Buy milk.md", b"body")

    assert session.auth == ("alice", "secret")
    call = session.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "https://dav.example.com/dav/tasks/My%20Tasks/Buy%20milk.md"
    assert call["data"] == b"body"
    assert call["timeout"] == 30


def test_from_url_splits_base_path():
    client = WebDavClient.from_url("https://dav.example.com/dav/tasks/", "alice", "pw", session=DummySession())

    assert client.host == "https://dav.example.com"
    assert client.url_for("a.md") == "https://dav.example.com/dav/tasks/a.md"
    with pytest.raises(WebDavError):
        WebDavClient.from_url("dav.example.com", "alice", "pw", session=DummySession())


def test_download_returns_bytes():
    client = _client(DummySession([DummyResponse(200, b"hello")]))

    assert client.download_file("a.md") == b"hello"


@pytest.mark.parametrize(
    "status, exc_type",
    [(401, WebDavPermissionError), (403, WebDavPermissionError), (404, WebDavNotFoundError), (507, WebDavError)],
)
def test_http_errors_are_typed(status, exc_type):
    client = _client(DummySession([DummyResponse(status)]))

    with pytest.raises(exc_type) as excinfo:
        client.delete_file("a.md")
    assert excinfo.value.status_code == status


def test_network_errors_are_wrapped():
    client = _client(FlakySession())

    with pytest.raises(WebDavError, match="connection refused"):
        client.download_file("a.md")


def test_mkcol_treats_405_as_existing():
    session = DummySession([DummyResponse(405)])
    client = _client(session)

    client.create_directory("My Tasks")

    assert session.calls[0]["method"] == "MKCOL"
    assert session.calls[0]["url"].endswith("/dav/tasks/My%20Tasks/")


def test_ensure_directories_creates_parents_once():
    session = DummySession()
    client = _client(session)

    client.ensure_directories("a/b/file.md")
    client.ensure_directories("a/b/other.md")

    assert [c["url"] for c in session.calls] == [
        "https://dav.example.com/dav/tasks/a/",
        "https://dav.example.com/dav/tasks/a/b/",
    ]


def test_list_files_parses_multistatus():
    session = DummySession([DummyResponse(207, MULTISTATUS)])
    client = _client(session)

    entries = client.list_files("", depth=1)

    assert session.calls[0]["method"] == "PROPFIND"
    assert session.calls[0]["headers"]["Depth"] == "1"
    assert [e.path for e in entries] == ["My Tasks", "notes.md"]
    folder, note = entries
    assert folder.is_dir and folder.name == "My Tasks"
    assert not note.is_dir
    assert note.size == 42
    assert note.etag == '"abc123"'
    assert note.modified == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert note.stamp == '"abc123"'


def test_depth_header_values():
    assert [depth_header(d) for d in (0, 1, 2, 999)] == ["0", "1", "infinity", "infinity"]


def test_exists_maps_404_to_false():
    client = _client(DummySession([DummyResponse(207, MULTISTATUS), DummyResponse(404)]))

    assert client.exists("") is True
    assert client.exists("missing") is False


def test_malformed_listing_raises():
    client = _client(DummySession([DummyResponse(207, b"<not-xml")]))

    with pytest.raises(WebDavError):
        client.list_files("")
