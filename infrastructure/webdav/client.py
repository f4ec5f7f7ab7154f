import logging
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from typing import List, Optional, Set
from urllib.parse import quote, unquote, urlparse

import requests

from core.errors import TransportError
from application.sync_service import RemoteEntry

DAV_NS = "{DAV:}"
PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:resourcetype/><d:getcontentlength/><d:getlastmodified/><d:getetag/>"
    "</d:prop></d:propfind>"
)

logger = logging.getLogger("plaintasks.webdav")


class WebDavError(TransportError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WebDavPermissionError(WebDavError):
    pass


class WebDavNotFoundError(WebDavError):
    pass


def depth_header(depth: int) -> str:
    if depth <= 0:
        return "0"
    if depth == 1:
        return "1"
    return "infinity"


class WebDavClient:
    """Path-addressed WebDAV client; every path is relative to ``base_path``."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        base_path: str = "",
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        if not host:
            raise WebDavError("WebDAV host is empty")
        self.host = host.rstrip("/")
        self.base_path = base_path
        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self.timeout = timeout
        self._known_dirs: Set[str] = set()

    @classmethod
    def from_url(cls, url: str, username: str, password: str, **kwargs) -> "WebDavClient":
        """Split ``https://host/some/path`` into host and base path."""
        parsed = urlparse(url.strip())
        if not parsed.scheme or not parsed.netloc:
            raise WebDavError(f"Invalid WebDAV URL: {url!r}")
        return cls(f"{parsed.scheme}://{parsed.netloc}", username, password, base_path=parsed.path.rstrip("/"), **kwargs)

    # ---- paths ----

    def join_path(self, relative_path: str) -> str:
        relative_path = relative_path.lstrip("/")
        if not self.base_path:
            return f"/{relative_path}"
        return f"{self.base_path.rstrip('/')}/{relative_path}"

    def url_for(self, relative_path: str) -> str:
        return self.host + quote(self.join_path(relative_path), safe="/")

    def _root_prefix(self) -> str:
        """Server-side path that relative paths hang off."""
        host_path = urlparse(self.host).path.rstrip("/")
        return (host_path + self.join_path("")).rstrip("/")

    def _relative_href(self, href: str) -> Optional[str]:
        path = unquote(urlparse(href).path)
        prefix = self._root_prefix()
        if prefix and not (path == prefix or path.startswith(prefix + "/")):
            return None
        return path[len(prefix):].strip("/")

    # ---- transport ----

    def _request(self, method: str, relative_path: str, **kwargs) -> requests.Response:
        url = self.url_for(relative_path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise WebDavError(f"{method} {relative_path or '/'} failed: {exc}") from exc
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response, method: str, relative_path: str) -> None:
        status = response.status_code
        if status < 400:
            return
        message = f"{method} {relative_path or '/'}: HTTP {status}"
        if status in (401, 403):
            raise WebDavPermissionError(message, status)
        if status == 404:
            raise WebDavNotFoundError(message, status)
        raise WebDavError(message, status)

    def upload_file(self, relative_path: str, content: bytes) -> None:
        response = self._request("PUT", relative_path, data=content)
        self._raise_for_status(response, "PUT", relative_path)

    def download_file(self, relative_path: str) -> bytes:
        response = self._request("GET", relative_path)
        self._raise_for_status(response, "GET", relative_path)
        return response.content

    def delete_file(self, relative_path: str) -> None:
        response = self._request("DELETE", relative_path)
        self._raise_for_status(response, "DELETE", relative_path)

    def create_directory(self, relative_path: str) -> None:
        response = self._request("MKCOL", relative_path.rstrip("/") + "/")
        # 405: the collection is already there.
        if response.status_code != 405:
            self._raise_for_status(response, "MKCOL", relative_path)
        self._known_dirs.add(relative_path.strip("/"))

    def ensure_directories(self, relative_path: str) -> None:
        """Create every parent collection of a file path, top-down."""
        parts = relative_path.strip("/").split("/")[:-1]
        for idx in range(1, len(parts) + 1):
            directory = "/".join(parts[:idx])
            if directory not in self._known_dirs:
                self.create_directory(directory)

    def list_files(self, relative_path: str = "", depth: int = 1) -> List[RemoteEntry]:
        response = self._request(
            "PROPFIND",
            relative_path,
            data=PROPFIND_BODY.encode("utf-8"),
            headers={"Depth": depth_header(depth), "Content-Type": "application/xml; charset=utf-8"},
        )
        self._raise_for_status(response, "PROPFIND", relative_path)
        entries = self.parse_multistatus(response.content)
        if depth > 0:
            requested = relative_path.strip("/")
            entries = [e for e in entries if e.path != requested]
        return entries

    def exists(self, relative_path: str = "") -> bool:
        try:
            self.list_files(relative_path, depth=0)
        except WebDavNotFoundError:
            return False
        return True

    # ---- multistatus parsing ----

    def parse_multistatus(self, body: bytes) -> List[RemoteEntry]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            raise WebDavError(f"Malformed PROPFIND response: {exc}") from exc
        entries: List[RemoteEntry] = []
        for response in root.iter(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href")
            if not href:
                continue
            rel = self._relative_href(href.strip())
            if rel is None:
                continue
            prop = self._ok_prop(response)
            if prop is None:
                continue
            resource_type = prop.find(f"{DAV_NS}resourcetype")
            is_dir = resource_type is not None and resource_type.find(f"{DAV_NS}collection") is not None
            entries.append(
                RemoteEntry(
                    path=rel,
                    is_dir=is_dir,
                    size=_parse_int(prop.findtext(f"{DAV_NS}getcontentlength")),
                    modified=_parse_http_date(prop.findtext(f"{DAV_NS}getlastmodified")),
                    etag=(prop.findtext(f"{DAV_NS}getetag") or "").strip() or None,
                )
            )
        return entries

    @staticmethod
    def _ok_prop(response: ET.Element) -> Optional[ET.Element]:
        for propstat in response.findall(f"{DAV_NS}propstat"):
            status = propstat.findtext(f"{DAV_NS}status") or ""
            if " 200 " in f"{status} ":
                return propstat.find(f"{DAV_NS}prop")
        return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _parse_http_date(value: Optional[str]):
    if not value or not value.strip():
        return None
    try:
        return parsedate_to_datetime(value.strip())
    except (TypeError, ValueError):
        return None
