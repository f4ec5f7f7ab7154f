from application.sync_service import RemoteEntry
from .client import WebDavClient, WebDavError, WebDavNotFoundError, WebDavPermissionError, depth_header

__all__ = [
    "RemoteEntry",
    "WebDavClient",
    "WebDavError",
    "WebDavNotFoundError",
    "WebDavPermissionError",
    "depth_header",
]
