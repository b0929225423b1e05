"""
Detect pre-compressed tile and tileset files before they are served.

Tilesets are often deployed with every tile gzipped on disk but keeping its
normal extension. When such a file is requested, its first bytes are
compared to the gzip magic number and ``Content-Encoding: gzip`` is added to
the response so the browser inflates it transparently.
"""

import logging
import os
import re
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("uvicorn.error")

GZIP_MAGIC = b"\x1f\x8b\x08"

SNIFFED_EXTENSIONS = ("m3d", "mcj", "b3dm", "pnts", "i3dm", "cmpt", "glb", "geom", "vctr")

_SNIFFED_PATH_RE = re.compile(
    r"\.(?:%s)|tileset.*\.json$" % "|".join(SNIFFED_EXTENSIONS)
)

SNIFFED_METHODS = {"GET", "HEAD"}


def is_sniffed_path(path: str) -> bool:
    return _SNIFFED_PATH_RE.search(path) is not None


def local_file_path(root: str, url_path: str) -> Optional[str]:
    """Map a decoded URL path onto ``root``; ``None`` if it would escape it."""
    root = os.path.realpath(root)
    candidate = os.path.realpath(os.path.join(root, url_path.lstrip("/")))
    if os.path.commonpath([root, candidate]) != root:
        return None
    return candidate


def read_magic(file_path: str) -> bytes:
    with open(file_path, "rb") as f:
        return f.read(len(GZIP_MAGIC))


async def is_gzip_file(file_path: str) -> bool:
    """True when the file starts with the gzip magic bytes. Unreadable files are not gzip."""
    try:
        head = await run_in_threadpool(read_magic, file_path)
    except OSError as e:
        logger.debug(f"[GzipSniffer] Skipping {file_path}: {e}")
        return False
    return head == GZIP_MAGIC


class GzipSniffer:
    """ASGI wrapper that marks gzipped tile files before the wrapped app serves them."""

    def __init__(self, app: ASGIApp, directory: str):
        self.app = app
        self.directory = directory

    async def sniff(self, url_path: str) -> bool:
        try:
            file_path = local_file_path(self.directory, url_path)
        except ValueError as e:
            # e.g. an embedded NUL byte; such a path names no file
            logger.debug(f"[GzipSniffer] Skipping {url_path!r}: {e}")
            return False
        if file_path is None:
            return False
        return await is_gzip_file(file_path)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] not in SNIFFED_METHODS
            or not is_sniffed_path(scope["path"])
        ):
            await self.app(scope, receive, send)
            return

        if not await self.sniff(scope["path"]):
            await self.app(scope, receive, send)
            return

        async def send_with_encoding(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["Content-Encoding"] = "gzip"
            await send(message)

        await self.app(scope, receive, send_with_encoding)
