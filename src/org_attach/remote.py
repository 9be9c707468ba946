"""Fetching remote URLs for attachment."""

import asyncio
import os
import tempfile
from urllib.parse import urlparse

import requests
from loguru import logger

from org_attach.exceptions import AttachError

FETCH_SCHEMES = ("http", "https")
CHUNK_SIZE = 64 * 1024
# Seconds to wait for the server to respond (connect and between bytes).
REQUEST_TIMEOUT = 60


def should_fetch(url: str) -> bool:
    """Return True if `url` is something HttpFetcher can download."""
    return urlparse(url).scheme in FETCH_SCHEMES


class HttpFetcher:
    """Download URLs into temporary files."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.sess = session or requests.Session()

    def _fetch(self, url: str) -> str:
        logger.debug("Downloading {}", url)
        with self.sess.get(url, stream=True, timeout=REQUEST_TIMEOUT) as r:
            r.raise_for_status()
            with tempfile.NamedTemporaryFile(prefix="org-attach-", delete=False) as f:
                try:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
                except BaseException:
                    f.close()
                    os.unlink(f.name)
                    raise
        logger.debug("Downloaded {} to {}", url, f.name)
        return f.name

    async def fetch(self, url: str) -> str:
        """Download `url` and return the path of the temporary file holding it.

        The caller owns the file and must remove it.

        Raises:
            AttachError: if the URL scheme is not supported.
            requests.HTTPError: on an error response.
        """
        if not should_fetch(url):
            msg = f"Cannot download {url!r}: only {', '.join(FETCH_SCHEMES)} URLs are supported"
            raise AttachError(msg)
        return await asyncio.to_thread(self._fetch, url)
