import asyncio
import logging
from pathlib import Path
from urllib.parse import urlparse

from PySide6.QtCore import QUrl
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkRequest, QNetworkReply

from topoglobe.config import USER_AGENT
from topoglobe.errors import TransientLoadError

logger = logging.getLogger(__name__)


class QtNetworkFetcher:
    '''HTTP(S) fetcher on the Qt event loop

    Remarks
    -------
    - Must run under PySide6.QtAsyncio so the asyncio loop is Qt's loop and
      QNetworkReply.finished is delivered while a coroutine awaits
    - The QNetworkAccessManager is created lazily, on first use, inside the
      loop's thread
    - Cancelling the awaiting coroutine aborts the reply
    '''

    def __init__(self, user_agent: bytes = USER_AGENT):
        self.user_agent = user_agent
        self.nam = None
        self.active = {}

    async def fetch(self, url: str) -> bytes:
        """Download url

        Parameters
        ----------
        url : str
            http or https URL

        Returns
        -------
        data : bytes
            Response body

        Raises
        ------
        TransientLoadError
            Any network or HTTP error reported by Qt
        """
        if self.nam is None:
            self.nam = QNetworkAccessManager()

        loop = asyncio.get_running_loop()
        future = loop.create_future()

        req = QNetworkRequest(QUrl(url))
        req.setRawHeader(b"User-Agent", self.user_agent)
        req.setRawHeader(b"Accept", b"application/json, image/*")
        reply = self.nam.get(req)
        reply.finished.connect(lambda: self._on_finished(reply, url, future))
        self.active[url] = reply

        try:
            return await future
        except asyncio.CancelledError:
            reply.abort()
            raise
        finally:
            self.active.pop(url, None)

    def _on_finished(self, reply: QNetworkReply, url: str, future: asyncio.Future) -> None:
        """Resolve the waiting future from a finished reply

        Parameters
        ----------
        reply : QNetworkReply
            Object containing response to web request
        url : str
            Requested URL, for messages
        future : asyncio.Future
            Future the fetch coroutine awaits
        """
        if not future.done():
            if reply.error() == QNetworkReply.NetworkError.NoError:
                future.set_result(reply.readAll().data())
            else:
                future.set_exception(TransientLoadError(f"{url}: {reply.errorString()}"))
        reply.deleteLater()

    def shutdown(self) -> None:
        """Abort outstanding replies"""
        for reply in list(self.active.values()):
            reply.abort()
        self.active.clear()


class LocalFileFetcher:
    '''Reads assets shipped on disk'''

    async def fetch(self, path: str) -> bytes:
        if path.startswith("file://"):
            path = urlparse(path).path
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise TransientLoadError(f"{path}: {exc}") from exc


class AssetFetcher:
    '''Dispatches http(s) sources to the network and everything else to disk'''

    def __init__(self, network=None, files=None):
        self.network = network or QtNetworkFetcher()
        self.files = files or LocalFileFetcher()

    async def fetch(self, source: str) -> bytes:
        if urlparse(source).scheme in ("http", "https"):
            return await self.network.fetch(source)
        return await self.files.fetch(source)

    def shutdown(self) -> None:
        self.network.shutdown()
