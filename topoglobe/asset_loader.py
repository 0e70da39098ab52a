"""Asynchronous asset loading with retries, de-duplication and caching.

Everything here runs on one asyncio loop.  In the viewer that loop is Qt's
event loop (see `topoglobe.network`), so fetches and backoff sleeps are the
only suspension points and no locking is needed around the cache.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from topoglobe.asset_cache import AssetCache
from topoglobe.config import RetryPolicy
from topoglobe.errors import LoadCancelled, TransientLoadError, ValidationError

logger = logging.getLogger(__name__)

# observer(key, event) with event one of 'fetch', 'retry', 'decoded', 'cached'
Observer = Callable[[str, str], None]
Decoder = Callable[[bytes], Any]


class CancelToken:
    '''Lets a consumer abandon its pending loads when it is torn down

    Remarks
    -------
    - cancel() may be called from any callback on the loop
    - Loads waiting on a cancelled token raise LoadCancelled at their next
      suspension point; the shared fetch keeps running and still fills the
      cache
    '''

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self, what: str = '') -> None:
        if self._cancelled:
            raise LoadCancelled(f"load cancelled: {what}" if what else "load cancelled")

    async def wait(self) -> None:
        """Suspend until cancel() is called"""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


@dataclass(frozen=True)
class LoadResult:
    '''Outcome of one entry in a batch load: a value or the error that stopped it'''
    key: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _notify(observer: Optional[Observer], key: str, event: str) -> None:
    if observer is not None:
        observer(key, event)


class AssetLoader:
    '''Fetches, decodes and caches assets

    Parameters
    ----------
    cache : AssetCache
        Cache owned by the application context
    fetcher : object
        Anything with an ``async fetch(source) -> bytes`` method that raises
        TransientLoadError on network/IO failures
    retry : RetryPolicy
        Attempt count and backoff schedule
    sleep : coroutine function
        Backoff sleep, replaceable in tests
    '''

    def __init__(self, cache: AssetCache, fetcher, retry: Optional[RetryPolicy] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self.cache = cache
        self.fetcher = fetcher
        self.retry = retry or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._inflight: dict[str, asyncio.Future] = {}

    async def fetch_with_retry(self, url: str, max_attempts: Optional[int] = None,
                               cancel: Optional[CancelToken] = None,
                               observer: Optional[Observer] = None) -> bytes:
        """Fetch raw bytes, retrying transient failures with exponential backoff

        Parameters
        ----------
        url : str
            URL or local path
        max_attempts : int
            Overrides the policy's attempt count
        cancel : CancelToken
            Checked before every attempt

        Returns
        -------
        data : bytes

        Raises
        ------
        TransientLoadError
            The last error once every attempt failed
        """
        attempts = self.retry.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValidationError(f"max_attempts must be >= 1, got {attempts}")

        last_error = None
        for attempt in range(attempts):
            if cancel is not None:
                cancel.raise_if_cancelled(url)
            try:
                logger.info("Loading %s (attempt %d)", url, attempt + 1)
                return await self.fetcher.fetch(url)
            except TransientLoadError as exc:
                last_error = exc
                logger.warning("Failed to load %s (attempt %d/%d): %s",
                               url, attempt + 1, attempts, exc)
                if attempt < attempts - 1:
                    _notify(observer, url, 'retry')
                    await self._sleep(self.retry.delay(attempt))

        logger.error("Giving up on %s after %d attempts", url, attempts)
        raise last_error

    async def load(self, key: str, decode: Decoder, cancel: Optional[CancelToken] = None,
                   observer: Optional[Observer] = None) -> Any:
        """Return the decoded asset for key, fetching it at most once

        Parameters
        ----------
        key : str
            Source URL or path, also the cache key
        decode : callable
            bytes -> decoded value.  Decode errors are not retried.
        cancel : CancelToken
            Abandons the wait (not the shared fetch) when cancelled
        observer : callable
            Optional progress callback observer(key, event)

        Returns
        -------
        value : Any
            Cached value, possibly produced by a concurrent caller
        """
        if cancel is not None:
            cancel.raise_if_cancelled(key)

        entry = self.cache.get(key)
        if entry is not None:
            _notify(observer, key, 'cached')
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_decode(key, decode, observer))
            self._inflight[key] = task
            task.add_done_callback(lambda t, key=key: self._finish_inflight(key, t))
        else:
            logger.debug("Joining in-flight load of %s", key)

        return await self._wait(key, task, cancel)

    async def load_all(self, sources: Mapping[str, Awaitable]) -> dict[str, LoadResult]:
        """Run independent loads concurrently and collect every outcome

        A failure in one source never fails the batch.

        Parameters
        ----------
        sources : Mapping[str, Awaitable]
            name -> awaitable producing that asset

        Returns
        -------
        results : dict[str, LoadResult]
            One result per name, in the order given
        """
        names = list(sources)
        outcomes = await asyncio.gather(*(sources[name] for name in names), return_exceptions=True)

        results = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, (KeyboardInterrupt, SystemExit)):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error("Load of %s failed: %s", name, outcome)
                results[name] = LoadResult(name, error=outcome)
            else:
                results[name] = LoadResult(name, value=outcome)
        return results

    # ------------------------ private helpers ------------------------

    async def _fetch_and_decode(self, key: str, decode: Decoder, observer: Optional[Observer]) -> Any:
        _notify(observer, key, 'fetch')
        data = await self.fetch_with_retry(key, observer=observer)
        value = decode(data)
        _notify(observer, key, 'decoded')
        logger.info("Successfully loaded %s", key)
        return self.cache.put(key, value)

    def _finish_inflight(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # every waiter may have been cancelled; mark the outcome as seen
        if not task.cancelled():
            task.exception()

    async def _wait(self, key: str, task: asyncio.Future, cancel: Optional[CancelToken]) -> Any:
        if cancel is None:
            return await asyncio.shield(task)

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        cancel.raise_if_cancelled(key)
        return task.result()
