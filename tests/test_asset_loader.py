import asyncio

import pytest

from topoglobe.asset_loader import CancelToken, LoadResult
from topoglobe.errors import DecodeError, LoadCancelled, TransientLoadError, ValidationError


def decode_text(data: bytes) -> str:
    return data.decode("utf-8")


def test_fetch_with_retry_succeeds_after_failures(make_loader, sleep):
    loader, fetcher = make_loader({"u": [TransientLoadError("503"), TransientLoadError("503"), b"ok"]})
    assert asyncio.run(loader.fetch_with_retry("u")) == b"ok"
    assert len(fetcher.calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_fetch_with_retry_raises_last_error(make_loader, sleep):
    errors = [TransientLoadError("first"), TransientLoadError("second"), TransientLoadError("third")]
    loader, fetcher = make_loader({"u": list(errors)})
    with pytest.raises(TransientLoadError) as info:
        asyncio.run(loader.fetch_with_retry("u"))
    assert info.value is errors[-1]
    assert len(fetcher.calls) == 3
    # no sleep after the final attempt
    assert sleep.delays == [1.0, 2.0]


def test_fetch_with_retry_attempt_override(make_loader):
    loader, fetcher = make_loader({})
    with pytest.raises(TransientLoadError):
        asyncio.run(loader.fetch_with_retry("u", max_attempts=1))
    assert len(fetcher.calls) == 1
    with pytest.raises(ValidationError):
        asyncio.run(loader.fetch_with_retry("u", max_attempts=0))


def test_non_transient_errors_not_retried(make_loader):
    loader, fetcher = make_loader({"u": RuntimeError("bug")})
    with pytest.raises(RuntimeError):
        asyncio.run(loader.fetch_with_retry("u"))
    assert len(fetcher.calls) == 1


def test_load_caches_decoded_value(make_loader):
    loader, fetcher = make_loader({"u": b"hello"})
    events = []
    observer = lambda key, event: events.append(event)
    assert asyncio.run(loader.load("u", decode_text, observer=observer)) == "hello"
    assert asyncio.run(loader.load("u", decode_text, observer=observer)) == "hello"
    assert fetcher.calls == ["u"]
    assert events == ['fetch', 'decoded', 'cached']


def test_load_reports_retries(make_loader):
    loader, _ = make_loader({"u": [TransientLoadError("x"), b"hi"]})
    events = []
    asyncio.run(loader.load("u", decode_text, observer=lambda key, event: events.append(event)))
    assert events == ['fetch', 'retry', 'decoded']


def test_decode_error_not_retried_or_cached(make_loader):
    def bad_decode(data):
        raise DecodeError("bad")

    loader, fetcher = make_loader({"u": b"x"})
    with pytest.raises(DecodeError):
        asyncio.run(loader.load("u", bad_decode))
    assert fetcher.calls == ["u"]
    assert "u" not in loader.cache


def test_concurrent_loads_share_one_fetch(make_loader):
    loader, fetcher = make_loader({"u": b"shared"})

    async def main():
        return await asyncio.gather(*(loader.load("u", decode_text) for _ in range(5)))

    assert asyncio.run(main()) == ["shared"] * 5
    assert fetcher.calls == ["u"]


def test_concurrent_failure_reaches_every_waiter(make_loader):
    loader, fetcher = make_loader({}, max_attempts=1)

    async def main():
        return await asyncio.gather(*(loader.load("u", decode_text) for _ in range(3)),
                                    return_exceptions=True)

    results = asyncio.run(main())
    assert all(isinstance(r, TransientLoadError) for r in results)
    assert fetcher.calls == ["u"]


def test_load_after_failure_fetches_again(make_loader):
    loader, fetcher = make_loader({"u": [TransientLoadError("down"), b"up"]}, max_attempts=1)
    with pytest.raises(TransientLoadError):
        asyncio.run(loader.load("u", decode_text))
    assert asyncio.run(loader.load("u", decode_text)) == "up"
    assert len(fetcher.calls) == 2


def test_cancelled_before_start(make_loader):
    loader, fetcher = make_loader({"u": b"x"})
    token = CancelToken()
    token.cancel()
    with pytest.raises(LoadCancelled):
        asyncio.run(loader.load("u", decode_text, cancel=token))
    assert fetcher.calls == []


def test_cancel_while_waiting_leaves_shared_fetch_running(make_loader):
    gate_holder = {}

    class SlowFetcher:
        def __init__(self):
            self.calls = []

        async def fetch(self, source):
            self.calls.append(source)
            await gate_holder['gate'].wait()
            return b"late"

    loader, _ = make_loader()
    loader.fetcher = SlowFetcher()

    async def main():
        gate_holder['gate'] = asyncio.Event()
        token = CancelToken()
        cancelled = asyncio.ensure_future(loader.load("u", decode_text, cancel=token))
        patient = asyncio.ensure_future(loader.load("u", decode_text))
        await asyncio.sleep(0)
        token.cancel()
        with pytest.raises(LoadCancelled):
            await cancelled
        gate_holder['gate'].set()
        return await patient

    assert asyncio.run(main()) == "late"
    assert loader.fetcher.calls == ["u"]
    assert loader.cache.get("u").value == "late"


def test_cancel_token_wait():
    async def main():
        token = CancelToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, 1)
        return token.cancelled

    assert asyncio.run(main())


def test_load_all_collects_partial_failures(make_loader):
    loader, _ = make_loader({"good": b"fine"}, max_attempts=1)

    async def main():
        return await loader.load_all({
            "a": loader.load("good", decode_text),
            "b": loader.load("bad", decode_text),
        })

    results = asyncio.run(main())
    assert list(results) == ["a", "b"]
    assert results["a"] == LoadResult("a", value="fine")
    assert results["a"].ok
    assert not results["b"].ok
    assert isinstance(results["b"].error, TransientLoadError)


def test_load_all_empty(make_loader):
    loader, _ = make_loader()
    assert asyncio.run(loader.load_all({})) == {}
