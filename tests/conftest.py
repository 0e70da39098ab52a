import json
from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from topoglobe.asset_cache import AssetCache
from topoglobe.asset_loader import AssetLoader
from topoglobe.config import RetryPolicy
from topoglobe.errors import TransientLoadError


class FakeFetcher:
    '''In-memory fetcher

    responses maps a source to bytes, an exception instance, or a list of
    those consumed one per call.
    '''

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    async def fetch(self, source):
        self.calls.append(source)
        response = self.responses.get(source)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if response is None:
            raise TransientLoadError(f"{source}: not found")
        if isinstance(response, BaseException):
            raise response
        return response

    def shutdown(self):
        pass


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def png_bytes(pixels: np.ndarray) -> bytes:
    buf = BytesIO()
    Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def topo_bytes(topology: dict) -> bytes:
    return json.dumps(topology).encode("utf-8")


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_loader(sleep):
    def make(responses=None, max_attempts=3):
        fetcher = FakeFetcher(responses)
        loader = AssetLoader(AssetCache(), fetcher, RetryPolicy(max_attempts=max_attempts), sleep=sleep)
        return loader, fetcher
    return make
