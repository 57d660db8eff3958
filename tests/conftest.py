"""
Shared fixtures: in-memory shapefile archives and mock HTTP clients.
"""

import io
import zipfile

import httpx
import pytest

from districtmaps.config import default_config

SHAPEFILE_MEMBERS = {
    "districtShapes/districts001.dbf": b"dbf-" * 300,
    "districtShapes/districts001.prj": b'GEOGCS["GCS_North_American_1983"]',
    "districtShapes/districts001.shp": bytes(range(256)) * 40,
    "districtShapes/districts001.shx": b"shx-" * 120,
}


class _Sink:
    """Write-only file object; zipfile falls back to data descriptors for it."""

    def __init__(self):
        self.buffer = io.BytesIO()

    def write(self, data):
        return self.buffer.write(data)

    def flush(self):
        pass


def build_zip(members, *, compression=zipfile.ZIP_DEFLATED, seekable=True, directories=()):
    sink = io.BytesIO() if seekable else _Sink()
    with zipfile.ZipFile(sink, "w", compression=compression) as zf:
        for directory in directories:
            zf.writestr(directory, b"")
        for name, data in members.items():
            zf.writestr(name, data)
    return (sink if seekable else sink.buffer).getvalue()


def chunked(payload, size):
    return [payload[i : i + size] for i in range(0, len(payload), size)]


def archive_client(payload, *, chunk_size=1024, served=None, requests=None):
    """AsyncClient whose every GET streams ``payload`` in ``chunk_size`` pieces."""

    async def stream():
        for chunk in chunked(payload, chunk_size):
            if served is not None:
                served.append(len(chunk))
            yield chunk

    def handler(request):
        if requests is not None:
            requests.append(str(request.url))
        return httpx.Response(200, content=stream())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def offline_client():
    def handler(request):
        raise AssertionError(f"unexpected network call: {request.url}")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def cfg(tmp_path):
    return default_config(tmp_path)


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def shapefile_members():
    return dict(SHAPEFILE_MEMBERS)


@pytest.fixture
def make_archive_client():
    return archive_client


@pytest.fixture
def make_offline_client():
    return offline_client


@pytest.fixture
def chunks_of():
    async def iterate(payload, size=512):
        for chunk in chunked(payload, size):
            yield chunk

    return iterate
