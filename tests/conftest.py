"""
Global pytest configuration and fixtures.
"""

import asyncio
import warnings
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from apod.api.nasa_api_manager import (
    APODService,
    ApodAPIResponse,
    ApodNetworkException,
    HTTPClient,
)
from apod.cache.apod_database import ApodDatabase
from apod.cache.media_store import DirectoryMediaStore
from apod.managers.apod_repository import ApodRepository
from apod.models.apod_data import ApodRecord, MediaType

warnings.filterwarnings("ignore", message="coroutine 'AsyncMockMixin._execute_mock_call' was never awaited")

APOD_URL = "https://api.nasa.gov/planetary/apod"


class FakeStream:
    """In-memory byte stream that can fail after a number of reads."""

    def __init__(
        self,
        data: bytes,
        fail_after_reads: Optional[int] = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
    ):
        self._data = data
        self._offset = 0
        self._reads = 0
        self._fail_after_reads = fail_after_reads
        self._error = error
        self._delay = delay

    async def read(self, n: int = -1) -> bytes:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail_after_reads is not None and self._reads >= self._fail_after_reads:
            raise self._error or ApodNetworkException("Connection reset by peer")
        self._reads += 1
        if n < 0:
            n = len(self._data) - self._offset
        chunk = self._data[self._offset:self._offset + n]
        self._offset += len(chunk)
        return chunk


class FakeHTTPClient(HTTPClient):
    """HTTP client double serving canned JSON payloads and files."""

    def __init__(self):
        self.json_responses: Dict[str, Tuple[int, Any]] = {}
        self.files: Dict[str, Union[bytes, Tuple[int, bytes], Exception]] = {}
        self.fail_files_after_reads: Dict[str, int] = {}
        self.stream_errors: Dict[str, BaseException] = {}
        self.read_delays: Dict[str, float] = {}
        self.json_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.stream_calls: List[str] = []
        self.closed = False

    async def get_json(self, url: str, params: Dict[str, Any]) -> ApodAPIResponse:
        self.json_calls.append((url, dict(params)))
        response = self.json_responses.get(params.get("date"))
        if isinstance(response, Exception):
            raise response
        if response is None:
            response = (400, {"code": 400, "msg": "Date must be between Jun 16, 1995 and today."})
        status_code, data = response
        return ApodAPIResponse(
            status_code=status_code, data=data, timestamp=datetime.now(), url=url
        )

    @asynccontextmanager
    async def open_stream(self, url: str):
        self.stream_calls.append(url)
        body = self.files.get(url, (404, b""))
        if isinstance(body, Exception):
            raise body
        status_code, data = body if isinstance(body, tuple) else (200, body)
        yield status_code, FakeStream(
            data,
            self.fail_files_after_reads.get(url),
            self.stream_errors.get(url),
            self.read_delays.get(url, 0.0),
        )

    async def close(self) -> None:
        self.closed = True


def make_apod_payload(
    day: str = "2020-01-01",
    media_type: str = "image",
    url: Optional[str] = None,
    hdurl: Optional[str] = None,
    title: str = "Betelgeuse Imagined",
) -> Dict[str, Any]:
    """Build an APOD API payload."""
    compact = day.replace("-", "")[2:]
    if url is None:
        if media_type == "image":
            url = f"https://apod.nasa.gov/apod/image/{compact[:4]}/Example{compact}_1024.jpg"
        else:
            url = "https://www.youtube.com/embed/abc123?rel=0"
    payload = {
        "date": day,
        "title": title,
        "explanation": "A detailed explanation of the picture.",
        "media_type": media_type,
        "service_version": "v1",
        "url": url,
    }
    if hdurl is not None:
        payload["hdurl"] = hdurl
    elif media_type == "image":
        payload["hdurl"] = url.replace("_1024", "")
    return payload


@pytest.fixture
def apod_payload_factory():
    """Provide the APOD payload builder."""
    return make_apod_payload


@pytest.fixture
def fake_http_client():
    """Provide a fresh fake HTTP client."""
    return FakeHTTPClient()


@pytest.fixture
def fake_stream_factory():
    """Provide the fake stream class."""
    return FakeStream


@pytest.fixture
def apod_service(fake_http_client):
    """Provide an APOD service backed by the fake HTTP client."""
    return APODService(fake_http_client, "test_api_key", APOD_URL)


@pytest.fixture
def database(tmp_path):
    """Provide a database in a temporary directory."""
    db = ApodDatabase(tmp_path / "data" / "apod.db")
    yield db
    db.close()


@pytest.fixture
def media_store(tmp_path):
    """Provide a media store in a temporary directory."""
    return DirectoryMediaStore(tmp_path / "media")


@pytest.fixture
def repository(tmp_path, database, apod_service, media_store):
    """Provide a repository wired to the fake HTTP client and a temporary store."""
    repo = ApodRepository(
        database=database,
        service=apod_service,
        media_store=media_store,
        pictures_directory=tmp_path / "pictures",
        private_directory=tmp_path / "private",
        network_pool_size=2,
    )
    yield repo
    repo._io_pool.shutdown(wait=True)


@pytest.fixture
def image_record():
    """Provide an unpersisted image entry."""
    return ApodRecord(
        date=date(2021, 3, 5),
        title="Example Nebula",
        explanation="Gas and dust.",
        media_type=MediaType.IMAGE,
        url="https://apod.nasa.gov/apod/image/2021/03/05/example.jpg",
        hd_url="https://apod.nasa.gov/apod/image/2021/03/05/example_big.jpg",
    )


@pytest.fixture
def video_record():
    """Provide an unpersisted video entry."""
    return ApodRecord(
        date=date(2021, 3, 6),
        title="Solar Flare Timelapse",
        explanation="Moving pictures.",
        media_type=MediaType.VIDEO,
        url="https://www.youtube.com/embed/abc123?rel=0",
    )
