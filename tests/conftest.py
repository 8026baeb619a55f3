"""Shared in-memory collaborators for the import pipeline tests."""

import copy
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from utils.error_handling import StorageError


class InMemoryStore:
    """Dict-backed stand-in for ``DatabaseManager``'s medicine operations."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Tuple[str, Dict[str, Any]]] = []

    def add(self, **record: Any) -> str:
        medicine_id = record.pop("id", None) or str(uuid.uuid4())
        self.records[medicine_id] = {"id": medicine_id, **record}
        return medicine_id

    async def insert_medicine(self, record: Dict[str, Any]) -> str:
        return self.add(**copy.deepcopy(record))

    async def find_exact_match(
        self, composition_key: str, manufacturer: str, pack_size: str
    ) -> Optional[Dict[str, Any]]:
        for record in self.records.values():
            if (
                record.get("composition_key") == composition_key
                and record.get("manufacturer") == manufacturer
                and record.get("pack_size") == pack_size
            ):
                return dict(record)
        return None

    async def find_by_family(self, family_key: str) -> List[Dict[str, Any]]:
        return [
            dict(record)
            for record in self.records.values()
            if record.get("composition_family_key") == family_key
        ]

    async def get_medicine(self, medicine_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(medicine_id)
        return dict(record) if record else None

    async def update_medicine(self, medicine_id: str, changes: Dict[str, Any]) -> None:
        self.updates.append((medicine_id, dict(changes)))
        self.records[medicine_id].update(changes)


class FakeStorage:
    """Object store that keeps uploads in memory."""

    public_root = "https://storage.test"

    def __init__(self, fail: bool = False) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.uploads: List[Tuple[str, str, bool]] = []
        self.fail = fail

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_root}/{bucket}/{path}"

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        *,
        upsert: bool = True,
    ) -> str:
        self.uploads.append((bucket, path, upsert))
        if self.fail:
            raise StorageError(f"Failed to upload {bucket}/{path}: bucket offline")
        if upsert or (bucket, path) not in self.objects:
            self.objects[(bucket, path)] = (data, content_type)
        return self.get_public_url(bucket, path)


Response = Union[str, Tuple[int, Union[str, bytes]], Tuple[int, Union[str, bytes], Dict[str, str]]]


def build_transport(routes: Dict[str, Response], requests: Optional[List[str]] = None) -> httpx.MockTransport:
    """Serve ``routes`` keyed by absolute URL; anything else is a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if requests is not None:
            requests.append(url)
        route = routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, str):
            return httpx.Response(200, text=route, headers={"content-type": "text/html"})
        status, body, *rest = route
        headers = rest[0] if rest else {"content-type": "text/html"}
        if isinstance(body, bytes):
            return httpx.Response(status, content=body, headers=headers)
        return httpx.Response(status, text=body, headers=headers)

    return httpx.MockTransport(handler)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def make_client() -> Callable[..., httpx.AsyncClient]:
    def _make(routes: Dict[str, Response], requests: Optional[List[str]] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=build_transport(routes, requests))

    return _make


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
