import sys
import pathlib
from types import SimpleNamespace

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Ensure the project root is importable so `import meter_ingest` works
ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from meter_ingest.api.readings import get_repository  # noqa: E402
from meter_ingest.core.database import MongoStatus  # noqa: E402
from meter_ingest.main import app  # noqa: E402
from meter_ingest.models.reading import ReadingRepository  # noqa: E402


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)
        self._limit = None

    def sort(self, key, direction):
        # None sorts first ascending, like Mongo
        present = [d for d in self._docs if d.get(key) is not None]
        missing = [d for d in self._docs if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=direction < 0)
        self._docs = present + missing if direction < 0 else missing + present
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs
        if self._limit:
            docs = docs[: self._limit]
        if length is not None:
            docs = docs[:length]
        return [dict(d) for d in docs]


class FakeCollection:
    """The subset of a motor collection the repository touches."""

    def __init__(self):
        self.docs = []
        self.indexes = []

    async def create_index(self, keys):
        self.indexes.append(keys)
        return "_".join(f"{k}_{d}" for k, d in keys)

    async def insert_one(self, doc):
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, query=None):
        return FakeCursor(d for d in self.docs if self._matches(d, query or {}))

    @staticmethod
    def _matches(doc, query):
        for key, cond in query.items():
            value = doc.get(key)
            if isinstance(cond, dict):
                if value is None:
                    return False
                if "$gte" in cond and not value >= cond["$gte"]:
                    return False
                if "$lte" in cond and not value <= cond["$lte"]:
                    return False
            elif value != cond:
                return False
        return True


class BrokenCollection(FakeCollection):
    async def insert_one(self, doc):
        raise RuntimeError("connection reset by peer")

    def find(self, query=None):
        raise RuntimeError("connection reset by peer")


class FakeConnector:
    def __init__(self, status=None):
        self.status = status or MongoStatus(configured=True)
        self.db = None


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def repository(collection):
    return ReadingRepository(collection)


@pytest_asyncio.fixture
async def client(repository):
    """ASGI client with the repository swapped for the in-memory one."""
    previous = app.state.connector
    app.state.connector = FakeConnector()
    app.dependency_overrides[get_repository] = lambda: repository

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    app.state.connector = previous
