from __future__ import annotations

import json

import httpx
import pytest

from src.rag.embeddings import HashEmbedder
from src.rag.pipeline import IngestionPipeline
from src.vectorstore.base import (
    StoreOperationError,
    StoreSchemaMismatchError,
    VectorStoreConfigError,
    find_schema_field,
    insert_with_optional_fields,
)
from src.vectorstore.milvus import MilvusConfig, MilvusVectorStore
from src.vectorstore.supabase import SupabaseVectorStore

ROW = {"content": "Shipping fee is 50 pesos.", "metadata": {"chunk_index": 1}, "embedding": [0.1, 0.2]}


def _supabase(client: httpx.AsyncClient) -> SupabaseVectorStore:
    return SupabaseVectorStore(url="http://test/", api_key="anon-key", client=client)


def test_find_schema_field_matches_quoted_column_names() -> None:
    fields = ["content", "metadata", "embedding", "category_id"]

    assert (
        find_schema_field(
            "Could not find the 'category_id' column of 'documents' in the schema cache", fields
        )
        == "category_id"
    )
    assert (
        find_schema_field('column "category_id" of relation "documents" does not exist', fields)
        == "category_id"
    )
    assert (
        find_schema_field(
            "Attempt to insert an unexpected field `category_id` to collection", fields
        )
        == "category_id"
    )
    assert find_schema_field("permission denied for table documents", fields) is None
    assert find_schema_field("category_id is too long", fields) is None


@pytest.mark.anyio
async def test_supabase_insert_schema_mismatch_falls_back() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if "category_id" in body:
            return httpx.Response(
                400,
                json={
                    "code": "PGRST204",
                    "message": "Could not find the 'category_id' column of 'documents' in the schema cache",
                },
            )
        return httpx.Response(201)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        store = _supabase(client)
        stored = await insert_with_optional_fields(
            store, {**ROW, "category_id": "c1"}, ("category_id",)
        )

    assert "category_id" not in stored
    assert len(bodies) == 2
    assert bodies[1] == ROW


@pytest.mark.anyio
async def test_supabase_insert_generic_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        return httpx.Response(500, json={"code": "XX000", "message": "internal error"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(StoreOperationError) as excinfo:
            await _supabase(client).insert(ROW)

    assert not isinstance(excinfo.value, StoreSchemaMismatchError)
    assert "internal error" in str(excinfo.value)


@pytest.mark.anyio
async def test_supabase_nearest_neighbors_calls_match_function() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=[{"id": 7, "content": "Shipping fee is 50 pesos.", "metadata": {}, "similarity": 0.82}],
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        records = await _supabase(client).nearest_neighbors([0.1, 0.2], 0.3, 5)

    assert captured["path"] == "/rest/v1/rpc/match_documents"
    assert captured["body"] == {"query_embedding": [0.1, 0.2], "match_threshold": 0.3, "match_count": 5}
    assert records[0].id == 7
    assert records[0].similarity == pytest.approx(0.82)


@pytest.mark.anyio
async def test_supabase_substring_search_builds_or_filter() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{"id": 1, "content": "Shipping fee", "metadata": None}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        records = await _supabase(client).substring_search(["shipping", "fee"], 5)

    assert captured["path"] == "/rest/v1/documents"
    assert captured["params"] == {
        "select": "id,content,metadata",
        "or": "(content.ilike.*shipping*,content.ilike.*fee*)",
        "limit": "5",
    }
    assert records[0].similarity is None
    assert records[0].metadata == {}


@pytest.mark.anyio
async def test_supabase_search_error_raises_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "function match_documents does not exist"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(StoreOperationError):
            await _supabase(client).nearest_neighbors([0.1], 0.3, 5)


def test_supabase_requires_url() -> None:
    with pytest.raises(VectorStoreConfigError):
        SupabaseVectorStore(url="", api_key="key")


class FakeHit:
    def __init__(self, entity: dict, score: float) -> None:
        self.entity = entity
        self.score = score


class FakeField:
    def __init__(self, name: str) -> None:
        self.name = name


class FakeSchema:
    def __init__(self, names: list[str]) -> None:
        self.fields = [FakeField(name) for name in names]


class FakeCollection:
    def __init__(
        self,
        insert_error: Exception | None = None,
        fields: tuple[str, ...] = ("id", "content", "metadata", "embedding", "category_id"),
    ) -> None:
        self.insert_error = insert_error
        self.schema = FakeSchema(list(fields))
        self.inserted: list[dict] = []
        self.search_kwargs: dict = {}
        self.query_kwargs: dict = {}

    def insert(self, rows: list[dict]) -> None:
        if self.insert_error is not None:
            raise self.insert_error
        self.inserted.extend(rows)

    def load(self) -> None:
        return None

    def search(self, **kwargs):
        self.search_kwargs = kwargs
        return [[FakeHit({"id": 3, "content": "GCash accepted", "metadata": {"a": 1}}, 0.71)]]

    def query(self, **kwargs):
        self.query_kwargs = kwargs
        return [{"id": 4, "content": "Shipping fee", "metadata": '{"b": 2}'}]


def _milvus(collection: FakeCollection) -> MilvusVectorStore:
    config = MilvusConfig(uri="http://localhost:19530", token=None, collection="documents", dimension=2)
    return MilvusVectorStore(config=config, collection=collection)


@pytest.mark.anyio
async def test_milvus_insert_maps_unknown_field_error() -> None:
    collection = FakeCollection(
        insert_error=RuntimeError(
            "Attempt to insert an unexpected field `category_id` to collection without enabling dynamic field"
        )
    )

    with pytest.raises(StoreSchemaMismatchError) as excinfo:
        await _milvus(collection).insert({**ROW, "category_id": "c1"})

    assert excinfo.value.field == "category_id"


@pytest.mark.anyio
async def test_milvus_search_uses_range_threshold() -> None:
    collection = FakeCollection()

    records = await _milvus(collection).nearest_neighbors([0.1, 0.2], 0.3, 4)

    assert collection.search_kwargs["param"]["params"]["radius"] == 0.3
    assert collection.search_kwargs["limit"] == 4
    assert records[0].content == "GCash accepted"
    assert records[0].similarity == pytest.approx(0.71)


@pytest.mark.anyio
async def test_milvus_substring_search_expands_case_variants() -> None:
    collection = FakeCollection()

    records = await _milvus(collection).substring_search(["shipping"], 3)

    assert collection.query_kwargs["expr"] == (
        'content like "%shipping%" or content like "%Shipping%" or content like "%SHIPPING%"'
    )
    assert records[0].metadata == {"b": 2}
    assert records[0].similarity is None


@pytest.mark.anyio
async def test_milvus_uncategorized_row_gets_empty_category() -> None:
    collection = FakeCollection()

    await _milvus(collection).insert(ROW)

    assert collection.inserted[0]["category_id"] == ""
    assert collection.inserted[0]["content"] == ROW["content"]


@pytest.mark.anyio
async def test_milvus_category_is_stored_as_text() -> None:
    collection = FakeCollection()

    await _milvus(collection).insert({**ROW, "category_id": 42})

    assert collection.inserted[0]["category_id"] == "42"


@pytest.mark.anyio
async def test_milvus_collection_without_category_field_leaves_row_alone() -> None:
    collection = FakeCollection(fields=("id", "content", "metadata", "embedding"))

    await _milvus(collection).insert(ROW)

    assert "category_id" not in collection.inserted[0]


@pytest.mark.anyio
async def test_milvus_ingests_documents_with_and_without_category() -> None:
    collection = FakeCollection()
    pipeline = IngestionPipeline(embedder=HashEmbedder(dimension=2), vectorstore=_milvus(collection))

    assert await pipeline.add_document("Shipping fee is 50 pesos.", {"categoryId": "c1"})
    assert await pipeline.add_document("Store hours are 9am to 5pm.", {})

    assert [row["category_id"] for row in collection.inserted] == ["c1", ""]
