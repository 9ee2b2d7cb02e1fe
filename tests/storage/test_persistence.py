"""Tests for snapshot encoding and the PersistenceAdapter."""

from __future__ import annotations

import json

import pytest

from browser_index.errors import IndexCorrupted, SchemaMismatch, StorageUnavailable
from browser_index.inverted_index import InvertedIndex
from browser_index.models import RecordType
from browser_index.storage.kv import MemoryKeyValueStore
from browser_index.storage.persistence import (
    SCHEMA_VERSION,
    IndexSnapshot,
    PersistenceAdapter,
    decode_snapshot,
    encode_snapshot,
)

KEY = "browser_index/snapshot"


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def build_snapshot(records) -> IndexSnapshot:
    """Create a snapshot whose terms are computed from the records."""
    index = InvertedIndex()
    for record in records:
        index.upsert(record)
    next_id = max((r.id for r in records), default=0) + 1
    return IndexSnapshot(next_id=next_id, records=list(records), terms=index.to_list())


def raw_blob(**overrides) -> bytes:
    data = {"schemaVersion": SCHEMA_VERSION, "nextId": 1, "records": [], "terms": []}
    data.update(overrides)
    return json.dumps(data).encode("utf-8")


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestEncodeSnapshot:
    """Tests for the canonical blob format."""

    def test_layout(self, make_record) -> None:
        blob = encode_snapshot(build_snapshot([make_record(id=1, title="Hi there")]))
        data = json.loads(blob)
        assert list(data) == ["nextId", "records", "schemaVersion", "terms"]
        assert data["schemaVersion"] == SCHEMA_VERSION
        assert data["nextId"] == 2
        assert data["records"][0]["type"] == "history"
        assert ["there", [[1, 2.0, 1]]] in data["terms"]

    def test_compact_separators(self, make_record) -> None:
        blob = encode_snapshot(build_snapshot([make_record()]))
        assert b", " not in blob
        assert b": " not in blob

    def test_order_independent(self, make_record) -> None:
        """Equal state encodes to equal bytes regardless of insertion order."""
        a = make_record(id=1, title="Alpha", url="https://a.org")
        b = make_record(id=2, title="Beta", url="https://b.org", record_type=RecordType.BOOKMARK)

        forward = build_snapshot([a, b])
        backward = build_snapshot([b, a])
        backward.terms = list(reversed(backward.terms))

        assert encode_snapshot(forward) == encode_snapshot(backward)

    def test_unicode_kept_verbatim(self, make_record) -> None:
        blob = encode_snapshot(build_snapshot([make_record(title="Zürich café")]))
        assert "zürich".encode("utf-8") in blob


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestDecodeSnapshot:
    """Tests for blob validation."""

    def test_decodes_encoded_snapshot(self, make_record) -> None:
        snapshot = build_snapshot([make_record(id=1), make_record(id=3, url="https://z.org")])
        decoded = decode_snapshot(encode_snapshot(snapshot))
        assert decoded.next_id == 4
        assert decoded.records == snapshot.records
        assert encode_snapshot(decoded) == encode_snapshot(snapshot)

    def test_schema_mismatch(self) -> None:
        with pytest.raises(SchemaMismatch) as exc_info:
            decode_snapshot(raw_blob(schemaVersion=2))
        assert exc_info.value.found == 2
        assert exc_info.value.expected == SCHEMA_VERSION

    def test_missing_version(self) -> None:
        with pytest.raises(SchemaMismatch):
            decode_snapshot(json.dumps({"records": []}).encode())

    @pytest.mark.parametrize("blob", [b"", b"{not json", b"\xff\xfe", b"[1, 2]"])
    def test_undecodable(self, blob: bytes) -> None:
        with pytest.raises(IndexCorrupted):
            decode_snapshot(blob)

    def test_malformed_fields(self) -> None:
        with pytest.raises(IndexCorrupted, match="malformed"):
            decode_snapshot(raw_blob(records=[{"id": 1}]))
        with pytest.raises(IndexCorrupted, match="malformed"):
            decode_snapshot(raw_blob(nextId="soon"))

    def test_duplicate_record_id(self, make_record) -> None:
        record = make_record(id=1).to_dict()
        with pytest.raises(IndexCorrupted, match="repeats"):
            decode_snapshot(raw_blob(nextId=2, records=[record, record]))

    def test_duplicate_url_within_type(self, make_record) -> None:
        records = [
            make_record(id=1, url="https://a.org").to_dict(),
            make_record(id=2, url="https://a.org").to_dict(),
        ]
        with pytest.raises(IndexCorrupted, match="repeats a url"):
            decode_snapshot(raw_blob(nextId=3, records=records))

    def test_same_url_across_types(self, make_record) -> None:
        records = [
            make_record(id=1, url="https://a.org"),
            make_record(id=2, record_type=RecordType.BOOKMARK, url="https://a.org"),
        ]
        snapshot = decode_snapshot(encode_snapshot(build_snapshot(records)))
        assert [r.id for r in snapshot.records] == [1, 2]

    def test_next_id_must_exceed_ids(self, make_record) -> None:
        with pytest.raises(IndexCorrupted, match="nextId"):
            decode_snapshot(raw_blob(nextId=1, records=[make_record(id=1).to_dict()]))

    def test_posting_for_unknown_record(self) -> None:
        with pytest.raises(IndexCorrupted, match="unknown record"):
            decode_snapshot(raw_blob(terms=[["ghost", [[7, 1.0, 1]]]]))


# ---------------------------------------------------------------------------
# PersistenceAdapter
# ---------------------------------------------------------------------------


class FailingStore:
    """Store that fails every call."""

    async def get(self, key: str) -> bytes | None:
        raise OSError("read failed")

    async def put(self, key: str, value: bytes) -> None:
        raise OSError("write failed")

    async def delete(self, key: str) -> None:
        raise OSError("delete failed")


class TestPersistenceAdapter:
    """Tests for load/flush/discard."""

    @pytest.mark.asyncio
    async def test_load_absent(self) -> None:
        adapter = PersistenceAdapter(MemoryKeyValueStore(), KEY)
        assert await adapter.load() is None
        assert adapter.last_blob is None

    @pytest.mark.asyncio
    async def test_flush_then_load(self, make_record) -> None:
        store = MemoryKeyValueStore()
        snapshot = build_snapshot([make_record()])

        assert await PersistenceAdapter(store, KEY).flush(snapshot) is True

        loaded = await PersistenceAdapter(store, KEY).load()
        assert loaded.records == snapshot.records
        assert loaded.terms == snapshot.terms

    @pytest.mark.asyncio
    async def test_unchanged_flush_skipped(self, make_record) -> None:
        """Flushing identical state twice writes once."""
        store = MemoryKeyValueStore()
        adapter = PersistenceAdapter(store, KEY)
        snapshot = build_snapshot([make_record()])

        assert await adapter.flush(snapshot) is True
        assert await adapter.flush(snapshot) is False
        assert adapter.last_blob == await store.get(KEY)

    @pytest.mark.asyncio
    async def test_flush_after_load_skipped(self, make_record) -> None:
        snapshot = build_snapshot([make_record()])
        store = MemoryKeyValueStore({KEY: encode_snapshot(snapshot)})
        adapter = PersistenceAdapter(store, KEY)

        loaded = await adapter.load()

        assert await adapter.flush(loaded) is False

    @pytest.mark.asyncio
    async def test_discard(self, make_record) -> None:
        store = MemoryKeyValueStore()
        adapter = PersistenceAdapter(store, KEY)
        await adapter.flush(build_snapshot([make_record()]))

        await adapter.discard()

        assert KEY not in store
        assert adapter.last_blob is None

    @pytest.mark.asyncio
    async def test_store_failures_wrapped(self, make_record) -> None:
        adapter = PersistenceAdapter(FailingStore(), KEY)
        with pytest.raises(StorageUnavailable, match="read failed"):
            await adapter.load()
        with pytest.raises(StorageUnavailable, match="write failed"):
            await adapter.flush(build_snapshot([make_record()]))
        with pytest.raises(StorageUnavailable, match="delete failed"):
            await adapter.discard()
        assert adapter.last_blob is None

    @pytest.mark.asyncio
    async def test_load_propagates_decode_errors(self) -> None:
        adapter = PersistenceAdapter(MemoryKeyValueStore({KEY: b"garbage"}), KEY)
        with pytest.raises(IndexCorrupted):
            await adapter.load()
