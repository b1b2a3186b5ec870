"""
Back Office Identity - Directory Store Tests
"""

import asyncio

import pytest

from backoffice.fastapi.crud.directory import BatchCommitError, Create, Delete, SnapshotEvent, Update


class TestDirectoryStore:
    """Test cases for SqlDirectoryStore."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        await store.put("clients", "C001", {"id": "C001", "name": "Acme"})

        assert await store.get_by_id("clients", "C001") == {"id": "C001", "name": "Acme"}
        assert await store.get_by_id("clients", "missing") is None
        assert await store.get_by_id("branches", "C001") is None

    @pytest.mark.asyncio
    async def test_put_replaces_document(self, store):
        await store.put("clients", "C001", {"id": "C001", "name": "Acme", "portalAccess": True})
        await store.put("clients", "C001", {"id": "C001", "name": "Acme Two"})

        assert await store.get_by_id("clients", "C001") == {"id": "C001", "name": "Acme Two"}

    @pytest.mark.asyncio
    async def test_query_equals_matches_every_predicate(self, store):
        await store.put("users", "U1", {"uid": "U1", "email": "a@x.example", "password": "p1", "active": True, "level": 2})
        await store.put("users", "U2", {"uid": "U2", "email": "b@x.example", "password": "p1", "active": False, "level": 2})

        by_pair = await store.query_equals("users", [("email", "a@x.example"), ("password", "p1")])
        assert [u["uid"] for u in by_pair] == ["U1"]

        assert await store.query_equals("users", [("email", "a@x.example"), ("password", "wrong")]) == []
        assert [u["uid"] for u in await store.query_equals("users", [("active", False)])] == ["U2"]
        assert [u["uid"] for u in await store.query_equals("users", [("level", 2)])] == ["U1", "U2"]

    @pytest.mark.asyncio
    async def test_query_equals_does_not_cross_collections(self, store):
        await store.put("clients", "X", {"id": "X", "email": "same@x.example"})
        await store.put("branches", "X", {"id": "X", "email": "same@x.example"})

        assert len(await store.query_equals("clients", [("email", "same@x.example")])) == 1

    @pytest.mark.asyncio
    async def test_list_all_is_ordered_by_id(self, store):
        for doc_id in ["B", "C", "A"]:
            await store.put("employees", doc_id, {"id": doc_id})

        assert [d["id"] for d in await store.list_all("employees")] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_atomic_batch_applies_all_mutations(self, store):
        await store.put("employees", "E1", {"id": "E1", "name": "One"})
        await store.put("users", "U1", {"uid": "U1", "employeeId": "E1", "email": "E1"})

        await store.atomic_batch([
            Create("employees", "E2", {"id": "E2", "name": "One"}),
            Update("users", "U1", {"employeeId": "E2"}),
            Delete("employees", "E1"),
        ])

        assert await store.get_by_id("employees", "E1") is None
        assert await store.get_by_id("employees", "E2") == {"id": "E2", "name": "One"}
        assert await store.get_by_id("users", "U1") == {"uid": "U1", "employeeId": "E2", "email": "E1"}

    @pytest.mark.asyncio
    async def test_create_on_existing_document_rolls_back_batch(self, store):
        await store.put("employees", "E1", {"id": "E1"})
        await store.put("users", "U1", {"uid": "U1", "employeeId": "E0"})

        with pytest.raises(BatchCommitError):
            await store.atomic_batch([
                Update("users", "U1", {"employeeId": "E1"}),
                Create("employees", "E1", {"id": "E1", "name": "Duplicate"}),
            ])

        assert await store.get_by_id("users", "U1") == {"uid": "U1", "employeeId": "E0"}
        assert await store.get_by_id("employees", "E1") == {"id": "E1"}

    @pytest.mark.asyncio
    async def test_update_on_missing_document_fails(self, store):
        with pytest.raises(BatchCommitError):
            await store.atomic_batch([Update("users", "ghost", {"password": "x"})])

        assert await store.get_by_id("users", "ghost") is None

    @pytest.mark.asyncio
    async def test_delete_missing_document_is_noop(self, store):
        await store.delete("users", "ghost")
        await store.atomic_batch([Delete("users", "ghost")])

    @pytest.mark.asyncio
    async def test_watch_emits_snapshot_then_changes(self, store):
        events = store.watch("employees")
        try:
            first = await asyncio.wait_for(events.__anext__(), timeout=1)
            assert first == SnapshotEvent("employees")

            await store.put("clients", "C1", {"id": "C1"})
            await store.put("employees", "E1", {"id": "E1"})

            change = await asyncio.wait_for(events.__anext__(), timeout=1)
            assert change.collection == "employees"
            assert change.changed_ids == ("E1",)
        finally:
            await events.aclose()

    @pytest.mark.asyncio
    async def test_failed_batch_publishes_nothing(self, store):
        await store.put("employees", "E1", {"id": "E1"})
        events = store.watch("employees")
        try:
            await events.__anext__()
            with pytest.raises(BatchCommitError):
                await store.atomic_batch([Create("employees", "E1", {"id": "E1"})])

            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(events.__anext__(), timeout=0.1)
        finally:
            await events.aclose()
