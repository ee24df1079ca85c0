"""Tests for quotesync.sync.records - remote-first operations with local fallback."""

import pytest

from quotesync.core.errors import (
    NotFoundError,
    ServerError,
    UnauthenticatedError,
    ValidationError,
)
from quotesync.core.events import RECORD_QUEUED, RECORDS_OFFLINE
from quotesync.core.result import Err, Ok
from quotesync.core.timestamps import is_temporary_id
from quotesync.sync.monitor import ConnectionState
from quotesync.sync.records import Outcome, OutcomeStatus
from tests._support import make_draft


async def go_offline(client, transport) -> None:
    transport.online = False
    await client.monitor.mark_offline()


def go_online(client, transport) -> None:
    transport.online = True
    client.monitor.state = ConnectionState.ONLINE


# =============================================================================
# fetch_all
# =============================================================================


class TestFetchAll:
    @pytest.mark.asyncio
    async def test_online_overwrites_snapshot(self, client, remote):
        remote.seed("BG 2.13")
        outcome = (await client.records.fetch_all()).unwrap()
        assert outcome.status is OutcomeStatus.SYNCED
        assert [r.reference for r in client.store.snapshot()] == ["BG 2.13"]

    @pytest.mark.asyncio
    async def test_filtered_read_leaves_snapshot(self, client, remote):
        remote.seed("BG 2.13")
        remote.seed("SB 1.2.6", collection="Śrīmad-Bhāgavatam")
        await client.records.fetch_all()

        outcome = (await client.records.fetch_all(collection="Śrīmad-Bhāgavatam")).unwrap()

        assert [r.reference for r in outcome.records] == ["SB 1.2.6"]
        assert len(client.store.snapshot()) == 2

    @pytest.mark.asyncio
    async def test_network_failure_serves_snapshot(self, client, transport, remote, bus):
        remote.seed("BG 2.13")
        await client.records.fetch_all()
        transport.online = False

        outcome = (await client.records.fetch_all()).unwrap()

        assert outcome.status is OutcomeStatus.OFFLINE
        assert [r.reference for r in outcome.records] == ["BG 2.13"]
        assert client.monitor.is_online is False
        assert RECORDS_OFFLINE in bus.types()

    @pytest.mark.asyncio
    async def test_offline_view_filters_locally(self, client, transport, remote):
        remote.seed("BG 2.13", "the soul is eternal", tags=["soul"])
        remote.seed("SB 1.2.6", "supreme occupation", collection="Śrīmad-Bhāgavatam")
        await client.records.fetch_all()
        await go_offline(client, transport)

        by_search = (await client.records.fetch_all(search="ETERNAL")).unwrap().records
        by_tag = (await client.records.fetch_all(tags=["soul"])).unwrap().records
        by_collection = (await client.records.fetch_all(collection="Śrīmad-Bhāgavatam")).unwrap().records

        assert [r.reference for r in by_search] == ["BG 2.13"]
        assert [r.reference for r in by_tag] == ["BG 2.13"]
        assert [r.reference for r in by_collection] == ["SB 1.2.6"]

    @pytest.mark.asyncio
    async def test_cold_cache_loads_durable_snapshot(self, client, transport, remote, settings, backend):
        from quotesync.client import build_client

        remote.seed("BG 2.13")
        await client.records.fetch_all()

        transport.online = False
        fresh = build_client(settings, transport=transport, backend=backend)
        outcome = (await fresh.records.fetch_all()).unwrap()

        assert outcome.status is OutcomeStatus.OFFLINE
        assert [r.reference for r in outcome.records] == ["BG 2.13"]

    @pytest.mark.asyncio
    async def test_offline_view_includes_pending_state(self, client, transport, remote):
        keep = remote.seed("keep")
        gone = remote.seed("gone")
        await client.records.fetch_all()
        await go_offline(client, transport)
        await client.records.create(make_draft("new"))
        await client.records.update(keep, {"speaker": "Edited"})
        await client.records.delete(gone)

        records = (await client.records.fetch_all()).unwrap().records

        by_ref = {r.reference: r for r in records}
        assert set(by_ref) == {"new", "keep"}
        assert by_ref["new"].pending_sync is True
        assert by_ref["keep"].speaker == "Edited"

    @pytest.mark.asyncio
    async def test_online_read_with_pending_schedules_sync(self, client, transport, remote):
        await go_offline(client, transport)
        await client.records.create(make_draft("queued"))
        go_online(client, transport)

        await client.records.fetch_all()
        for task in list(client.engine._background):
            await task

        assert len(remote.by_ref("queued")) == 1
        assert client.store.has_pending() is False

    @pytest.mark.asyncio
    async def test_server_error_is_returned(self, client, remote):
        remote.fail("GET", "/api/records", 500)
        result = await client.records.fetch_all()
        assert isinstance(result.error, ServerError)
        assert client.monitor.is_online is True


# =============================================================================
# create
# =============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_online_returns_authoritative_record(self, client, remote):
        outcome = (await client.records.create(make_draft("BG 2.13"))).unwrap()
        assert outcome.status is OutcomeStatus.SYNCED
        assert outcome.record.id in remote.records
        assert client.store.snapshot()[0].id == outcome.record.id

    @pytest.mark.asyncio
    async def test_offline_queues_with_temporary_id(self, client, transport, bus):
        transport.online = False
        outcome = (await client.records.create(make_draft("BG 2.13"))).unwrap()

        assert outcome.status is OutcomeStatus.QUEUED
        assert is_temporary_id(outcome.record.temp_id)
        assert outcome.record.id is None
        assert outcome.record.pending_sync is True
        assert client.store.snapshot()[0].temp_id == outcome.record.temp_id
        assert RECORD_QUEUED in bus.types()

    @pytest.mark.asyncio
    async def test_validation(self, client, transport):
        result = await client.records.create({"reference": "BG 2.13", "statements": []})
        assert isinstance(result.error, ValidationError)
        result = await client.records.create({"statements": [{"text": "x"}]})
        assert isinstance(result.error, ValidationError)
        assert transport.attempts == []

    @pytest.mark.asyncio
    async def test_remote_validation_error_is_not_queued(self, client, remote):
        remote.fail("POST", "/api/records", 400)
        result = await client.records.create(make_draft())
        assert isinstance(result.error, ValidationError)
        assert client.store.pending_creates() == []
        assert client.store.snapshot() == []

    @pytest.mark.asyncio
    async def test_requires_credential(self, client, transport):
        client.clear_credential()
        result = await client.records.create(make_draft())
        assert isinstance(result.error, UnauthenticatedError)
        assert transport.attempts == []
        assert client.store.snapshot() == []


# =============================================================================
# update
# =============================================================================


class TestUpdate:
    @pytest.mark.asyncio
    async def test_online(self, client, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()

        outcome = (await client.records.update(record_id, {"reference": "BG 2.20"})).unwrap()

        assert outcome.status is OutcomeStatus.SYNCED
        assert remote.records[record_id]["ref"] == "BG 2.20"
        assert client.store.snapshot()[0].reference == "BG 2.20"

    @pytest.mark.asyncio
    async def test_offline_merges_patches(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await go_offline(client, transport)

        await client.records.update(record_id, {"reference": "first", "speaker": "A"})
        outcome = (await client.records.update(record_id, {"reference": "second"})).unwrap()

        assert outcome.status is OutcomeStatus.QUEUED
        (pending,) = client.store.pending_updates()
        assert pending.patch == {"reference": "second", "speaker": "A"}
        (local,) = client.store.snapshot()
        assert (local.reference, local.speaker, local.pending_sync) == ("second", "A", True)

    @pytest.mark.asyncio
    async def test_statement_id_resolves_record(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        statement_id = remote.records[record_id]["statements"][0]["id"]
        await go_offline(client, transport)

        await client.records.update(statement_id, {"speaker": "B"})

        assert client.store.pending_updates()[0].target_id == record_id

    @pytest.mark.asyncio
    async def test_rejects_identifier_changes(self, client):
        result = await client.records.update("abc", {"_id": "other"})
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_rejects_unknown_fields(self, client):
        result = await client.records.update("abc", {"author": "x"})
        assert isinstance(result.error, ValidationError)
        assert result.error.field == "author"

    @pytest.mark.asyncio
    async def test_offline_unknown_id(self, client, transport):
        await go_offline(client, transport)
        result = await client.records.update("nope", {"speaker": "x"})
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_online_write_supersedes_queued_fields(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await go_offline(client, transport)
        await client.records.update(record_id, {"reference": "offline", "speaker": "A"})
        go_online(client, transport)

        await client.records.update(record_id, {"reference": "online"})

        assert client.store.pending_updates()[0].patch == {"speaker": "A"}


# =============================================================================
# delete
# =============================================================================


class TestDelete:
    @pytest.mark.asyncio
    async def test_online(self, client, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()

        outcome = (await client.records.delete(record_id)).unwrap()

        assert outcome.status is OutcomeStatus.SYNCED
        assert record_id not in remote.records
        assert client.store.snapshot() == []
        assert client.store.deleted_ring()[0].source_id == record_id

    @pytest.mark.asyncio
    async def test_offline_queues(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await go_offline(client, transport)

        outcome = (await client.records.delete(record_id)).unwrap()

        assert outcome.status is OutcomeStatus.QUEUED
        assert [d.target_id for d in client.store.pending_deletes()] == [record_id]
        assert client.store.deleted_ring()[0].record.id == record_id
        assert client.store.snapshot() == []

    @pytest.mark.asyncio
    async def test_offline_unresolvable_id_is_explicit(self, client, transport):
        await go_offline(client, transport)
        result = await client.records.delete("ghost")
        assert isinstance(result.error, NotFoundError)
        assert client.store.pending_deletes() == []

    @pytest.mark.asyncio
    async def test_ring_keeps_ten_most_recent(self, client, transport, remote):
        ids = [remote.seed(f"ref {i}") for i in range(11)]
        await client.records.fetch_all()
        await go_offline(client, transport)

        for record_id in ids:
            await client.records.delete(record_id)

        ring = client.store.deleted_ring()
        assert len(ring) == 10
        assert [e.source_id for e in ring] == list(reversed(ids[1:]))

    @pytest.mark.asyncio
    async def test_delete_of_offline_created_record(self, client, transport, remote):
        await go_offline(client, transport)
        created = (await client.records.create(make_draft("short-lived"))).unwrap().record
        await client.records.update(created.temp_id, {"speaker": "Z"})
        await client.records.delete(created.temp_id)
        go_online(client, transport)

        result = await client.engine.reconcile()

        assert result.success is True
        assert remote.by_ref("short-lived") == []
        assert client.store.snapshot() == []


class TestQueuedCreateMissingFromSnapshot:
    """A queued create stays addressable after the snapshot is replaced."""

    async def _orphaned_create(self, client, transport, remote):
        await go_offline(client, transport)
        created = (await client.records.create(make_draft("BG 4.34"))).unwrap().record
        go_online(client, transport)
        remote.fail("POST", "/api/records", 500)
        await client.engine.reconcile()
        await go_offline(client, transport)
        assert created.temp_id not in {r.temp_id for r in client.store.snapshot()}
        return created

    @pytest.mark.asyncio
    async def test_update(self, client, transport, remote):
        created = await self._orphaned_create(client, transport, remote)

        outcome = (await client.records.update(created.temp_id, {"speaker": "Edited"})).unwrap()

        assert outcome.status is OutcomeStatus.QUEUED
        (record,) = (await client.records.fetch_all()).unwrap().records
        assert (record.temp_id, record.speaker) == (created.temp_id, "Edited")

    @pytest.mark.asyncio
    async def test_delete(self, client, transport, remote):
        created = await self._orphaned_create(client, transport, remote)

        outcome = (await client.records.delete(created.temp_id)).unwrap()

        assert outcome.status is OutcomeStatus.QUEUED
        assert (await client.records.fetch_all()).unwrap().records == []

    @pytest.mark.asyncio
    async def test_edits_reach_the_remote(self, client, transport, remote):
        created = await self._orphaned_create(client, transport, remote)
        await client.records.update(created.temp_id, {"speaker": "Edited"})
        go_online(client, transport)

        result = await client.engine.reconcile()

        assert result.success is True
        (stored,) = remote.by_ref("BG 4.34")
        assert stored["speaker"] == "Edited"
        assert client.store.has_pending() is False


# =============================================================================
# restore_last
# =============================================================================


class TestRestoreLast:
    @pytest.mark.asyncio
    async def test_empty_ring(self, client):
        result = await client.records.restore_last()
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_online_uses_remote_undo(self, client, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await client.records.delete(record_id)

        outcome = (await client.records.restore_last()).unwrap()

        assert outcome.status is OutcomeStatus.RESTORED
        assert record_id in remote.records
        assert [r.id for r in client.store.snapshot()] == [record_id]

    @pytest.mark.asyncio
    async def test_remote_undo_failure_keeps_ring_entry(self, client, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await client.records.delete(record_id)
        remote.fail("POST", "/api/records/undo", 500)

        result = await client.records.restore_last()

        assert isinstance(result.error, ServerError)
        assert client.store.deleted_ring()[0].source_id == record_id

    @pytest.mark.asyncio
    async def test_offline_after_remote_delete_requeues_create(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await client.records.delete(record_id)
        await go_offline(client, transport)

        outcome = (await client.records.restore_last()).unwrap()

        assert outcome.status is OutcomeStatus.RESTORED
        assert outcome.record.reference == "BG 2.13"
        assert [c.draft.reference for c in client.store.pending_creates()] == ["BG 2.13"]


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    @pytest.mark.asyncio
    async def test_a_offline_create_then_reconcile(self, client, transport, remote):
        transport.online = False
        outcome = (await client.records.create(make_draft("BG 2.13"))).unwrap()
        assert outcome.record.temp_id.startswith("temp_")
        assert len(client.store.pending_creates()) == 1

        go_online(client, transport)
        await client.engine.reconcile()

        assert client.store.pending_creates() == []
        (record,) = client.store.snapshot()
        assert record.reference == "BG 2.13"
        assert record.id in remote.records

    @pytest.mark.asyncio
    async def test_b_online_delete_of_missing_record(self, client):
        result = await client.records.delete("abc123")
        assert result == Ok(Outcome(OutcomeStatus.ALREADY_DELETED, message="Already deleted"))
        assert client.store.pending_deletes() == []

    @pytest.mark.asyncio
    async def test_c_offline_delete_then_restore(self, client, transport, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        await go_offline(client, transport)

        await client.records.delete(record_id)
        outcome = (await client.records.restore_last()).unwrap()

        assert outcome.status is OutcomeStatus.RESTORED
        assert [r.id for r in client.store.snapshot()] == [record_id]
        assert client.store.pending_deletes() == []

    @pytest.mark.asyncio
    async def test_d_unauthenticated_update(self, client, remote):
        record_id = remote.seed("BG 2.13")
        await client.records.fetch_all()
        before = client.store.snapshot()
        client.set_credential("expired")

        result = await client.records.update(record_id, {"reference": "changed"})

        match result:
            case Err(UnauthenticatedError()):
                pass
            case _:
                pytest.fail(f"unexpected {result!r}")
        assert client.store.credential() is None
        assert client.store.snapshot() == before
        assert client.store.pending_updates() == []
