"""End-to-end integration tests for the sync workflow.

Tests the complete flow: local mutation → queue → HTTP upload → server →
incremental fetch → merge on another device.
"""

from __future__ import annotations

import asyncio
import socket

import pytest

from selectly.core.types import SyncResource


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


class TestBasicSyncWorkflow:
    """Test basic sync operations between two devices of one user."""

    @pytest.mark.asyncio
    async def test_every_domain_reaches_second_device(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Items created on one device appear on the other."""
        token = test_server.create_account("alice")

        async with device_factory("laptop", token, "alice") as laptop:
            await laptop.collect.collect("snippet", url="https://x.test/a")
            await laptop.dictionary.save_word("Hund", "dog", sentence="Der Hund schläft.")
            await laptop.highlights.highlight("key sentence", "https://x.test/a", color="yellow")
            for service in laptop.enabled():
                report = await service.sync()
                assert report is not None
                assert report.uploaded == 1

        async with device_factory("phone", token, "alice") as phone:
            for service in phone.enabled():
                await service.sync()

            assert [i.text for i in phone.collect.get_all()] == ["snippet"]
            [entry] = phone.dictionary.get_all()
            assert entry.translation == "dog"
            assert entry.sentence == "Der Hund schläft."
            [highlight] = phone.highlights.get_by_url("https://x.test/a")
            assert highlight.color == "yellow"
            assert highlight.owner_id == "alice"

    @pytest.mark.asyncio
    async def test_later_edit_wins_everywhere(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Concurrent edits converge to the most recent one."""
        token = test_server.create_account("alice")

        async with (
            device_factory("laptop", token, "alice") as laptop,
            device_factory("phone", token, "alice") as phone,
        ):
            item_id = await laptop.collect.collect("v1")
            await laptop.collect.sync()
            await phone.collect.sync()

            await laptop.collect.update(item_id, text="laptop edit")
            await asyncio.sleep(0.01)
            await phone.collect.update(item_id, text="phone edit")

            # Newer edit reaches the server first, stale one is ignored
            await phone.collect.sync()
            await laptop.collect.sync()
            await phone.collect.sync()

            for device in (laptop, phone):
                item = device.collect.get(item_id)
                assert item is not None
                assert item.text == "phone edit"

        [record] = test_server.db.get_records_since(SyncResource.COLLECT, "alice")
        assert record.payload["text"] == "phone edit"

    @pytest.mark.asyncio
    async def test_newer_delete_beats_older_edit(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """A deletion made after an edit removes the item on both devices."""
        token = test_server.create_account("alice")

        async with (
            device_factory("laptop", token, "alice") as laptop,
            device_factory("phone", token, "alice") as phone,
        ):
            entry_id = await laptop.dictionary.save_word("Katze", "cat")
            await laptop.dictionary.sync()
            await phone.dictionary.sync()

            await phone.dictionary.update(entry_id, translation="kitten")
            await asyncio.sleep(0.01)
            await laptop.dictionary.delete(entry_id)

            await phone.dictionary.sync()
            await laptop.dictionary.sync()
            await phone.dictionary.sync()

            assert laptop.dictionary.get_all() == []
            assert phone.dictionary.get_all() == []


class TestOfflineFirst:
    """Changes made while the server is unreachable are kept and sent later."""

    @pytest.mark.asyncio
    async def test_offline_changes_sync_later(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Sync is skipped offline and succeeds once the server is back."""
        token = test_server.create_account("alice")
        offline_url = f"http://127.0.0.1:{unused_port()}"

        async with device_factory("laptop", token, "alice", server_url=offline_url) as laptop:
            await laptop.collect.collect("written offline")
            await laptop.collect.collect("also offline")

            assert await laptop.collect.sync() is None
            assert await laptop.collect.get_pending_sync_count() == 2

        async with device_factory("laptop", token, "alice") as laptop:
            report = await laptop.collect.sync()

            assert report is not None
            assert report.uploaded == 2
            assert await laptop.collect.get_pending_sync_count() == 0
            assert all(item.owner_id == "alice" for item in laptop.collect.get_all())

        assert len(test_server.db.get_records_since(SyncResource.COLLECT, "alice")) == 2


class TestPeriodicSync:
    """Tests for background sync."""

    @pytest.mark.asyncio
    async def test_periodic_sync_uploads(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Items are uploaded without an explicit sync call."""
        token = test_server.create_account("alice")

        async with device_factory("laptop", token, "alice", interval=0.05) as laptop:
            laptop.start_periodic_sync()
            await laptop.collect.collect("background")

            for _ in range(100):
                if test_server.db.get_records_since(SyncResource.COLLECT, "alice"):
                    break
                await asyncio.sleep(0.05)

            laptop.stop_periodic_sync()

        [record] = test_server.db.get_records_since(SyncResource.COLLECT, "alice")
        assert record.payload["text"] == "background"


class TestAccounts:
    """Tests for account isolation."""

    @pytest.mark.asyncio
    async def test_users_do_not_see_each_other(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Records of one user never reach another user's device."""
        alice_token = test_server.create_account("alice")
        bob_token = test_server.create_account("bob")

        async with device_factory("alice", alice_token, "alice") as alice:
            await alice.collect.collect("alice only")
            await alice.collect.sync()

        async with device_factory("bob", bob_token, "bob") as bob:
            report = await bob.collect.full_sync()

            assert report is not None
            assert report.downloaded == 0
            assert bob.collect.get_all() == []

    @pytest.mark.asyncio
    async def test_unsubscribed_user_keeps_local_data(self, test_server, device_factory) -> None:  # type: ignore[no-untyped-def]
        """Without a subscription nothing leaves the device."""
        token = test_server.create_account("free", subscribed=False)

        async with device_factory("free", token, "free") as device:
            await device.collect.collect("local only")

            assert await device.collect.sync() is None
            assert await device.collect.get_pending_sync_count() == 1

        assert test_server.db.get_records_since(SyncResource.COLLECT, "free") == []
