"""Tests for hotfolder.detector"""
import asyncio

from hotfolder.detector import STATUS_MONITOR_ERROR, ChangeDetector, ClaimTracker
from hotfolder.filters import NameFilter
from hotfolder.folders import FolderEntry
from hotfolder.session import WatcherSession


def _detector(status):
    return ChangeDetector(NameFilter(), ClaimTracker(status), status)


class TestChangeDetector:
    """Test suite for ChangeDetector"""

    def test_tick_reports_only_eligible_new_files(self, folder, status):
        """Test that a.png, b.tmp, c.jpg in one tick yields a.png and c.jpg"""
        session = WatcherSession(folder)
        detector = _detector(status)
        folder.add("a.png", "b.tmp", "c.jpg")

        queued = asyncio.run(detector.tick(session))

        assert [r.name for r in queued] == ["a.png", "c.jpg"]
        assert session.queue.names == ["a.png", "c.jpg"]
        assert session.claimed == {"a.png", "c.jpg"}
        assert session.known == {"a.png", "c.jpg"}

    def test_baseline_files_are_not_new(self, folder, status):
        """Test that files present at snapshot time are not queued"""
        folder.add("old.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            await detector.snapshot(session)
            first = await detector.tick(session)
            folder.add("new.jpg")
            second = await detector.tick(session)
            return first, second

        first, second = asyncio.run(run())
        assert first == []
        assert [r.name for r in second] == ["new.jpg"]

    def test_known_set_is_replaced_wholesale(self, folder, status):
        """Test that names removed externally drop out of the known set"""
        folder.add("a.jpg", "b.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            await detector.snapshot(session)
            del folder.files["a.jpg"]
            folder.add("c.jpg")
            await detector.tick(session)

        asyncio.run(run())
        assert session.known == {"b.jpg", "c.jpg"}

    def test_known_set_untouched_without_new_names(self, folder, status):
        """Test that a tick with no new names leaves the known set alone"""
        folder.add("a.jpg", "b.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            await detector.snapshot(session)
            del folder.files["a.jpg"]
            return await detector.tick(session)

        assert asyncio.run(run()) == []
        assert session.known == {"a.jpg", "b.jpg"}

    def test_claimed_name_is_not_queued_twice(self, folder, status):
        """Test that a name already claimed is skipped by later ticks"""
        folder.add("x.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            first = await detector.tick(session)
            # the detector forgets the name, but the claim still holds it
            session.known.clear()
            second = await detector.tick(session)
            return first, second

        first, second = asyncio.run(run())
        assert [r.name for r in first] == ["x.jpg"]
        assert second == []
        assert session.queue.names == ["x.jpg"]

    def test_listing_error_skips_tick(self, folder, status):
        """Test that a listing failure is logged and the next tick still works"""
        folder.add("a.jpg")
        folder.list_errors.append(OSError("network share went away"))
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            first = await detector.tick(session)
            second = await detector.tick(session)
            return first, second

        first, second = asyncio.run(run())
        assert first == []
        assert [r.name for r in second] == ["a.jpg"]
        assert STATUS_MONITOR_ERROR in status.errors

    def test_tick_on_closed_session_queues_nothing(self, folder, status):
        """Test that a tick finishing after stop does not touch the queue"""
        folder.add("a.jpg")
        session = WatcherSession(folder)
        session.close()
        assert asyncio.run(_detector(status).tick(session)) == []
        assert session.claimed == set()

    def test_claim_all_picks_up_existing_files(self, folder, status):
        """Test that a sweep queues every unclaimed eligible file"""
        folder.add("a.jpg", "b.jpg", "c.tmp")
        session = WatcherSession(folder)
        session.claimed.add("a.jpg")
        detector = _detector(status)

        async def run():
            await detector.snapshot(session)
            return await detector.claim_all(session)

        queued = asyncio.run(run())
        assert [r.name for r in queued] == ["b.jpg"]

    def test_name_archived_during_listing_is_not_requeued(self, folder, status):
        """Test that a listing taken before an archive finished does not queue the file again"""
        folder.add("a.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            gate = asyncio.Event()
            folder.list_gate = gate
            tick = asyncio.create_task(detector.tick(session))
            while not folder.parked_listings:
                await asyncio.sleep(0)
            # the file is archived while the listing still shows it
            del folder.files["a.jpg"]
            session.forget("a.jpg")
            gate.set()
            return await tick

        assert asyncio.run(run()) == []
        assert session.queue.names == []
        assert session.claimed == set()
        assert "a.jpg" not in session.known

    def test_same_name_dropped_again_is_detected_next_tick(self, folder, status):
        """Test that a name left out of a stale listing is still picked up later"""
        folder.add("a.jpg")
        session = WatcherSession(folder)
        detector = _detector(status)

        async def run():
            gate = asyncio.Event()
            folder.list_gate = gate
            tick = asyncio.create_task(detector.tick(session))
            while not folder.parked_listings:
                await asyncio.sleep(0)
            session.forget("a.jpg")
            gate.set()
            await tick
            folder.list_gate = None
            return await detector.tick(session)

        assert [r.name for r in asyncio.run(run())] == ["a.jpg"]

    def test_forgetting_outside_a_listing_keeps_nothing(self, folder, status):
        """Test that names forgotten with no listing in flight do not affect later ticks"""
        folder.add("a.jpg")
        session = WatcherSession(folder)
        session.known.add("a.jpg")
        session.forget("a.jpg")

        queued = asyncio.run(_detector(status).tick(session))

        assert [r.name for r in queued] == ["a.jpg"]


class TestClaimTracker:
    """Test suite for ClaimTracker"""

    def test_missing_handle_releases_claim(self, folder, status):
        """Test that a name without a matching listing entry is dropped unclaimed"""
        session = WatcherSession(folder)
        tracker = ClaimTracker(status)

        queued = tracker.claim_new(session, ["ghost.jpg"], [])

        assert queued == []
        assert "ghost.jpg" not in session.claimed
        assert len(session.queue) == 0

    def test_claims_in_order(self, folder, status):
        """Test that records are queued in the order the names were given"""
        session = WatcherSession(folder)
        tracker = ClaimTracker(status)
        files = [FolderEntry(n, False, folder.handle(n)) for n in ("b.jpg", "a.jpg")]

        queued = tracker.claim_new(session, ["b.jpg", "a.jpg"], files)

        assert [r.name for r in queued] == ["b.jpg", "a.jpg"]
        assert any("Added to queue: a.jpg (2 in queue)" in line for line in status.lines)
