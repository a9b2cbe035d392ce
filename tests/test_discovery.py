"""Test discovery batches and the background runner"""

import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from airwave.catalog.models import CatalogCandidate
from airwave.core.config import QueueConfig
from airwave.core.exceptions import AllKeysExhaustedError, CatalogError
from airwave.engine.dedup import DedupWindow
from airwave.engine.discovery import DiscoveryReport, DiscoveryRunner, DiscoveryService
from airwave.engine.history import HistoryLedger
from airwave.engine.queue_store import QueueStore
from airwave.youtube.models import VideoMatch


def _candidate(catalog_id):
    return CatalogCandidate(
        catalog_id=str(catalog_id),
        artist=f"Artist {catalog_id}",
        title=f"Title {catalog_id}",
        year=1990,
        thumbnail_url=f"https://img.discogs.com/{catalog_id}.jpg",
    )


def _video(artist, title, duration_bounds=None):
    return VideoMatch(
        video_id=f"v{abs(hash((artist, title))) % 10 ** 10:010d}",
        title=f"{artist} - {title}",
        channel_title=artist,
        duration_seconds=240,
    )


@pytest.fixture
def catalog():
    catalog = Mock()
    catalog.search.return_value = [_candidate(index) for index in range(1, 11)]
    return catalog


@pytest.fixture
def lookup():
    lookup = Mock()
    lookup.find_best_match.side_effect = _video
    return lookup


@pytest.fixture
def dedup(database, clock):
    return DedupWindow(database, clock, window=100, hours=24)


@pytest.fixture
def queue(database, clock, dedup):
    return QueueStore(database, clock, dedup, max_size=4)


def _service(catalog, lookup, queue, dedup, **kwargs):
    config = QueueConfig(min_size=1, target_size=3, max_size=4)
    return DiscoveryService(catalog, lookup, queue, dedup, config, **kwargs)


class TestDiscoveryService:
    """Test batch rules"""

    def test_adds_requested_count(self, catalog, lookup, queue, dedup):
        """Test a batch enqueues up to the requested count"""
        report = _service(catalog, lookup, queue, dedup).run(3)

        assert report == DiscoveryReport(added=3, skipped=0, errors=0, total_processed=3)
        catalog.search.assert_called_once_with(6)
        entries = queue.entries()
        assert [entry.track.catalog_id for entry in entries] == ["1", "2", "3"]
        assert entries[0].track.duration_seconds == 240
        assert entries[0].track.year == 1990
        assert entries[0].track.thumbnail_url == "https://img.discogs.com/1.jpg"

    def test_candidate_limit_capped(self, catalog, lookup, queue, dedup):
        """Test the catalog is never asked for more than 100 candidates"""
        _service(catalog, lookup, queue, dedup).run(80, force_refresh=True)

        catalog.search.assert_called_once_with(100)

    def test_skips_queued_and_recent(self, catalog, lookup, queue, dedup, database, clock, make_track):
        """Test queued and recently played candidates never reach the lookup"""
        queue.enqueue(make_track("1"))
        HistoryLedger(database, clock).append(make_track("2"), clock.now() - timedelta(hours=3))

        report = _service(catalog, lookup, queue, dedup).run(2)

        assert report.added == 2
        assert report.skipped == 2
        looked_up = [call.args for call in lookup.find_best_match.call_args_list]
        assert looked_up == [("Artist 3", "Title 3"), ("Artist 4", "Title 4")]

    def test_count_window_applies_at_enqueue(self, catalog, lookup, queue, dedup, database, clock, make_track):
        """Test a play outside the hours window is still refused by the count window"""
        HistoryLedger(database, clock).append(make_track("1"), clock.now() - timedelta(hours=30))

        report = _service(catalog, lookup, queue, dedup).run(1)

        assert lookup.find_best_match.call_args_list[0].args == ("Artist 1", "Title 1")
        assert report.added == 1
        assert report.skipped == 1
        assert not queue.contains("1")
        assert queue.contains("2")

    def test_no_match_skipped(self, catalog, lookup, queue, dedup):
        """Test candidates without a video are skipped"""
        lookup.find_best_match.side_effect = lambda artist, title, **_: None if artist == "Artist 1" else _video(artist, title)

        report = _service(catalog, lookup, queue, dedup).run(2)

        assert report.added == 2
        assert report.skipped == 1
        assert not queue.contains("1")

    def test_quota_exhausted_ends_batch(self, catalog, lookup, queue, dedup):
        """Test running out of quota stops the batch"""
        calls = []

        def find(artist, title, duration_bounds=None):
            calls.append(artist)
            if len(calls) > 1:
                raise AllKeysExhaustedError("exhausted", cost=100)
            return _video(artist, title)

        lookup.find_best_match.side_effect = find

        report = _service(catalog, lookup, queue, dedup).run(3)

        assert report.added == 1
        assert report.reason == "quota_exhausted"
        assert len(calls) == 2

    def test_candidate_error_does_not_abort(self, catalog, lookup, queue, dedup):
        """Test one failing candidate is counted and the batch continues"""

        def find(artist, title, duration_bounds=None):
            if artist == "Artist 2":
                raise RuntimeError("upstream timeout")
            return _video(artist, title)

        lookup.find_best_match.side_effect = find

        report = _service(catalog, lookup, queue, dedup).run(3)

        assert report.added == 3
        assert report.errors == 1
        assert report.reason == "completed"

    def test_queue_full_up_front(self, catalog, lookup, queue, dedup, make_track):
        """Test a full queue refuses the batch before searching"""
        for index in range(4):
            queue.enqueue(make_track(f"q{index}"))

        report = _service(catalog, lookup, queue, dedup).run(3)

        assert report.reason == "queue_full"
        assert report.added == 0
        catalog.search.assert_not_called()

    def test_stops_at_max(self, catalog, lookup, queue, dedup, make_track):
        """Test a batch stops once the queue reaches max"""
        for index in range(3):
            queue.enqueue(make_track(f"q{index}"))

        report = _service(catalog, lookup, queue, dedup).run(5)

        assert report.added == 1
        assert report.reason == "queue_full"
        assert queue.length() == 4

    def test_forced_batch_overfills(self, catalog, lookup, queue, dedup, make_track):
        """Test a forced batch may push the queue past max"""
        for index in range(4):
            queue.enqueue(make_track(f"q{index}"))

        report = _service(catalog, lookup, queue, dedup).run(5, force_refresh=True)

        assert report.added == 5
        assert queue.length() == 9

    def test_catalog_error(self, catalog, lookup, queue, dedup):
        """Test a failed catalog search ends the batch with an error"""
        catalog.search.side_effect = CatalogError("Discogs rate limit reached", is_rate_limit=True)

        report = _service(catalog, lookup, queue, dedup).run(3)

        assert report.reason == "catalog_error"
        assert report.errors == 1
        lookup.find_best_match.assert_not_called()

    def test_on_enqueued_callback(self, catalog, lookup, queue, dedup):
        """Test the callback receives every new queue id"""
        seen = []

        _service(catalog, lookup, queue, dedup, on_enqueued=seen.append).run(2)

        assert seen == [entry.id for entry in queue.entries()]

    def test_duration_bounds_passed_to_lookup(self, catalog, lookup, queue, dedup):
        """Test the configured length window reaches every lookup"""
        _service(catalog, lookup, queue, dedup, duration_bounds=(90, 480)).run(1)

        assert lookup.find_best_match.call_args.kwargs == {"duration_bounds": (90, 480)}


class TestDiscoveryRunner:
    """Test the single background worker"""

    def test_request_runs_in_background(self):
        """Test the future resolves to the batch report"""
        service = Mock()
        service.run.return_value = DiscoveryReport(added=2, total_processed=2)
        runner = DiscoveryRunner(service)

        report = runner.request(2).result(timeout=5)

        assert report.added == 2
        assert runner.last_report == report
        service.run.assert_called_once_with(2, False)
        runner.shutdown()

    def test_requests_join_running_batch(self):
        """Test a request while a batch runs joins it instead of queueing another"""
        started = threading.Event()
        release = threading.Event()

        def run(count, force_refresh):
            started.set()
            release.wait(timeout=5)
            return DiscoveryReport(added=count)

        service = Mock()
        service.run.side_effect = run
        runner = DiscoveryRunner(service)

        first = runner.request(3)
        assert started.wait(timeout=5)
        assert runner.running
        second = runner.request(50, force_refresh=True)
        release.set()

        assert second is first
        assert first.result(timeout=5).added == 3
        assert service.run.call_count == 1
        runner.shutdown()

    def test_crashed_batch(self):
        """Test an exception inside a batch is carried by the future"""
        service = Mock()
        service.run.side_effect = RuntimeError("boom")
        runner = DiscoveryRunner(service)

        with pytest.raises(RuntimeError):
            runner.request(1).result(timeout=5)
        assert not runner.running
        runner.shutdown()
