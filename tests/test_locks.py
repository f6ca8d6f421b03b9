import threading
import time
from datetime import datetime, timezone

from collectors.crash_artifacts import CrashArtifactScanner
from datamodels.events import SupportedOs
from infra.locks import ReadWriteLock
from ingest.coordinator import SyncCoordinator
from ingest.crash_importer import CrashImporter
from fakes import FakeCollector, FakeRunner, journal_record

WAIT = 0.2


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "condition never became true"
        time.sleep(0.01)


def _start(target):
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


def test_readers_share_and_writer_waits_for_them():
    lock = ReadWriteLock()
    both_inside = threading.Barrier(2, timeout=5)
    leave = threading.Event()
    wrote = threading.Event()

    def reader():
        with lock.read():
            both_inside.wait()
            leave.wait(timeout=5)

    def writer():
        with lock.write():
            wrote.set()

    readers = [_start(reader), _start(reader)]
    _wait_until(lambda: lock._readers == 2)
    writing = _start(writer)
    assert not wrote.wait(WAIT)

    leave.set()
    for t in readers + [writing]:
        t.join(timeout=5)
    assert wrote.is_set()


def test_new_reader_queues_behind_waiting_writer():
    lock = ReadWriteLock()
    order = []
    leave = threading.Event()

    def first_reader():
        with lock.read():
            leave.wait(timeout=5)

    def writer():
        with lock.write():
            order.append("write")

    def late_reader():
        with lock.read():
            order.append("read")

    holding = _start(first_reader)
    _wait_until(lambda: lock._readers == 1)
    writing = _start(writer)
    _wait_until(lambda: lock._writers_waiting == 1)
    reading = _start(late_reader)
    time.sleep(WAIT)
    assert order == []

    leave.set()
    for t in (holding, writing, reading):
        t.join(timeout=5)
    assert order == ["write", "read"]


def test_store_reads_wait_for_an_inflight_write(store):
    counted = []
    with store.lock.write():
        reading = _start(lambda: counted.append(store.count()))
        time.sleep(WAIT)
        assert counted == []
    reading.join(timeout=5)
    assert counted == [0]


def test_sync_and_crash_import_exclude_each_other(store, settings, release):
    lock = threading.Lock()
    record = journal_record(1, datetime(2026, 2, 21, tzinfo=timezone.utc))
    collector = FakeCollector([record], block=release)
    coordinator = SyncCoordinator(store, collector, settings, sync_lock=lock, zone=timezone.utc)
    scanner = CrashArtifactScanner(host_os=SupportedOs.LINUX, runner=FakeRunner(), roots={}, use_coredumpctl=False)
    importer = CrashImporter(store, scanner, sync_lock=lock)

    results = {}
    syncing = _start(lambda: results.setdefault("sync", coordinator.sync_range("2026-02-20", "2026-02-22")))
    _wait_until(lambda: collector.calls)
    importing = _start(lambda: results.setdefault("import", importer.import_host_crashes(10)))
    second_sync = _start(lambda: results.setdefault("again", coordinator.sync_range("2026-02-20", "2026-02-22")))
    time.sleep(WAIT)
    assert results == {}
    assert len(collector.calls) == 1

    release.set()
    for t in (syncing, importing, second_sync):
        t.join(timeout=5)
    assert results["sync"].collected == 1
    assert results["import"] == 0
    assert results["again"].collected == 1
    assert store.count() == 1
