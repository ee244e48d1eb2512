import time

import pytest

from routeopt.models.domain import Stop
from routeopt.services.routing.batch_queue import BatchQueue
from routeopt.services.routing.errors import CollaboratorError
from routeopt.services.routing.job_store import JobStore
from routeopt.services.routing.models import BatchMessage, ResultStatus, TripPlan
from routeopt.services.routing.worker import BatchWorker, WorkerPool


def _message(job_id: str = "job-1", index: int = 0, total: int = 1, ids=("1", "2")) -> BatchMessage:
    stops = tuple(Stop(stop_id=sid, latitude=41.0 + n * 0.01, longitude=29.0) for n, sid in enumerate(ids))
    return BatchMessage(job_id=job_id, batch_index=index, total_batches=total, stops=stops, start=(41.0, 29.0))


class ReversingOSRM:
    """Visits stops in reverse; the path runs through every stop."""

    def __init__(self):
        self.calls = []

    def optimize(self, start, stops):
        self.calls.append((start, [stop.stop_id for stop in stops]))
        ordered = list(reversed(stops))
        geometry = [list(start)] + [[stop.latitude, stop.longitude] for stop in ordered]
        ranges = {stop.stop_id: (position, position + 1) for position, stop in enumerate(ordered)}
        return TripPlan(
            stop_ids=[stop.stop_id for stop in ordered],
            distance_km=2.5,
            geometry=geometry,
            stop_ranges=ranges,
        )


class FailingOSRM:
    def optimize(self, start, stops):
        raise CollaboratorError("OSRM trip request timed out")


def test_worker_routes_from_anchor_and_reports_result():
    store = JobStore()
    store.create_job("job-1", 1)
    osrm = ReversingOSRM()
    message = _message()

    result = BatchWorker(osrm, store).process(message)

    assert osrm.calls == [((41.0, 29.0), ["1", "2"])]
    assert result.success
    assert result.stop_ids == ["2", "1"]
    assert result.distance_km == 2.5
    assert result.stop_ranges == {"2": (0, 1), "1": (1, 2)}
    final = store.wait_for_result("job-1", timeout=1)
    assert final.status is ResultStatus.SUCCESS
    assert final.stop_ids == ["2", "1"]


def test_routing_failure_is_reported_as_failed_batch():
    store = JobStore()
    store.create_job("job-1", 1)

    result = BatchWorker(FailingOSRM(), store).process(_message(ids=("7", "8", "9")))

    assert not result.success
    assert result.stop_ids == ["7", "8", "9"]
    assert result.distance_km == 0.0
    assert result.geometry is None
    assert result.stop_ranges is None
    assert "timed out" in result.error_message
    final = store.wait_for_result("job-1", timeout=1)
    assert final.status is ResultStatus.ERROR
    assert final.failed_batches == [0]


def test_unexpected_stop_set_is_a_failed_batch():
    class LosingOSRM:
        def optimize(self, start, stops):
            return TripPlan(stop_ids=[stops[0].stop_id], distance_km=1.0)

    result = BatchWorker(LosingOSRM(), JobStore()).route(_message(ids=("1", "2")))

    assert not result.success
    assert result.stop_ids == ["1", "2"]


def test_report_for_evicted_job_is_harmless():
    result = BatchWorker(ReversingOSRM(), JobStore()).process(_message(job_id="gone"))

    assert result.success


def test_pool_processes_batches_concurrently():
    store = JobStore()
    queue = BatchQueue(max_size=0, publish_timeout=0.1, max_deliveries=3)
    store.create_job("job-1", 4)
    pool = WorkerPool(queue, BatchWorker(ReversingOSRM(), store), size=3, poll_interval=0.05)
    pool.start()
    try:
        for index in range(4):
            queue.publish(_message(index=index, total=4, ids=(f"{index}a", f"{index}b")))
        result = store.wait_for_result("job-1", timeout=5)
    finally:
        pool.stop()

    assert result.status is ResultStatus.SUCCESS
    assert result.stop_ids == ["0b", "0a", "1b", "1a", "2b", "2a", "3b", "3a"]
    assert result.total_distance_km == 10.0
    assert not pool.running


def test_pool_redelivers_message_after_unexpected_error():
    store = JobStore()
    store.create_job("job-1", 1)
    queue = BatchQueue(max_size=0, publish_timeout=0.1, max_deliveries=3)
    attempts = []

    class FlakyWorker(BatchWorker):
        def process(self, message):
            attempts.append(message.delivery_attempt)
            if message.delivery_attempt == 1:
                raise RuntimeError("lost connection to job store")
            return super().process(message)

    pool = WorkerPool(queue, FlakyWorker(ReversingOSRM(), store), size=1, poll_interval=0.05)
    pool.start()
    try:
        queue.publish(_message())
        result = store.wait_for_result("job-1", timeout=5)
    finally:
        pool.stop()

    assert attempts == [1, 2]
    assert result.status is ResultStatus.SUCCESS


def test_batch_out_of_deliveries_is_reported_as_failed():
    store = JobStore()
    store.create_job("job-1", 2)
    queue = BatchQueue(max_size=0, publish_timeout=0.1, max_deliveries=3)
    attempts = []

    class CrashingOSRM(ReversingOSRM):
        def optimize(self, start, stops):
            if stops[0].stop_id == "c":
                attempts.append(len(attempts) + 1)
                raise RuntimeError("segfault in routing engine binding")
            return super().optimize(start, stops)

    pool = WorkerPool(queue, BatchWorker(CrashingOSRM(), store), size=2, poll_interval=0.05)
    pool.start()
    started = time.monotonic()
    try:
        queue.publish(_message(index=0, total=2, ids=("a", "b")))
        queue.publish(_message(index=1, total=2, ids=("c", "d")))
        result = store.wait_for_result("job-1", timeout=5)
    finally:
        pool.stop()

    assert time.monotonic() - started < 5
    assert attempts == [1, 2, 3]
    assert result.status is ResultStatus.PARTIAL_FAILURE
    assert result.failed_batches == [1]
    assert result.stop_ids == ["b", "a", "c", "d"]
    assert result.total_distance_km == 2.5
    assert "segfault" in result.error_message
    assert queue.qsize() == 0


def test_pool_rejects_zero_workers():
    with pytest.raises(ValueError):
        WorkerPool(BatchQueue(), BatchWorker(ReversingOSRM(), JobStore()), size=0)


def test_pool_start_is_idempotent():
    pool = WorkerPool(BatchQueue(), BatchWorker(ReversingOSRM(), JobStore()), size=2, poll_interval=0.05)
    pool.start()
    pool.start()
    try:
        assert len(pool._threads) == 2
    finally:
        pool.stop()
