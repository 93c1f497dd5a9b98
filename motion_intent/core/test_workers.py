"""
Tests for the request worker and the training task.
"""

import threading

from motion_intent.core.data_types import TrainingFailure, TrainingResult
from motion_intent.core.workers import PendingRequest, RequestWorker, TrainingTask


def test_request_worker_answers_requests():
    worker = RequestWorker(lambda x: x * 2, name="DoublingWorker")
    worker.start()
    try:
        request = worker.submit(21)
        assert request.result(timeout=2.0) == 42
        assert request.done
        assert worker.processed_count == 1
    finally:
        worker.stop()
    assert not worker.is_alive()


def test_handler_errors_resolve_to_none():
    def fail(payload):
        raise ValueError("bad payload")

    worker = RequestWorker(fail)
    worker.start()
    try:
        request = worker.submit('x')
        assert request.result(timeout=2.0) is None
        assert isinstance(request.error, ValueError)
    finally:
        worker.stop()


def test_full_queue_drops_request():
    worker = RequestWorker(lambda x: x, queue_maxsize=1)
    first = worker.submit(1)
    second = worker.submit(2)

    assert not first.done
    assert second.done
    assert second.result(timeout=0) is None
    assert worker.dropped_count == 1


def test_expired_requests_are_skipped():
    release = threading.Event()
    handled = []

    def slow(payload):
        handled.append(payload)
        release.wait(5.0)
        return payload

    worker = RequestWorker(slow)
    worker.start()
    try:
        first = worker.submit('first')
        stale = worker.submit('stale', max_age=0.01)

        # The waiter gives up before the slow handler returns
        assert first.result(timeout=0.05) is None
        release.set()

        assert first.result(timeout=2.0) == 'first'
        assert stale.result(timeout=2.0) is None
        assert isinstance(stale.error, TimeoutError)
        assert handled == ['first']
        assert worker.expired_count == 1
    finally:
        release.set()
        worker.stop()


def test_request_expiry():
    assert not PendingRequest('a').expired
    assert not PendingRequest('a', max_age=60.0).expired
    assert PendingRequest('a', max_age=-1.0).expired


def test_correlation_ids():
    assert PendingRequest('a', correlation_id='abc').correlation_id == 'abc'
    assert PendingRequest('a').correlation_id != PendingRequest('a').correlation_id


def test_pending_request_times_out():
    assert PendingRequest('a').result(timeout=0.01) is None


def test_training_task_runs_synchronously():
    progress = []

    def job(progress_callback=None, cancel_event=None, deadline=None):
        for step in (0.5, 1.0):
            progress_callback(step)
        return TrainingResult(success=True, epochs_run=2)

    task = TrainingTask(job, progress_callback=progress.append, timeout=10.0)
    result = task.run()

    assert result.success
    assert progress == [0.5, 1.0]
    assert task.progress == 1.0
    assert not task.is_running


def test_training_task_failure_becomes_result():
    def job(**kwargs):
        raise RuntimeError("boom")

    result = TrainingTask(job).run()
    assert not result.success
    assert result.reason == TrainingFailure.ERROR
    assert result.message == 'boom'


def test_training_task_cancel_and_deadline():
    seen = {}

    def job(progress_callback=None, cancel_event=None, deadline=None):
        seen['deadline'] = deadline
        cancel_event.wait(5.0)
        return TrainingResult(success=False, reason=TrainingFailure.CANCELLED)

    task = TrainingTask(job, timeout=30.0).start()
    assert task.is_running
    task.cancel()

    assert task.wait(5.0).reason == TrainingFailure.CANCELLED
    assert seen['deadline'] is not None

    assert TrainingTask(lambda **kw: TrainingResult(success=True)).run().success


def test_rejected_task_is_finished():
    result = TrainingResult(success=False, reason=TrainingFailure.IN_PROGRESS)
    task = TrainingTask.rejected(result)
    assert not task.is_running
    assert task.wait(0) is result


def test_wait_returns_none_while_running():
    release = threading.Event()

    def job(**kwargs):
        release.wait(5.0)
        return TrainingResult(success=True)

    task = TrainingTask(job).start()
    try:
        assert task.wait(0.01) is None
    finally:
        release.set()
    assert task.wait(5.0).success
