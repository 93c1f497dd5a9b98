"""
Background worker threads for asynchronous processing.

This module contains the two pieces of work that must stay off the per-frame
path: request/response offloading (used for the remote classifier) and model
training. Both communicate only through explicit payloads; the frame path
never blocks on them for longer than a bounded wait.
"""

import logging
import queue
import threading
import time
import uuid

from motion_intent.config import WorkerConfig
from motion_intent.core.data_types import TrainingFailure, TrainingResult

logger = logging.getLogger(__name__)


# ==================== Request Worker ====================

class PendingRequest:
    """
    Handle for a request submitted to a RequestWorker.

    The response channel is a single-use event: the worker sets the response
    (or marks the request failed) and the submitter collects it with a timeout.
    """

    def __init__(self, payload, correlation_id=None, max_age=None):
        """
        Args:
            payload: Request payload handed to the worker's handler
            correlation_id (str, optional): Identifier; generated if omitted
            max_age (float, optional): Seconds after submission the request is still
                worth handling; None never expires
        """
        self.correlation_id = correlation_id or uuid.uuid4().hex
        self.payload = payload
        self.submitted_at = time.monotonic()
        self.expires_at = self.submitted_at + max_age if max_age is not None else None
        self._done = threading.Event()
        self._response = None
        self.error = None

    def set_response(self, response):
        self._response = response
        self._done.set()

    def set_error(self, error):
        self.error = error
        self._done.set()

    @property
    def done(self):
        return self._done.is_set()

    @property
    def expired(self):
        return self.expires_at is not None and time.monotonic() > self.expires_at

    def result(self, timeout=None):
        """
        Wait for the response.

        Args:
            timeout (float, optional): Seconds to wait; None waits indefinitely

        Returns:
            The handler's response, or None on timeout or failure
        """
        if not self._done.wait(timeout):
            logger.debug(f"Request {self.correlation_id} timed out")
            return None
        if self.error is not None:
            return None
        return self._response


class RequestWorker(threading.Thread):
    """
    Background thread that answers requests with a handler function.

    Requests are queued without blocking; when the queue is full the request
    is dropped and resolves immediately to None. Requests that expired while
    queued are skipped without calling the handler.
    """

    def __init__(self, handler, name="RequestWorker", stop_event=None,
                 queue_maxsize=WorkerConfig.REQUEST_QUEUE_MAXSIZE):
        """
        Initialize the request worker.

        Args:
            handler (callable): Function payload -> response, run on the worker thread
            name (str): Thread name
            stop_event (threading.Event, optional): Event to signal shutdown
            queue_maxsize (int): Maximum number of pending requests
        """
        super().__init__(daemon=True, name=name)
        self.handler = handler
        self.stop_event = stop_event or threading.Event()
        self.request_queue = queue.Queue(maxsize=queue_maxsize)
        self.processed_count = 0
        self.dropped_count = 0
        self.expired_count = 0

        logger.info(f"{name} initialized")

    def submit(self, payload, correlation_id=None, max_age=None):
        """
        Queue a request (non-blocking).

        Args:
            payload: Request payload
            correlation_id (str, optional): Identifier to attach to the request
            max_age (float, optional): Seconds the request stays worth handling

        Returns:
            PendingRequest: Handle to collect the response
        """
        request = PendingRequest(payload, correlation_id, max_age)
        try:
            self.request_queue.put_nowait(request)
        except queue.Full:
            self.dropped_count += 1
            logger.warning(f"{self.name} queue full, dropping request {request.correlation_id}")
            request.set_error(RuntimeError("queue full"))
        return request

    def run(self):
        """Main worker loop - answers requests from the queue."""
        logger.info(f"{self.name} started")

        while not self.stop_event.is_set():
            try:
                request = self.request_queue.get(timeout=WorkerConfig.QUEUE_TIMEOUT)
            except queue.Empty:
                continue

            if request.expired:
                self.expired_count += 1
                logger.debug(f"Skipping expired request {request.correlation_id}")
                request.set_error(TimeoutError("request expired before it was handled"))
                self.request_queue.task_done()
                continue

            try:
                request.set_response(self.handler(request.payload))
                self.processed_count += 1
            except Exception as e:
                logger.error(f"Error handling request {request.correlation_id}: {e}",
                             exc_info=True)
                request.set_error(e)
            finally:
                self.request_queue.task_done()

        # Unblock anyone still waiting on queued requests
        while True:
            try:
                request = self.request_queue.get_nowait()
            except queue.Empty:
                break
            request.set_error(RuntimeError("worker stopped"))

        logger.info(f"{self.name} stopped")

    def stop(self, timeout=WorkerConfig.THREAD_SHUTDOWN_TIMEOUT):
        """Signal the worker to stop and wait for it."""
        logger.info(f"Stopping {self.name}...")
        self.stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)


# ==================== Training Task ====================

class TrainingTask:
    """
    Runs one training job on a background thread.

    The job is a callable accepting `progress_callback`, `cancel_event` and
    `deadline` keyword arguments and returning a TrainingResult. Progress is
    mirrored in `progress` and forwarded to the user callback.
    """

    def __init__(self, job, progress_callback=None, timeout=None, name="TrainingTask"):
        """
        Args:
            job (callable): Training function (see class docstring)
            progress_callback (callable, optional): Called with progress in [0, 1]
            timeout (float, optional): Wall-clock limit in seconds
            name (str): Thread name
        """
        self.job = job
        self.progress_callback = progress_callback
        self.timeout = timeout
        self.progress = 0.0
        self.result = None

        self._cancel_event = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    @classmethod
    def rejected(cls, result):
        """
        A task that never runs and is already finished with `result`.
        """
        task = cls(job=None)
        task.result = result
        task._done.set()
        return task

    def start(self):
        self._thread.start()
        return self

    def run(self):
        """
        Run the job on the calling thread.

        Returns:
            TrainingResult: Result of the job
        """
        self._run()
        return self.result

    def _report(self, progress):
        self.progress = progress
        if self.progress_callback is not None:
            self.progress_callback(progress)

    def _run(self):
        deadline = time.monotonic() + self.timeout if self.timeout else None
        try:
            self.result = self.job(progress_callback=self._report,
                                   cancel_event=self._cancel_event,
                                   deadline=deadline)
        except Exception as e:
            logger.error(f"Training task failed: {e}", exc_info=True)
            self.result = TrainingResult(success=False, reason=TrainingFailure.ERROR,
                                         message=str(e))
        finally:
            self._done.set()

    def cancel(self):
        """Request cooperative cancellation; the job stops after the current epoch."""
        self._cancel_event.set()

    @property
    def is_running(self):
        return not self._done.is_set()

    def wait(self, timeout=None):
        """
        Wait for the task to finish.

        Returns:
            TrainingResult: Result, or None if still running after `timeout`
        """
        if not self._done.wait(timeout):
            return None
        return self.result
