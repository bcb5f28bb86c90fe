"""
Fixed-size worker pool.

N long-lived threads consume jobs from one shared FIFO queue. Jobs are
plain callables; the submitter never sees their result or failure.
"""

import queue
import logging
import threading

log = logging.getLogger("WorkerPool")

# Queued once per worker on shutdown, behind any pending jobs
_STOP = object()


class WorkerPool:
    def __init__(self, size, name="worker"):
        if size <= 0:
            raise ValueError(f"Pool size must be positive, got {size}")

        self.size = size
        self._jobs = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._workers = []

        for i in range(size):
            t = threading.Thread(target=self._run, args=(i,), name=f"{name}-{i}", daemon=True)
            t.start()
            self._workers.append(t)

    def _run(self, worker_id):
        while True:
            job = self._jobs.get()
            if job is _STOP:
                log.debug(f"Worker {worker_id} disconnected; shutting down...")
                return

            log.debug(f"Worker {worker_id} got a job; executing...")
            try:
                job()
            except Exception:
                log.exception(f"Worker {worker_id}: job failed")

    def execute(self, job):
        """Queue `job` and return immediately."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot execute on a pool that has been shut down")
            self._jobs.put(job)

    def shutdown(self, wait=True):
        """
        Stop accepting jobs and let the workers exit.

        Jobs queued before this call still run. With `wait`, block until
        every worker thread has exited.
        """
        with self._lock:
            if not self._closed:
                self._closed = True
                for _ in self._workers:
                    self._jobs.put(_STOP)

        if wait:
            for t in self._workers:
                if t is not threading.current_thread():
                    t.join()
            log.debug(f"All {self.size} workers stopped")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False
