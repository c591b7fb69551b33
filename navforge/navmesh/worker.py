"""
Build workers.

The updater hands a BuildRequest to a worker and polls for the result on
later ticks. Request in, result out: the worker shares no other state
with the updater.

- BuildWorker: one daemon thread, single-slot request and result queues
- InlineBuildWorker: builds synchronously inside submit() (blocking mode, tests)
"""

from __future__ import annotations

import queue
import threading
import time
from typing import Callable, Optional

from navforge import log
from navforge.navmesh.builder import BuildOutcome, BuildRequest, BuildResult, run_build

BuildFunction = Callable[[BuildRequest], BuildResult]


def _guarded(build: BuildFunction, request: BuildRequest) -> BuildResult:
    """Run a build; an unexpected exception is delivered in the result."""
    started = time.perf_counter()
    try:
        return build(request)
    except Exception as e:
        log.error(e, f"[BuildWorker] unexpected error in build of generation {request.generation}")
        return BuildResult(
            request=request,
            error=e,
            duration=time.perf_counter() - started,
            outcome=BuildOutcome.FAILED,
        )


class BuildWorker:
    """Background build thread. At most one build is in flight."""

    def __init__(self, build: BuildFunction = run_build, name: str = "navmesh-build") -> None:
        self._build = build
        self._name = name
        self._requests: "queue.Queue[Optional[BuildRequest]]" = queue.Queue(maxsize=1)
        self._results: "queue.Queue[BuildResult]" = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self._busy = False

    @property
    def busy(self) -> bool:
        """A build was submitted and its result has not been polled yet."""
        return self._busy

    def _ensure_thread(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            request = self._requests.get()
            if request is None:
                return
            self._results.put(_guarded(self._build, request))

    def submit(self, request: BuildRequest) -> None:
        """
        Start a build.

        Raises:
            RuntimeError: a build is already in flight.
        """
        if self._busy:
            raise RuntimeError("a build is already in flight")
        self._ensure_thread()
        self._busy = True
        self._requests.put_nowait(request)

    def poll(self) -> Optional[BuildResult]:
        """Take the finished result, if any. Never blocks."""
        try:
            result = self._results.get_nowait()
        except queue.Empty:
            return None
        self._busy = False
        return result

    def wait(self, timeout: Optional[float] = None) -> Optional[BuildResult]:
        """Block until the in-flight build finishes (tools and tests)."""
        if not self._busy:
            return None
        try:
            result = self._results.get(timeout=timeout)
        except queue.Empty:
            return None
        self._busy = False
        return result

    def shutdown(self, timeout: float = 2.0) -> None:
        thread = self._thread
        if thread is None:
            return
        try:
            self._requests.put(None, timeout=timeout)
        except queue.Full:
            log.warn("[BuildWorker] request slot still occupied on shutdown")
        thread.join(timeout=timeout)
        self._thread = None


class InlineBuildWorker:
    """Synchronous worker: the build runs inside submit()."""

    def __init__(self, build: BuildFunction = run_build) -> None:
        self._build = build
        self._result: Optional[BuildResult] = None

    @property
    def busy(self) -> bool:
        return self._result is not None

    def submit(self, request: BuildRequest) -> None:
        if self._result is not None:
            raise RuntimeError("a build is already in flight")
        self._result = _guarded(self._build, request)

    def poll(self) -> Optional[BuildResult]:
        result = self._result
        self._result = None
        return result

    def wait(self, timeout: Optional[float] = None) -> Optional[BuildResult]:
        return self.poll()

    def shutdown(self, timeout: float = 2.0) -> None:
        self._result = None
