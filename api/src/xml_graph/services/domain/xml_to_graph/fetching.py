#!/usr/bin/env python3
"""Dispatch of fetch-tool requests.

In ``await`` mode a request runs inline and its payload is stored before the
tool returns, so every downstream step sees it. In ``background`` mode the
request goes to a thread pool and the payload is stored whenever it arrives;
steps that run earlier see nothing. The walk never waits for background work.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class FetchDispatcher:
    def __init__(self, mode: str = "await", max_workers: int = 4):
        self.mode = mode
        self.max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self.pending: list[Future] = []

    @property
    def is_background(self) -> bool:
        return self.mode == "background"

    def dispatch(self, request: Callable[[], Any], store: Callable[[Any], None]) -> Any:
        """Run ``request`` and hand its result to ``store``.

        Returns:
            The result in await mode, None in background mode
        """
        if not self.is_background:
            result = request()
            store(result)
            return result

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="workflow-fetch")

        def _on_done(future: Future) -> None:
            error = future.exception()
            if error is not None:
                logger.warning(f"Background fetch failed: {error}")
                return
            store(future.result())

        future = self._executor.submit(request)
        future.add_done_callback(_on_done)
        self.pending.append(future)
        return None

    def shutdown(self) -> None:
        """Release the pool without waiting for outstanding requests."""
        if self._executor is not None:
            outstanding = sum(1 for f in self.pending if not f.done())
            if outstanding:
                logger.info(f"Run finished with {outstanding} background fetches still in flight")
            self._executor.shutdown(wait=False)
            self._executor = None
