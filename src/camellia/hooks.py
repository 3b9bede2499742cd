"""Pre-set / post-set hook dispatch.

The entry store only knows the narrow ``HookDispatch`` protocol: it calls
``notify_pre_set`` before a value row is written (raising vetoes the write)
and ``notify_post_set`` after it. ``HookRegistry`` is the default
implementation: callbacks registered per normalized path, run in
registration order, with optional fire-and-forget post hooks.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Literal, Protocol

from camellia.paths import normalize_path

logger = logging.getLogger(__name__)

HookCallback = Callable[[str, str], object]
HookKind = Literal["pre", "post"]


class HookDispatch(Protocol):
    """Notification points invoked by the entry store around value writes."""

    def notify_pre_set(self, path: str, value: str) -> None: ...

    def notify_post_set(self, path: str, value: str) -> None: ...


@dataclass(frozen=True)
class _Hook:
    callback: HookCallback
    run_async: bool = False


class HookRegistry:
    """Per-path hook callbacks.

    Pre-set hooks always run synchronously on the writing thread; any
    exception they raise aborts the write. Post-set hooks run synchronously
    unless registered with ``run_async=True``, in which case they are
    submitted to a small thread pool and never awaited.
    """

    def __init__(self, *, max_async_workers: int = 4) -> None:
        self._lock = threading.Lock()
        self._hooks: dict[HookKind, dict[str, list[_Hook]]] = {
            "pre": defaultdict(list),
            "post": defaultdict(list),
        }
        self._max_async_workers = max_async_workers
        self._executor: ThreadPoolExecutor | None = None
        self.enabled = True

    # -- Registration ---------------------------------------------------------

    def add_pre_set_hook(self, path: str, callback: HookCallback) -> None:
        self._add("pre", path, _Hook(callback))

    def add_post_set_hook(self, path: str, callback: HookCallback, *, run_async: bool = False) -> None:
        self._add("post", path, _Hook(callback, run_async=run_async))

    def _add(self, kind: HookKind, path: str, hook: _Hook) -> None:
        with self._lock:
            self._hooks[kind][normalize_path(path)].append(hook)

    def count(self, path: str | None = None) -> int:
        """Number of registered hooks, optionally restricted to one path."""
        with self._lock:
            if path is None:
                return sum(len(hooks) for by_path in self._hooks.values() for hooks in by_path.values())
            key = normalize_path(path)
            return sum(len(by_path.get(key, [])) for by_path in self._hooks.values())

    def clear(self) -> None:
        with self._lock:
            for by_path in self._hooks.values():
                by_path.clear()

    def shutdown(self, *, wait: bool = False) -> None:
        """Drop all hooks and stop the async worker pool."""
        self.clear()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # -- Dispatch -------------------------------------------------------------

    def notify_pre_set(self, path: str, value: str) -> None:
        for hook in self._snapshot("pre", path):
            hook.callback(path, value)

    def notify_post_set(self, path: str, value: str) -> None:
        for hook in self._snapshot("post", path):
            if hook.run_async:
                self._submit(hook.callback, path, value)
            else:
                hook.callback(path, value)

    def _snapshot(self, kind: HookKind, path: str) -> list[_Hook]:
        if not self.enabled:
            return []
        with self._lock:
            return list(self._hooks[kind].get(path, ()))

    def _submit(self, callback: HookCallback, path: str, value: str) -> None:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_async_workers,
                    thread_name_prefix="camellia-hook",
                )
            executor = self._executor
        future = executor.submit(callback, path, value)
        future.add_done_callback(lambda f: _log_async_failure(f, path))


def _log_async_failure(future: Future[object], path: str) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Async post-set hook for %r failed: %s", path, exc, exc_info=exc)
