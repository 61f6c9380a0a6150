"""SearchSession — debounced, cancellable client-side search lifecycle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from vault_search.search._engine import group_by_folder
from vault_search.search.types import ResultGroup, SearchResult

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Search failed. Please try again."

FetchFn = Callable[[str, int], Awaitable[list[SearchResult]]]


class SearchStatus(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REQUESTING = "requesting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SessionState:
    """Snapshot of a session, handed to ``on_change`` after every transition."""

    query: str = ""
    results: list[SearchResult] = field(default_factory=list)
    groups: list[ResultGroup] = field(default_factory=list)
    status: SearchStatus = SearchStatus.IDLE
    is_open: bool = False
    error: str | None = None


class SearchSession:
    """Drives one search box: debounce, fetch, cancel, group.

    Every keystroke starts a new generation.  Only the latest generation
    may change the state, so a slow response for an earlier query can
    never overwrite the results of a later one; superseded requests are
    cancelled as well.  After :meth:`aclose` the session ignores
    everything.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        fetch: FetchFn,
        *,
        debounce: float = 0.3,
        min_query_length: int = 2,
        limit: int = 10,
        on_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self._fetch = fetch
        self._debounce = debounce
        self._min_query_length = min_query_length
        self._limit = limit
        self._on_change = on_change

        self._query = ""
        self._results: list[SearchResult] = []
        self._groups: list[ResultGroup] = []
        self._status = SearchStatus.IDLE
        self._is_open = False
        self._error: str | None = None

        self._generation = 0
        self._closed = False
        self._debounce_task: asyncio.Task[None] | None = None
        self._request_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def type(self, text: str) -> None:
        """Record a keystroke; the search runs once typing pauses."""
        if self._closed:
            return
        self._cancel_pending()
        self._query = text
        self._error = None
        self._status = SearchStatus.DEBOUNCING
        self._debounce_task = asyncio.get_running_loop().create_task(
            self._debounced(self._generation, text)
        )
        self._notify()

    def open(self) -> None:
        """Open the search dialog with a clean state."""
        if self._closed:
            return
        self._reset()
        self._is_open = True
        self._notify()

    def close(self) -> None:
        """Close the dialog, dropping any pending or in-flight search."""
        if self._closed:
            return
        self._reset()
        self._is_open = False
        self._notify()

    def toggle(self) -> None:
        if self._is_open:
            self.close()
        else:
            self.open()

    def handle_key(self, key: str, *, ctrl: bool = False, meta: bool = False) -> bool:
        """Apply a global keyboard shortcut.  Returns True when the key was consumed.

        Ctrl+K / Cmd+K toggles the dialog whatever the search is doing;
        Escape closes an open dialog.
        """
        if self._closed:
            return False
        if key.lower() == "k" and (ctrl or meta):
            self.toggle()
            return True
        if key == "Escape" and self._is_open:
            self.close()
            return True
        return False

    async def aclose(self) -> None:
        """Cancel all work and stop reacting to anything."""
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._debounce_task, self._request_task) if t is not None]
        self._cancel_pending()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def settle(self) -> None:
        """Wait until no debounce timer or request is outstanding."""
        while True:
            tasks = [
                t
                for t in (self._debounce_task, self._request_task)
                if t is not None and not t.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return SessionState(
            query=self._query,
            results=list(self._results),
            groups=list(self._groups),
            status=self._status,
            is_open=self._is_open,
            error=self._error,
        )

    @property
    def status(self) -> SearchStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _debounced(self, generation: int, text: str) -> None:
        await asyncio.sleep(self._debounce)
        if not self._is_current(generation):
            return
        self._debounce_task = None

        if len(text.strip()) < self._min_query_length:
            self._results = []
            self._groups = []
            self._status = SearchStatus.SUCCESS
            self._notify()
            return

        self._status = SearchStatus.REQUESTING
        self._request_task = asyncio.get_running_loop().create_task(
            self._request(generation, text)
        )
        self._notify()

    async def _request(self, generation: int, text: str) -> None:
        try:
            results = await self._fetch(text, self._limit)
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(generation):
                return
            logger.warning("Search for %r failed: %s", text, exc)
            self._results = []
            self._groups = []
            self._status = SearchStatus.ERROR
            self._error = ERROR_MESSAGE
            self._request_task = None
            self._notify()
            return

        if not self._is_current(generation):
            logger.debug("Discarding stale results for %r", text)
            return
        self._results = list(results)
        self._groups = group_by_folder(self._results)
        self._status = SearchStatus.SUCCESS
        self._error = None
        self._request_task = None
        self._notify()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _cancel_pending(self) -> None:
        """Supersede the current generation and cancel its timer and request."""
        self._generation += 1
        for task in (self._debounce_task, self._request_task):
            if task is not None and not task.done():
                task.cancel()
        self._debounce_task = None
        self._request_task = None

    def _reset(self) -> None:
        self._cancel_pending()
        self._query = ""
        self._results = []
        self._groups = []
        self._status = SearchStatus.IDLE
        self._error = None

    def _notify(self) -> None:
        if self._on_change is not None and not self._closed:
            self._on_change(self.state)
