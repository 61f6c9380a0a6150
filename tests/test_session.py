"""Tests for SearchSession — debounce, cancellation, races and keyboard handling."""

from __future__ import annotations

import asyncio

import pytest

from vault_search.search.types import SearchResult
from vault_search.session import ERROR_MESSAGE, SearchSession, SearchStatus, SessionState

DEBOUNCE = 0.01


def _result(slug: str, folder: str = "Databases") -> SearchResult:
    return SearchResult(id=hash(slug) % 1000, slug=slug, title=slug, folder=folder, tags=(), distance=0.1)


class ControlledFetch:
    """Fetch function whose responses are released by the test."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.cancelled: list[str] = []
        self.fail: set[str] = set()

    def release(self, query: str) -> None:
        self.gates.setdefault(query, asyncio.Event()).set()

    async def __call__(self, query: str, limit: int) -> list[SearchResult]:
        self.calls.append((query, limit))
        gate = self.gates.setdefault(query, asyncio.Event())
        try:
            await gate.wait()
        except asyncio.CancelledError:
            self.cancelled.append(query)
            raise
        if query in self.fail:
            raise RuntimeError("HTTP 500")
        return [_result(f"{query}-1"), _result(f"{query}-2", folder="Caching")]


async def _instant(query: str, limit: int) -> list[SearchResult]:
    return [_result(query)]


# ==================================================================
# Debounce
# ==================================================================


class TestDebounce:
    async def test_only_last_keystroke_fetches(self):
        calls: list[str] = []

        async def fetch(query: str, limit: int) -> list[SearchResult]:
            calls.append(query)
            return []

        session = SearchSession(fetch, debounce=DEBOUNCE)
        for text in ["p", "po", "pos", "post"]:
            session.type(text)
        assert session.status is SearchStatus.DEBOUNCING
        await session.settle()
        assert calls == ["post"]
        assert session.status is SearchStatus.SUCCESS

    async def test_short_query_does_not_fetch(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("a")
        await session.settle()
        assert fetch.calls == []
        assert session.status is SearchStatus.SUCCESS
        assert session.state.results == []

    async def test_limit_passed_to_fetch(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE, limit=7)
        session.type("postgres")
        fetch.release("postgres")
        await session.settle()
        assert fetch.calls == [("postgres", 7)]

    async def test_results_grouped(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("db")
        fetch.release("db")
        await session.settle()
        state = session.state
        assert [g.folder for g in state.groups] == ["Databases", "Caching"]
        assert state.query == "db"


# ==================================================================
# Races and cancellation
# ==================================================================


class TestRaces:
    async def test_late_response_discarded(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)

        session.type("mongo")
        await asyncio.sleep(DEBOUNCE * 3)
        assert session.status is SearchStatus.REQUESTING

        session.type("postgres")
        fetch.release("postgres")
        fetch.release("mongo")
        await session.settle()

        assert "mongo" in fetch.cancelled
        assert [r.slug for r in session.state.results] == ["postgres-1", "postgres-2"]

    async def test_completed_stale_response_cannot_overwrite(self):
        order: list[str] = []
        gate = asyncio.Event()

        async def fetch(query: str, limit: int) -> list[SearchResult]:
            if query == "slow":
                try:
                    await gate.wait()
                finally:
                    order.append("slow-finished")
            return [_result(query)]

        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("slow")
        await asyncio.sleep(DEBOUNCE * 3)
        session.type("fast")
        gate.set()
        await session.settle()
        assert [r.slug for r in session.state.results] == ["fast"]

    async def test_error_state(self):
        fetch = ControlledFetch()
        fetch.fail.add("boom")
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("boom")
        fetch.release("boom")
        await session.settle()
        assert session.status is SearchStatus.ERROR
        assert session.state.error == ERROR_MESSAGE
        assert session.state.results == []

    async def test_error_cleared_by_next_query(self):
        fetch = ControlledFetch()
        fetch.fail.add("boom")
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("boom")
        fetch.release("boom")
        await session.settle()
        session.type("fine")
        fetch.release("fine")
        await session.settle()
        assert session.status is SearchStatus.SUCCESS
        assert session.state.error is None

    async def test_close_cancels_in_flight(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.open()
        session.type("postgres")
        await asyncio.sleep(DEBOUNCE * 3)
        session.close()
        await asyncio.sleep(0)
        fetch.release("postgres")
        await session.settle()
        assert fetch.cancelled == ["postgres"]
        assert session.status is SearchStatus.IDLE
        assert session.state.results == []

    async def test_close_cancels_debounce(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.type("postgres")
        session.close()
        await asyncio.sleep(DEBOUNCE * 3)
        assert fetch.calls == []

    async def test_no_updates_after_aclose(self):
        states: list[SessionState] = []
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE, on_change=states.append)
        session.type("postgres")
        await asyncio.sleep(DEBOUNCE * 3)
        await session.aclose()
        seen = len(states)

        fetch.release("postgres")
        session.type("more")
        session.open()
        assert session.handle_key("k", ctrl=True) is False
        await asyncio.sleep(DEBOUNCE * 3)

        assert len(states) == seen
        assert session.closed
        assert session.status is SearchStatus.REQUESTING


# ==================================================================
# Dialog and keyboard
# ==================================================================


class TestDialog:
    async def test_toggle(self):
        session = SearchSession(_instant, debounce=DEBOUNCE)
        assert not session.is_open
        session.toggle()
        assert session.is_open
        session.toggle()
        assert not session.is_open

    @pytest.mark.parametrize(("ctrl", "meta"), [(True, False), (False, True)])
    async def test_ctrl_or_cmd_k_toggles(self, ctrl: bool, meta: bool):
        session = SearchSession(_instant, debounce=DEBOUNCE)
        assert session.handle_key("k", ctrl=ctrl, meta=meta)
        assert session.is_open
        assert session.handle_key("K", ctrl=ctrl, meta=meta)
        assert not session.is_open

    async def test_shortcut_works_while_requesting(self):
        fetch = ControlledFetch()
        session = SearchSession(fetch, debounce=DEBOUNCE)
        session.open()
        session.type("postgres")
        await asyncio.sleep(DEBOUNCE * 3)
        assert session.status is SearchStatus.REQUESTING
        assert session.handle_key("k", ctrl=True)
        assert not session.is_open
        await session.settle()

    async def test_escape_closes_only_when_open(self):
        session = SearchSession(_instant, debounce=DEBOUNCE)
        assert session.handle_key("Escape") is False
        session.open()
        assert session.handle_key("Escape") is True
        assert not session.is_open

    async def test_plain_k_ignored(self):
        session = SearchSession(_instant, debounce=DEBOUNCE)
        assert session.handle_key("k") is False
        assert not session.is_open

    async def test_on_change_sees_transitions(self):
        states: list[SessionState] = []
        session = SearchSession(_instant, debounce=DEBOUNCE, on_change=states.append)
        session.type("postgres")
        await session.settle()
        assert [s.status for s in states] == [
            SearchStatus.DEBOUNCING,
            SearchStatus.REQUESTING,
            SearchStatus.SUCCESS,
        ]
