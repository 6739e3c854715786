"""Debounced, cache-aware lookup engine shared by every enrichment field."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, Generic

from .cache import SessionCache
from .errors import ServiceUnavailable, TransportError, ValidationError
from .models import (
    FieldState,
    LookupAdapter,
    LookupRequest,
    LookupResult,
    LookupStatus,
    QueryT,
    RecordT,
)

Listener = Callable[[LookupResult[Any]], None]


class LookupEngine(Generic[QueryT, RecordT]):
    """Turns a stream of field edits into a minimal, race-free series of lookups.

    One engine serves one field. It lives on a single asyncio loop and moves
    between ``idle -> debouncing -> in-flight -> settled`` on three events only:
    a query change, the debounce timer firing, and the adapter settling.

    Ordering is by request id, not cancellation: blocking adapter calls run in
    worker threads that cannot be interrupted, so a superseded request is left
    to finish and its result is dropped. Adapter failures never escape; they
    become ``error`` or ``unavailable`` results.
    """

    def __init__(
        self,
        adapter: LookupAdapter[QueryT, RecordT],
        *,
        cache: SessionCache,
        debounce: float,
        timeout: float,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._cache = cache
        self._debounce = debounce
        self._timeout = timeout
        self._logger = logger
        self._clock = clock

        self._ids = itertools.count(1)
        self._state = FieldState.IDLE
        self._result: LookupResult[RecordT] = LookupResult()
        self._raw: Any = None
        self._query: QueryT | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._current: LookupRequest[QueryT] | None = None
        self._workers: set[asyncio.Task[None]] = set()
        self._listeners: list[Listener] = []
        self._quiet = asyncio.Event()
        self._quiet.set()

        self.selected: RecordT | None = None
        self.consecutive_failures = 0

    @property
    def kind(self) -> str:
        return self._adapter.kind

    @property
    def state(self) -> FieldState:
        return self._state

    @property
    def result(self) -> LookupResult[RecordT]:
        return self._result

    @property
    def status(self) -> LookupStatus:
        return self._result.status

    @property
    def data(self) -> tuple[RecordT, ...]:
        return self._result.data

    @property
    def raw_input(self) -> Any:
        return self._raw

    @property
    def current_request(self) -> LookupRequest[QueryT] | None:
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new current result; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_query_change(self, raw: Any) -> None:
        """Record new field input and schedule a lookup when it is searchable.

        Input below the adapter's gate returns the field to idle. Input that
        can never be valid resets the field the same way and raises
        ValidationError for the caller to show inline.
        """
        self._raw = raw
        try:
            query = self._adapter.prepare(raw)
        except ValidationError:
            self._reset()
            raise
        if query is None:
            self._reset()
            return
        self.schedule_lookup(query)

    def schedule_lookup(self, query: QueryT) -> None:
        """(Re)start the debounce timer; only the latest timer may fire."""
        self._cancel_timer()
        self._current = None
        self._query = query
        self.selected = None
        self._set_state(FieldState.DEBOUNCING)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._fire, query)

    def select_option(self, record: RecordT) -> RecordT:
        """Finish the field with a picked record; no further searching."""
        self._cancel_timer()
        self._current = None
        self._query = None
        self.selected = record
        self._set_state(FieldState.IDLE)
        self._publish(LookupResult())
        return record

    def cancel(self) -> None:
        """Tear the field down; a request still in flight will be ignored."""
        self._reset()

    async def settled(self) -> LookupResult[RecordT]:
        """Wait until no timer or current request is pending and return the result."""
        await self._quiet.wait()
        return self._result

    async def join(self) -> None:
        """Wait for every worker, including superseded ones."""
        while self._workers:
            await asyncio.gather(*list(self._workers), return_exceptions=True)

    def _fire(self, query: QueryT) -> None:
        self._timer = None
        key = self._adapter.cache_key(query)
        entry = self._cache.get(self.kind, key)
        if entry is not None:
            self._logger.debug("%s cache hit", self.kind)
            self._finish(self._outcome(entry.value))
            return

        request = LookupRequest(id=next(self._ids), query=query, issued_at=self._clock())
        self._current = request
        self._set_state(FieldState.IN_FLIGHT)
        self._publish(LookupResult(status=LookupStatus.LOADING))
        self._logger.debug("%s request %d issued", self.kind, request.id)

        task = asyncio.get_running_loop().create_task(self._run(request, key))
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def _run(self, request: LookupRequest[QueryT], key: str) -> None:
        try:
            records = await asyncio.wait_for(
                asyncio.to_thread(self._adapter.fetch, request.query), self._timeout
            )
        except ServiceUnavailable as exc:
            outcome: LookupResult[RecordT] = LookupResult(
                status=LookupStatus.UNAVAILABLE, error_detail=str(exc)
            )
        except TransportError as exc:
            outcome = LookupResult(status=LookupStatus.ERROR, error_detail=str(exc))
        except asyncio.TimeoutError:
            outcome = LookupResult(
                status=LookupStatus.ERROR,
                error_detail=f"No answer within {self._timeout:g} seconds",
            )
        except Exception as exc:
            self._logger.warning("%s adapter failed unexpectedly: %s", self.kind, exc)
            outcome = LookupResult(status=LookupStatus.ERROR, error_detail=str(exc))
        else:
            # A superseded answer is still valid for its own key, but must not
            # replace what a newer request stored there.
            self._cache.set(self.kind, key, records, overwrite=self._is_current(request))
            outcome = self._outcome(records)

        if not self._is_current(request):
            self._logger.debug("%s request %d is stale; dropped", self.kind, request.id)
            return
        self._current = None
        self._finish(outcome)

    def _is_current(self, request: LookupRequest[QueryT]) -> bool:
        return self._current is not None and self._current.id == request.id

    def _outcome(self, records: Sequence[RecordT]) -> LookupResult[RecordT]:
        status = LookupStatus.SUCCESS if records else LookupStatus.NOT_FOUND
        return LookupResult(status=status, data=tuple(records))

    def _finish(self, outcome: LookupResult[RecordT]) -> None:
        if outcome.status is LookupStatus.ERROR:
            self.consecutive_failures += 1
            self._logger.info(
                "%s lookup failed (%d in a row): %s",
                self.kind,
                self.consecutive_failures,
                outcome.error_detail,
            )
        elif outcome.status in (LookupStatus.SUCCESS, LookupStatus.NOT_FOUND):
            self.consecutive_failures = 0
        self._set_state(FieldState.SETTLED)
        self._publish(outcome)

    def _reset(self) -> None:
        self._cancel_timer()
        self._current = None
        self._query = None
        self._set_state(FieldState.IDLE)
        if self._result.status is not LookupStatus.IDLE or self._result.data:
            self._publish(LookupResult())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: FieldState) -> None:
        self._state = state
        if state in (FieldState.DEBOUNCING, FieldState.IN_FLIGHT):
            self._quiet.clear()
        else:
            self._quiet.set()

    def _publish(self, result: LookupResult[RecordT]) -> None:
        self._result = result
        for listener in list(self._listeners):
            listener(result)
