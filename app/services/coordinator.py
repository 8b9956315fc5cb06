"""Single-flight request issuance with generation-based cancellation."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Scope(str, Enum):
    """Independently tracked fetch regions of a title view."""

    DETAIL = "detail"
    SEASON_INDEX = "season_index"
    EPISODES = "episodes"


@dataclass(frozen=True, slots=True)
class RequestKey:
    """Identifies one logical operation: ``(title_id, scope, params)``."""

    title_id: str
    scope: Scope
    params: tuple[Hashable, ...] = ()


@dataclass(frozen=True, slots=True)
class Ticket:
    """Generation captured when an operation starts.

    Consumers pass it to :meth:`RequestCoordinator.is_live` before every state
    commit; a superseded ticket must never write.
    """

    key: RequestKey
    generation: int


Perform = Callable[[Ticket], Awaitable[T]]


class RequestCoordinator:
    """Runs at most one task per :class:`RequestKey` and cancels superseded ones."""

    def __init__(self) -> None:
        self._generations: dict[RequestKey, int] = {}
        self._tasks: dict[RequestKey, asyncio.Task] = {}

    def in_flight(self, key: RequestKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def is_live(self, ticket: Ticket) -> bool:
        return self._generations.get(ticket.key) == ticket.generation

    async def issue(self, key: RequestKey, perform: Perform[T]) -> T | None:
        """Run ``perform`` for ``key`` or join the task already running for it.

        Returns ``None`` when the operation was superseded before it finished.
        Cancelling the awaiting caller does not cancel the shared task.
        """

        task = self._tasks.get(key)
        if task is None or task.done():
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation
            ticket = Ticket(key=key, generation=generation)
            task = asyncio.create_task(
                self._run(ticket, perform),
                name=f"{key.scope.value}:{key.title_id}:{generation}",
            )
            self._tasks[key] = task
        else:
            logger.debug("Joining in-flight request %s", key)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Superseded before its first step ran, so _run never saw the cancel.
            if task.done() and task.cancelled():
                return None
            raise

    async def _run(self, ticket: Ticket, perform: Perform[T]) -> T | None:
        try:
            return await perform(ticket)
        except asyncio.CancelledError:
            if self.is_live(ticket):
                raise
            logger.debug("Request %s (generation %s) superseded", ticket.key, ticket.generation)
            return None
        finally:
            if self._tasks.get(ticket.key) is asyncio.current_task():
                del self._tasks[ticket.key]

    def supersede(self, key: RequestKey) -> bool:
        """Invalidate the current generation of ``key`` and abort its task.

        Returns ``True`` when a running task was cancelled.
        """

        self._generations[key] = self._generations.get(key, 0) + 1
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def supersede_where(self, predicate: Callable[[RequestKey], bool]) -> int:
        keys = [key for key in set(self._generations) | set(self._tasks) if predicate(key)]
        return sum(1 for key in keys if self.supersede(key))

    def supersede_title(self, title_id: str) -> int:
        """Abort every operation belonging to ``title_id``."""

        return self.supersede_where(lambda key: key.title_id == title_id)

    def supersede_all(self) -> int:
        return self.supersede_where(lambda key: True)

    async def aclose(self) -> None:
        """Supersede everything and wait for the aborted tasks to settle."""

        tasks = list(self._tasks.values())
        self.supersede_all()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
