"""Example journal-backed thread plugin.

Demonstrates externalization: an agent's conversation thread lives in a
durable journal, so checkpoints store only a ``{"id", "rev"}`` pointer
instead of duplicating the thread. Restore reloads the thread from the
journal, which is the one place a plugin hook does I/O.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from agentmount.plugins.base import (
    BasePlugin,
    CheckpointDecision,
    Externalize,
    Keep,
    PluginContext,
)
from agentmount.plugins.manifest import Manifest

log = structlog.get_logger(__name__)

THREAD_STATE_KEY = "__thread__"
THREAD_POINTER_KEY = "thread"


@dataclass(frozen=True)
class Thread:
    """An append-only list of conversation entries.

    ``rev`` is the number of entries, so a pointer's rev tells restore how
    far the journal must have been written.
    """

    id: str
    entries: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def rev(self) -> int:
        return len(self.entries)

    def append(self, entry: dict[str, Any]) -> Thread:
        return Thread(id=self.id, entries=self.entries + (dict(entry),))

    def pointer(self) -> dict[str, Any]:
        return {"id": self.id, "rev": self.rev}


class JournalStore(Protocol):
    """Durable store the host uses to persist threads."""

    async def load_thread(self, thread_id: str) -> Thread | None: ...

    async def save_thread(self, thread: Thread) -> None: ...


class InMemoryJournal:
    """Reference journal store for tests and local runs."""

    def __init__(self) -> None:
        self._threads: dict[str, Thread] = {}
        self._lock = asyncio.Lock()

    async def load_thread(self, thread_id: str) -> Thread | None:
        async with self._lock:
            return self._threads.get(thread_id)

    async def save_thread(self, thread: Thread) -> None:
        async with self._lock:
            self._threads[thread.id] = thread


class ThreadPlugin(BasePlugin):
    """Keeps the agent's thread out of checkpoints and reloads it on restore.

    Without a journal the pointer is still written, but restore leaves the
    thread unset (the agent starts with an empty state slice).
    """

    def __init__(self, journal: JournalStore | None = None) -> None:
        """Initialize thread plugin."""
        self._journal = journal
        self._manifest = Manifest(
            name="thread",
            base_state_key=THREAD_STATE_KEY,
            description="Journal-backed conversation thread",
            category="persistence",
            tags=("thread", "journal"),
            vsn="1.0.0",
            capabilities=("thread",),
            singleton=True,
        )

    @property
    def manifest(self) -> Manifest:
        """Return plugin manifest."""
        return self._manifest

    def on_checkpoint(self, state: Any, ctx: PluginContext) -> CheckpointDecision:
        if not state:
            return Keep()
        if not isinstance(state, Thread):
            raise TypeError(
                f"Expected a Thread under '{ctx.state_key}', got {type(state).__name__}"
            )
        return Externalize(THREAD_POINTER_KEY, state.pointer())

    async def on_restore(self, pointer: Any, ctx: PluginContext) -> Thread | None:
        if self._journal is None:
            return None

        thread_id = pointer["id"]
        rev = pointer.get("rev", 0)
        thread = await self._journal.load_thread(thread_id)
        if thread is None:
            raise LookupError(f"Thread '{thread_id}' not found in journal")
        if thread.rev < rev:
            raise ValueError(
                f"Journal has thread '{thread_id}' at rev {thread.rev}, checkpoint expects {rev}"
            )

        log.info(
            "thread.restored",
            thread_id=thread_id,
            rev=thread.rev,
            agent_id=ctx.agent_id,
        )
        return thread
