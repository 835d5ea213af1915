"""
In-memory section store for one project, backed by the HTTP API.

Edits land in memory immediately and are written back after a quiet period
(debounce) per section.  Each pending write is keyed by the section id
captured when the edit was made, so switching the active section never
redirects a write.  Writes for one section are serialized; different
sections persist independently.

Public API
----------
SectionStore.load(project_id)
SectionStore.edit_content(section_id, content)         (sync, schedules a write)
SectionStore.add_section(title)                         -> SectionState
SectionStore.delete_section(section_id)
SectionStore.reorder(ordered_ids)                       -> bool
SectionStore.move_section(active_id, over_id)           -> bool
SectionStore.insert_generated_content(section_id, html)
SectionStore.flush() / SectionStore.close()
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Set, Tuple

from researchdoc.client.api_client import ResearchDocClient
from researchdoc.config import settings
from researchdoc.exceptions import (
    InvalidInput,
    NotFound,
    ProtectedSectionError,
    ResearchDocError,
)
from researchdoc.models.database_models import PROBLEM_STATEMENT_TITLE
from researchdoc.services.assistant import build_document_context

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, ResearchDocError], None]


@dataclasses.dataclass
class SectionState:
    id: int
    title: str
    content: str
    order_index: int
    is_visible: bool = True

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "SectionState":
        return cls(
            id=data["id"],
            title=data["title"],
            content=data.get("content") or "",
            order_index=data["order_index"],
            is_visible=data.get("is_visible", True),
        )


class SectionStore:
    def __init__(
        self,
        api: ResearchDocClient,
        debounce_seconds: Optional[float] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.api = api
        self.debounce_seconds = (
            settings.SAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.on_error = on_error

        self.project: Optional[Dict[str, Any]] = None
        self.sections: List[SectionState] = []
        self._active_id: Optional[int] = None

        self._pending: Dict[int, Tuple[str, asyncio.TimerHandle]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._in_flight = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def project_id(self) -> int:
        if self.project is None:
            raise NotFound("No project loaded.")
        return self.project["id"]

    @property
    def active_section(self) -> Optional[SectionState]:
        """The active section, looked up in the live list on every access."""
        if self._active_id is None:
            return None
        return self._find(self._active_id)

    @property
    def saving(self) -> bool:
        return self._in_flight > 0

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending)

    def _find(self, section_id: int) -> Optional[SectionState]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def _get(self, section_id: int) -> SectionState:
        section = self._find(section_id)
        if section is None:
            raise NotFound(f"Section {section_id} not found.")
        return section

    def _report(self, message: str, exc: ResearchDocError) -> None:
        logger.error("%s: %s", message, exc.detail)
        if self.on_error is not None:
            self.on_error(message, exc)

    # ------------------------------------------------------------------
    # Loading / selection
    # ------------------------------------------------------------------

    async def load(self, project_id: int) -> None:
        """Load a project and its sections; the first section becomes active."""
        project = await self.api.get_project(project_id)
        sections = sorted(
            (SectionState.from_api(s) for s in project.get("sections", [])),
            key=lambda s: s.order_index,
        )
        self.project = project
        self.sections = sections
        self._active_id = sections[0].id if sections else None
        logger.info("Loaded project id=%s with %d sections", project_id, len(sections))

    def set_active_section(self, section_id: int) -> SectionState:
        section = self._get(section_id)
        self._active_id = section.id
        return section

    async def rename_project(self, title: str) -> None:
        if not title or not title.strip():
            raise InvalidInput("Project title is required.")
        self.project = {**self.project, **await self.api.rename_project(self.project_id, title.strip())}

    # ------------------------------------------------------------------
    # Debounced content writes
    # ------------------------------------------------------------------

    def edit_content(self, section_id: int, content: str) -> None:
        """
        Apply an edit in memory and (re)schedule its write.

        Must be called from within the running event loop.
        """
        section = self._get(section_id)
        section.content = content

        previous = self._pending.pop(section_id, None)
        if previous is not None:
            previous[1].cancel()

        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.debounce_seconds, self._fire, section_id)
        self._pending[section_id] = (content, handle)

    def _fire(self, section_id: int) -> None:
        entry = self._pending.pop(section_id, None)
        if entry is None:
            return
        content, handle = entry
        handle.cancel()
        task = asyncio.get_running_loop().create_task(self._persist(section_id, content))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, section_id: int, content: str) -> None:
        lock = self._locks.setdefault(section_id, asyncio.Lock())
        async with lock:
            self._in_flight += 1
            try:
                await self.api.update_section(self.project_id, section_id, content=content)
                logger.debug("Saved section id=%d (%d chars)", section_id, len(content))
            except ResearchDocError as exc:
                self._report("Failed to save changes", exc)
            finally:
                self._in_flight -= 1

    async def flush(self) -> None:
        """Fire every pending write now and wait for all writes to finish."""
        for section_id in list(self._pending):
            self._fire(section_id)
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        await self.flush()
        self._locks.clear()

    def insert_generated_content(self, section_id: int, html: str) -> None:
        """Append assistant output to a section through the debounced path."""
        section = self._get(section_id)
        self.edit_content(section_id, f"{section.content}\n\n{html}")

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    async def add_section(self, title: str) -> SectionState:
        """Append a section after the current last one and make it active."""
        title = (title or "").strip()
        if not title:
            raise InvalidInput("Section title is required.")

        order_index = max((s.order_index for s in self.sections), default=-1) + 1
        created = await self.api.create_section(
            self.project_id,
            title,
            content=f"<p>Add your content here for {title}...</p>",
            order_index=order_index,
        )
        section = SectionState.from_api(created)
        self.sections.append(section)
        self._active_id = section.id
        logger.info("Added section %r at %d", title, order_index)
        return section

    async def delete_section(self, section_id: int) -> None:
        """
        Delete a section.  The Problem Statement is protected.

        A pending write for the section is dropped.  If the server refuses the
        delete, the write is rescheduled and the error propagates.
        """
        section = self._get(section_id)
        if section.title == PROBLEM_STATEMENT_TITLE:
            raise ProtectedSectionError()

        pending = self._pending.pop(section_id, None)
        if pending is not None:
            pending[1].cancel()

        try:
            await self.api.delete_section(self.project_id, section_id)
        except ResearchDocError:
            if pending is not None:
                self.edit_content(section_id, pending[0])
            raise

        self.sections = [s for s in self.sections if s.id != section_id]
        self._locks.pop(section_id, None)
        if self._active_id == section_id:
            self._active_id = self.sections[0].id if self.sections else None
        logger.info("Deleted section id=%d", section_id)

    async def reorder(self, ordered_ids: List[int]) -> bool:
        """
        Apply a new order in memory and persist it with one batched request.

        Returns False (after reporting "Failed to save order") when the
        request fails; the new order is kept in memory either way.
        """
        by_id = {s.id: s for s in self.sections}
        if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
            raise InvalidInput("Reorder must list every section exactly once.")

        self.sections = [by_id[section_id] for section_id in ordered_ids]
        for index, section in enumerate(self.sections):
            section.order_index = index

        try:
            await self.api.reorder_sections(self.project_id, list(ordered_ids))
        except ResearchDocError as exc:
            self._report("Failed to save order", exc)
            return False
        return True

    async def move_section(self, active_id: int, over_id: int) -> bool:
        """Drag-end helper: move *active_id* to the position of *over_id*."""
        if active_id == over_id:
            return True
        ids = [s.id for s in self.sections]
        old_index = ids.index(self._get(active_id).id)
        new_index = ids.index(self._get(over_id).id)
        ids.insert(new_index, ids.pop(old_index))
        return await self.reorder(ids)

    # ------------------------------------------------------------------
    # Assistant
    # ------------------------------------------------------------------

    def document_context(self) -> str:
        return build_document_context((s.title, s.content) for s in self.sections)

    def ask(self, question: str) -> AsyncIterator[str]:
        """Ask the assistant about the document, anchored on the active section."""
        active = self.active_section
        return self.api.ask_assistant(
            question,
            document_context=self.document_context(),
            section_title=active.title if active else "",
            section_content=active.content if active else "",
        )
