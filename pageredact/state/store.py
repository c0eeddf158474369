"""Per-page redaction state.

Each page owns a mapping identity → automatic :class:`RedactionItem` and
an arena of manual boxes addressed by stable integer indices.  Callers
only ever receive copies, so holding a box list never aliases the
stored state.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Iterable, Optional

from pageredact.errors import InvalidGeometry, PageBusy, UnknownIdentity, UnknownPage
from pageredact.models.schemas import GeometricBox, RedactionItem

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Manual-box arena
# ---------------------------------------------------------------------------

class BoxArena:
    """Indexed store of boxes.

    ``add`` hands out an index that stays valid until that box is
    removed; indices are never reused, even after ``clear``.
    """

    def __init__(self) -> None:
        self._slots: dict[int, GeometricBox] = {}
        self._next = 0

    def add(self, box: GeometricBox) -> int:
        index = self._next
        self._next += 1
        self._slots[index] = box.model_copy()
        return index

    def get(self, index: int) -> GeometricBox:
        try:
            return self._slots[index].model_copy()
        except KeyError:
            raise IndexError(f"no box at index {index}") from None

    def remove(self, index: int) -> GeometricBox:
        try:
            return self._slots.pop(index)
        except KeyError:
            raise IndexError(f"no box at index {index}") from None

    def items(self) -> list[tuple[int, GeometricBox]]:
        return [(i, b.model_copy()) for i, b in self._slots.items()]

    def boxes(self) -> list[GeometricBox]:
        return [b.model_copy() for b in self._slots.values()]

    def clear(self) -> None:
        self._slots.clear()

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, index: object) -> bool:
        return index in self._slots


# ---------------------------------------------------------------------------
# Page / document state
# ---------------------------------------------------------------------------

class PageState:
    def __init__(self, page: int) -> None:
        self.page = page
        self.auto: dict[str, RedactionItem] = {}
        self.manual = BoxArena()
        self.lock = threading.Lock()
        self.writer: Optional[int] = None   # thread ident of the running detection pass


class DocumentState:
    """Redaction state of one document, pages numbered ``1..page_count``.

    Thread-safe.  A detection pass takes the page's writer slot through
    :meth:`page_writer`; a second pass on the same page fails fast with
    :class:`PageBusy` instead of interleaving with the first.
    """

    def __init__(self, page_count: int, doc_id: Optional[str] = None) -> None:
        if page_count < 1:
            raise ValueError("a document needs at least one page")
        self.doc_id = doc_id
        self.page_count = page_count
        self.active_page = 1
        self._pages = [PageState(p) for p in range(1, page_count + 1)]
        self._identity_index: dict[str, int] = {}
        self._guard = threading.RLock()

    # ------------------------------------------------------------------
    # Page access
    # ------------------------------------------------------------------

    def _page(self, page: int) -> PageState:
        if not isinstance(page, int) or not 1 <= page <= self.page_count:
            raise UnknownPage(f"page {page} outside 1..{self.page_count}", page=page)
        return self._pages[page - 1]

    def set_active_page(self, page: int) -> None:
        self._page(page)
        self.active_page = page

    @contextmanager
    def page_writer(self, page: int) -> Generator[PageState, None, None]:
        """Hold the single-writer slot of *page* for the duration of the block."""
        ps = self._page(page)
        if not ps.lock.acquire(blocking=False):
            raise PageBusy(f"a detection pass is already running on page {page}", page=page)
        ps.writer = threading.get_ident()
        try:
            yield ps
        finally:
            ps.writer = None
            ps.lock.release()

    def _check_writer(self, ps: PageState) -> None:
        if ps.writer is not None and ps.writer != threading.get_ident():
            raise PageBusy(f"a detection pass is already running on page {ps.page}", page=ps.page)

    # ------------------------------------------------------------------
    # Automatic items
    # ------------------------------------------------------------------

    def record_auto_detections(
        self, page: int, items: Iterable[RedactionItem],
    ) -> list[RedactionItem]:
        """Replace the automatic set of *page*.

        An item whose identity was already present keeps the previous
        ``enabled`` flag; new identities start enabled.  Manual boxes are
        untouched.
        """
        ps = self._page(page)
        with self._guard:
            self._check_writer(ps)
            previous = ps.auto
            fresh: dict[str, RedactionItem] = {}
            inherited = 0
            for item in items:
                if item.is_degenerate():
                    logger.debug("Dropping degenerate item %s on page %d", item.identity, page)
                    continue
                old = previous.get(item.identity)
                enabled = old.enabled if old is not None else True
                if old is not None:
                    inherited += 1
                fresh[item.identity] = item.model_copy(update={"page": page, "enabled": enabled})

            for identity in previous:
                if self._identity_index.get(identity) == page:
                    del self._identity_index[identity]
            for identity in fresh:
                self._identity_index[identity] = page
            ps.auto = fresh

        logger.info(
            "Page %d: recorded %d automatic item(s), %d carried over",
            page, len(fresh), inherited,
            extra={"doc_id": self.doc_id, "page": page, "count": len(fresh)},
        )
        return [i.model_copy() for i in fresh.values()]

    def toggle(self, identity: str, enabled: bool) -> RedactionItem:
        """Enable or disable exactly one automatic item."""
        with self._guard:
            page = self._identity_index.get(identity)
            if page is None:
                raise UnknownIdentity(f"no automatic item with identity {identity!r}")
            ps = self._pages[page - 1]
            item = ps.auto[identity].model_copy(update={"enabled": bool(enabled)})
            ps.auto[identity] = item
        logger.debug("Item %s on page %d set enabled=%s", identity, page, enabled)
        return item.model_copy()

    def items(self, page: int) -> list[RedactionItem]:
        """All automatic items of *page*, disabled ones included."""
        ps = self._page(page)
        with self._guard:
            return [i.model_copy() for i in ps.auto.values()]

    # ------------------------------------------------------------------
    # Manual boxes
    # ------------------------------------------------------------------

    def record_manual_box(self, page: int, box: GeometricBox) -> int:
        """Store an always-on manual box; returns its stable index."""
        ps = self._page(page)
        if box.is_degenerate():
            raise InvalidGeometry(f"manual box has no area: {box}", page=page)
        stored = GeometricBox(x=box.x, y=box.y, w=box.w, h=box.h, page=page, space=box.space)
        with self._guard:
            return ps.manual.add(stored)

    def delete_manual_box(self, page: int, index: int) -> GeometricBox:
        ps = self._page(page)
        with self._guard:
            return ps.manual.remove(index)

    def manual_boxes(self, page: int) -> list[tuple[int, GeometricBox]]:
        ps = self._page(page)
        with self._guard:
            return ps.manual.items()

    # ------------------------------------------------------------------
    # Render / export view
    # ------------------------------------------------------------------

    def combined_boxes(self, page: int) -> list[GeometricBox]:
        """Manual boxes followed by every *enabled* automatic item."""
        ps = self._page(page)
        with self._guard:
            boxes = ps.manual.boxes()
            boxes.extend(item.to_box() for item in ps.auto.values() if item.enabled)
        return boxes

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_page(self, page: int, preserve_manual: bool = True) -> None:
        ps = self._page(page)
        with self._guard:
            self._check_writer(ps)
            for identity in ps.auto:
                self._identity_index.pop(identity, None)
            ps.auto = {}
            if not preserve_manual:
                ps.manual.clear()
        logger.info("Page %d reset (manual boxes %s)", page, "kept" if preserve_manual else "cleared")

    def reset(self) -> None:
        """Full document reset: automatic items and manual boxes on every page."""
        with self._guard:
            for ps in self._pages:
                self._check_writer(ps)
            for ps in self._pages:
                ps.auto = {}
                ps.manual.clear()
            self._identity_index.clear()
            self.active_page = 1

    def summary(self) -> dict:
        with self._guard:
            return {
                "doc_id": self.doc_id,
                "page_count": self.page_count,
                "active_page": self.active_page,
                "auto_items": sum(len(ps.auto) for ps in self._pages),
                "manual_boxes": sum(len(ps.manual) for ps in self._pages),
            }
