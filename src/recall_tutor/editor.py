"""Creating, editing and deleting study items."""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from recall_tutor.clock import local_now
from recall_tutor.errors import EditInProgress, InvalidTransition, ValidationError
from recall_tutor.models import StudyItem, new_item

logger = logging.getLogger(__name__)


@dataclass
class WorkingCopy:
    """Mutable content fields of an item; nothing is written until commit."""

    title: str = ""
    body: str = ""
    images: list[bytes] = field(default_factory=list)
    pdf: Optional[bytes] = None
    tags: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return bool(self.title.strip()) and bool(self.body.strip())

    def validate(self) -> None:
        if not self.title.strip():
            raise ValidationError("Title must not be empty")
        if not self.body.strip():
            raise ValidationError("Body must not be empty")

    def add_tag(self, tag: str) -> bool:
        tag = tag.strip()
        if not tag or tag in self.tags:
            return False
        self.tags.append(tag)
        return True

    def remove_tag(self, tag: str) -> None:
        self.tags = [t for t in self.tags if t != tag]

    def add_image(self, data: bytes) -> None:
        self.images.append(data)

    def remove_image(self, index: int) -> None:
        if 0 <= index < len(self.images):
            del self.images[index]

    def set_pdf(self, data: bytes) -> None:
        self.pdf = data

    def remove_pdf(self) -> None:
        self.pdf = None


class ItemDraft(WorkingCopy):
    """Working copy for a new item."""

    def __init__(self, repository, clock: Callable = local_now, **fields):
        super().__init__(**fields)
        self._repository = repository
        self.clock = clock
        self.saving = False
        self.saved: Optional[StudyItem] = None

    async def save(self) -> StudyItem:
        if self.saving:
            raise InvalidTransition("Item is already being saved")
        self.validate()
        item = new_item(
            title=self.title.strip(),
            body=self.body.strip(),
            now=self.clock(),
            images=self.images,
            pdf=self.pdf,
            tags=self.tags,
        )
        self.saving = True
        try:
            await self._repository.create(item)
        finally:
            self.saving = False
        self.saved = item
        logger.info("Created item %r", item.title)
        return item


class ItemEditor(WorkingCopy):
    """Working copy of an existing item. Obtain one from ItemEditEngine.begin_edit."""

    def __init__(self, engine: "ItemEditEngine", item: StudyItem):
        super().__init__(
            title=item.title,
            body=item.body,
            images=list(item.images),
            pdf=item.pdf,
            tags=list(item.tags),
        )
        self._engine = engine
        self.original = item
        self.saving = False
        self.active = True

    async def commit(self) -> StudyItem:
        """Write all edits in one update.

        The authoritative record is re-read first and only content fields are
        replaced, so a review saved while the editor was open is kept.
        """
        if not self.active:
            raise InvalidTransition("Editor is closed")
        if self.saving:
            raise InvalidTransition("Edit is already being saved")
        self.validate()
        self.saving = True
        repository = self._engine.repository
        try:
            latest = await repository.fetch_one(self.original.id)
            updated = replace(
                latest,
                title=self.title.strip(),
                body=self.body.strip(),
                images=tuple(self.images),
                pdf=self.pdf,
                tags=tuple(self.tags),
            )
            await repository.update(updated)
        finally:
            self.saving = False
        self._close()
        logger.info("Saved edits to %r", updated.title)
        return updated

    def cancel(self) -> None:
        if self.saving:
            raise InvalidTransition("Cannot cancel while saving")
        self._close()

    def _close(self) -> None:
        if self.active:
            self.active = False
            self._engine._release(self.original.id)


class DeleteState(Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    DELETED = "deleted"


class DeleteFlow:
    """Two-phase delete: request, then confirm or cancel."""

    def __init__(self, repository, item_id: str):
        self._repository = repository
        self.item_id = item_id
        self.state = DeleteState.IDLE

    def request_delete(self) -> None:
        if self.state is DeleteState.DELETED:
            raise InvalidTransition("Item is already deleted")
        self.state = DeleteState.PENDING_CONFIRMATION

    def cancel_delete(self) -> None:
        if self.state is DeleteState.PENDING_CONFIRMATION:
            self.state = DeleteState.IDLE

    async def confirm_delete(self) -> None:
        if self.state is not DeleteState.PENDING_CONFIRMATION:
            raise InvalidTransition("Delete must be requested before it is confirmed")
        await self._repository.delete(self.item_id)
        self.state = DeleteState.DELETED
        logger.info("Deleted item %s", self.item_id)


class ItemEditEngine:
    """Entry point for item edits; allows one open editor per item."""

    def __init__(self, repository, clock: Callable = local_now):
        self.repository = repository
        self.clock = clock
        self._editing: dict[str, ItemEditor] = {}

    def draft(self, **fields) -> ItemDraft:
        return ItemDraft(self.repository, clock=self.clock, **fields)

    def is_editing(self, item_id: str) -> bool:
        return item_id in self._editing

    async def begin_edit(self, item_id: str) -> ItemEditor:
        if item_id in self._editing:
            raise EditInProgress(item_id)
        item = await self.repository.fetch_one(item_id)
        # re-check: another edit may have opened while fetching
        if item_id in self._editing:
            raise EditInProgress(item_id)
        editor = ItemEditor(self, item)
        self._editing[item_id] = editor
        return editor

    def _release(self, item_id: str) -> None:
        self._editing.pop(item_id, None)

    def delete_flow(self, item_id: str) -> DeleteFlow:
        return DeleteFlow(self.repository, item_id)
