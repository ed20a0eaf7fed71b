"""Error taxonomy shared by the repository and the engines."""


class RecallError(Exception):
    """Base class for every error raised by recall_tutor."""


class ValidationError(RecallError, ValueError):
    """Input rejected before any write (empty field, bad rating)."""


class InvalidArgument(ValidationError):
    """Scheduler or repository called with an out-of-range argument."""


class NotFound(RecallError, LookupError):
    """The item does not exist (never created or already deleted)."""

    def __init__(self, item_id: str):
        super().__init__(f"Study item not found: {item_id}")
        self.item_id = item_id


class StorageError(RecallError):
    """The underlying store failed to read or write."""


class InvalidTransition(RecallError):
    """An engine was asked to do something its current state forbids."""


class EditInProgress(InvalidTransition):
    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} is already being edited")
        self.item_id = item_id


class ReviewNotGraded(RecallError):
    """The item update failed; neither scheduling nor history was written."""


class HistoryNotRecorded(RecallError):
    """The item was graded but its review history entry was not written."""
