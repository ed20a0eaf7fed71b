"""Sample study items for a first launch."""
import asyncio

from recall_tutor.models import new_item
from recall_tutor.settings import get_flag, set_flag

SAMPLE_ITEMS = [
    {
        "title": "Spacing effect",
        "body": "Reviews spread out over time produce longer-lasting memories than massed study.",
        "tags": ["memory", "learning"],
    },
    {
        "title": "Active recall",
        "body": "Retrieving an answer from memory strengthens it more than rereading the material.",
        "tags": ["learning"],
    },
    {
        "title": "SM-2 ease factor",
        "body": "A per-item multiplier (starting at 2.5, never below 1.3) that sets how fast intervals grow.",
        "tags": ["sm-2"],
    },
]


def is_seeded(db_path: str) -> bool:
    """True once sample items have been offered, even if the user deleted them."""
    return get_flag(db_path, "seeded")


async def seed_samples(repository) -> int:
    """Insert the sample items on first launch. Returns how many were added."""
    db_path = repository.db_path
    if await asyncio.to_thread(is_seeded, db_path):
        return 0
    now = repository.clock()
    for sample in SAMPLE_ITEMS:
        await repository.create(new_item(sample["title"], sample["body"], now, tags=sample["tags"]))
    await asyncio.to_thread(set_flag, db_path, "seeded", True)
    return len(SAMPLE_ITEMS)
