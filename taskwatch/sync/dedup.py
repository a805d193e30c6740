"""Suppress repeated deliveries of the same completed item."""

from ..models import Item


class CompletionDeduper:
    """Remembers every item id handed to the caller.

    The set only grows; process lifetime bounds it.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def accept(self, item: Item) -> bool:
        """Record ``item`` and return True the first time its id is seen."""
        if item.id in self._seen:
            return False
        self._seen.add(item.id)
        return True

    def seen(self, item_id: str) -> bool:
        return item_id in self._seen

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
