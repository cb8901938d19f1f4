"""Ordered question sequence with a single insertion primitive."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

from flashquiz.models import Question


class QuestionQueue:
    """The questions of one round, in the order they will be asked.

    Slots at or before a given position are never moved: the only way to
    add a question is :meth:`insert_after`, which places it directly behind
    that position.
    """

    def __init__(self, questions: Iterable[Question] = ()):
        self._items: list[Question] = list(questions)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._items)

    def __getitem__(self, position: int) -> Question:
        return self._items[position]

    def get(self, position: int) -> Question | None:
        if 0 <= position < len(self._items):
            return self._items[position]
        return None

    def insert_after(self, position: int, question: Question) -> int:
        """Insert *question* right behind *position* and return its slot.

        *position* is clamped into ``[-1, len - 1]``.
        """
        slot = max(-1, min(position, len(self._items) - 1)) + 1
        self._items.insert(slot, question)
        return slot

    def find_last(
        self,
        predicate: Callable[[Question], bool],
        end: int,
    ) -> int | None:
        """Position of the last question at or before *end* matching *predicate*."""
        for position in range(min(end, len(self._items) - 1), -1, -1):
            if predicate(self._items[position]):
                return position
        return None

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> list[Question]:
        return list(self._items)
