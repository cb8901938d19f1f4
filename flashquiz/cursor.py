"""Round state and the cursor the session layer drives it through."""
from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from flashquiz import progressive
from flashquiz.models import Card, GenerationOptions, Question
from flashquiz.question_generator import generate_round
from flashquiz.question_queue import QuestionQueue

_log = logging.getLogger("flashquiz.cursor")


@dataclass
class RoundState:
    queue: QuestionQueue = field(default_factory=QuestionQueue)
    current_index: int = 0
    appearance_counts: dict[int, int] = field(default_factory=dict)
    correct_choice_cards: set[int] = field(default_factory=set)
    # Cards answered correctly in spaced mode, still waiting for their follow-up
    pending_follow_ups: list[int] = field(default_factory=list)
    followed_up_cards: set[int] = field(default_factory=set)


class SessionCursor:
    """Owns one round: the question queue, the position, and per-card bookkeeping.

    *mastery* is called once per :meth:`generate_round` and returns the card
    indices that no longer need study.  If it raises, the round is built as
    if nothing were mastered.
    """

    def __init__(
        self,
        options: GenerationOptions,
        mastery: Callable[[], Iterable[int]] | None = None,
        rng: random.Random | None = None,
    ):
        self.options = options
        self._mastery = mastery
        self._rng = rng or random.Random()
        self.state = RoundState()

    @property
    def questions(self) -> list[Question]:
        return self.state.queue.to_list()

    @property
    def current_question(self) -> Question | None:
        return self.state.queue.get(self.state.current_index)

    @property
    def current_question_index(self) -> int:
        return self.state.current_index

    @property
    def has_next(self) -> bool:
        return self.state.current_index < len(self.state.queue) - 1

    def _mastered_indices(self) -> set[int]:
        if self._mastery is None:
            return set()
        try:
            return set(self._mastery())
        except Exception as e:
            _log.warning("Mastery lookup failed, studying all cards: %s", e)
            return set()

    def generate_round(
        self,
        cards: Sequence[Card],
        all_deck_cards: Sequence[Card] | None = None,
    ) -> list[Question]:
        mastered = self._mastered_indices()
        questions = generate_round(
            cards,
            self.options,
            is_mastered=lambda card: card.idx in mastered,
            all_cards=all_deck_cards,
            mastered=mastered,
            rng=self._rng,
        )
        self.state = RoundState(queue=QuestionQueue(questions))
        return questions

    def mark_choice_correct(self, card_index: int) -> None:
        self.state.correct_choice_cards.add(card_index)

    def next_question(self) -> Question | None:
        """Let the scheduler react to the answered question, then move on.

        At the last slot nothing happens: the index stays put and no
        appearance is counted.
        """
        if not len(self.state.queue):
            return None
        if not self.has_next:
            return self.current_question
        progressive.on_advance(self.state, self.options, self._rng)
        self.state.current_index += 1
        return self.current_question

    def reset(self) -> None:
        self.state = RoundState()
