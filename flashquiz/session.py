"""One learner working through one round of a deck.

Grades answers, feeds the mastery store, the missed-card tracker and the
progressive-learning scheduler, and produces the end-of-round summary.
"""
from __future__ import annotations

import logging
import random
import time
import uuid
from typing import TYPE_CHECKING

from flashquiz.config import Settings
from flashquiz.cursor import SessionCursor
from flashquiz.decks import select_round_cards
from flashquiz.models import CHOICE, Card, Deck, Question

if TYPE_CHECKING:
    from flashquiz.card_scheduler import MissedCardTracker
    from flashquiz.mastery import MasteryStore

_log = logging.getLogger("flashquiz.session")

# Fields of a question the client must not see before answering
_HIDDEN_FIELDS = ("correct_answer", "accepted_answers")


class SessionError(Exception):
    pass


def check_answer(question: Question, answer: str) -> bool:
    """Exact-match grading: the chosen option, or one of the accepted spellings."""
    if question.type == CHOICE:
        return answer == question.correct_answer
    candidate = answer.strip()
    return candidate in question.accepted_answers or candidate == question.correct_answer.strip()


class LearnSession:
    def __init__(
        self,
        deck: Deck,
        settings: Settings,
        store: MasteryStore | None = None,
        rng: random.Random | None = None,
        tracker: MissedCardTracker | None = None,
    ):
        self.id = uuid.uuid4().hex
        self.deck = deck
        self.settings = settings
        self.store = store
        self.tracker = tracker
        self._rng = rng or random.Random()
        self.cursor = SessionCursor(
            settings.generation_options(),
            mastery=self._mastered_cards if store is not None else None,
            rng=self._rng,
        )
        self.round_cards: list[Card] = []
        self.review_count = 0
        self.answers: dict[str, bool] = {}
        self.mastered_cards: set[int] = set()
        self.struggling_cards: set[int] = set()
        self.current_streak = 0
        self.max_streak = 0
        self.started_at = time.monotonic()
        self._shown_at = self.started_at
        self.complete = False

    def _mastered_cards(self) -> set[int]:
        return self.store.get_mastered_card_indices(self.deck.id, self.settings.mastery_threshold)

    def start(self) -> Question | None:
        s = self.settings
        selected = select_round_cards(
            self.deck.cards, s.progression_mode, s.cards_per_round, s.randomize, self._rng,
        )
        if self.tracker is not None:
            self.round_cards = self.tracker.schedule(
                selected, s.scheduler_config(), self.deck.cards, self._rng,
            )
        else:
            self.round_cards = selected
        self.review_count = len(self.round_cards) - len(selected)
        self.cursor.generate_round(self.round_cards, all_deck_cards=self.deck.cards)
        self._shown_at = time.monotonic()
        _log.info(
            "Session %s: deck '%s', %d cards (%d reviews), %d questions",
            self.id, self.deck.id, len(self.round_cards), self.review_count,
            len(self.cursor.questions),
        )
        return self.cursor.current_question

    @property
    def current_question(self) -> Question | None:
        return self.cursor.current_question

    def submit_answer(self, answer: str) -> dict:
        question = self.cursor.current_question
        if question is None or self.complete:
            raise SessionError("No question to answer")

        correct = check_answer(question, answer)
        previous = self.answers.get(question.id)
        feedback = {
            "question_id": question.id,
            "correct": correct,
            "correct_answer": question.correct_answer,
            "is_follow_up": question.is_follow_up,
        }

        if previous is not None:
            # Only a wrong answer turned right counts the second time
            if previous or not correct:
                feedback["ignored"] = True
                return feedback
            self._register_correct(question, correction=True)
            self.answers[question.id] = True
            return feedback

        self.answers[question.id] = correct
        if self.store is not None:
            self.store.update_card_attempt(
                self.deck.id, question.card_index, correct, self.settings.mastery_threshold,
            )
        if self.tracker is not None:
            if correct:
                self.tracker.mark_correct(question.card_index)
            else:
                self.tracker.track_missed(question.card_index, time.monotonic() - self._shown_at)
        if correct:
            self._register_correct(question)
        else:
            self.current_streak = 0
            self.struggling_cards.add(question.card_index)
        return feedback

    def _register_correct(self, question: Question, correction: bool = False) -> None:
        card = question.card_index
        self.current_streak += 1
        self.max_streak = max(self.max_streak, self.current_streak)
        if correction:
            self.struggling_cards.discard(card)
        if card not in self.struggling_cards:
            self.mastered_cards.add(card)
        if question.type == CHOICE and not question.is_follow_up:
            self.cursor.mark_choice_correct(card)

    def advance(self) -> dict:
        """Move to the next question, or finish the round when there is none."""
        if self.complete or not self.cursor.has_next:
            self.complete = True
            return {"session_complete": True, "summary": self.summary()}
        question = self.cursor.next_question()
        self._shown_at = time.monotonic()
        return {
            "session_complete": False,
            "question": question_payload(question),
            "progress": self.progress(),
        }

    def progress(self) -> dict:
        return {
            "current": self.cursor.current_question_index + 1,
            "total": len(self.cursor.questions),
            "answered": len(self.answers),
            "correct": sum(self.answers.values()),
            "streak": self.current_streak,
        }

    def summary(self) -> dict:
        attempted = len(self.mastered_cards | self.struggling_cards)
        correct = len(self.mastered_cards)
        review = sorted(m.card_index for m in self.tracker.missed_cards) if self.tracker else []
        return {
            "deck_id": self.deck.id,
            "total_questions": attempted,
            "correct_answers": correct,
            "incorrect_answers": len(self.struggling_cards),
            "accuracy": round(correct / attempted * 100, 1) if attempted else 0.0,
            "max_streak": self.max_streak,
            "duration_seconds": round(time.monotonic() - self.started_at, 1),
            "mastered_cards": sorted(self.mastered_cards),
            "struggling_cards": sorted(self.struggling_cards),
            "review_cards": review,
        }


def question_payload(question: Question | None) -> dict | None:
    """What the client sees before answering (no answers included)."""
    if question is None:
        return None
    payload = question.to_dict()
    for name in _HIDDEN_FIELDS:
        del payload[name]
    return payload
