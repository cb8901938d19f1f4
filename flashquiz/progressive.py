"""Progressive learning: re-test correctly answered choice questions as free response.

After the learner picks the right option, the card may come back later in
the same round as a typed-answer question.  Whether and where that happens
depends on the configured mode:

  disabled   never
  immediate  right after the choice question, the first time the card is seen
  spaced     once at least ``progressive_learning_spacing`` other questions
             have been asked since the choice question
  random     right after the choice question, 30% of the time
"""
from __future__ import annotations

import logging
import random
import uuid
from typing import TYPE_CHECKING

from flashquiz.models import CHOICE, FREE_RESPONSE, PROGRESSIVE_MODES, GenerationOptions, Question
from flashquiz.question_generator import generate_accepted_answers

if TYPE_CHECKING:
    from flashquiz.cursor import RoundState

_log = logging.getLogger("flashquiz.scheduler")

FOLLOW_UP_PROMPT = "Now type the answer: {prompt}"
RANDOM_FOLLOW_UP_PROBABILITY = 0.3
IMMEDIATE_MAX_APPEARANCES = 2


def policy_mode(options: GenerationOptions) -> str:
    mode = options.progressive_learning
    return mode if mode in PROGRESSIVE_MODES else "disabled"


def build_follow_up_question(parent: Question) -> Question:
    return Question(
        id=f"fu_{parent.card_index}_{uuid.uuid4().hex[:12]}",
        type=FREE_RESPONSE,
        card_index=parent.card_index,
        prompt_text=FOLLOW_UP_PROMPT.format(prompt=parent.prompt_text),
        correct_answer=parent.correct_answer,
        difficulty=parent.difficulty,
        accepted_answers=generate_accepted_answers(parent.correct_answer),
        is_follow_up=True,
        parent_question_id=parent.id,
    )


def last_occurrence(state: RoundState, card_index: int, end: int) -> int | None:
    """Most recent slot at or before *end* asking about *card_index*.

    Follow-up questions are not counted as occurrences.
    """
    if end < 0:
        return None
    return state.queue.find_last(
        lambda q: q.card_index == card_index and not q.is_follow_up, end,
    )


def should_follow_up(
    state: RoundState,
    card_index: int,
    options: GenerationOptions,
    rng: random.Random | None = None,
) -> bool:
    mode = policy_mode(options)
    spacing = options.progressive_learning_spacing
    index = state.current_index

    if mode == "immediate":
        if state.appearance_counts.get(card_index, 0) >= IMMEDIATE_MAX_APPEARANCES:
            return False
        if spacing > 1:
            prior = last_occurrence(state, card_index, index - 1)
            if prior is not None and index - prior - 1 < spacing:
                return False
        return True

    if mode == "spaced":
        last = last_occurrence(state, card_index, index)
        if last is None or last == index:
            return False
        return index - last >= spacing

    if mode == "random":
        return (rng or random).random() < RANDOM_FOLLOW_UP_PROBABILITY

    return False


def add_follow_up_question(state: RoundState, card_index: int) -> Question | None:
    """Insert a follow-up for *card_index* right after the current slot.

    The most recent choice question for the card becomes the parent.  If
    there is none this does nothing.
    """
    parent_slot = state.queue.find_last(
        lambda q: q.card_index == card_index and q.type == CHOICE and not q.is_follow_up,
        state.current_index,
    )
    if parent_slot is None:
        _log.debug("No choice question for card %d, follow-up skipped", card_index)
        return None

    follow_up = build_follow_up_question(state.queue[parent_slot])
    slot = state.queue.insert_after(state.current_index, follow_up)
    state.followed_up_cards.add(card_index)
    _log.info(
        "Follow-up for card %d at slot %d (parent at %d)", card_index, slot, parent_slot,
    )
    return follow_up


def _next_slot_open(state: RoundState) -> bool:
    upcoming = state.queue.get(state.current_index + 1)
    return upcoming is not None and not upcoming.is_follow_up


def on_advance(
    state: RoundState,
    options: GenerationOptions,
    rng: random.Random | None = None,
) -> Question | None:
    """Run one scheduler step for the question at the current slot.

    Must be called before the cursor moves on.  Returns the inserted
    follow-up, if any.
    """
    answered = state.queue.get(state.current_index)
    if answered is None:
        return None

    card = answered.card_index
    state.appearance_counts[card] = state.appearance_counts.get(card, 0) + 1

    mode = policy_mode(options)
    if mode == "disabled":
        return None

    eligible = (
        answered.type == CHOICE
        and not answered.is_follow_up
        and card in state.correct_choice_cards
        and card not in state.followed_up_cards
    )

    if mode != "spaced":
        if eligible and _next_slot_open(state) and should_follow_up(state, card, options, rng):
            return add_follow_up_question(state, card)
        return None

    # Spaced: the card waits until enough questions have gone by
    if eligible and card not in state.pending_follow_ups:
        state.pending_follow_ups.append(card)
    if not _next_slot_open(state):
        return None
    for pending in list(state.pending_follow_ups):
        if should_follow_up(state, pending, options, rng):
            state.pending_follow_ups.remove(pending)
            return add_follow_up_question(state, pending)
    return None
