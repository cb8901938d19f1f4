"""Turn study cards into quiz questions and assemble them into rounds."""
from __future__ import annotations

import logging
import random
import re
import uuid
from collections.abc import Callable, Iterable, Sequence

from flashquiz.models import (
    CHOICE,
    FREE_RESPONSE,
    Card,
    GenerationOptions,
    Question,
    normalize_question_type,
)

_log = logging.getLogger("flashquiz.qgen")

SIDE_SEPARATOR = " - "
PROMPT_PLACEHOLDER = "Question"
ANSWER_PLACEHOLDER = "Answer"
DISTRACTOR_COUNT = 3

# Share of choice questions per mix policy when both types are requested
CHOICE_PROBABILITY = {
    "auto": 0.7,
    "mixed": 0.5,
}

_PUNCTUATION = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")


def _join_sides(card: Card, side_names: Iterable[str], placeholder: str) -> str:
    parts = [card.side(name) for name in side_names]
    return SIDE_SEPARATOR.join(p for p in parts if p) or placeholder


def build_prompt_text(card: Card, front_sides: Iterable[str]) -> str:
    return _join_sides(card, front_sides, PROMPT_PLACEHOLDER)


def build_answer_text(card: Card, back_sides: Iterable[str]) -> str:
    return _join_sides(card, back_sides, ANSWER_PLACEHOLDER)


def _question_id(prefix: str, card_index: int) -> str:
    return f"{prefix}_{card_index}_{uuid.uuid4().hex[:12]}"


def similarity(text1: str, text2: str) -> float:
    """Token-set Jaccard similarity (case-insensitive, whitespace tokens)."""
    set1 = set(text1.lower().split())
    set2 = set(text2.lower().split())
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def _select_from_pool(
    correct_answer: str,
    pool: list[str],
    needed: int,
    rng: random.Random,
) -> list[str]:
    """Pick up to *needed* candidates, mixing near and far ones.

    With enough candidates, takes the most similar, the median and the least
    similar; any remaining slots are filled at random from the pool.
    """
    selected: list[str] = []
    if not pool or needed <= 0:
        return selected

    ranked = sorted(pool, key=lambda c: similarity(correct_answer, c), reverse=True)
    if len(ranked) >= needed:
        for i in (0, len(ranked) // 2, len(ranked) - 1):
            if len(selected) >= needed:
                break
            if ranked[i] not in selected:
                selected.append(ranked[i])

    remaining = [c for c in pool if c not in selected]
    shortfall = min(needed - len(selected), len(remaining))
    if shortfall > 0:
        selected.extend(rng.sample(remaining, shortfall))
    return selected


def generate_distractors(
    correct_answer: str,
    all_cards: Sequence[Card],
    back_sides: Sequence[str],
    exclude_index: int,
    mastered: Iterable[int] = (),
    rng: random.Random | None = None,
) -> list[str]:
    """Return exactly three wrong answers for *correct_answer*.

    Candidates come from the back sides of every other card.  Cards that are
    not yet mastered are preferred; mastered ones only top up the list, and
    ``Option N`` placeholders cover anything still missing.
    """
    rng = rng or random
    mastered_set = set(mastered)
    fresh: list[str] = []
    known: list[str] = []
    for card in all_cards:
        if card.idx == exclude_index:
            continue
        candidate = build_answer_text(card, back_sides)
        if not candidate or candidate == correct_answer:
            continue
        pool = known if card.idx in mastered_set else fresh
        if candidate not in pool:
            pool.append(candidate)
    # A text seen on a fresh card shouldn't be offered twice
    known = [c for c in known if c not in fresh]

    distractors = _select_from_pool(correct_answer, fresh, DISTRACTOR_COUNT, rng)
    if len(distractors) < DISTRACTOR_COUNT:
        distractors += _select_from_pool(
            correct_answer, known, DISTRACTOR_COUNT - len(distractors), rng,
        )

    n = len(distractors) + 2
    while len(distractors) < DISTRACTOR_COUNT:
        filler = f"Option {n}"
        n += 1
        if filler != correct_answer and filler not in distractors:
            distractors.append(filler)

    _log.debug(
        "Distractors for %r: %d fresh, %d mastered candidates -> %s",
        correct_answer, len(fresh), len(known), distractors,
    )
    return distractors[:DISTRACTOR_COUNT]


def generate_accepted_answers(correct_answer: str) -> list[str]:
    variations = [
        correct_answer,
        correct_answer.lower(),
        correct_answer.upper(),
    ]
    stripped = _PUNCTUATION.sub("", correct_answer)
    if stripped != correct_answer:
        variations += [stripped, stripped.lower()]
    trimmed = correct_answer.strip()
    if trimmed != correct_answer:
        variations.append(trimmed)
    return list(dict.fromkeys(variations))


def build_choice_question(
    card: Card,
    all_cards: Sequence[Card],
    sides: dict[str, Sequence[str]],
    card_index: int,
    rng: random.Random | None = None,
    mastered: Iterable[int] = (),
) -> Question:
    """Build a four-option question for *card*.

    *sides* maps ``front``/``back`` to the side names used for the prompt and
    the answer.
    """
    rng = rng or random
    prompt = build_prompt_text(card, sides["front"])
    answer = build_answer_text(card, sides["back"])
    distractors = generate_distractors(
        answer, all_cards, sides["back"], card_index, mastered=mastered, rng=rng,
    )
    options = [answer, *distractors]
    rng.shuffle(options)
    return Question(
        id=_question_id("mc", card_index),
        type=CHOICE,
        card_index=card_index,
        prompt_text=prompt,
        correct_answer=answer,
        difficulty=card.level or 1,
        options=options,
    )


def build_free_response_question(
    card: Card,
    sides: dict[str, Sequence[str]],
    card_index: int,
) -> Question:
    prompt = build_prompt_text(card, sides["front"])
    answer = build_answer_text(card, sides["back"])
    return Question(
        id=_question_id("ft", card_index),
        type=FREE_RESPONSE,
        card_index=card_index,
        prompt_text=prompt,
        correct_answer=answer,
        difficulty=card.level or 1,
        accepted_answers=generate_accepted_answers(answer),
    )


def pick_question_type(
    question_types: Sequence[str],
    mix: str = "auto",
    rng: random.Random | None = None,
) -> str:
    """Choose ``choice`` or ``free_response`` for one card."""
    forced = normalize_question_type(mix)
    if forced is not None:
        return forced

    types = [t for t in (normalize_question_type(q) for q in question_types) if t]
    types = list(dict.fromkeys(types))
    if len(types) == 1:
        return types[0]
    if not types:
        return CHOICE

    rng = rng or random
    probability = CHOICE_PROBABILITY.get(mix, CHOICE_PROBABILITY["auto"])
    return CHOICE if rng.random() < probability else FREE_RESPONSE


def shuffle_questions(
    questions: list[Question],
    difficulty: float,
    rng: random.Random | None = None,
) -> list[Question]:
    """Sort by difficulty, then partially shuffle.

    Each backward Fisher-Yates step only swaps with probability
    ``1 - difficulty * 0.2``, so a higher difficulty setting keeps the queue
    closer to its easy-to-hard order.
    """
    rng = rng or random
    shuffled = sorted(questions, key=lambda q: q.difficulty)
    intensity = 1 - difficulty * 0.2
    for i in range(len(shuffled) - 1, 0, -1):
        if rng.random() < intensity:
            j = rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_round(
    cards: Sequence[Card],
    options: GenerationOptions,
    is_mastered: Callable[[Card], bool] | None = None,
    all_cards: Sequence[Card] | None = None,
    mastered: Iterable[int] = (),
    rng: random.Random | None = None,
) -> list[Question]:
    """Build the initial question queue for one round.

    Cards listed in ``options.exclude_cards`` or reported by *is_mastered*
    are skipped.  Distractors are drawn from *all_cards* (the whole deck)
    when given, otherwise from the round's own cards.
    """
    rng = rng or random
    pool = list(all_cards) if all_cards else list(cards)
    mastered = set(mastered)
    sides = {"front": options.front_sides, "back": options.back_sides}

    questions: list[Question] = []
    for card in cards:
        if card.idx in options.exclude_cards:
            continue
        if is_mastered is not None and is_mastered(card):
            continue
        qtype = pick_question_type(options.question_types, options.question_type_mix, rng)
        if qtype == CHOICE:
            q = build_choice_question(card, pool, sides, card.idx, rng=rng, mastered=mastered)
        else:
            q = build_free_response_question(card, sides, card.idx)
        questions.append(q)

    _log.info(
        "Round: %d questions from %d cards (%d skipped)",
        len(questions), len(cards), len(cards) - len(questions),
    )
    return shuffle_questions(questions, options.difficulty, rng)
