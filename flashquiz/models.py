from __future__ import annotations

from dataclasses import dataclass, field

CHOICE = "choice"
FREE_RESPONSE = "free_response"
QUESTION_TYPES = (CHOICE, FREE_RESPONSE)

# Names used by saved settings and deck exports
TYPE_ALIASES = {
    "multiple_choice": CHOICE,
    "mc": CHOICE,
    "free_text": FREE_RESPONSE,
    "text": FREE_RESPONSE,
}

PROGRESSIVE_MODES = ("disabled", "immediate", "spaced", "random")


def normalize_question_type(name: str) -> str | None:
    """Map a configured type name to ``choice``/``free_response`` (None if unknown)."""
    name = TYPE_ALIASES.get(name, name)
    return name if name in QUESTION_TYPES else None


@dataclass(frozen=True)
class Card:
    idx: int
    sides: dict[str, str]
    level: int = 1

    def side(self, name: str) -> str:
        return self.sides.get(name) or ""


@dataclass
class Deck:
    id: str
    name: str
    cards: list[Card]
    source_file: str = ""


@dataclass
class Question:
    id: str
    type: str  # choice | free_response
    card_index: int
    prompt_text: str
    correct_answer: str
    difficulty: int = 1
    options: list[str] = field(default_factory=list)
    accepted_answers: list[str] = field(default_factory=list)
    is_follow_up: bool = False
    parent_question_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "card_index": self.card_index,
            "prompt_text": self.prompt_text,
            "correct_answer": self.correct_answer,
            "difficulty": self.difficulty,
            "options": list(self.options),
            "accepted_answers": list(self.accepted_answers),
            "is_follow_up": self.is_follow_up,
            "parent_question_id": self.parent_question_id,
        }


@dataclass(frozen=True)
class GenerationOptions:
    """Everything that shapes one round, fixed for the round's lifetime.

    ``question_type_mix`` is ``auto`` (70% choice when both types are
    requested), ``mixed`` (50/50), or a question type to force.
    ``difficulty`` is in [0, 1]; higher means a less shuffled queue.
    """

    question_types: tuple[str, ...] = (CHOICE, FREE_RESPONSE)
    front_sides: tuple[str, ...] = ("side_a",)
    back_sides: tuple[str, ...] = ("side_b",)
    question_type_mix: str = "auto"
    difficulty: float = 1.0
    exclude_cards: frozenset[int] = frozenset()
    progressive_learning: str = "spaced"
    progressive_learning_spacing: int = 3
