"""Shared test fixtures."""
from __future__ import annotations

import json

import pytest

from flashquiz.mastery import MasteryStore
from flashquiz.models import CHOICE, Card, Deck, Question


class ScriptedRandom:
    """Stand-in for random.Random with fixed answers.

    ``random()`` always returns *value*, ``randint`` always the lower bound,
    ``shuffle`` leaves the list alone and ``sample`` takes the first k.
    """

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value

    def randint(self, a: int, b: int) -> int:
        return a

    def shuffle(self, items: list) -> None:
        pass

    def sample(self, population, k: int) -> list:
        return list(population)[:k]


@pytest.fixture
def scripted_rng():
    return ScriptedRandom


@pytest.fixture
def make_question():
    """Build a queue entry by hand: make_question(card_index, type=CHOICE)."""
    def _make(card_index: int, qtype: str = CHOICE, **kwargs) -> Question:
        defaults = {
            "id": f"q{card_index}-{qtype}",
            "prompt_text": f"prompt {card_index}",
            "correct_answer": f"answer {card_index}",
        }
        if qtype == CHOICE:
            defaults["options"] = [f"answer {card_index}", "x", "y", "z"]
        else:
            defaults["accepted_answers"] = [f"answer {card_index}"]
        defaults.update(kwargs)
        return Question(type=qtype, card_index=card_index, **defaults)
    return _make


@pytest.fixture
def sample_cards():
    """Five Spanish/English cards with distinct answers."""
    return [
        Card(0, {"side_a": "hola", "side_b": "hello"}, level=1),
        Card(1, {"side_a": "adiós", "side_b": "goodbye"}, level=1),
        Card(2, {"side_a": "buenos días", "side_b": "good morning"}, level=2),
        Card(3, {"side_a": "buenas noches", "side_b": "good night"}, level=2),
        Card(4, {"side_a": "gracias", "side_b": "thank you"}, level=3),
    ]


@pytest.fixture
def sample_deck(sample_cards):
    return Deck(id="spanish", name="Spanish Basics", cards=sample_cards, source_file="spanish.json")


@pytest.fixture
def tmp_store(tmp_path):
    """Create a fresh temporary mastery store."""
    store = MasteryStore(tmp_path / "test.db")
    yield store
    store.close()


@pytest.fixture
def deck_json_content():
    return json.dumps({
        "id": "spanish",
        "name": "Spanish Basics",
        "content": [
            {"idx": 0, "level": 1, "side_a": "hola", "side_b": "hello"},
            {"idx": 1, "level": 2, "side_a": "adiós", "side_b": "goodbye", "side_c": "/aˈðjos/"},
            {"idx": 2, "side_a": "gracias", "side_b": "thank you", "notes": "ignored"},
        ],
    })
