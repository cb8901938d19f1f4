"""Tests for question synthesis and round building."""
from __future__ import annotations

import random

import pytest

from flashquiz.models import CHOICE, FREE_RESPONSE, Card, GenerationOptions
from flashquiz.question_generator import (
    build_answer_text,
    build_choice_question,
    build_free_response_question,
    build_prompt_text,
    generate_accepted_answers,
    generate_distractors,
    generate_round,
    pick_question_type,
    shuffle_questions,
    similarity,
)

SIDES = {"front": ["side_a"], "back": ["side_b"]}


def _cards(*answers: str) -> list[Card]:
    return [Card(i, {"side_a": f"q{i}", "side_b": a}) for i, a in enumerate(answers)]


class TestSideText:
    def test_joins_non_empty_sides(self):
        card = Card(0, {"side_a": "hola", "side_b": "", "side_c": "/ˈola/"})
        assert build_prompt_text(card, ["side_a", "side_b", "side_c"]) == "hola - /ˈola/"

    def test_prompt_placeholder(self):
        card = Card(0, {"side_b": "hello"})
        assert build_prompt_text(card, ["side_a"]) == "Question"

    def test_answer_placeholder(self):
        card = Card(0, {"side_a": "hola"})
        assert build_answer_text(card, ["side_b", "side_z"]) == "Answer"


class TestSimilarity:
    def test_identical(self):
        assert similarity("good morning", "Good Morning") == 1.0

    def test_partial_overlap(self):
        assert similarity("red apple", "green apple") == pytest.approx(1 / 3)

    def test_disjoint(self):
        assert similarity("red apple", "blue sky") == 0.0

    def test_empty_strings(self):
        assert similarity("", "") == 0.0


class TestGenerateDistractors:
    def test_mix_of_near_and_far(self, scripted_rng):
        cards = _cards("red apple", "red apple pie", "green apple", "blue sky", "yellow banana", "ripe apple")
        result = generate_distractors("red apple", cards, ["side_b"], 0, rng=scripted_rng())
        # ranked: pie (2/3), green (1/3), ripe (1/3), blue (0), yellow (0)
        assert result == ["red apple pie", "ripe apple", "yellow banana"]

    def test_excludes_correct_answer_and_own_card(self):
        cards = _cards("hello", "hello", "goodbye", "thanks", "please")
        result = generate_distractors("hello", cards, ["side_b"], 0, rng=random.Random(3))
        assert "hello" not in result
        assert sorted(result) == ["goodbye", "please", "thanks"]

    def test_duplicate_candidates_collapsed(self, scripted_rng):
        cards = _cards("cat", "dog", "dog", "bird")
        result = generate_distractors("cat", cards, ["side_b"], 0, rng=scripted_rng())
        assert result.count("dog") == 1
        assert "bird" in result
        assert len(result) == 3

    def test_placeholder_fill(self, scripted_rng):
        cards = [
            Card(0, {"side_a": "2+2", "side_b": "4"}),
            Card(1, {"side_a": "2+3", "side_b": "5"}),
        ]
        result = generate_distractors("4", cards, ["side_b"], 0, rng=scripted_rng())
        assert result == ["5", "Option 3", "Option 4"]

    def test_no_candidates(self, scripted_rng):
        result = generate_distractors("alone", _cards("alone"), ["side_b"], 0, rng=scripted_rng())
        assert result == ["Option 2", "Option 3", "Option 4"]

    def test_prefers_cards_not_mastered(self, scripted_rng):
        cards = _cards("one", "two", "three", "four", "five")
        result = generate_distractors(
            "one", cards, ["side_b"], 0, mastered={4}, rng=scripted_rng(),
        )
        assert set(result) == {"two", "three", "four"}

    def test_mastered_cards_top_up(self, scripted_rng):
        cards = _cards("one", "two", "three", "four", "five")
        result = generate_distractors(
            "one", cards, ["side_b"], 0, mastered={2, 3, 4}, rng=scripted_rng(),
        )
        assert result == ["two", "three", "four"]


class TestAcceptedAnswers:
    def test_case_and_punctuation_variants(self):
        result = generate_accepted_answers("Hello, World!")
        assert result == [
            "Hello, World!",
            "hello, world!",
            "HELLO, WORLD!",
            "Hello World",
            "hello world",
        ]

    def test_trimmed_variant(self):
        assert "good night" in generate_accepted_answers("  good night ")

    def test_no_duplicates(self):
        result = generate_accepted_answers("abc")
        assert result == ["abc", "ABC"]


class TestBuildQuestions:
    def test_choice_question(self, sample_cards):
        q = build_choice_question(sample_cards[2], sample_cards, SIDES, 2, rng=random.Random(5))
        assert q.type == CHOICE
        assert q.card_index == 2
        assert q.prompt_text == "buenos días"
        assert q.correct_answer == "good morning"
        assert q.difficulty == 2
        assert len(q.options) == 4
        assert q.options.count("good morning") == 1
        assert q.accepted_answers == []
        assert not q.is_follow_up
        assert q.parent_question_id is None

    def test_scenario_b_distractor_from_other_card(self):
        cards = [
            Card(0, {"side_a": "2+2", "side_b": "4"}),
            Card(1, {"side_a": "2+3", "side_b": "5"}),
        ]
        q = build_choice_question(cards[0], cards, SIDES, 0, rng=random.Random(0))
        assert "5" in q.options
        assert "4" in q.options
        assert len(q.options) == 4

    def test_options_shuffled(self, sample_cards):
        orders = {
            tuple(build_choice_question(sample_cards[0], sample_cards, SIDES, 0, rng=random.Random(seed)).options)
            for seed in range(20)
        }
        assert len(orders) > 1

    def test_free_response_question(self, sample_cards):
        q = build_free_response_question(sample_cards[4], SIDES, 4)
        assert q.type == FREE_RESPONSE
        assert q.correct_answer == "thank you"
        assert q.options == []
        assert "THANK YOU" in q.accepted_answers
        assert q.difficulty == 3

    def test_ids_unique(self, sample_cards):
        a = build_free_response_question(sample_cards[0], SIDES, 0)
        b = build_free_response_question(sample_cards[0], SIDES, 0)
        assert a.id != b.id


class TestPickQuestionType:
    def test_auto_is_seventy_thirty(self, scripted_rng):
        both = ["choice", "free_response"]
        assert pick_question_type(both, "auto", scripted_rng(0.69)) == CHOICE
        assert pick_question_type(both, "auto", scripted_rng(0.71)) == FREE_RESPONSE

    def test_mixed_is_even(self, scripted_rng):
        both = ["multiple_choice", "free_text"]
        assert pick_question_type(both, "mixed", scripted_rng(0.49)) == CHOICE
        assert pick_question_type(both, "mixed", scripted_rng(0.51)) == FREE_RESPONSE

    def test_forced_mix(self, scripted_rng):
        both = ["choice", "free_response"]
        assert pick_question_type(both, "free_text", scripted_rng(0.0)) == FREE_RESPONSE
        assert pick_question_type(both, "multiple_choice", scripted_rng(0.99)) == CHOICE

    def test_single_type_verbatim(self, scripted_rng):
        assert pick_question_type(["free_text"], "auto", scripted_rng(0.0)) == FREE_RESPONSE
        assert pick_question_type(["multiple_choice"], "auto", scripted_rng(0.99)) == CHOICE

    def test_no_known_types_falls_back_to_choice(self):
        assert pick_question_type(["essay"], "auto") == CHOICE

    def test_auto_distribution(self):
        rng = random.Random(1234)
        picks = [pick_question_type(["choice", "free_response"], "auto", rng) for _ in range(2000)]
        share = picks.count(CHOICE) / len(picks)
        assert 0.65 < share < 0.75


class TestShuffleQuestions:
    def _questions(self, make_question, levels):
        return [make_question(i, difficulty=level) for i, level in enumerate(levels)]

    def test_high_difficulty_keeps_sorted_order(self, make_question, scripted_rng):
        # swap probability 1 - 1.0 * 0.2 = 0.8; a draw of 0.85 never swaps
        questions = self._questions(make_question, [3, 1, 2])
        result = shuffle_questions(questions, 1.0, scripted_rng(0.85))
        assert [q.difficulty for q in result] == [1, 2, 3]

    def test_low_difficulty_shuffles(self, make_question, scripted_rng):
        # swap probability 1.0: every step swaps with slot 0
        questions = self._questions(make_question, [3, 1, 2])
        result = shuffle_questions(questions, 0.0, scripted_rng(0.85))
        assert [q.difficulty for q in result] == [2, 3, 1]

    def test_does_not_mutate_input(self, make_question):
        questions = self._questions(make_question, [2, 1])
        shuffle_questions(questions, 0.0, random.Random(1))
        assert [q.difficulty for q in questions] == [2, 1]


class TestGenerateRound:
    def _options(self, **kwargs):
        kwargs.setdefault("question_types", ("choice",))
        kwargs.setdefault("progressive_learning", "disabled")
        return GenerationOptions(**kwargs)

    def test_one_question_per_card(self, sample_cards):
        questions = generate_round(sample_cards, self._options(), rng=random.Random(7))
        assert len(questions) == len(sample_cards)
        assert sorted(q.card_index for q in questions) == [0, 1, 2, 3, 4]

    def test_choices_hold_answer_once(self, sample_cards):
        for seed in range(10):
            for q in generate_round(sample_cards, self._options(), rng=random.Random(seed)):
                assert len(q.options) == 4
                assert q.options.count(q.correct_answer) == 1

    def test_mixed_types_cover_every_card(self, sample_cards):
        options = self._options(question_types=("choice", "free_response"))
        questions = generate_round(sample_cards, options, rng=random.Random(99))
        assert len(questions) == 5
        for q in questions:
            assert 0 <= q.card_index < len(sample_cards)
            if q.type == FREE_RESPONSE:
                assert q.correct_answer in q.accepted_answers

    def test_excluded_cards_skipped(self, sample_cards):
        options = self._options(exclude_cards=frozenset({1, 3}))
        questions = generate_round(sample_cards, options, rng=random.Random(7))
        assert sorted(q.card_index for q in questions) == [0, 2, 4]

    def test_mastery_predicate_skips(self, sample_cards):
        questions = generate_round(
            sample_cards, self._options(), is_mastered=lambda c: c.idx == 0, rng=random.Random(7),
        )
        assert 0 not in {q.card_index for q in questions}
        assert len(questions) == 4

    def test_empty_cards(self):
        assert generate_round([], self._options()) == []

    def test_distractors_from_whole_deck(self, sample_cards):
        questions = generate_round(
            [sample_cards[0]], self._options(), all_cards=sample_cards, rng=random.Random(2),
        )
        assert len(questions) == 1
        deck_answers = {c.side("side_b") for c in sample_cards}
        assert set(questions[0].options) <= deck_answers

    def test_sorted_by_level_when_not_shuffled(self, sample_cards, scripted_rng):
        reversed_cards = list(reversed(sample_cards))
        questions = generate_round(
            reversed_cards, self._options(difficulty=1.0), rng=scripted_rng(0.9),
        )
        levels = [q.difficulty for q in questions]
        assert levels == sorted(levels)
