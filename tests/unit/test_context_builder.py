"""
Unit tests for PerformanceContextBuilder.

Tests:
- Default policy for learners with no history
- Level classification from volume and accuracy
- Adaptive difficulty rules and clamping
- Weak / mastered topic detection
- Streak helpers
- New / due concept selection and feedback hints
"""

from datetime import datetime, timedelta

import pytest

from src.core.errors import InvalidInput
from src.generation.context_builder import (
    PerformanceContextBuilder,
    _round_half_up,
    current_streak,
    longest_streak,
)
from src.generation.policy import ExerciseType, Level
from src.mastery.records import ExerciseResult, PerformanceTotals

T0 = datetime(2026, 1, 5, 12, 0, 0)


def results(outcomes, concept_id="el-pico"):
    """Build a newest-first history from a list of booleans (newest first)."""
    return [
        ExerciseResult("learner-1", concept_id, outcome, 1000, T0 - timedelta(minutes=i))
        for i, outcome in enumerate(outcomes)
    ]


def totals(total, correct):
    return PerformanceTotals(total_exercises=total, correct_answers=correct, avg_time_ms=1000.0)


@pytest.fixture
def builder(mastery_store, clock):
    return PerformanceContextBuilder(mastery_store, clock=clock)


class TestStreakHelpers:
    """Tests for streak helpers over newest-first history."""

    def test_current_streak_stops_at_first_miss(self):
        assert current_streak(results([True, True, False, True])) == 2

    def test_current_streak_empty(self):
        assert current_streak([]) == 0
        assert current_streak(results([False, True])) == 0

    def test_longest_streak(self):
        assert longest_streak(results([True, False, True, True, True, False, True])) == 3

    def test_round_half_up(self):
        assert _round_half_up(2.5) == 3
        assert _round_half_up(3.5) == 4
        assert _round_half_up(2.4) == 2


class TestCalculateLevel:
    """Tests for level classification."""

    @pytest.mark.parametrize(
        "total,correct,expected",
        [
            (5, 5, Level.BEGINNER),
            (19, 19, Level.BEGINNER),
            (40, 20, Level.BEGINNER),
            (20, 12, Level.INTERMEDIATE),
            (50, 50, Level.INTERMEDIATE),
            (51, 45, Level.ADVANCED),
            (100, 80, Level.INTERMEDIATE),
        ],
    )
    def test_levels(self, builder, total, correct, expected):
        assert builder.calculate_level(totals(total, correct)) == expected


class TestCalculateDifficulty:
    """Tests for adaptive difficulty."""

    def test_new_learner_starts_at_one(self, builder):
        assert builder.calculate_difficulty(results([True] * 5), totals(5, 5)) == 1

    def test_strong_learner_base_four(self, builder):
        history = results([True, True, False, True, True, True, True, True, False, True])
        assert builder.calculate_difficulty(history, totals(40, 36)) == 4

    def test_hot_streak_bumps_difficulty(self, builder):
        """Recent accuracy > 85% with a streak > 5 adds one level."""
        history = results([True] * 10)
        assert builder.calculate_difficulty(history, totals(40, 36)) == 5

    def test_hot_streak_clamped_at_max(self, builder):
        history = results([True] * 10)
        assert builder.calculate_difficulty(history, totals(100, 100)) == 5

    def test_struggling_learner_drops_a_level(self, builder):
        history = results([False, True, False, False, True, False, True, False, False, True])
        assert builder.calculate_difficulty(history, totals(40, 20)) == 1

    def test_intermediate_base(self, builder):
        history = results([True, True, False, True, True, False, True, True, False, True])
        assert builder.calculate_difficulty(history, totals(40, 30)) == 3

    def test_difficulty_within_bounds(self, builder):
        for outcomes in ([True] * 20, [False] * 20, [True, False] * 10):
            for total, correct in ((1, 0), (15, 15), (100, 10), (100, 99)):
                difficulty = builder.calculate_difficulty(results(outcomes), totals(total, correct))
                assert 1 <= difficulty <= 5


class TestTopics:
    """Tests for weak / mastered topic detection."""

    def test_weak_and_mastered(self, builder):
        history = (
            results([False, False, True], "el-ala")
            + results([True, True, True, True], "el-pico")
            + results([False, False], "la-cola")
        )
        stats = builder.analyze_topics(history)

        assert builder.weak_concepts(stats) == ["el-ala"]
        assert builder.mastered_concepts(stats) == ["el-pico"]

    def test_fewer_than_three_attempts_ignored(self, builder):
        stats = builder.analyze_topics(results([False, False], "la-cola"))

        assert builder.weak_concepts(stats) == []
        assert builder.mastered_concepts(stats) == []

    def test_topic_stats(self, builder):
        stats = builder.analyze_topics(results([True, False, True, True], "el-pico"))

        assert len(stats) == 1
        assert stats[0].accuracy == pytest.approx(0.75)
        assert stats[0].count == 4
        assert stats[0].last_seen == T0


class TestBuildContext:
    """Tests for the full policy build."""

    def test_no_history_gets_default_policy(self, builder, mastery_store):
        mastery_store.add_concepts(["c-%02d" % i for i in range(12)])

        policy = builder.build_context("learner-new")

        assert policy.level == Level.BEGINNER
        assert policy.difficulty == 1
        assert policy.exercise_type == ExerciseType.CONTEXTUAL_FILL
        assert policy.weak_concepts == []
        assert policy.mastered_concepts == []
        assert policy.new_concepts == ["c-%02d" % i for i in range(10)]
        assert policy.streak == 0

    def test_attempted_concepts_are_not_new(self, builder, scorer, mastery_store):
        mastery_store.add_concepts(["el-ala", "el-pico", "la-cola"])
        scorer.record_exposure("learner-1", "el-pico", True, 1000)

        policy = builder.build_context("learner-1")

        assert policy.new_concepts == ["el-ala", "la-cola"]

    def test_due_concepts(self, builder, scorer, clock):
        scorer.record_exposure("learner-1", "el-pico", False, 1000)
        assert builder.build_context("learner-1").due_concepts == []

        clock.advance(days=2)
        assert builder.build_context("learner-1").due_concepts == ["el-pico"]

    def test_history_feeds_policy(self, builder, scorer, clock):
        for outcome in [False, False, True, False]:
            scorer.record_exposure("learner-1", "el-ala", outcome, 1000)
            clock.advance(minutes=1)
        for _ in range(3):
            scorer.record_exposure("learner-1", "el-pico", True, 1000)
            clock.advance(minutes=1)

        policy = builder.build_context("learner-1", "multiple_choice")

        assert policy.exercise_type == ExerciseType.MULTIPLE_CHOICE
        assert policy.level == Level.BEGINNER
        assert policy.weak_concepts == ["el-ala"]
        assert policy.mastered_concepts == ["el-pico"]
        assert policy.streak == 3

    def test_hints_from_feedback(self, context_builder, feedback_learner, scorer):
        scorer.record_exposure("learner-1", "el-pico", False, 1000)
        scorer.record_exposure("learner-1", "el-pico", False, 1000)
        scorer.record_exposure("learner-1", "el-pico", False, 1000)
        feedback_learner.apply_rejection("el-pico", "incorrect-feature")
        feedback_learner.apply_rejection("el-pico", "incorrect-feature")

        policy = context_builder.build_context("learner-1")

        assert policy.weak_concepts == ["el-pico"]
        assert len(policy.hints) == 1
        assert policy.hints[0].startswith("el-pico: ")

    def test_unknown_exercise_type(self, builder):
        with pytest.raises(InvalidInput) as exc:
            builder.build_context("learner-1", "crossword")
        assert exc.value.field == "exercise_type"

    def test_empty_learner(self, builder):
        with pytest.raises(InvalidInput):
            builder.build_context("")
