"""
Unit tests for MasteryScorer.

Tests:
- Counter invariant (correct + incorrect == exposures)
- Score formula (accuracy, recency bonus, streak multiplier)
- Confidence tier step function
- Signed outcome streak
- Input validation
- Per-key serialization under concurrent exposures
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from src.core.errors import InvalidInput
from src.mastery.records import MasteryRecord
from src.mastery.scorer import MasteryScorer, confidence_tier


class TestConfidenceTier:
    """Tests for the tier step function."""

    @pytest.mark.parametrize(
        "score,tier",
        [(0.0, 1), (0.2499, 1), (0.25, 2), (0.4999, 2), (0.5, 3), (0.7499, 3), (0.75, 4), (0.8999, 4), (0.9, 5), (1.0, 5)],
    )
    def test_boundaries(self, score, tier):
        assert confidence_tier(score) == tier

    def test_monotonic(self):
        scores = [i / 1000 for i in range(0, 1001)]
        tiers = [confidence_tier(s) for s in scores]

        assert all(a <= b for a, b in zip(tiers, tiers[1:]))


class TestRecordExposure:
    """Tests for the exposure write path."""

    def test_first_exposure_creates_record(self, scorer, mastery_store):
        assert mastery_store.get("learner-1", "el-pico") is None

        record = scorer.record_exposure("learner-1", "el-pico", True, 2000)

        assert record.exposure_count == 1
        assert record.correct_count == 1
        assert record.incorrect_count == 0
        assert mastery_store.get("learner-1", "el-pico") == record

    def test_exposure_sequence_counts_and_streak(self, scorer):
        """[correct, correct, correct, incorrect, correct] -> 5 / 4 / 1, streak 1."""
        record = None
        for outcome in [True, True, True, False, True]:
            record = scorer.record_exposure("learner-1", "concept-x", outcome, 1500)

        assert record.exposure_count == 5
        assert record.correct_count == 4
        assert record.incorrect_count == 1
        assert record.last_outcome_streak == 1

    def test_counter_invariant_holds_after_every_call(self, scorer):
        outcomes = [True, False, False, True, True, True, False, True, False, False, True]
        for outcome in outcomes:
            record = scorer.record_exposure("learner-1", "las-alas", outcome, 900)

            assert record.correct_count + record.incorrect_count == record.exposure_count
            assert 0.0 <= record.mastery_score <= 1.0
            assert record.confidence_tier == confidence_tier(record.mastery_score)

    def test_incorrect_run_is_negative(self, scorer):
        scorer.record_exposure("learner-1", "la-cola", True, 800)
        record = scorer.record_exposure("learner-1", "la-cola", False, 800)
        assert record.last_outcome_streak == -1

        record = scorer.record_exposure("learner-1", "la-cola", False, 800)
        assert record.last_outcome_streak == -2

    def test_response_time_aggregates(self, scorer):
        for ms in [3000, 1000, 2000]:
            record = scorer.record_exposure("learner-1", "el-pico", True, ms)

        assert record.avg_response_time_ms == pytest.approx(2000.0)
        assert record.fastest_response_time_ms == 1000

    def test_next_review_always_set(self, scorer, clock):
        record = scorer.record_exposure("learner-1", "el-pico", False, 1000)

        assert record.next_review_at == clock.now + timedelta(days=1)

    def test_timestamps(self, scorer, clock):
        first = clock.now
        scorer.record_exposure("learner-1", "el-pico", True, 1000)
        clock.advance(hours=3)
        record = scorer.record_exposure("learner-1", "el-pico", False, 1000)

        assert record.first_seen_at == first
        assert record.last_seen_at == clock.now
        assert record.last_correct_at == first

    def test_results_are_appended(self, scorer, mastery_store):
        scorer.record_exposure("learner-1", "el-pico", True, 1000)
        scorer.record_exposure("learner-1", "el-pico", False, 1200)

        history = mastery_store.recent_results("learner-1", 10)
        assert [r.is_correct for r in history] == [False, True]

    def test_concurrent_exposures_are_not_lost(self, scorer, mastery_store):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: scorer.record_exposure("learner-1", "el-pico", i % 2 == 0, 500), range(40)))

        record = mastery_store.get("learner-1", "el-pico")
        assert record.exposure_count == 40
        assert record.correct_count == 20
        assert record.incorrect_count == 20

    def test_per_key_locks_released(self, scorer):
        """Locks for distinct learners do not accumulate."""
        for i in range(50):
            scorer.record_exposure(f"learner-{i}", "el-pico", True, 500)

        assert len(scorer._locks) == 0


class TestScoreFormula:
    """Tests for the mastery score components."""

    def test_all_wrong_scores_zero(self, scorer):
        record = scorer.record_exposure("learner-1", "el-pico", False, 1000)

        assert record.mastery_score == 0.0
        assert record.confidence_tier == 1

    def test_single_correct_answer(self, scorer):
        """accuracy 1.0 * 0.7 + fresh recency 0.2, no streak bonus yet."""
        record = scorer.record_exposure("learner-1", "el-pico", True, 1000)

        assert record.mastery_score == pytest.approx(0.9)

    def test_streak_multiplier_applies_at_threshold(self, scorer):
        scorer.record_exposure("learner-1", "el-pico", True, 1000)
        record = scorer.record_exposure("learner-1", "el-pico", True, 1000)
        assert record.mastery_score == pytest.approx(0.9)

        record = scorer.record_exposure("learner-1", "el-pico", True, 1000)
        # (0.7 + 0.2) * 1.15 > 1, clamped
        assert record.mastery_score == 1.0
        assert record.confidence_tier == 5

    def test_configurable_streak_threshold(self, mastery_store, scheduler, clock):
        scorer = MasteryScorer(mastery_store, scheduler, streak_threshold=2, clock=clock)
        scorer.record_exposure("learner-1", "el-pico", False, 1000)
        scorer.record_exposure("learner-1", "el-pico", True, 1000)
        record = scorer.record_exposure("learner-1", "el-pico", True, 1000)

        # accuracy 2/3 -> (0.4667 + 0.2) * 1.15
        assert record.mastery_score == pytest.approx((2 / 3 * 0.7 + 0.2) * 1.15)

    def test_recency_bonus_decays(self, scorer, clock):
        now = clock.now

        assert scorer.recency_bonus(None, now) == 0.0
        assert scorer.recency_bonus(now, now) == pytest.approx(0.2)
        assert scorer.recency_bonus(now - timedelta(days=1), now) == pytest.approx(0.2 - 1 / 7)
        assert scorer.recency_bonus(now - timedelta(days=2), now) == 0.0
        assert scorer.recency_bonus(now - timedelta(days=30), now) == 0.0

    def test_stale_correct_answer_loses_bonus(self, scorer, clock):
        scorer.record_exposure("learner-1", "el-pico", True, 1000)
        clock.advance(days=3)
        record = scorer.record_exposure("learner-1", "el-pico", False, 1000)

        # accuracy 0.5 * 0.7, recency gone
        assert record.mastery_score == pytest.approx(0.35)
        assert record.confidence_tier == 2

    def test_score_of_unseen_record_is_zero(self, scorer):
        assert scorer.score(MasteryRecord("learner-1", "el-pico")) == 0.0


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.parametrize("learner_id", ["", "   "])
    def test_empty_learner(self, scorer, learner_id):
        with pytest.raises(InvalidInput) as exc:
            scorer.record_exposure(learner_id, "el-pico", True, 1000)
        assert exc.value.field == "learner_id"

    def test_empty_concept(self, scorer):
        with pytest.raises(InvalidInput) as exc:
            scorer.record_exposure("learner-1", "", True, 1000)
        assert exc.value.field == "concept_id"

    def test_negative_response_time(self, scorer, mastery_store):
        with pytest.raises(InvalidInput):
            scorer.record_exposure("learner-1", "el-pico", True, -1)
        assert mastery_store.get("learner-1", "el-pico") is None

    def test_invalid_streak_threshold(self, mastery_store):
        with pytest.raises(InvalidInput):
            MasteryScorer(mastery_store, streak_threshold=0)
