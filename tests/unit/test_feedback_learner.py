"""
Unit tests for feedback learning.

Tests:
- Rejection category parsing and note categorization
- Confidence penalty / boost with floor and cap
- Enhancement hints (threshold, ranking, cap)
- Initial confidence from mastery records
- Rebuilding patterns from stored events
- Rejection summaries
"""

import pytest

from src.core.errors import InvalidInput
from src.feedback.categories import RejectionCategory, categorize_note
from src.feedback.learner import FeedbackLearner


class TestRejectionCategory:
    """Tests for category parsing."""

    @pytest.mark.parametrize("value", ["incorrect-feature", "incorrect_feature", "INCORRECT_FEATURE", " Incorrect-Feature "])
    def test_parse_variants(self, value):
        assert RejectionCategory.parse(value) == RejectionCategory.INCORRECT_FEATURE

    def test_parse_unknown(self):
        with pytest.raises(InvalidInput) as exc:
            RejectionCategory.parse("ambiguous")
        assert exc.value.field == "category"


class TestCategorizeNote:
    """Tests for free-text note categorization."""

    @pytest.mark.parametrize(
        "note,expected",
        [
            ("[DUPLICATE] same sentence as yesterday", RejectionCategory.DUPLICATE),
            ("[incorrect_match] pico is not wing", RejectionCategory.INCORRECT_MATCH),
            ("Wrong translation for la cola", RejectionCategory.INCORRECT_MATCH),
            ("Describes the wrong body part", RejectionCategory.INCORRECT_FEATURE),
            ("Bounding box position is off", RejectionCategory.POOR_LOCALIZATION),
            ("The bird is not present in the picture", RejectionCategory.FALSE_POSITIVE),
            ("Repeated distractors", RejectionCategory.DUPLICATE),
            ("Sentence has a typo", RejectionCategory.LOW_QUALITY),
            ("Just did not like it", RejectionCategory.OTHER),
            ("[NONSENSE] tag", RejectionCategory.OTHER),
            ("", RejectionCategory.OTHER),
            (None, RejectionCategory.OTHER),
        ],
    )
    def test_categories(self, note, expected):
        assert categorize_note(note) == expected


class TestConfidence:
    """Tests for confidence updates."""

    def test_default_initial_confidence(self, feedback_learner):
        assert feedback_learner.confidence("el-pico") == pytest.approx(0.8)

    def test_rejection_lowers_confidence(self, feedback_learner):
        pattern = feedback_learner.apply_rejection("el-pico", "incorrect-feature")

        assert pattern.average_confidence == pytest.approx(0.7)
        assert pattern.rejection_counts == {"incorrect-feature": 1}

    def test_confidence_floor(self, feedback_learner):
        for _ in range(10):
            pattern = feedback_learner.apply_rejection("el-pico", "low-quality")

        assert pattern.average_confidence == pytest.approx(0.3)
        assert pattern.total_rejections == 10

    def test_approval_capped_at_one(self, feedback_learner):
        for _ in range(10):
            pattern = feedback_learner.apply_approval("el-pico", reviewer_id="rev-1")

        assert pattern.average_confidence == 1.0
        assert pattern.approval_count == 10

    def test_concept_locks_released(self, feedback_learner):
        for i in range(20):
            feedback_learner.apply_rejection(f"concept-{i}", "duplicate")
            feedback_learner.apply_approval(f"concept-{i}")

        assert len(feedback_learner._locks) == 0

    def test_category_inferred_from_note(self, feedback_learner):
        pattern = feedback_learner.apply_rejection("el-pico", note="duplicate of item 4")

        assert pattern.rejection_counts == {"duplicate": 1}

    def test_no_category_no_note_is_other(self, feedback_learner):
        pattern = feedback_learner.apply_rejection("el-pico")

        assert pattern.rejection_counts == {"other": 1}

    def test_invalid_concept(self, feedback_learner):
        with pytest.raises(InvalidInput):
            feedback_learner.apply_rejection("  ", "duplicate")
        with pytest.raises(InvalidInput):
            feedback_learner.apply_approval("")

    def test_invalid_category_not_persisted(self, feedback_learner, feedback_store):
        with pytest.raises(InvalidInput):
            feedback_learner.apply_rejection("el-pico", "ambiguous")

        assert feedback_store.events("el-pico") == []

    def test_invalid_confidence_config(self, feedback_store):
        with pytest.raises(InvalidInput):
            FeedbackLearner(feedback_store, initial_confidence=0.2, confidence_floor=0.3)


class TestInitialConfidenceFromMastery:
    """Initial confidence comes from the concept's mean mastery, clamped."""

    def test_high_mastery_clamped(self, feedback_learner, scorer):
        scorer.record_exposure("learner-1", "el-pico", True, 1000)

        assert feedback_learner.confidence("el-pico") == pytest.approx(0.85)

    def test_low_mastery_clamped(self, feedback_learner, scorer):
        scorer.record_exposure("learner-1", "el-pico", False, 1000)

        assert feedback_learner.confidence("el-pico") == pytest.approx(0.5)

    def test_mean_across_learners(self, feedback_learner, scorer):
        scorer.record_exposure("learner-1", "el-pico", True, 1000)  # 0.9
        scorer.record_exposure("learner-2", "el-pico", True, 1000)
        scorer.record_exposure("learner-2", "el-pico", False, 1000)  # 0.55
        scorer.record_exposure("learner-3", "el-pico", True, 1000)
        scorer.record_exposure("learner-3", "el-pico", False, 1000)  # 0.55

        assert feedback_learner.confidence("el-pico") == pytest.approx((0.9 + 0.55 + 0.55) / 3)


class TestEnhancementHints:
    """Tests for prompt-shaping hints."""

    def test_three_rejections_single_hint(self, feedback_learner):
        for _ in range(3):
            feedback_learner.apply_rejection("concept-y", "incorrect-feature")

        hints = feedback_learner.enhancement_hints("concept-y")

        assert len(hints) == 1
        assert '"incorrect-feature"' in hints[0]
        assert "(3x)" in hints[0]

    def test_single_rejection_gives_no_hint(self, feedback_learner):
        feedback_learner.apply_rejection("concept-z", "incorrect-feature")
        feedback_learner.apply_rejection("concept-z", "duplicate")
        feedback_learner.apply_rejection("concept-z", "low-quality")

        assert feedback_learner.enhancement_hints("concept-z") == []

    def test_unknown_concept_has_no_hints(self, feedback_learner):
        assert feedback_learner.enhancement_hints("never-seen") == []

    def test_ranked_by_count_and_capped(self, feedback_learner):
        counts = {"duplicate": 2, "low-quality": 4, "incorrect-match": 3, "false-positive": 2}
        for category, count in counts.items():
            for _ in range(count):
                feedback_learner.apply_rejection("el-pico", category)

        hints = feedback_learner.enhancement_hints("el-pico")

        assert len(hints) == 3
        assert hints[0].startswith('"low-quality" (4x)')
        assert hints[1].startswith('"incorrect-match" (3x)')
        # tie on count 2 broken by category name
        assert hints[2].startswith('"duplicate" (2x)')

    def test_hints_for_prefixes_concept(self, feedback_learner):
        for concept_id in ("la-cola", "el-ala"):
            feedback_learner.apply_rejection(concept_id, "duplicate")
            feedback_learner.apply_rejection(concept_id, "duplicate")

        hints = feedback_learner.hints_for(["la-cola", "el-ala", "el-pico"])

        assert [hint.split(":", 1)[0] for hint in hints] == ["el-ala", "la-cola"]


class TestRebuild:
    """Patterns are derivable from stored events."""

    def test_rebuild_matches_live_patterns(self, feedback_learner, feedback_store, mastery_store, clock):
        feedback_learner.apply_rejection("el-pico", "duplicate")
        clock.advance(minutes=1)
        feedback_learner.apply_approval("el-pico")
        clock.advance(minutes=1)
        feedback_learner.apply_rejection("el-pico", "duplicate")
        feedback_learner.apply_rejection("la-cola", "low-quality")
        live = {cid: feedback_learner.pattern(cid).to_dict() for cid in ("el-pico", "la-cola")}

        fresh = FeedbackLearner(feedback_store, mastery_store, clock=clock)
        assert fresh.rebuild() == 2

        assert {cid: fresh.pattern(cid).to_dict() for cid in ("el-pico", "la-cola")} == live

    def test_read_through_load(self, feedback_learner, feedback_store, mastery_store, clock):
        feedback_learner.apply_rejection("el-pico", "duplicate")
        feedback_learner.apply_rejection("el-pico", "duplicate")

        fresh = FeedbackLearner(feedback_store, mastery_store, clock=clock)

        assert fresh.confidence("el-pico") == pytest.approx(0.6)
        assert len(fresh.enhancement_hints("el-pico")) == 1

    def test_rebuild_empty_store(self, feedback_learner):
        assert feedback_learner.rebuild() == 0


class TestRejectionSummary:
    """Tests for rejection summaries."""

    def test_summary_grouped_and_sorted(self, feedback_learner, clock):
        feedback_learner.apply_rejection("el-pico", "duplicate")
        feedback_learner.apply_rejection("la-cola", "low-quality")
        feedback_learner.apply_rejection("la-cola", "low-quality")

        summary = feedback_learner.rejection_summary()

        assert [(row["concept_id"], row["category"], row["count"]) for row in summary] == [
            ("la-cola", "low-quality", 2),
            ("el-pico", "duplicate", 1),
        ]
        assert summary[0]["last_rejected_at"] == clock.now.isoformat()

    def test_summary_for_concept(self, feedback_learner):
        feedback_learner.apply_rejection("el-pico", "duplicate")
        feedback_learner.apply_rejection("la-cola", "low-quality")

        summary = feedback_learner.rejection_summary("el-pico")

        assert len(summary) == 1
        assert summary[0]["category"] == "duplicate"
