"""
RefugeCare Triage - Symptom Classifier Tests

These tests verify:
- Symptom tag detection from free text
- Each triage rule in isolation, and the baseline fallback
- Red-flag escalation and its monotonicity
- Trauma screening is advisory and never changes the tier
- Classification is deterministic and never raises

Run with: pytest tests/test_classifier.py -v
"""

import pytest

from refugecare.core.classifier import (
    DEFAULT_ADVICE,
    REFUGEE_NOTE,
    TRAUMA_NOTE,
    TRIAGE_RULES,
    ClassifierContext,
    assess,
    classify,
    detect_red_flags,
    detect_symptoms,
    escalate,
    match_rule,
    screen_trauma,
)
from refugecare.core.types import UrgencyTier


# =============================================================================
# Detection
# =============================================================================

class TestSymptomDetection:
    """Tests for text -> tag mapping."""

    def test_mild_headache(self):
        """A mild headache should produce only the headache tag."""
        assert detect_symptoms("I have a mild headache") == frozenset({"headache"})

    def test_emergency_phrase(self):
        """Chest pain with breathing trouble should produce both tags."""
        tags = detect_symptoms("severe chest pain and difficulty breathing")
        assert {"chest_pain", "breathing"} <= tags

    def test_case_insensitive(self):
        """Detection should ignore case."""
        assert detect_symptoms("FEVER and COUGH") == frozenset({"fever", "cough"})

    def test_word_boundaries(self):
        """Tags should not fire on substrings of unrelated words."""
        assert "sleep" not in detect_symptoms("the sheep are fine")
        assert "mood" not in detect_symptoms("moodle course")

    @pytest.mark.parametrize("text", ["", "   ", None, 42, "the weather is nice today"])
    def test_no_symptoms(self, text):
        """Empty, non-string and symptom-free inputs should yield no tags."""
        assert detect_symptoms(text) == frozenset()


# =============================================================================
# Rules
# =============================================================================

class TestRules:
    """Tests for the rule table and the baseline fallback."""

    @pytest.mark.parametrize("rule", TRIAGE_RULES, ids=lambda r: r.id)
    def test_each_rule_matches_its_required_tags(self, rule):
        """Every rule should decide the tier for exactly its required tags."""
        assert match_rule(rule.required) is rule
        assert classify(rule.required) == rule.tier

    def test_rules_ordered_most_severe_first(self):
        """Rule tiers should never increase down the table."""
        ranks = [rule.tier.rank for rule in TRIAGE_RULES]
        assert ranks == sorted(ranks, reverse=True)

    def test_first_match_wins(self):
        """A superset of several rules should take the earliest one."""
        rule = match_rule({"fever", "headache", "breathing", "chest_pain"})
        assert rule.id == "emergency-breathing"

    @pytest.mark.parametrize("alone, with_headache", [
        ({"bleeding"}, {"bleeding", "headache"}),
        ({"breathing"}, {"breathing", "headache"}),
    ])
    def test_matching_rule_shadows_higher_baseline(self, alone, with_headache):
        """A matching rule decides even when a tag's own baseline is higher."""
        assert classify(alone) == UrgencyTier.HIGH
        assert match_rule(with_headache).id == "mild-symptoms"
        assert classify(with_headache) == UrgencyTier.LOW

    @pytest.mark.parametrize("tags, expected", [
        (set(), UrgencyTier.LOW),
        ({"cough"}, UrgencyTier.LOW),
        ({"fever"}, UrgencyTier.MEDIUM),
        ({"fever", "cough"}, UrgencyTier.MEDIUM),
        ({"breathing"}, UrgencyTier.HIGH),
        ({"unknown_tag"}, UrgencyTier.LOW),
    ])
    def test_baseline_fallback(self, tags, expected):
        """Without a rule, the highest tag baseline should decide."""
        assert classify(tags) == expected

    def test_context_does_not_change_tier(self):
        """Classifier context is advisory only."""
        tags = {"fever", "headache"}
        plain = classify(tags)
        assert classify(tags, ClassifierContext(is_refugee=False, trauma_suspected=True)) == plain


# =============================================================================
# Red Flags
# =============================================================================

class TestRedFlags:
    """Tests for red-flag detection and escalation."""

    def test_detects_flags_in_table_order(self):
        """Red flags should be reported in table order."""
        flags = detect_red_flags("severe chest pain and difficulty breathing")
        assert flags == ["difficulty breathing", "chest pain", "severe"]

    def test_escalates_to_high(self):
        """Any red flag should lift a lower tier to HIGH."""
        assert escalate(UrgencyTier.LOW, ["severe"]) == UrgencyTier.HIGH
        assert escalate(UrgencyTier.MEDIUM, ["seizure"]) == UrgencyTier.HIGH

    def test_never_lowers(self):
        """Escalation should never lower an emergency."""
        assert escalate(UrgencyTier.EMERGENCY, ["severe"]) == UrgencyTier.EMERGENCY

    def test_no_flags_no_change(self):
        """Without red flags the tier should be unchanged."""
        assert escalate(UrgencyTier.LOW, []) == UrgencyTier.LOW

    @pytest.mark.parametrize("text", [
        "",
        "I have a mild headache",
        "fever and headache since yesterday",
        "stomach pain and nausea",
        "I cannot sleep and feel anxious",
        "chest pain and I can't breathe",
    ])
    def test_adding_red_flag_never_lowers_tier(self, text):
        """Appending a red-flag phrase should never reduce the tier."""
        before = assess(text).tier
        after = assess(text + " it is severe").tier
        assert after.rank >= before.rank
        assert after.rank >= UrgencyTier.HIGH.rank


# =============================================================================
# Full Assessment
# =============================================================================

class TestAssess:
    """Tests for the end-to-end classifier pass."""

    def test_mild_headache(self):
        """Mild headache should be LOW via the mild-symptoms rule."""
        result = assess("I have a mild headache")
        assert result.tier == UrgencyTier.LOW
        assert result.rule_id == "mild-symptoms"
        assert result.red_flags == ()
        assert result.advice.startswith("Common symptom")

    def test_emergency_case(self):
        """Chest pain with difficulty breathing should be an EMERGENCY."""
        result = assess("severe chest pain and difficulty breathing")
        assert result.tier == UrgencyTier.EMERGENCY
        assert result.rule_id == "emergency-breathing"
        assert "chest pain" in result.red_flags
        assert result.recommended_actions[0] == "Call emergency services immediately"

    def test_escalated_tier_uses_default_advice(self):
        """When red flags lift the tier past the rule, default advice should apply."""
        result = assess("I feel severe fatigue")
        assert result.tier == UrgencyTier.HIGH
        advice, actions = DEFAULT_ADVICE[UrgencyTier.HIGH]
        assert result.advice == advice
        assert result.recommended_actions == actions

    def test_deterministic(self):
        """The same text should always classify the same way."""
        text = "fever, cough and shortness of breath"
        assert assess(text) == assess(text)

    def test_refugee_note_toggle(self):
        """The refugee note should follow the is_refugee flag."""
        assert REFUGEE_NOTE in assess("headache").notes
        assert REFUGEE_NOTE not in assess("headache", ClassifierContext(is_refugee=False)).notes

    @pytest.mark.parametrize("text", [None, "", 3.5, "🙂🙂🙂"])
    def test_never_raises(self, text):
        """Garbage input should classify as LOW with no tags."""
        result = assess(text)
        assert result.tier == UrgencyTier.LOW
        assert result.tags == frozenset()


# =============================================================================
# Trauma Screening
# =============================================================================

class TestTraumaScreening:

    @pytest.mark.parametrize("text", [
        "We had to flee the war",
        "there were explosions every night",
        "I keep having nightmares",
        "we fled after the bombing",
    ])
    def test_positive(self, text):
        """Trauma keywords and their inflections should be detected."""
        assert screen_trauma(text)

    @pytest.mark.parametrize("text", ["I feel warm", "my stomach hurts", "software update"])
    def test_negative(self, text):
        """Words merely containing a keyword should not trigger screening."""
        assert not screen_trauma(text)

    def test_trauma_is_advisory(self):
        """Trauma should add a note but leave the tier alone."""
        plain = assess("mild headache")
        traumatic = assess("mild headache since we fled the bombing")
        assert traumatic.trauma_suspected
        assert TRAUMA_NOTE in traumatic.notes
        assert traumatic.tier == plain.tier == UrgencyTier.LOW

    def test_context_flag_marks_trauma(self):
        """A reported trauma history should set trauma_suspected."""
        result = assess("headache", ClassifierContext(trauma_suspected=True))
        assert result.trauma_suspected
