"""
Unit tests for the four-gate QC pipeline.

Tests cover:
1. Safety gate (binary score, forbidden words/themes, tone)
2. Typography validator (line length / lines / plan checks, auto-fix)
3. Consistency validator (anchor match, scene Jaccard, color drift, signature)
4. Video scorer and QCRunner short-circuit
"""
import sys
import os

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.consistency_validator import ConsistencyValidator, compute_consistency_signature
from agents.qc_runner import NOT_EVALUATED, QCRunner
from agents.safety_gate import SafetyGate
from agents.style_bible import apply_style_to_prompt, build_style_bible
from agents.typography_validator import (
    TypographyValidator,
    auto_fix_typography,
    contrast_ratio,
    subtitle_lines,
)
from agents.video_scorer import VideoScorer
from schemas import Language, QCRules, QCStatus, TypographyPlan
from conftest import make_script


@pytest.fixture
def bible(book_facts):
    return build_style_bible(book_facts)


@pytest.fixture
def styled_scripts(bible):
    return [
        make_script(
            n,
            keyframe_prompt=apply_style_to_prompt(f"the fox in the forest, moment {n}", bible),
            video_prompt=apply_style_to_prompt("slow camera push in", bible, include_protagonist=False),
        )
        for n in (1, 2, 3)
    ]


# ==========================================================================
# Test 1: Safety Gate
# ==========================================================================

class TestSafetyGate:

    def test_clean_scripts_pass(self, scripts):
        result = SafetyGate().check(scripts)
        assert result.status == QCStatus.PASS
        assert result.score == 1.0
        assert result.violations == []

    def test_forbidden_word_fails_with_zero_score(self, scripts):
        scripts[1] = make_script(2, narration="귀신이 나타났어요. 친구와 모험해요.")
        result = SafetyGate().check(scripts)
        assert result.status == QCStatus.FAIL
        assert result.score == 0.0
        assert "귀신" in result.forbidden_words_found
        assert any("Scene 2" in v for v in result.violations)

    def test_prompts_are_scanned(self, scripts):
        scripts[0] = make_script(1, keyframe_prompt="a zombie in the garden")
        result = SafetyGate().check(scripts)
        assert result.status == QCStatus.FAIL
        assert "zombie" in result.forbidden_words_found

    def test_low_tone_fails(self):
        flat = [make_script(n, narration="책을 읽어요.", visual_description="A fox in a room") for n in (1, 2, 3)]
        result = SafetyGate().check(flat)
        assert result.tone_score == pytest.approx(0.5)
        assert result.status == QCStatus.FAIL
        assert any("Tone score too low" in v for v in result.violations)

    @pytest.mark.parametrize("narration", [
        "친구와 함께 모험을 떠나요.",
        "무서운 밤이에요.",
        "슬픈 하루예요.",
        "행복한 웃음이 가득해요.",
    ])
    def test_score_is_binary(self, narration):
        result = SafetyGate().check([make_script(1, narration=narration)])
        assert result.score in (0.0, 1.0)

    def test_extra_constraints(self, scripts):
        gate = SafetyGate()
        constraints = {**gate.default_constraints(), "forbidden_words": ["모험"]}
        result = gate.check(scripts, constraints)
        assert result.status == QCStatus.FAIL
        assert "모험" in result.forbidden_words_found

    def test_strengthen_constraints_returns_new_dict(self):
        gate = SafetyGate()
        base = gate.default_constraints()
        stronger = gate.strengthen_constraints(base, retry_count=1)
        assert stronger["required_tone"].startswith("EXTREMELY")
        assert "anything remotely scary" in stronger["forbidden_themes"]
        assert "anything remotely scary" not in base["forbidden_themes"]

    def test_is_text_safe_for_children(self):
        gate = SafetyGate()
        assert gate.is_text_safe_for_children("A happy fox plays with friends")
        assert not gate.is_text_safe_for_children("A scary ghost appears")


# ==========================================================================
# Test 2: Typography Validator
# ==========================================================================

class TestTypography:

    def test_short_subtitles_pass(self, scripts):
        result = TypographyValidator().validate(scripts, TypographyPlan(), Language.KO)
        assert result.status == QCStatus.PASS
        assert result.score == 1.0
        assert all(result.checks.values())
        assert all(d.message == "" for d in result.details)

    def test_long_line_reports_scene_and_limit(self, scripts):
        """Scenario E: 120 characters against the 40 chars/line limit."""
        scripts[1] = make_script(2, narration="가" * 120)
        result = TypographyValidator().validate(scripts, TypographyPlan(), Language.KO)
        assert result.status == QCStatus.FAIL
        assert result.checks["subtitleLength"] is False
        message = next(v for v in result.violations if "too long" in v)
        assert "Scene 2" in message
        assert "40" in message
        assert result.score == pytest.approx(14 / 15)

    def test_english_limit_is_50(self):
        script = make_script(1, narration="a" * 45)
        assert TypographyValidator().validate([script], TypographyPlan(), Language.EN).status == QCStatus.PASS
        assert TypographyValidator().validate([script], TypographyPlan(), Language.KO).status == QCStatus.FAIL

    def test_too_many_lines(self):
        script = make_script(1, narration="하나\n둘\n셋")
        result = TypographyValidator().validate([script], TypographyPlan(), Language.KO)
        assert result.checks["subtitleLength"] is False
        assert any("Too many subtitle lines" in v for v in result.violations)

    def test_plan_level_checks(self, scripts):
        plan = TypographyPlan(font_size=18, text_color="#777777", outline_color="#888888")
        result = TypographyValidator().validate(scripts, plan, Language.KO)
        assert result.checks["fontSizeCompliance"] is False
        assert result.checks["contrastRatio"] is False
        assert result.checks["subtitlePosition"] is True

    def test_contrast_ratio(self):
        assert contrast_ratio("#FFFFFF", "#000000") == pytest.approx(21.0)
        assert contrast_ratio("#fff", "#fff") == pytest.approx(1.0)

    def test_auto_fix_truncates_to_limit(self):
        fixed = auto_fix_typography([make_script(2, narration="가" * 120 + "\n둘\n셋")])
        lines = subtitle_lines(fixed[0].narration)
        assert len(lines) == 2
        assert lines[0] == "가" * 37 + "..."
        result = TypographyValidator().validate(fixed, TypographyPlan(), Language.KO)
        assert result.status == QCStatus.PASS

    def test_auto_fix_keeps_valid_scripts(self, scripts):
        fixed = auto_fix_typography(scripts)
        assert [s.narration for s in fixed] == [s.narration for s in scripts]


# ==========================================================================
# Test 3: Consistency Validator
# ==========================================================================

class TestConsistency:

    def test_styled_scripts_pass(self, styled_scripts, bible):
        result = ConsistencyValidator().validate(styled_scripts, bible)
        assert result.status == QCStatus.PASS
        assert result.anchor_match == pytest.approx(1.0)
        assert result.scene_consistency == pytest.approx(1.0)
        assert result.color_drift == pytest.approx(0.0)
        assert result.style_signature_match

    def test_unstyled_scripts_fail(self, scripts, bible):
        result = ConsistencyValidator().validate(scripts, bible)
        assert result.status == QCStatus.FAIL
        assert result.anchor_match == 0.0
        assert not result.style_signature_match
        assert 0.0 <= result.score <= 1.0

    def test_color_drift(self, styled_scripts, bible):
        drifted = [
            s.model_copy(update={"visual_description": "purple, red, black and orange clouds"})
            for s in styled_scripts
        ]
        validator = ConsistencyValidator()
        drift = validator.color_drift(drifted, bible)
        assert drift > 0.2
        result = validator.validate(drifted, bible)
        assert result.status == QCStatus.FAIL
        assert any("drift" in v for v in result.violations)

    def test_scene_jaccard(self):
        validator = ConsistencyValidator()
        a = make_script(1, visual_description="cute cartoon fox")
        b = make_script(2, visual_description="vibrant smooth river")
        assert validator.scene_consistency([a, b]) == 0.0
        assert validator.scene_consistency([a]) == 1.0
        c = make_script(2, visual_description="a cute cartoon river")
        assert validator.scene_consistency([a, c]) == 1.0

    def test_score_bounds(self, scripts, styled_scripts, bible):
        validator = ConsistencyValidator()
        for batch in (scripts, styled_scripts, scripts[:1], styled_scripts[1:]):
            result = validator.validate(batch, bible)
            assert 0.0 <= result.score <= 1.0
            assert 0.0 <= result.anchor_match <= 1.0
            assert 0.0 <= result.scene_consistency <= 1.0

    def test_signature_is_deterministic(self, styled_scripts):
        assert compute_consistency_signature(styled_scripts) == compute_consistency_signature(
            list(reversed(styled_scripts))
        )
        changed = [styled_scripts[0].model_copy(update={"visual_description": "other"}), *styled_scripts[1:]]
        assert compute_consistency_signature(changed) != compute_consistency_signature(styled_scripts)


# ==========================================================================
# Test 4: Scoring and QCRunner
# ==========================================================================

class TestScoringAndRunner:

    def test_full_pass(self, styled_scripts, bible):
        report = QCRunner(QCRules()).run("job_1", styled_scripts, bible, Language.KO)
        assert report.overall == QCStatus.PASS
        assert report.overall_score == pytest.approx(1.0)
        assert report.scoring.component_scores["technical"] == 1.0

    def test_safety_short_circuit(self, styled_scripts, bible):
        """Scenario B: forbidden keyword → remaining gates not evaluated."""
        styled_scripts[0] = styled_scripts[0].model_copy(update={"narration": "무서운 괴물이 나타나요"})
        report = QCRunner().run("job_1", styled_scripts, bible)
        assert report.safety.status == QCStatus.FAIL
        assert report.safety.score == 0.0
        assert report.overall == QCStatus.FAIL
        assert report.typography.evaluated is False
        assert report.consistency.evaluated is False
        assert report.typography.violations == [NOT_EVALUATED]
        assert report.consistency.violations == [NOT_EVALUATED]

    def test_failing_gate_forces_fail_even_above_threshold(self, styled_scripts, bible):
        styled_scripts[1] = styled_scripts[1].model_copy(update={"narration": "가" * 120})
        report = QCRunner().run("job_1", styled_scripts, bible)
        assert report.scoring.passed_threshold
        assert report.overall == QCStatus.FAIL

    def test_technical_score(self):
        scorer = VideoScorer()
        assert scorer.technical_score(None) == 1.0
        good = {"width": 1280, "height": 720, "duration_sec": 24.0, "fps": 24}
        assert scorer.technical_score(good) == 1.0
        assert scorer.technical_score({**good, "fps": 12}) == pytest.approx(2 / 3)

    def test_should_retry_policy(self, styled_scripts, bible):
        runner = QCRunner()
        broken = [s.model_copy(update={"narration": "가" * 120 + "\n둘\n셋"}) for s in styled_scripts]
        report = runner.run("job_1", broken, bible)
        assert report.typography.score < 0.8
        assert runner.should_retry(report, 0)
        assert not runner.should_retry(report, 3)

        passing = runner.run("job_1", [s.model_copy(update={"narration": "친구와 모험해요"}) for s in styled_scripts], bible)
        assert not runner.should_retry(passing, 0)

    def test_retry_reason(self, styled_scripts, bible):
        styled_scripts[0] = styled_scripts[0].model_copy(update={"narration": "귀신이 나와요"})
        runner = QCRunner()
        reason = runner.retry_reason(runner.run("job_1", styled_scripts, bible))
        assert reason.startswith("Safety (0.00): ")
        assert "귀신" in reason
