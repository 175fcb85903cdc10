"""
Tests for capture-time strategy scoring.
"""

import pytest

from relocator.schemas.strategy import LocatorStrategy, StrategyType
from relocator.scoring.scorer import (
	StrategyScorer,
	calculate_complexity,
	estimate_uniqueness,
	has_dynamic_pattern,
	text_reliability,
)


def attribute(confidence: float = 0.85, **metadata) -> LocatorStrategy:
	return LocatorStrategy(type=StrategyType.SEMANTIC_ATTRIBUTE, confidence=confidence, metadata=metadata)


class TestSelectorAnalysis:
	"""Tests for static selector quality checks."""

	def test_dynamic_patterns(self):
		"""Test framework-generated identifier detection."""
		assert has_dynamic_pattern('#ember123')
		assert has_dynamic_pattern('react-select-2')
		assert has_dynamic_pattern('[id="3f2a9c1e-1b2c-4d5e-8f90-123456789abc"]')
		assert not has_dynamic_pattern('#submit-button')
		assert not has_dynamic_pattern(None)

	def test_complexity(self):
		"""Test complexity counting with half points for classes."""
		assert calculate_complexity('div') == 1
		assert calculate_complexity('a.b') == 2
		assert calculate_complexity('form > button.primary') == 5
		assert calculate_complexity(' > '.join(['div'] * 10)) == 10

	def test_uniqueness(self):
		"""Test uniqueness estimates."""
		assert estimate_uniqueness('#checkout') == 0.95
		assert estimate_uniqueness('div') == 0.2
		assert estimate_uniqueness('main section a') == pytest.approx(0.8)

	def test_analyze_reports_issues(self):
		"""Test that issues name the dynamic pattern and position dependence."""
		analysis = StrategyScorer().analyze_selector('#ember123 li:nth-child(2)')

		assert analysis.has_dynamic_patterns is True
		assert analysis.has_positional_selectors is True
		assert analysis.is_stable is False
		assert 'Dynamic pattern: ember-id' in analysis.issues
		assert 'Contains positional selector' in analysis.issues

	def test_text_reliability(self):
		"""Test text reliability multipliers."""
		assert text_reliability('Checkout') == 1.0
		assert text_reliability('OK') == pytest.approx(0.85 * 0.8)
		assert text_reliability('12') == pytest.approx(0.7 * 0.8)
		assert text_reliability('→') == pytest.approx(0.8 * 0.6)
		assert text_reliability(None) == 0.5


class TestStrategyScorer:
	"""Tests for per-type attenuation."""

	def test_stable_id_kept(self, structural):
		"""Test that a stable id keeps its table confidence."""
		assert StrategyScorer().score(structural('#checkout', 0.9)) == pytest.approx(0.9)

	def test_test_id_kept(self, structural):
		"""Test that test-id selectors are never penalized."""
		assert StrategyScorer().score(structural('[data-testid="save"]', 0.95)) == pytest.approx(0.95)

	def test_dynamic_id_penalized(self, structural):
		"""Test the dynamic identifier penalty."""
		assert StrategyScorer().score(structural('#ember123', 0.9)) == pytest.approx(0.6)

	def test_positional_and_complex(self, structural):
		"""Test positional and complexity penalties together."""
		assert StrategyScorer().score(structural('ul > li:nth-child(3) a', 0.75)) == pytest.approx(0.5)

	def test_floor(self, structural):
		"""Test the structural score floor."""
		assert StrategyScorer().score(structural('#ember1 div:nth-child(2) > span', 0.3)) == pytest.approx(0.1)

	def test_attribute_text_reliability(self):
		"""Test that generic short text lowers attribute confidence."""
		assert StrategyScorer().score(attribute(text='OK')) == pytest.approx(0.85 * 0.68)
		assert StrategyScorer().score(attribute(test_id='ok', text='OK')) == pytest.approx(0.85)

	def test_small_target_coordinates(self):
		"""Test the small-target coordinates penalty."""
		small = LocatorStrategy(
			type=StrategyType.COORDINATES,
			confidence=0.6,
			metadata={'x': 1, 'y': 1, 'bounding_rect': {'x': 0, 'y': 0, 'width': 20, 'height': 20}},
		)
		assert StrategyScorer().score(small) == pytest.approx(0.48)

	def test_evidence_patterns(self):
		"""Test trail-pattern attenuation and the missing-endpoint floor."""
		def evidence(**metadata):
			return LocatorStrategy(type=StrategyType.EVIDENCE_SCORED, confidence=0.75, metadata=metadata)

		scorer = StrategyScorer()
		assert scorer.score(evidence()) == pytest.approx(0.3)
		assert scorer.score(evidence(endpoint={'x': 1, 'y': 1}, trail_pattern='hesitant')) == pytest.approx(0.7125)
		assert scorer.score(evidence(endpoint={'x': 1, 'y': 1}, trail_pattern='corrective')) == pytest.approx(0.675)
		assert scorer.score(evidence(endpoint={'x': 1, 'y': 1}, trail_pattern='direct')) == pytest.approx(0.75)

	def test_never_raises_confidence(self):
		"""Test that scoring never exceeds the recorded confidence."""
		strategy = LocatorStrategy(type=StrategyType.SEMANTIC_ROLE, confidence=0.9, metadata={'role': 'button'})
		assert StrategyScorer().score(strategy) == pytest.approx(0.9)

	def test_apply(self, structural):
		"""Test that apply copies only when the score changes."""
		scorer = StrategyScorer()
		stable = structural('#checkout', 0.9)
		dynamic = structural('#ember123', 0.9)

		assert scorer.apply(stable) is stable
		applied = scorer.apply(dynamic)
		assert applied is not dynamic
		assert applied.confidence == pytest.approx(0.6)
		assert dynamic.confidence == 0.9
