"""
Tests for chain diversity analysis and optimization.
"""

import pytest

from relocator.schemas.strategy import FallbackChain, LocatorStrategy, StrategyType
from relocator.scoring.diversity import ChainOptimizer, StrategyCategory, diversity_score, selector_similarity


def role(confidence: float = 0.9) -> LocatorStrategy:
	return LocatorStrategy(type=StrategyType.SEMANTIC_ROLE, confidence=confidence, metadata={'role': 'button', 'name': 'Go'})


def visual(confidence: float = 0.85) -> LocatorStrategy:
	return LocatorStrategy(type=StrategyType.VISUAL_TEXT, confidence=confidence, metadata={'target_text': 'Go'})


class TestDiversityHelpers:
	"""Tests for similarity and score helpers."""

	def test_selector_similarity(self):
		"""Test Jaccard similarity on character sets."""
		assert selector_similarity('#go', '#go') == 1.0
		assert selector_similarity('ab', 'cd') == 0.0
		assert selector_similarity('', '#a') == 0.0
		assert selector_similarity('#submit', '#timbus') == 1.0

	def test_diversity_score_bonus(self):
		"""Test the bonus for semantic + structural + coordinates coverage."""
		counts = {
			StrategyCategory.SEMANTIC: 1,
			StrategyCategory.STRUCTURAL: 2,
			StrategyCategory.COORDINATES: 1,
		}
		assert diversity_score(counts) == pytest.approx(0.7)
		assert diversity_score({StrategyCategory.VISION: 1}) == pytest.approx(0.2)


class TestChainOptimizer:
	"""Tests for analysis and re-optimization."""

	def test_analyze_structural_only(self, structural):
		"""Test recommendations for a one-category chain."""
		analysis = ChainOptimizer().analyze([structural('#a'), structural('.b', 0.8)])

		assert analysis.categories == [StrategyCategory.STRUCTURAL]
		assert analysis.category_count[StrategyCategory.STRUCTURAL] == 2
		assert 'Add semantic (role/name) strategy for accessibility' in analysis.recommendations
		assert 'Add coordinates fallback for last resort' in analysis.recommendations
		assert 'Increase diversity - aim for 3+ categories' in analysis.recommendations

	def test_analyze_diverse_chain(self, structural, coordinates):
		"""Test a chain with nothing to recommend."""
		chain = FallbackChain(strategies=[role(), visual(), structural('#a', 0.8), coordinates(1, 1)])

		analysis = ChainOptimizer().analyze(chain)

		assert analysis.recommendations == []
		assert analysis.missing_categories == [StrategyCategory.EVIDENCE]
		assert analysis.score == pytest.approx(0.9)

	def test_optimize_caps_category(self, structural, coordinates):
		"""Test that a covered category stops accepting more strategies."""
		chain = FallbackChain(
			strategies=[role(), visual(), structural('#alpha', 0.8), structural('.beta', 0.78), coordinates(1, 1)],
			recorded_at=123.0,
		)

		optimized = ChainOptimizer().optimize(chain, extra_strategies=[structural('span.gamma', 0.76)])

		assert [s.selector for s in optimized.strategies if s.selector] == ['#alpha', '.beta']
		assert optimized.strategies[-1].type == StrategyType.COORDINATES
		assert optimized.recorded_at == 123.0

	def test_optimize_collapses_similar_selectors(self, structural, coordinates):
		"""Test that near-identical selectors are collapsed."""
		chain = FallbackChain(strategies=[structural('#submit', 0.9), coordinates(1, 1)])

		optimized = ChainOptimizer().optimize(chain, extra_strategies=[structural('#timbus', 0.85)])

		assert [s.selector for s in optimized.strategies if s.selector] == ['#submit']
