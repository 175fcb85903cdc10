"""
Chain Diversity

Category-level analysis of a fallback chain and re-optimization when new
strategies become available.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from relocator.schemas.strategy import FallbackChain, LocatorStrategy, StrategyType
from relocator.scoring.chain_builder import FallbackChainBuilder

logger = logging.getLogger(__name__)


class StrategyCategory(str, Enum):
	SEMANTIC = "semantic"
	STRUCTURAL = "structural"
	VISION = "vision"
	EVIDENCE = "evidence"
	COORDINATES = "coordinates"


CATEGORY_BY_TYPE: dict[StrategyType, StrategyCategory] = {
	StrategyType.SEMANTIC_ROLE: StrategyCategory.SEMANTIC,
	StrategyType.SEMANTIC_ATTRIBUTE: StrategyCategory.SEMANTIC,
	StrategyType.STRUCTURAL_SELECTOR: StrategyCategory.STRUCTURAL,
	StrategyType.VISUAL_TEXT: StrategyCategory.VISION,
	StrategyType.EVIDENCE_SCORED: StrategyCategory.EVIDENCE,
	StrategyType.COORDINATES: StrategyCategory.COORDINATES,
}

SIMILARITY_THRESHOLD = 0.9
MAX_PER_CATEGORY = 2
MIN_DIVERSE_CATEGORIES = 3


@dataclass
class DiversityAnalysis:
	"""Category spread of a set of strategies."""
	categories: list[StrategyCategory]
	category_count: dict[StrategyCategory, int]
	score: float
	missing_categories: list[StrategyCategory] = field(default_factory=list)
	recommendations: list[str] = field(default_factory=list)


def selector_similarity(a: str, b: str) -> float:
	"""Jaccard similarity of the two selectors' character sets."""
	if a == b:
		return 1.0
	if not a or not b:
		return 0.0
	set_a, set_b = set(a), set(b)
	return len(set_a & set_b) / len(set_a | set_b)


def diversity_score(category_count: dict[StrategyCategory, int]) -> float:
	"""Share of categories covered, +0.1 when semantic, structural and coordinates are all present."""
	covered = sum(1 for category in StrategyCategory if category_count.get(category, 0) > 0)
	score = covered / len(StrategyCategory)
	if all(category_count.get(c, 0) > 0 for c in (
		StrategyCategory.SEMANTIC, StrategyCategory.STRUCTURAL, StrategyCategory.COORDINATES,
	)):
		score = min(score + 0.1, 1.0)
	return round(score, 2)


class ChainOptimizer:
	"""Analyzes and rebuilds chains for category diversity."""

	def __init__(
		self,
		builder: FallbackChainBuilder | None = None,
		max_per_category: int = MAX_PER_CATEGORY,
		min_diverse_categories: int = MIN_DIVERSE_CATEGORIES,
		similarity_threshold: float = SIMILARITY_THRESHOLD,
	):
		self.builder = builder or FallbackChainBuilder()
		self.max_per_category = max_per_category
		self.min_diverse_categories = min_diverse_categories
		self.similarity_threshold = similarity_threshold

	@staticmethod
	def count_categories(strategies: list[LocatorStrategy]) -> dict[StrategyCategory, int]:
		counts = {category: 0 for category in StrategyCategory}
		for strategy in strategies:
			counts[CATEGORY_BY_TYPE[strategy.type]] += 1
		return counts

	def analyze(self, strategies: list[LocatorStrategy] | FallbackChain) -> DiversityAnalysis:
		if isinstance(strategies, FallbackChain):
			strategies = strategies.strategies
		counts = self.count_categories(strategies)
		present = [c for c in StrategyCategory if counts[c] > 0]

		recommendations: list[str] = []
		if StrategyCategory.SEMANTIC not in present:
			recommendations.append('Add semantic (role/name) strategy for accessibility')
		if StrategyCategory.COORDINATES not in present:
			recommendations.append('Add coordinates fallback for last resort')
		if len(present) < self.min_diverse_categories:
			recommendations.append(f'Increase diversity - aim for {self.min_diverse_categories}+ categories')

		return DiversityAnalysis(
			categories=present,
			category_count=counts,
			score=diversity_score(counts),
			missing_categories=[c for c in StrategyCategory if counts[c] == 0],
			recommendations=recommendations,
		)

	def optimize(
		self,
		chain: FallbackChain,
		extra_strategies: list[LocatorStrategy] | None = None,
		max_per_category: int | None = None,
	) -> FallbackChain:
		"""
		Rebuild a chain from its own strategies plus newly available ones.

		Near-identical selectors are collapsed and any category already holding
		`max_per_category` entries stops accepting more once the chain spans
		enough categories. The result keeps the builder's ordering and
		coordinates-tail guarantees and the original recorded_at.
		"""
		cap = max_per_category if max_per_category is not None else self.max_per_category
		candidates = sorted(
			[*chain.strategies, *(extra_strategies or [])],
			key=lambda s: s.confidence,
			reverse=True,
		)

		included: list[LocatorStrategy] = []
		seen_selectors: list[str] = []
		counts = {category: 0 for category in StrategyCategory}
		for candidate in candidates:
			if candidate.selector:
				selector = candidate.selector.strip()
				if any(selector_similarity(selector, seen) >= self.similarity_threshold for seen in seen_selectors):
					logger.debug(f"Skipping similar selector {selector!r}")
					continue

			category = CATEGORY_BY_TYPE[candidate.type]
			if category != StrategyCategory.COORDINATES and counts[category] >= cap:
				covered = sum(1 for c in counts.values() if c > 0)
				if covered >= self.min_diverse_categories:
					logger.debug(f"Category {category.value} already covered, skipping {candidate.describe()}")
					continue

			included.append(candidate)
			counts[category] += 1
			if candidate.selector:
				seen_selectors.append(candidate.selector.strip())

		return self.builder.build_chain(included, recorded_at=chain.recorded_at)
