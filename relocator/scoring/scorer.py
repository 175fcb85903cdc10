"""
Strategy Scorer

Attenuates capture-time candidate confidences using selector quality and text
reliability signals. Scores only move down: the result never exceeds the
candidate's table confidence or the ceiling for its type.
"""

import logging
import re
from dataclasses import dataclass, field

from relocator.schemas.strategy import (
	CoordinatesMetadata,
	EvidenceMetadata,
	LocatorStrategy,
	SemanticAttributeMetadata,
	StrategyType,
	cap_confidence,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DynamicPatternRule:
	"""A framework-generated identifier pattern and its penalty."""
	name: str
	pattern: re.Pattern[str]
	penalty: float


DYNAMIC_PATTERNS: tuple[DynamicPatternRule, ...] = (
	DynamicPatternRule('ember-id', re.compile(r'ember\d+', re.I), 0.3),
	DynamicPatternRule('react-id', re.compile(r'^react-|:r[a-z0-9]{2,}:', re.I), 0.3),
	DynamicPatternRule('angular-id', re.compile(r'^ng-|ngcontent', re.I), 0.3),
	DynamicPatternRule('vue-id', re.compile(r'^v-|data-v-[a-f0-9]+', re.I), 0.3),
	DynamicPatternRule(
		'uuid',
		re.compile(r'[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}', re.I),
		0.35,
	),
	DynamicPatternRule('hash', re.compile(r'[a-z]{1,3}[0-9a-f]{6,}', re.I), 0.25),
	DynamicPatternRule('timestamp', re.compile(r'\d{10,13}'), 0.35),
	DynamicPatternRule('random-suffix', re.compile(r'_[a-z0-9]{5,}$', re.I), 0.2),
	DynamicPatternRule('index-suffix', re.compile(r'-\d+$'), 0.15),
	DynamicPatternRule('css-modules', re.compile(r'___[a-zA-Z0-9]+'), 0.25),
)

POSITIONAL_PATTERN = re.compile(r':(nth-child|nth-of-type|first-child|last-child)\(', re.I)
SIMPLE_ID_PATTERN = re.compile(r'^#[^#\s]+$')
BARE_TAG_PATTERN = re.compile(r'^(div|span|a|button)$')

GENERIC_WORDS = frozenset({'submit', 'click', 'ok', 'cancel', 'yes', 'no', 'close', 'next', 'back', 'continue'})


@dataclass
class ScorerConfig:
	"""Penalty sizes."""
	dynamic_selector_penalty: float = 0.3
	nth_child_penalty: float = 0.15
	long_selector_penalty: float = 0.1
	complexity_limit: int = 5
	score_floor: float = 0.1


@dataclass
class SelectorAnalysis:
	"""Static quality read of a selector string."""
	is_stable: bool
	complexity: int
	has_dynamic_patterns: bool
	has_positional_selectors: bool
	estimated_uniqueness: float
	issues: list[str] = field(default_factory=list)


def has_dynamic_pattern(value: str | None) -> bool:
	if not value:
		return False
	return any(rule.pattern.search(value) for rule in DYNAMIC_PATTERNS)


def calculate_complexity(selector: str) -> int:
	"""1 + combinators/pseudo/attribute parts + half a point per class, capped at 10."""
	complexity = 1.0
	complexity += len(re.findall(r'\s+', selector))
	complexity += selector.count('>')
	complexity += selector.count(':')
	complexity += selector.count('[')
	complexity += selector.count('.') * 0.5
	# JS-style rounding: halves go up
	return min(int(complexity + 0.5), 10)


def estimate_uniqueness(selector: str) -> float:
	uniqueness = 0.7
	if SIMPLE_ID_PATTERN.match(selector) or '[data-testid' in selector:
		uniqueness = 0.95
	if len(selector.split()) >= 3:
		uniqueness = min(uniqueness + 0.1, 0.95)
	if BARE_TAG_PATTERN.match(selector):
		uniqueness = 0.2
	return uniqueness


def text_reliability(text: str | None) -> float:
	"""Multiplier in (0, 1]; generic, numeric, short and symbol-only text is less reliable."""
	if not text:
		return 0.5
	reliability = 1.0
	if text.lower() in GENERIC_WORDS:
		reliability *= 0.85
	if text.isdigit():
		reliability *= 0.7
	if len(text) < 3:
		reliability *= 0.8
	if not re.search(r'[a-zA-Z0-9]', text):
		reliability *= 0.6
	return reliability


class StrategyScorer:
	"""Applies quality penalties to candidate strategies before chain assembly."""

	def __init__(self, config: ScorerConfig | None = None):
		self.config = config or ScorerConfig()

	def analyze_selector(self, selector: str) -> SelectorAnalysis:
		issues: list[str] = []
		dynamic_rule = next((rule for rule in DYNAMIC_PATTERNS if rule.pattern.search(selector)), None)
		if dynamic_rule is not None:
			issues.append(f"Dynamic pattern: {dynamic_rule.name}")

		positional = bool(POSITIONAL_PATTERN.search(selector))
		if positional:
			issues.append('Contains positional selector')

		complexity = calculate_complexity(selector)
		if complexity > self.config.complexity_limit:
			issues.append(f"High complexity: {complexity}")

		return SelectorAnalysis(
			is_stable=dynamic_rule is None,
			complexity=complexity,
			has_dynamic_patterns=dynamic_rule is not None,
			has_positional_selectors=positional,
			estimated_uniqueness=estimate_uniqueness(selector),
			issues=issues,
		)

	def score(self, strategy: LocatorStrategy) -> float:
		"""
		Attenuated confidence for a candidate strategy.

		Args:
			strategy: Candidate carrying its table confidence

		Returns:
			Confidence in [0, min(strategy.confidence, type ceiling)]
		"""
		if strategy.type == StrategyType.STRUCTURAL_SELECTOR:
			raw = self._score_structural(strategy)
		elif strategy.type == StrategyType.SEMANTIC_ATTRIBUTE:
			raw = self._score_attribute(strategy)
		elif strategy.type == StrategyType.COORDINATES:
			raw = self._score_coordinates(strategy)
		elif strategy.type == StrategyType.EVIDENCE_SCORED:
			raw = self._score_evidence(strategy)
		else:
			raw = strategy.confidence

		scored = cap_confidence(strategy.type, min(raw, strategy.confidence))
		if scored < strategy.confidence:
			logger.debug(f"Scored {strategy.describe()}: {strategy.confidence:.2f} -> {scored:.2f}")
		return scored

	def apply(self, strategy: LocatorStrategy) -> LocatorStrategy:
		"""Copy of the strategy carrying its scored confidence."""
		scored = self.score(strategy)
		if scored == strategy.confidence:
			return strategy
		return strategy.model_copy(update={'confidence': scored})

	def _score_structural(self, strategy: LocatorStrategy) -> float:
		selector = strategy.selector
		if not selector:
			return 0.3
		if '[data-testid' in selector:
			return strategy.confidence

		analysis = self.analyze_selector(selector)
		if SIMPLE_ID_PATTERN.match(selector) and not analysis.has_dynamic_patterns:
			return strategy.confidence

		score = strategy.confidence
		if analysis.has_dynamic_patterns:
			score -= self.config.dynamic_selector_penalty
		if analysis.has_positional_selectors:
			score -= self.config.nth_child_penalty
		if analysis.complexity > self.config.complexity_limit:
			score -= self.config.long_selector_penalty
		return max(score, self.config.score_floor)

	def _score_attribute(self, strategy: LocatorStrategy) -> float:
		metadata: SemanticAttributeMetadata = strategy.metadata  # type: ignore[assignment]
		if metadata.test_id:
			return strategy.confidence
		value = metadata.text or metadata.label or metadata.placeholder or metadata.alt_text or metadata.title
		return strategy.confidence * text_reliability(value)

	def _score_coordinates(self, strategy: LocatorStrategy) -> float:
		metadata: CoordinatesMetadata = strategy.metadata  # type: ignore[assignment]
		rect = metadata.bounding_rect
		if rect is not None and rect.area < 500:
			return strategy.confidence * 0.8
		return strategy.confidence

	def _score_evidence(self, strategy: LocatorStrategy) -> float:
		metadata: EvidenceMetadata = strategy.metadata  # type: ignore[assignment]
		if metadata.endpoint is None:
			return 0.3
		if metadata.trail_pattern == 'hesitant':
			return strategy.confidence * 0.95
		if metadata.trail_pattern == 'corrective':
			return strategy.confidence * 0.90
		return strategy.confidence
