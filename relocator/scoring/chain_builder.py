"""
Fallback Chain Builder

Turns the evidence captured for one interaction into an ordered FallbackChain:

1. One candidate strategy per available evidence source (table confidences)
2. StrategyScorer attenuation (never upward)
3. Dedupe near-duplicates, drop anything below the floor
4. Stable sort by descending confidence
5. Truncate to the maximum length, reserving the tail for coordinates

The resulting chain is non-increasing by confidence and, whenever any
evidence was captured, ends in a coordinates strategy.
"""

import logging
import math
import re
from typing import Any

from relocator.config import get_settings
from relocator.schemas.capture import CapturedEvidence, DOMCapture, MouseCapture, VisionCapture
from relocator.schemas.strategy import (
	CONFIDENCE_CEILINGS,
	COORDINATES_BASE_CONFIDENCE,
	FallbackChain,
	LocatorStrategy,
	StrategyType,
	TrailDirection,
)
from relocator.scoring.scorer import StrategyScorer

logger = logging.getLogger(__name__)

# Capture-time confidence table
TEST_ID_CONFIDENCE = 0.95
STABLE_ID_CONFIDENCE = 0.90
CSS_SELECTOR_CONFIDENCE = 0.75
XPATH_CONFIDENCE = 0.65
ROLE_WITH_NAME_CONFIDENCE = 0.90
ROLE_WITHOUT_NAME_CONFIDENCE = 0.80
TEXT_CONFIDENCE = 0.85
LABEL_CONFIDENCE = 0.85
PLACEHOLDER_CONFIDENCE = 0.80
COMPUTED_VISION_CONFIDENCE = 0.70
EVIDENCE_CONFIDENCE = 0.75

MIN_CONFIDENCE = 0.3
RELIABLE_CONFIDENCE = 0.7
OCR_CONFIDENCE_THRESHOLD = 60
MAX_TEXT_LENGTH = 50
TRAIL_POINTS = 10
EXPECTED_CLASSES = 3

FORM_ELEMENTS = frozenset({'input', 'select', 'textarea', 'button'})

DYNAMIC_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
	re.compile(r'^[a-f0-9]{8,}$', re.I),  # hex strings
	re.compile(r'^\d+$'),  # pure numbers
	re.compile(r'^[a-z]+[-_]\d+$', re.I),  # prefix-123
	re.compile(r'^react-', re.I),
	re.compile(r'^ember\d+$', re.I),
	re.compile(r'^__'),
	re.compile(r':r\d+:$'),  # React 18 useId
)


def is_likely_dynamic_id(element_id: str | None) -> bool:
	if not element_id:
		return False
	return any(pattern.search(element_id) for pattern in DYNAMIC_ID_PATTERNS)


def css_escape_identifier(value: str) -> str:
	"""Escape an id for use after '#' in a CSS selector."""
	escaped: list[str] = []
	for index, char in enumerate(value):
		if (char.isascii() and char.isalnum()) or char in '-_' or ord(char) >= 0x80:
			if index == 0 and char.isdigit():
				escaped.append(f'\\{ord(char):x} ')
			elif index == 1 and char.isdigit() and value[0] == '-':
				escaped.append(f'\\{ord(char):x} ')
			else:
				escaped.append(char)
		else:
			escaped.append('\\' + char)
	return ''.join(escaped)


def trail_direction(mouse: MouseCapture) -> TrailDirection | None:
	"""Normalized direction of the last few trail points, None when the cursor did not move."""
	points = mouse.trail[-TRAIL_POINTS:]
	if len(points) < 2:
		return None
	dx = points[-1].x - points[0].x
	dy = points[-1].y - points[0].y
	length = math.hypot(dx, dy)
	if length == 0:
		return None
	return TrailDirection(dx=dx / length, dy=dy / length)


def validate_chain(chain: FallbackChain, max_length: int | None = None) -> list[str]:
	"""
	Check a chain against the construction invariants.

	Returns:
		List of human-readable issues (empty when the chain is sound)
	"""
	if chain.is_empty:
		return ['Chain has no strategies']

	issues: list[str] = []
	strategies = chain.strategies
	if any(a.confidence < b.confidence for a, b in zip(strategies, strategies[1:])):
		issues.append('Strategies are not ordered by descending confidence')
	if strategies[-1].type != StrategyType.COORDINATES:
		issues.append('Missing coordinates fallback at the end of the chain')
	if not any(s.confidence >= RELIABLE_CONFIDENCE for s in strategies):
		issues.append(f'No strategy with confidence >= {RELIABLE_CONFIDENCE}')
	limit = max_length if max_length is not None else get_settings().max_chain_length
	if len(strategies) > limit:
		issues.append(f'Chain exceeds maximum length ({len(strategies)} > {limit})')
	return issues


class FallbackChainBuilder:
	"""Builds fallback chains at capture time."""

	def __init__(
		self,
		scorer: StrategyScorer | None = None,
		max_length: int | None = None,
		min_confidence: float = MIN_CONFIDENCE,
		ocr_confidence_threshold: float = OCR_CONFIDENCE_THRESHOLD,
		generate_computed_vision: bool = True,
		generate_evidence: bool = True,
	):
		self.scorer = scorer or StrategyScorer()
		self.max_length = max_length if max_length is not None else get_settings().max_chain_length
		self.min_confidence = min_confidence
		self.ocr_confidence_threshold = ocr_confidence_threshold
		self.generate_computed_vision = generate_computed_vision
		self.generate_evidence = generate_evidence

	def build(self, evidence: CapturedEvidence) -> FallbackChain:
		"""
		Build the fallback chain for one captured interaction.

		Args:
			evidence: Everything the capture layer recorded

		Returns:
			FallbackChain ordered by descending confidence, coordinates last
		"""
		candidates = self.generate_candidates(evidence)
		scored = [self.scorer.apply(candidate) for candidate in candidates]
		chain = self.build_chain(scored, recorded_at=evidence.timestamp)
		logger.debug(
			f"Built chain of {len(chain)} from {len(candidates)} candidates: "
			f"{[s.type.value for s in chain.strategies]}"
		)
		return chain

	def build_chain(
		self,
		strategies: list[LocatorStrategy],
		max_length: int | None = None,
		recorded_at: float | None = None,
	) -> FallbackChain:
		"""
		Assemble a chain from already-scored strategies.

		Non-coordinate strategies scoring below the coordinates entry are
		dropped so the coordinates tail stays last without breaking the ordering.
		"""
		limit = max(1, max_length if max_length is not None else self.max_length)

		ordered = sorted(strategies, key=lambda s: s.confidence, reverse=True)
		unique: list[LocatorStrategy] = []
		seen: set[tuple[str, str]] = set()
		for strategy in ordered:
			key = strategy.dedup_key()
			if key in seen:
				continue
			seen.add(key)
			unique.append(strategy)

		coordinates = next((s for s in unique if s.type == StrategyType.COORDINATES), None)
		others = [
			s for s in unique
			if s.type != StrategyType.COORDINATES and s.confidence >= self.min_confidence
		]
		if coordinates is not None:
			dropped = [s for s in others if s.confidence < coordinates.confidence]
			if dropped:
				logger.debug(f"Dropping {len(dropped)} strategies ranked below the coordinates fallback")
			others = [s for s in others if s.confidence >= coordinates.confidence][:limit - 1]
			chain_strategies = [*others, coordinates]
		else:
			chain_strategies = others[:limit]

		kwargs: dict[str, Any] = {'strategies': chain_strategies}
		if recorded_at is not None:
			kwargs['recorded_at'] = recorded_at
		return FallbackChain(**kwargs)

	# Candidate generation

	def generate_candidates(self, evidence: CapturedEvidence) -> list[LocatorStrategy]:
		dom = evidence.dom
		candidates: list[LocatorStrategy] = []
		candidates.extend(self._structural_candidates(dom))
		candidates.extend(self._semantic_candidates(dom))

		vision = self._vision_candidate(evidence.vision, dom)
		if vision is not None:
			candidates.append(vision)

		if self.generate_evidence and evidence.mouse is not None:
			behavioral = self._evidence_candidate(evidence.mouse, dom)
			if behavioral is not None:
				candidates.append(behavioral)

		candidates.append(self._coordinates_candidate(dom))
		return candidates

	def _structural_candidates(self, dom: DOMCapture) -> list[LocatorStrategy]:
		candidates: list[LocatorStrategy] = []

		test_id = dom.test_id or dom.attributes.get('data-testid')
		if test_id:
			escaped = test_id.replace('\\', '\\\\').replace('"', '\\"')
			candidates.append(LocatorStrategy(
				type=StrategyType.STRUCTURAL_SELECTOR,
				selector=f'[data-testid="{escaped}"]',
				confidence=TEST_ID_CONFIDENCE,
				metadata={'test_id': test_id, 'source': 'dom'},
			))

		if dom.element_id and not is_likely_dynamic_id(dom.element_id):
			candidates.append(LocatorStrategy(
				type=StrategyType.STRUCTURAL_SELECTOR,
				selector=f'#{css_escape_identifier(dom.element_id)}',
				confidence=STABLE_ID_CONFIDENCE,
				metadata={'element_id': dom.element_id, 'source': 'dom'},
			))
		elif dom.element_id:
			logger.debug(f"Skipping likely dynamic id {dom.element_id!r}")

		if dom.css_selector:
			candidates.append(LocatorStrategy(
				type=StrategyType.STRUCTURAL_SELECTOR,
				selector=dom.css_selector,
				confidence=CSS_SELECTOR_CONFIDENCE,
				metadata={'source': 'computed'},
			))

		if dom.xpath:
			candidates.append(LocatorStrategy(
				type=StrategyType.STRUCTURAL_SELECTOR,
				selector=dom.xpath,
				confidence=XPATH_CONFIDENCE,
				metadata={'is_xpath': True, 'source': 'dom'},
			))

		return candidates

	def _semantic_candidates(self, dom: DOMCapture) -> list[LocatorStrategy]:
		candidates: list[LocatorStrategy] = []

		if dom.accessible_role:
			role_metadata: dict[str, Any] = {'role': dom.accessible_role}
			if dom.accessible_name:
				role_metadata['name'] = dom.accessible_name
			candidates.append(LocatorStrategy(
				type=StrategyType.SEMANTIC_ROLE,
				confidence=ROLE_WITH_NAME_CONFIDENCE if dom.accessible_name else ROLE_WITHOUT_NAME_CONFIDENCE,
				metadata=role_metadata,
			))

		text = dom.visible_text
		if text and len(text) < MAX_TEXT_LENGTH:
			candidates.append(LocatorStrategy(
				type=StrategyType.SEMANTIC_ATTRIBUTE,
				confidence=TEXT_CONFIDENCE,
				metadata={'text': text},
			))

		if dom.accessible_name and dom.tag_name.lower() in FORM_ELEMENTS:
			candidates.append(LocatorStrategy(
				type=StrategyType.SEMANTIC_ATTRIBUTE,
				confidence=LABEL_CONFIDENCE,
				metadata={'label': dom.accessible_name},
			))

		placeholder = dom.placeholder or dom.attributes.get('placeholder')
		if placeholder:
			candidates.append(LocatorStrategy(
				type=StrategyType.SEMANTIC_ATTRIBUTE,
				confidence=PLACEHOLDER_CONFIDENCE,
				metadata={'placeholder': placeholder},
			))

		return candidates

	def _vision_candidate(self, vision: VisionCapture | None, dom: DOMCapture) -> LocatorStrategy | None:
		if vision is not None and vision.ocr_text and vision.confidence >= self.ocr_confidence_threshold:
			return LocatorStrategy(
				type=StrategyType.VISUAL_TEXT,
				confidence=min(vision.confidence / 100, CONFIDENCE_CEILINGS[StrategyType.VISUAL_TEXT]),
				metadata={
					'target_text': vision.ocr_text.strip(),
					'ocr_confidence': vision.confidence,
					'text_bbox': vision.text_bbox,
				},
			)

		if not self.generate_computed_vision:
			return None
		text = dom.visible_text or (dom.accessible_name or '').strip()
		if text and len(text) < MAX_TEXT_LENGTH:
			return LocatorStrategy(
				type=StrategyType.VISUAL_TEXT,
				confidence=COMPUTED_VISION_CONFIDENCE,
				metadata={'target_text': text, 'ocr_confidence': 70},
			)
		return None

	def _evidence_candidate(self, mouse: MouseCapture, dom: DOMCapture) -> LocatorStrategy | None:
		if not mouse.trail:
			return None
		return LocatorStrategy(
			type=StrategyType.EVIDENCE_SCORED,
			confidence=EVIDENCE_CONFIDENCE,
			metadata={
				'endpoint': mouse.endpoint,
				'expected_tag': dom.tag_name.lower(),
				'expected_id': dom.element_id,
				'expected_classes': dom.class_list[:EXPECTED_CLASSES],
				'trail_direction': trail_direction(mouse),
				'trail_pattern': mouse.pattern,
				'bounding_rect': dom.bounding_rect,
			},
		)

	@staticmethod
	def _coordinates_candidate(dom: DOMCapture) -> LocatorStrategy:
		return LocatorStrategy(
			type=StrategyType.COORDINATES,
			confidence=COORDINATES_BASE_CONFIDENCE,
			metadata={'x': dom.x, 'y': dom.y, 'bounding_rect': dom.bounding_rect},
		)
