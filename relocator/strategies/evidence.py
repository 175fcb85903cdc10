"""
Evidence-Scored Evaluator

Ranks live elements around the recorded cursor endpoint using behavioral and
attribute evidence:
- tag match (25%)
- id match (20%)
- class overlap (15%)
- distance from the endpoint (20%)
- alignment with the cursor trail direction (20%)

Sub-scores with no recorded evidence are neutral (0.5), so missing evidence
never rewards or penalizes a candidate.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from relocator.cdp.client import CDPCommandError
from relocator.schemas.strategy import (
	ClickPoint,
	EvidenceMetadata,
	LocatorStrategy,
	StrategyEvaluationResult,
	StrategyType,
	TrailDirection,
)
from relocator.strategies.base import StrategyEvaluator

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5


@dataclass
class EvidenceScoringConfig:
	"""Tunables for evidence scoring."""
	search_radius: float = 50.0
	min_match_score: float = 0.4
	tag_weight: float = 0.25
	id_weight: float = 0.20
	class_weight: float = 0.15
	position_weight: float = 0.20
	direction_weight: float = 0.20
	max_candidates: int = 20
	use_trail_direction: bool = True
	crowded_threshold: int = 5
	crowded_penalty: float = 0.95
	min_confidence: float = 0.3
	max_confidence: float = 0.85


@dataclass
class EvidenceCandidate:
	"""A live node found near the endpoint."""
	backend_node_id: int
	tag_name: str
	element_id: str | None
	classes: list[str]
	sample_point: ClickPoint
	distance: float
	score: float = 0.0
	breakdown: dict[str, float] = field(default_factory=dict)


def parse_attributes(flat: list[str] | None) -> dict[str, str]:
	"""CDP node attributes arrive as [name1, value1, name2, value2, ...]."""
	if not flat:
		return {}
	return {flat[i]: flat[i + 1] for i in range(0, len(flat) - 1, 2)}


class EvidenceScoredEvaluator(StrategyEvaluator):
	"""Evaluates evidence_scored strategies by sampling a ring of points around the endpoint."""

	handled_types = frozenset({StrategyType.EVIDENCE_SCORED})

	def __init__(self, config: EvidenceScoringConfig | None = None):
		self.config = config or EvidenceScoringConfig()

	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		metadata: EvidenceMetadata = strategy.metadata  # type: ignore[assignment]
		if metadata.endpoint is None:
			return self.not_found(strategy, 'Evidence strategy requires endpoint in metadata')

		candidates = await self.collect_candidates(page, metadata.endpoint)
		if not candidates:
			return self.not_found(strategy, 'No elements found near endpoint', candidates_evaluated=0)

		for candidate in candidates:
			self.score_candidate(candidate, metadata)

		qualifying = [c for c in candidates if c.score >= self.config.min_match_score]
		best_overall = max(candidates, key=lambda c: c.score)
		if not qualifying:
			return self.not_found(
				strategy,
				f'No candidate above minimum score ({best_overall.score:.2f} < {self.config.min_match_score})',
				candidates_evaluated=len(candidates),
				best_score=round(best_overall.score, 4),
			)

		best = max(qualifying, key=lambda c: c.score)
		confidence = strategy.confidence * best.score
		if len(candidates) > self.config.crowded_threshold:
			confidence *= self.config.crowded_penalty
		confidence = max(self.config.min_confidence, min(confidence, self.config.max_confidence))

		click_point = await page.get_click_point(backend_node_id=best.backend_node_id) or best.sample_point
		return self.resolved(
			strategy,
			confidence,
			backend_node_id=best.backend_node_id,
			click_point=click_point,
			match_count=len(qualifying),
			score=round(best.score, 4),
			score_breakdown=best.breakdown,
			candidates_evaluated=len(candidates),
			tag_name=best.tag_name,
		)

	def sample_points(self, endpoint: ClickPoint) -> list[ClickPoint]:
		"""The endpoint itself, then three rings of eight points each."""
		points = [endpoint]
		step = self.config.search_radius / 3
		for ring in range(1, 4):
			radius = step * ring
			for k in range(8):
				angle = k * math.pi / 4
				points.append(ClickPoint(
					x=endpoint.x + radius * math.cos(angle),
					y=endpoint.y + radius * math.sin(angle),
				))
		return points

	async def collect_candidates(self, page: Any, endpoint: ClickPoint) -> list[EvidenceCandidate]:
		"""Hit-test each sample point; one candidate per distinct element node."""
		candidates: list[EvidenceCandidate] = []
		seen: set[int] = set()

		for point in self.sample_points(endpoint):
			if len(candidates) >= self.config.max_candidates:
				break
			try:
				hit = await page.get_node_for_location(int(round(point.x)), int(round(point.y)))
			except CDPCommandError:
				continue
			backend_node_id = hit.get('backendNodeId')
			if not backend_node_id or backend_node_id in seen:
				continue
			seen.add(backend_node_id)

			try:
				node = await page.describe_node(backend_node_id=backend_node_id)
			except CDPCommandError as e:
				logger.debug(f"describe_node({backend_node_id}) failed: {e}")
				continue
			node_name = node.get('nodeName') or ''
			if not node_name or node_name.startswith('#'):
				continue

			attributes = parse_attributes(node.get('attributes'))
			candidates.append(EvidenceCandidate(
				backend_node_id=backend_node_id,
				tag_name=(node.get('localName') or node_name).lower(),
				element_id=attributes.get('id') or None,
				classes=attributes.get('class', '').split(),
				sample_point=point,
				distance=math.hypot(point.x - endpoint.x, point.y - endpoint.y),
			))

		return candidates

	def score_candidate(self, candidate: EvidenceCandidate, metadata: EvidenceMetadata) -> float:
		"""Weighted sum of the five sub-scores; stores the breakdown on the candidate."""
		cfg = self.config
		endpoint = metadata.endpoint or candidate.sample_point
		breakdown = {
			'tag': self.tag_score(candidate, metadata.expected_tag),
			'id': self.id_score(candidate, metadata.expected_id),
			'class': self.class_score(candidate, metadata.expected_classes),
			'position': self.position_score(candidate),
			'direction': self.direction_score(
				candidate,
				endpoint,
				metadata.trail_direction if cfg.use_trail_direction else None,
			),
		}
		candidate.score = (
			breakdown['tag'] * cfg.tag_weight
			+ breakdown['id'] * cfg.id_weight
			+ breakdown['class'] * cfg.class_weight
			+ breakdown['position'] * cfg.position_weight
			+ breakdown['direction'] * cfg.direction_weight
		)
		candidate.breakdown = {k: round(v, 4) for k, v in breakdown.items()}
		return candidate.score

	@staticmethod
	def tag_score(candidate: EvidenceCandidate, expected_tag: str | None) -> float:
		if not expected_tag:
			return NEUTRAL_SCORE
		return 1.0 if candidate.tag_name == expected_tag.lower() else 0.0

	@staticmethod
	def id_score(candidate: EvidenceCandidate, expected_id: str | None) -> float:
		if not expected_id:
			return NEUTRAL_SCORE
		if not candidate.element_id:
			return 0.0
		return 1.0 if candidate.element_id == expected_id else 0.0

	@staticmethod
	def class_score(candidate: EvidenceCandidate, expected_classes: list[str]) -> float:
		if not expected_classes:
			return NEUTRAL_SCORE
		if not candidate.classes:
			return 0.0
		overlap = len(set(expected_classes) & set(candidate.classes))
		return overlap / max(len(set(expected_classes)), len(set(candidate.classes)))

	def position_score(self, candidate: EvidenceCandidate) -> float:
		return max(0.0, min(1.0, 1 - candidate.distance / self.config.search_radius))

	@staticmethod
	def direction_score(candidate: EvidenceCandidate, endpoint: ClickPoint, direction: TrailDirection | None) -> float:
		"""(dot + 1) / 2 between the trail direction and endpoint->candidate."""
		if direction is None:
			return NEUTRAL_SCORE
		dir_length = math.hypot(direction.dx, direction.dy)
		vx = candidate.sample_point.x - endpoint.x
		vy = candidate.sample_point.y - endpoint.y
		v_length = math.hypot(vx, vy)
		if dir_length == 0 or v_length == 0:
			return NEUTRAL_SCORE
		dot = (direction.dx * vx + direction.dy * vy) / (dir_length * v_length)
		return (dot + 1) / 2
