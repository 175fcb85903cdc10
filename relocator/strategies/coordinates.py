"""
Coordinates Evaluator

Terminal fallback of every chain: always reports found at a fixed base
confidence. Optionally hit-tests the point and nudges confidence up when a
live node sits there.
"""

import asyncio
import logging
from typing import Any

from relocator.config import get_settings
from relocator.schemas.strategy import (
	CONFIDENCE_CEILINGS,
	COORDINATES_BASE_CONFIDENCE,
	ClickPoint,
	CoordinatesMetadata,
	LocatorStrategy,
	NodeHandle,
	StrategyEvaluationResult,
	StrategyType,
)
from relocator.strategies.base import StrategyEvaluator

logger = logging.getLogger(__name__)

VALIDATION_BOOST = 0.05
MAX_CONFIDENCE = CONFIDENCE_CEILINGS[StrategyType.COORDINATES]
# Share of the per-strategy timeout the hit-test may use
HIT_TEST_BUDGET = 0.5


def stored_point(metadata: CoordinatesMetadata) -> tuple[ClickPoint, str]:
	"""Stored point, else bounding-rect center, else the origin."""
	if metadata.x is not None and metadata.y is not None:
		return ClickPoint(x=metadata.x, y=metadata.y), 'coordinates'
	if metadata.bounding_rect is not None:
		return metadata.bounding_rect.center(), 'bounding_rect'
	return ClickPoint(x=0, y=0), 'default'


class CoordinatesEvaluator(StrategyEvaluator):
	"""Evaluates coordinates strategies. Never fails."""

	handled_types = frozenset({StrategyType.COORDINATES})

	def __init__(
		self,
		base_confidence: float = COORDINATES_BASE_CONFIDENCE,
		validate_element_exists: bool | None = None,
		validation_boost: float = VALIDATION_BOOST,
		hit_test_timeout: float | None = None,
	):
		"""
		Initialize the evaluator.

		Args:
			base_confidence: Confidence reported without validation
			validate_element_exists: Hit-test the point (defaults to settings)
			validation_boost: Confidence added when a node is hit
			hit_test_timeout: Seconds the hit-test may take (half the strategy timeout by default)
		"""
		settings = get_settings()
		self.base_confidence = base_confidence
		self.validate_element_exists = (
			validate_element_exists if validate_element_exists is not None
			else settings.coordinate_validation_enabled
		)
		self.validation_boost = validation_boost
		self.hit_test_timeout = (
			hit_test_timeout if hit_test_timeout is not None
			else settings.strategy_timeout_seconds * HIT_TEST_BUDGET
		)

	def unvalidated(self, strategy: LocatorStrategy, **metadata: Any) -> StrategyEvaluationResult:
		"""Found result at base confidence, without touching the page."""
		point, point_source = stored_point(strategy.metadata)  # type: ignore[arg-type]
		rounded = ClickPoint(x=round(point.x), y=round(point.y))
		return self.resolved(
			strategy,
			self.base_confidence,
			click_point=rounded,
			original_coordinates={'x': point.x, 'y': point.y},
			rounded_coordinates={'x': rounded.x, 'y': rounded.y},
			element_validated=False,
			point_source=point_source,
			**metadata,
		)

	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		result = self.unvalidated(strategy)
		if not self.validate_element_exists or result.click_point is None:
			return result

		x, y = int(result.click_point.x), int(result.click_point.y)
		backend_node_id = None
		try:
			hit = await asyncio.wait_for(page.get_node_for_location(x, y), timeout=self.hit_test_timeout)
			backend_node_id = hit.get('backendNodeId')
		except asyncio.TimeoutError:
			logger.debug(f"Hit-test at ({x}, {y}) timed out after {self.hit_test_timeout * 1000:.0f}ms")
			result.metadata['validation_timed_out'] = True
		except Exception as e:
			logger.debug(f"Hit-test at ({x}, {y}) failed: {e}")

		if backend_node_id:
			result.node_handle = NodeHandle(backend_node_id=backend_node_id)
			result.confidence = min(self.base_confidence + self.validation_boost, MAX_CONFIDENCE)
			result.metadata['element_validated'] = True
		return result
