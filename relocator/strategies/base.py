"""
Strategy Evaluator Base

Common contract for every evaluator: evaluate(page, strategy) never raises.
Not-found, malformed metadata and transport failures all come back as
found=False with an error string.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from relocator.schemas.strategy import (
	ClickPoint,
	LocatorStrategy,
	NodeHandle,
	StrategyEvaluationResult,
	StrategyType,
	cap_confidence,
)

logger = logging.getLogger(__name__)


class StrategyEvaluator(ABC):
	"""Turns one stored strategy into a live resolution attempt."""

	handled_types: frozenset[StrategyType] = frozenset()

	def handles(self, strategy_type: StrategyType) -> bool:
		return StrategyType(strategy_type) in self.handled_types

	async def evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		"""
		Evaluate a strategy against the live page.

		Args:
			page: Page client
			strategy: Strategy to evaluate

		Returns:
			StrategyEvaluationResult (never raises for evaluation failures)
		"""
		start = time.monotonic()

		if not self.handles(strategy.type):
			result = self.not_found(strategy, f"{type(self).__name__} cannot evaluate {strategy.type.value}")
		else:
			try:
				result = await self._evaluate(page, strategy)
			except Exception as e:
				logger.debug(f"{type(self).__name__} failed on {strategy.describe()}: {e}")
				result = self.not_found(strategy, str(e) or type(e).__name__)

		result.duration_ms = (time.monotonic() - start) * 1000
		if result.found:
			result.confidence = cap_confidence(strategy.type, result.confidence)
		else:
			result.confidence = 0.0
		return result

	@abstractmethod
	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		"""Type-specific evaluation. May raise; evaluate() converts exceptions."""

	@staticmethod
	def not_found(strategy: LocatorStrategy, error: str | None = None, **metadata: Any) -> StrategyEvaluationResult:
		return StrategyEvaluationResult(
			strategy=strategy,
			found=False,
			confidence=0.0,
			error=error,
			metadata=metadata,
		)

	@staticmethod
	def resolved(
		strategy: LocatorStrategy,
		confidence: float,
		backend_node_id: int | None = None,
		click_point: ClickPoint | None = None,
		match_count: int | None = None,
		**metadata: Any,
	) -> StrategyEvaluationResult:
		return StrategyEvaluationResult(
			strategy=strategy,
			found=True,
			confidence=max(0.0, min(confidence, 1.0)),
			node_handle=NodeHandle(backend_node_id=backend_node_id) if backend_node_id else None,
			click_point=click_point,
			match_count=match_count,
			metadata=metadata,
		)
