"""
Step Verifier

Re-tests one recorded step against the current page without acting on it.
Unlike the Decision Engine, every strategy in the chain is evaluated so the
caller gets a complete diagnostic picture; the working strategy is the
highest-confidence result that qualifies.
"""

import asyncio
import logging
import time
from typing import Any

from relocator.config import get_settings
from relocator.engine.decision import DecisionEngine
from relocator.schemas.strategy import (
	FallbackChain,
	LocatorStrategy,
	StrategyEvaluationResult,
	StrategyType,
)
from relocator.schemas.verification import RecordedStep, StepBundle, StepVerificationResult

logger = logging.getLogger(__name__)

BUNDLE_ID_CONFIDENCE = 0.85
BUNDLE_XPATH_CONFIDENCE = 0.75
BUNDLE_ARIA_CONFIDENCE = 0.80
BUNDLE_COORDINATES_CONFIDENCE = 0.60


def basic_chain_from_bundle(bundle: StepBundle | None) -> FallbackChain:
	"""
	Minimal chain for steps recorded without a fallback chain.

	Built from the stored id, XPath, accessible label and coordinates, then
	ordered by descending confidence.
	"""
	strategies: list[LocatorStrategy] = []
	if bundle is None:
		return FallbackChain(strategies=strategies)

	if bundle.element_id:
		strategies.append(LocatorStrategy(
			type=StrategyType.STRUCTURAL_SELECTOR,
			selector=f'#{bundle.element_id}',
			confidence=BUNDLE_ID_CONFIDENCE,
			metadata={'element_id': bundle.element_id, 'source': 'bundle'},
		))
	if bundle.xpath:
		strategies.append(LocatorStrategy(
			type=StrategyType.STRUCTURAL_SELECTOR,
			selector=bundle.xpath,
			confidence=BUNDLE_XPATH_CONFIDENCE,
			metadata={'is_xpath': True, 'source': 'bundle'},
		))
	if bundle.aria:
		strategies.append(LocatorStrategy(
			type=StrategyType.SEMANTIC_ATTRIBUTE,
			confidence=BUNDLE_ARIA_CONFIDENCE,
			metadata={'label': bundle.aria, 'text': bundle.aria},
		))
	if bundle.coordinates is not None:
		strategies.append(LocatorStrategy(
			type=StrategyType.COORDINATES,
			confidence=BUNDLE_COORDINATES_CONFIDENCE,
			metadata={'x': bundle.coordinates.x, 'y': bundle.coordinates.y},
		))

	strategies.sort(key=lambda s: s.confidence, reverse=True)
	return FallbackChain(strategies=strategies)


class StepVerifier:
	"""Exhaustive per-step verification on top of the Decision Engine's evaluators."""

	def __init__(
		self,
		engine: DecisionEngine | None = None,
		min_confidence: float | None = None,
		max_strategies: int | None = None,
		concurrent: bool | None = None,
	):
		"""
		Initialize the verifier.

		Args:
			engine: Decision Engine whose registry and timeout are reused
			min_confidence: Confidence floor for a working strategy
			max_strategies: Maximum strategies tested per step
			concurrent: Evaluate one step's strategies concurrently
		"""
		settings = get_settings()
		self.engine = engine or DecisionEngine()
		self.min_confidence = min_confidence if min_confidence is not None else settings.min_confidence
		self.max_strategies = max_strategies if max_strategies is not None else settings.max_chain_length
		self.concurrent = concurrent if concurrent is not None else settings.concurrent_step_evaluation_enabled

	async def verify_step(self, step: RecordedStep, page: Any) -> StepVerificationResult:
		"""
		Verify one recorded step.

		Args:
			step: Recorded step (with or without a stored chain)
			page: Page client

		Returns:
			StepVerificationResult
		"""
		start = time.monotonic()
		step_id = step.resolved_id

		if step.is_navigation:
			return StepVerificationResult(step_id=step_id, verified=True, skipped=True, confidence=1.0)

		chain = step.fallback_chain if step.fallback_chain is not None else basic_chain_from_bundle(step.bundle)
		if chain.is_empty:
			return StepVerificationResult(
				step_id=step_id,
				verified=False,
				failure_reason='No strategies available for this step',
				duration_ms=(time.monotonic() - start) * 1000,
			)

		strategies = chain.strategies[:self.max_strategies]
		results = await self.test_strategies(strategies, page)

		best: StrategyEvaluationResult | None = None
		for result in results:
			if result.qualifies(self.min_confidence) and (best is None or result.confidence > best.confidence):
				best = result

		duration_ms = (time.monotonic() - start) * 1000
		if best is None:
			reason = self.failure_reason(results)
			logger.debug(f"Step {step_id} flagged: {reason}")
			return StepVerificationResult(
				step_id=step_id,
				verified=False,
				strategy_results=results,
				failure_reason=reason,
				duration_ms=duration_ms,
			)

		logger.debug(f"Step {step_id} verified by {best.strategy.describe()} ({best.confidence:.2f})")
		return StepVerificationResult(
			step_id=step_id,
			verified=True,
			working_strategy=best.strategy,
			confidence=best.confidence,
			strategy_results=results,
			duration_ms=duration_ms,
		)

	async def test_strategies(self, strategies: list[LocatorStrategy], page: Any) -> list[StrategyEvaluationResult]:
		"""Evaluate every strategy; results keep the chain's order."""
		if self.concurrent:
			return list(await asyncio.gather(*(self.engine.evaluate_strategy(page, s) for s in strategies)))
		results = []
		for strategy in strategies:
			results.append(await self.engine.evaluate_strategy(page, strategy))
		return results

	async def test_strategy(self, strategy: LocatorStrategy, page: Any) -> StrategyEvaluationResult:
		return await self.engine.evaluate_strategy(page, strategy)

	def failure_reason(self, results: list[StrategyEvaluationResult]) -> str:
		if not results:
			return 'No strategies were available to test'
		if all(r.error for r in results):
			return f'All strategies errored: {results[0].error}'
		low = [r.confidence for r in results if r.found and r.confidence < self.min_confidence]
		if low:
			return f'Best strategy confidence ({max(low):.2f}) below threshold ({self.min_confidence})'
		return 'No strategy could reliably locate the element'
