"""
Decision Engine

Replay-time resolution of a recorded step. Walks the fallback chain in order,
one strategy at a time, and returns the first live result that is found and
at or above the confidence floor.

When nothing qualifies the engine still returns the last attempted result
(usually the coordinates fallback), marked with metadata['below_threshold'].
Callers decide whether a found-but-below-threshold point is good enough.
"""

import asyncio
import logging
import time
from typing import Any

from relocator.cdp.client import CDPCommandError
from relocator.config import get_settings
from relocator.engine.telemetry import ResolutionRecord, StrategyAttempt, StrategyTelemetry
from relocator.schemas.strategy import FallbackChain, LocatorStrategy, StrategyEvaluationResult, StrategyType
from relocator.schemas.vision import ConditionalClickResult, ConditionalConfig
from relocator.strategies.base import StrategyEvaluator
from relocator.strategies.coordinates import CoordinatesEvaluator
from relocator.strategies.registry import EvaluatorRegistry
from relocator.vision.conditional import ConditionalClickPoller
from relocator.vision.ocr import OCREngine

logger = logging.getLogger(__name__)


class DecisionEngine:
	"""
	Sequential, short-circuiting chain walker.

	Does not own or mutate chains; every call returns a fresh result.
	"""

	def __init__(
		self,
		registry: EvaluatorRegistry | None = None,
		min_confidence: float | None = None,
		strategy_timeout: float | None = None,
		telemetry: StrategyTelemetry | None = None,
		ocr_engine: OCREngine | None = None,
		poller: ConditionalClickPoller | None = None,
	):
		"""
		Initialize the engine.

		Args:
			registry: Evaluator registry (default registry sharing `ocr_engine` when omitted)
			min_confidence: Confidence floor for a qualifying result
			strategy_timeout: Per-strategy timeout in seconds
			telemetry: Attempt recorder (one is created when telemetry is enabled in settings)
			ocr_engine: OCR engine shared by the visual evaluator and the conditional poller
			poller: Conditional click poller
		"""
		settings = get_settings()
		if ocr_engine is None and registry is not None:
			ocr_engine = getattr(registry.get_evaluator(StrategyType.VISUAL_TEXT), 'ocr_engine', None)
		self.ocr_engine = ocr_engine or OCREngine()
		self.registry = registry or EvaluatorRegistry.default(self.ocr_engine)
		self.min_confidence = min_confidence if min_confidence is not None else settings.min_confidence
		self.strategy_timeout = strategy_timeout if strategy_timeout is not None else settings.strategy_timeout_seconds
		if telemetry is None and settings.strategy_telemetry_enabled:
			telemetry = StrategyTelemetry()
		self.telemetry = telemetry
		self.poller = poller or ConditionalClickPoller(self.ocr_engine)

	async def resolve(
		self,
		page: Any,
		chain: FallbackChain,
		min_confidence: float | None = None,
		step_id: str | None = None,
	) -> StrategyEvaluationResult:
		"""
		Resolve a chain against the live page.

		Args:
			page: Page client
			chain: Fallback chain of the step being replayed
			min_confidence: Override for the engine's confidence floor
			step_id: Recorded step id, for telemetry

		Returns:
			First qualifying result, or the last attempted result marked below_threshold
		"""
		result, record = await self._walk(page, chain, min_confidence, step_id)
		self._record(record)
		return result

	async def resolve_and_click(
		self,
		page: Any,
		chain: FallbackChain,
		min_confidence: float | None = None,
		step_id: str | None = None,
	) -> StrategyEvaluationResult:
		"""
		Resolve a chain and click the resolved point when the result qualifies.

		The outcome of the click is reported in metadata['clicked'] (and
		metadata['click_error'] on failure).
		"""
		threshold = self.min_confidence if min_confidence is None else min_confidence
		result, record = await self._walk(page, chain, threshold, step_id)

		clicked = False
		if result.qualifies(threshold) and result.click_point is not None:
			try:
				await page.click(result.click_point.x, result.click_point.y)
				clicked = True
			except CDPCommandError as e:
				logger.warning(f"Click at ({result.click_point.x:.0f}, {result.click_point.y:.0f}) failed: {e}")
				result.metadata['click_error'] = str(e)
		elif result.qualifies(threshold):
			logger.warning(f"Resolved {result.strategy.describe()} but no click point is available")

		result.metadata['clicked'] = clicked
		record.success = record.success and clicked
		self._record(record)
		return result

	async def run_conditional(
		self,
		page: Any,
		config: ConditionalConfig,
		cancel_event: asyncio.Event | None = None,
	) -> ConditionalClickResult:
		"""Run the idle-timeout conditional click loop on the shared OCR engine."""
		return await self.poller.run(page, config, cancel_event)

	async def evaluate_strategy(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		"""
		Evaluate one strategy under the per-strategy timeout.

		A coordinates strategy that times out still resolves, at its base
		confidence and without the hit-test.
		"""
		try:
			return await asyncio.wait_for(self.registry.evaluate(page, strategy), timeout=self.strategy_timeout)
		except asyncio.TimeoutError:
			timeout_ms = self.strategy_timeout * 1000
			if strategy.type == StrategyType.COORDINATES:
				logger.warning(f"{strategy.describe()} timed out after {timeout_ms:.0f}ms, using the unvalidated point")
				result = self._coordinates_evaluator().unvalidated(strategy, validation_timed_out=True)
			else:
				logger.debug(f"{strategy.describe()} timed out after {timeout_ms:.0f}ms")
				result = StrategyEvaluator.not_found(strategy, f"Strategy evaluation timed out after {timeout_ms:.0f}ms")
			result.duration_ms = timeout_ms
			return result

	async def _walk(
		self,
		page: Any,
		chain: FallbackChain | None,
		min_confidence: float | None,
		step_id: str | None,
	) -> tuple[StrategyEvaluationResult, ResolutionRecord]:
		threshold = self.min_confidence if min_confidence is None else min_confidence
		start = time.monotonic()
		record = ResolutionRecord(step_id=step_id)

		if chain is None or chain.is_empty:
			logger.warning(f"Step {step_id or '?'} has an empty fallback chain")
			placeholder = LocatorStrategy(type=StrategyType.COORDINATES, confidence=0.0)
			result = StrategyEvaluator.not_found(
				placeholder,
				'Fallback chain is empty',
				below_threshold=True,
				min_confidence=threshold,
				attempts=0,
			)
			return result, record

		last: StrategyEvaluationResult | None = None
		for attempt_number, strategy in enumerate(chain.strategies, start=1):
			result = await self.evaluate_strategy(page, strategy)
			record.attempts.append(StrategyAttempt(
				strategy_type=strategy.type,
				success=result.found,
				confidence=result.confidence,
				duration_ms=result.duration_ms,
				error=result.error,
				attempt_number=attempt_number,
			))
			last = result

			if result.qualifies(threshold):
				logger.debug(
					f"Resolved with {strategy.describe()} (confidence={result.confidence:.2f}, attempt {attempt_number})"
				)
				result.metadata['attempts'] = attempt_number
				record.final_strategy = strategy.type
				record.success = True
				record.total_duration_ms = (time.monotonic() - start) * 1000
				return result, record

			logger.debug(
				f"{strategy.describe()} did not qualify: found={result.found}, "
				f"confidence={result.confidence:.2f}, error={result.error}"
			)

		if last is None:
			return StrategyEvaluator.not_found(chain.strategies[0], "No strategy was evaluated"), record
		last.metadata['below_threshold'] = True
		last.metadata['min_confidence'] = threshold
		last.metadata['attempts'] = len(chain.strategies)
		record.total_duration_ms = (time.monotonic() - start) * 1000
		logger.info(
			f"No strategy reached confidence {threshold} after {len(chain.strategies)} attempts; "
			f"returning last result ({last.strategy.type.value}, found={last.found}, confidence={last.confidence:.2f})"
		)
		return last, record

	def _coordinates_evaluator(self) -> CoordinatesEvaluator:
		evaluator = self.registry.get_evaluator(StrategyType.COORDINATES)
		if isinstance(evaluator, CoordinatesEvaluator):
			return evaluator
		return CoordinatesEvaluator(validate_element_exists=False)

	def _record(self, record: ResolutionRecord) -> None:
		if self.telemetry is not None:
			self.telemetry.record(record)
