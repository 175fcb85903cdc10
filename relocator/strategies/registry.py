"""
Strategy Evaluator Registry

Dispatches a strategy to the evaluator that handles its type. Built once and
passed explicitly to the Decision Engine and the Verifier.
"""

import logging
from typing import Any

from relocator.cdp.accessibility import AccessibilityService
from relocator.schemas.strategy import LocatorStrategy, StrategyEvaluationResult, StrategyType
from relocator.strategies.base import StrategyEvaluator
from relocator.strategies.coordinates import CoordinatesEvaluator
from relocator.strategies.evidence import EvidenceScoredEvaluator
from relocator.strategies.semantic import SemanticEvaluator
from relocator.strategies.structural import StructuralEvaluator
from relocator.strategies.visual_text import VisualTextEvaluator
from relocator.vision.ocr import OCREngine

logger = logging.getLogger(__name__)


class EvaluatorRegistry:
	"""
	Evaluator registry.

	Evaluators are consulted in registration order; the first one whose
	handles() accepts the strategy type wins.
	"""

	def __init__(self, evaluators: list[StrategyEvaluator] | None = None):
		"""
		Initialize the registry.

		Args:
			evaluators: Initial evaluators, in priority order
		"""
		self._evaluators: list[StrategyEvaluator] = []
		for evaluator in evaluators or []:
			self.register(evaluator)
		logger.debug(f"EvaluatorRegistry initialized with {len(self._evaluators)} evaluators")

	@classmethod
	def default(
		cls,
		ocr_engine: OCREngine | None = None,
		accessibility: AccessibilityService | None = None,
	) -> 'EvaluatorRegistry':
		"""
		Registry with one evaluator per strategy type.

		Args:
			ocr_engine: OCR engine shared with the conditional poller (a new one when omitted)
			accessibility: Accessibility service shared by the semantic evaluator
		"""
		return cls([
			StructuralEvaluator(),
			SemanticEvaluator(accessibility),
			VisualTextEvaluator(ocr_engine or OCREngine()),
			CoordinatesEvaluator(),
			EvidenceScoredEvaluator(),
		])

	def register(self, evaluator: StrategyEvaluator) -> None:
		self._evaluators.append(evaluator)

	def get_evaluator(self, strategy_type: StrategyType) -> StrategyEvaluator | None:
		for evaluator in self._evaluators:
			if evaluator.handles(strategy_type):
				return evaluator
		return None

	@property
	def supported_types(self) -> set[StrategyType]:
		return {t for t in StrategyType if self.get_evaluator(t) is not None}

	async def evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		"""
		Evaluate a strategy with the matching evaluator.

		An unregistered type yields found=False rather than raising.
		"""
		evaluator = self.get_evaluator(strategy.type)
		if evaluator is None:
			logger.warning(f"No evaluator registered for strategy type: {strategy.type.value}")
			return StrategyEvaluator.not_found(strategy, f"No evaluator for strategy type: {strategy.type.value}")
		return await evaluator.evaluate(page, strategy)
