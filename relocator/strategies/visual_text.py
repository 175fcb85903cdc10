"""
Visual Text Evaluator

Finds the stored target text in a fresh screenshot using the shared OCR engine.
"""

import logging
from typing import Any

from relocator.cdp.client import CDPCommandError
from relocator.schemas.strategy import CONFIDENCE_CEILINGS, LocatorStrategy, StrategyEvaluationResult, StrategyType, VisualTextMetadata
from relocator.strategies.base import StrategyEvaluator
from relocator.vision.ocr import OCREngine

logger = logging.getLogger(__name__)

VISUAL_TEXT_CEILING = CONFIDENCE_CEILINGS[StrategyType.VISUAL_TEXT]


class VisualTextEvaluator(StrategyEvaluator):
	"""Evaluates visual_text strategies via OCR."""

	handled_types = frozenset({StrategyType.VISUAL_TEXT})

	def __init__(self, ocr_engine: OCREngine):
		self.ocr_engine = ocr_engine

	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		metadata: VisualTextMetadata = strategy.metadata  # type: ignore[assignment]
		if not metadata.target_text:
			return self.not_found(strategy, 'Visual text strategy requires target_text in metadata')

		if not self.ocr_engine.is_ready:
			await self.ocr_engine.initialize()

		screenshot = await page.capture_screenshot()
		try:
			scale = await page.get_device_pixel_ratio()
		except CDPCommandError:
			scale = 1.0

		search = await self.ocr_engine.find_text(
			screenshot,
			metadata.target_text,
			exact=metadata.exact,
			case_sensitive=metadata.case_sensitive,
			use_cache=metadata.use_cache,
			scale=scale,
		)
		if not search.found:
			return self.not_found(strategy, f'Text "{metadata.target_text}" not found on screen')

		confidence = min(search.confidence / 100, VISUAL_TEXT_CEILING)
		return self.resolved(
			strategy,
			confidence,
			click_point=search.click_point,
			match_count=len(search.all_matches),
			matched_text=search.matched_text,
			ocr_confidence=search.confidence,
		)
