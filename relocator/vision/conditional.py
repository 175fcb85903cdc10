"""
Conditional Click Poller

Repeatedly screenshots and OCRs the page, clicking any configured target text
that appears. The timeout is an idle timeout: every successful click resets it,
so a long run keeps going as long as the page keeps producing targets.
"""

import asyncio
import logging
import time
from typing import Any

from relocator.cdp.client import CDPCommandError
from relocator.schemas.vision import ConditionalClickResult, ConditionalConfig, InteractionType
from relocator.vision.ocr import OCREngine, OCREngineError

logger = logging.getLogger(__name__)


class ConditionalClickPoller:
	"""Idle-timeout poll/click loop over the shared OCR engine."""

	def __init__(self, ocr_engine: OCREngine):
		self.ocr_engine = ocr_engine

	async def run(
		self,
		page: Any,
		config: ConditionalConfig,
		cancel_event: asyncio.Event | None = None,
	) -> ConditionalClickResult:
		"""
		Poll until the success text appears, the idle timeout elapses, or cancellation.

		Args:
			page: Page client (screenshots, clicks, text input)
			config: Search terms, success marker and timing
			cancel_event: Set externally to stop the loop at the next wait or iteration

		Returns:
			ConditionalClickResult
		"""
		result = ConditionalClickResult()
		start = time.monotonic()
		last_progress = start
		timeout = config.timeout_seconds
		interval = config.poll_interval_ms / 1000

		try:
			await self._ensure_ready()
		except OCREngineError as e:
			logger.warning(f"Conditional poll aborted, OCR unavailable: {e}")
			result.duration_ms = (time.monotonic() - start) * 1000
			return result

		scale = await self._device_pixel_ratio(page)
		logger.debug(f"Conditional poll started (terms={config.search_terms}, idle timeout={timeout}s)")

		while True:
			if cancel_event is not None and cancel_event.is_set():
				result.cancelled = True
				break
			if time.monotonic() - last_progress >= timeout:
				result.timed_out = True
				break

			try:
				screenshot = await page.capture_screenshot()
			except CDPCommandError as e:
				logger.warning(f"Conditional poll screenshot failed: {e}")
				await self._wait(self._next_wait(interval, timeout, last_progress), cancel_event)
				continue

			try:
				if config.success_text:
					marker = await self.ocr_engine.find_text(screenshot, config.success_text, use_cache=False, scale=scale)
					if marker.found:
						result.success_text_found = True
						logger.info(f"Conditional poll: success text {config.success_text!r} visible")
						break

				for term in config.search_terms:
					target = await self.ocr_engine.find_text(screenshot, term, use_cache=True, scale=scale)
					if not target.found or target.click_point is None:
						continue
					try:
						await page.click(target.click_point.x, target.click_point.y)
						if config.interaction_type == InteractionType.INPUT and config.input_value:
							await page.insert_text(config.input_value)
					except CDPCommandError as e:
						logger.warning(f"Conditional poll click on {term!r} failed: {e}")
						continue

					result.buttons_clicked += 1
					result.clicked_texts.append(term)
					result.click_targets.append(target.click_point)
					last_progress = time.monotonic()
					logger.info(f"Conditional poll clicked {term!r} at ({target.click_point.x:.0f}, {target.click_point.y:.0f})")
					await self._wait(config.settle_ms / 1000, cancel_event)
					break
			except OCREngineError as e:
				logger.warning(f"Conditional poll OCR failed: {e}")

			await self._wait(self._next_wait(interval, timeout, last_progress), cancel_event)

		end = time.monotonic()
		result.duration_ms = (end - start) * 1000
		result.idle_ms = (end - last_progress) * 1000
		logger.info(
			f"Conditional poll finished: clicks={result.buttons_clicked}, success_text={result.success_text_found}, "
			f"timed_out={result.timed_out}, cancelled={result.cancelled}"
		)
		return result

	async def _ensure_ready(self) -> None:
		if not self.ocr_engine.is_ready:
			await self.ocr_engine.initialize()

	async def _device_pixel_ratio(self, page: Any) -> float:
		try:
			return await page.get_device_pixel_ratio()
		except CDPCommandError:
			return 1.0

	def _next_wait(self, interval: float, timeout: float, last_progress: float) -> float:
		"""Poll interval, shortened so the idle deadline is checked on time."""
		remaining = timeout - (time.monotonic() - last_progress)
		return max(0.0, min(interval, remaining))

	async def _wait(self, seconds: float, cancel_event: asyncio.Event | None) -> None:
		"""Sleep, waking early if cancelled."""
		if cancel_event is None:
			await asyncio.sleep(seconds)
			return
		try:
			await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
		except asyncio.TimeoutError:
			pass
