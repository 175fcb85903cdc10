"""
Tests for the conditional click poller.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from relocator.schemas.vision import ConditionalConfig, InteractionType
from relocator.vision.conditional import ConditionalClickPoller
from relocator.vision.ocr import OCREngineError


class TestConditionalClickPoller:
	"""Tests for the idle-timeout poll/click loop."""

	async def test_success_text_ends_poll(self, page, make_ocr):
		"""Test that the success marker ends the poll before any click."""
		ocr = make_ocr({'Done': (1, 1), 'Next': (5, 5)})
		config = ConditionalConfig(search_terms=['Next'], success_text='Done', timeout_seconds=5)

		result = await ConditionalClickPoller(ocr).run(page, config)

		assert result.success_text_found is True
		assert result.buttons_clicked == 0
		assert result.success is True
		assert page.clicks == []

	async def test_clicks_reset_idle_timeout(self, page, make_ocr):
		"""Test that each click restarts the idle timeout."""
		ocr = make_ocr({'Next': (50, 60)})
		ocr.visibility['Next'] = lambda n: n % 3 == 0 and n <= 12
		config = ConditionalConfig(search_terms=['Next'], timeout_seconds=0.25, poll_interval_ms=20, settle_ms=0)

		result = await ConditionalClickPoller(ocr).run(page, config)

		assert result.buttons_clicked == 4
		assert result.clicked_texts == ['Next'] * 4
		assert page.clicks == [(50, 60)] * 4
		assert result.timed_out is True
		assert result.duration_ms > 250
		assert result.idle_ms >= 249
		assert result.success is True

	async def test_idle_timeout_without_targets(self, page, fake_ocr):
		"""Test timing out when nothing ever appears."""
		config = ConditionalConfig(search_terms=['Next'], timeout_seconds=0.05, poll_interval_ms=10)

		result = await ConditionalClickPoller(fake_ocr).run(page, config)

		assert result.timed_out is True
		assert result.buttons_clicked == 0
		assert result.success is False
		assert fake_ocr.initialize_calls == 1

	async def test_search_term_priority(self, page, make_ocr):
		"""Test that the first visible search term is clicked."""
		ocr = make_ocr({'Accept': (1, 1), 'Next': (2, 2)})
		cancel = asyncio.Event()
		page.on_click = lambda x, y: cancel.set()
		config = ConditionalConfig(search_terms=['Next', 'Accept'], timeout_seconds=5, poll_interval_ms=10, settle_ms=0)

		result = await ConditionalClickPoller(ocr).run(page, config, cancel)

		assert result.clicked_texts == ['Next']
		assert result.cancelled is True
		assert result.success is False

	async def test_input_interaction(self, page, make_ocr):
		"""Test typing into a found field."""
		ocr = make_ocr({'Field': (7, 8), 'Done': (1, 1)})
		ocr.visibility['Field'] = lambda n: n == 1
		ocr.visibility['Done'] = lambda n: n >= 2
		config = ConditionalConfig(
			search_terms=['Field'],
			success_text='Done',
			timeout_seconds=5,
			poll_interval_ms=10,
			settle_ms=0,
			interaction_type=InteractionType.INPUT,
			input_value='hello',
		)

		result = await ConditionalClickPoller(ocr).run(page, config)

		assert page.clicks == [(7, 8)]
		assert page.typed == ['hello']
		assert result.buttons_clicked == 1
		assert result.success_text_found is True

	async def test_screenshot_failures_tolerated(self, page, fake_ocr):
		"""Test that screenshot errors do not abort the poll."""
		page.fail.add('capture_screenshot')
		config = ConditionalConfig(search_terms=['Next'], timeout_seconds=0.05, poll_interval_ms=10)

		result = await ConditionalClickPoller(fake_ocr).run(page, config)

		assert result.timed_out is True
		assert page.count('capture_screenshot') >= 1

	async def test_ocr_unavailable(self, page):
		"""Test that an OCR engine that cannot start ends the poll."""
		ocr = MagicMock()
		ocr.is_ready = False
		ocr.initialize = AsyncMock(side_effect=OCREngineError('Tesseract unavailable'))
		config = ConditionalConfig(search_terms=['Next'])

		result = await ConditionalClickPoller(ocr).run(page, config)

		assert result.buttons_clicked == 0
		assert result.success is False
		assert page.calls == []
