"""
Tests for the Decision Engine.

Tests cover:
- Sequential short-circuiting chain walks
- Below-threshold and empty-chain results
- Per-strategy timeouts
- Resolve-and-click
- Telemetry and conditional click delegation
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from relocator.config import reload_settings
from relocator.engine.decision import DecisionEngine
from relocator.schemas.strategy import FallbackChain, StrategyType
from relocator.schemas.vision import ConditionalClickResult, ConditionalConfig
from relocator.strategies.coordinates import CoordinatesEvaluator
from relocator.strategies.registry import EvaluatorRegistry


@pytest.fixture
def engine(registry):
	"""Create a DecisionEngine on the scripted registry."""
	return DecisionEngine(registry=registry, strategy_timeout=1.0)


@pytest.fixture
def found_page(page):
	"""Page where '#found' resolves to a button at (10, 20)."""
	page.add_node(5, point=(10, 20))
	page.css['#found'] = [5]
	return page


class TestResolve:
	"""Tests for chain walking."""

	async def test_short_circuits_on_first_qualifying(self, engine, found_page, structural, coordinates):
		"""Test that strategies after the first qualifying one are never evaluated."""
		chain = FallbackChain(strategies=[
			structural('#missing', 0.9),
			structural('#found', 0.8),
			coordinates(1, 1),
		])
		engine.registry.evaluate = AsyncMock(wraps=engine.registry.evaluate)

		result = await engine.resolve(found_page, chain, step_id='step_1')

		assert result.found is True
		assert result.strategy.selector == '#found'
		assert result.confidence == pytest.approx(0.8)
		assert result.metadata['attempts'] == 2
		evaluated = [call.args[1] for call in engine.registry.evaluate.await_args_list]
		assert [s.type for s in evaluated] == [StrategyType.STRUCTURAL_SELECTOR, StrategyType.STRUCTURAL_SELECTOR]

	async def test_below_threshold_returns_last_result(self, engine, page, structural, coordinates):
		"""Test that exhaustion returns the last attempted result, marked below threshold."""
		chain = FallbackChain(strategies=[structural('#missing', 0.9), coordinates(30, 40)])

		result = await engine.resolve(page, chain, min_confidence=0.7)

		assert result.strategy.type == StrategyType.COORDINATES
		assert result.found is True
		assert result.confidence == pytest.approx(0.6)
		assert result.qualifies(0.7) is False
		assert result.metadata['below_threshold'] is True
		assert result.metadata['min_confidence'] == 0.7
		assert result.metadata['attempts'] == 2

	async def test_coordinates_tail_resolves(self, engine, page, structural, coordinates):
		"""Test that a chain ending in coordinates resolves at the default floor."""
		chain = FallbackChain(strategies=[structural('#missing', 0.9), coordinates(30, 40)])

		result = await engine.resolve(page, chain)

		assert result.qualifies(engine.min_confidence)
		assert (result.click_point.x, result.click_point.y) == (30, 40)
		assert 'below_threshold' not in result.metadata

	async def test_empty_chain(self, engine, page):
		"""Test the synthetic result for an empty chain."""
		result = await engine.resolve(page, FallbackChain())

		assert result.found is False
		assert result.error == 'Fallback chain is empty'
		assert result.metadata['attempts'] == 0
		assert result.metadata['below_threshold'] is True
		assert page.calls == []

	async def test_strategy_timeout(self, registry, page, structural, coordinates):
		"""Test that a slow strategy times out and the walk continues."""
		page.delays['get_document'] = 0.5
		engine = DecisionEngine(registry=registry, strategy_timeout=0.05)
		chain = FallbackChain(strategies=[structural('#slow', 0.9), coordinates(1, 1)])

		result = await engine.resolve(page, chain, step_id='slow_step')

		assert result.strategy.type == StrategyType.COORDINATES
		first = engine.telemetry.records[-1].attempts[0]
		assert first.success is False
		assert first.error == 'Strategy evaluation timed out after 50ms'
		assert first.duration_ms == pytest.approx(50.0)

	async def test_coordinates_survive_strategy_timeout(self, page, fake_ocr, coordinates):
		"""Test that a coordinates tail slower than the strategy timeout still resolves."""
		page.hits[(5, 5)] = 777
		page.delays['get_node_for_location'] = 0.3
		registry = EvaluatorRegistry([CoordinatesEvaluator(validate_element_exists=True, hit_test_timeout=1.0)])
		engine = DecisionEngine(registry=registry, ocr_engine=fake_ocr, strategy_timeout=0.1)
		chain = FallbackChain(strategies=[coordinates(5, 5)])

		result = await engine.resolve_and_click(page, chain)

		assert result.found is True
		assert result.error is None
		assert result.confidence == pytest.approx(0.6)
		assert result.metadata['validation_timed_out'] is True
		assert 'below_threshold' not in result.metadata
		assert result.metadata['clicked'] is True
		assert page.clicks == [(5, 5)]
		assert engine.telemetry.records[-1].attempts[0].success is True

	async def test_does_not_mutate_chain(self, engine, found_page, structural, coordinates):
		"""Test that resolution leaves the chain untouched."""
		chain = FallbackChain(strategies=[structural('#found', 0.8), coordinates(1, 1)])
		before = chain.model_dump()

		await engine.resolve(found_page, chain)

		assert chain.model_dump() == before


class TestResolveAndClick:
	"""Tests for resolve-and-click."""

	async def test_clicks_resolved_point(self, engine, found_page, structural, coordinates):
		"""Test clicking the resolved element."""
		chain = FallbackChain(strategies=[structural('#found', 0.8), coordinates(1, 1)])

		result = await engine.resolve_and_click(found_page, chain, step_id='click_step')

		assert result.metadata['clicked'] is True
		assert found_page.clicks == [(10, 20)]
		assert engine.telemetry.records[-1].success is True

	async def test_click_failure_reported(self, engine, found_page, structural, coordinates):
		"""Test that a failed click is reported without raising."""
		found_page.fail.add('click')
		chain = FallbackChain(strategies=[structural('#found', 0.8), coordinates(1, 1)])

		result = await engine.resolve_and_click(found_page, chain)

		assert result.metadata['clicked'] is False
		assert 'scripted failure' in result.metadata['click_error']
		assert engine.telemetry.records[-1].success is False

	async def test_no_click_below_threshold(self, engine, page, coordinates):
		"""Test that a below-threshold result is not clicked."""
		chain = FallbackChain(strategies=[coordinates(1, 1)])

		result = await engine.resolve_and_click(page, chain, min_confidence=0.7)

		assert result.metadata['clicked'] is False
		assert page.clicks == []


class TestEngineWiring:
	"""Tests for engine construction and delegation."""

	def test_shares_registry_ocr_engine(self, engine, fake_ocr):
		"""Test that the engine reuses the visual evaluator's OCR engine."""
		assert engine.ocr_engine is fake_ocr
		assert engine.poller.ocr_engine is fake_ocr

	def test_telemetry_disabled(self, registry, monkeypatch):
		"""Test that telemetry follows its feature flag."""
		monkeypatch.setenv('FEATURE_STRATEGY_TELEMETRY', 'false')
		reload_settings()

		assert DecisionEngine(registry=registry).telemetry is None

	async def test_run_conditional_delegates(self, registry, page):
		"""Test that conditional clicks run on the engine's poller."""
		poller = MagicMock()
		poller.run = AsyncMock(return_value=ConditionalClickResult(buttons_clicked=1))
		engine = DecisionEngine(registry=registry, poller=poller)
		config = ConditionalConfig(search_terms=['Next'])

		result = await engine.run_conditional(page, config)

		assert result.buttons_clicked == 1
		poller.run.assert_awaited_once_with(page, config, None)
