"""
Pytest configuration for relocator tests.

Provides a scripted in-memory page client, a scripted OCR engine and
deterministic settings so evaluators, the decision engine and the
verification orchestrator can be exercised without a browser.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from relocator.cdp.client import CDPCommandError
from relocator.config import reload_settings
from relocator.schemas.strategy import BoundingRect, ClickPoint, LocatorStrategy, StrategyType
from relocator.schemas.vision import OCRMatch, TextSearchResult
from relocator.strategies.registry import EvaluatorRegistry


class FakePage:
	"""
	Scripted page client.

	Implements the same coroutine surface as CDPPageClient on top of plain
	dictionaries. Every call is recorded in `calls`; adding a method name to
	`fail` makes it raise CDPCommandError, and `delays` makes it sleep first.
	"""

	ROOT_ID = 1

	def __init__(self):
		self.document: dict[str, Any] = {'nodeId': self.ROOT_ID, 'children': []}
		self.css: dict[str, list[int]] = {}
		self.nested_css: dict[tuple[int, str], list[int]] = {}
		self.xpaths: dict[str, list[int]] = {}
		self.nodes: dict[int, dict[str, Any]] = {}
		self.by_backend: dict[int, dict[str, Any]] = {}
		self.points: dict[int, ClickPoint] = {}
		self.hits: dict[tuple[int, int], int] = {}
		self.hit_test: Callable[[int, int], int | None] | None = None
		self.ax_nodes: list[dict[str, Any]] = []
		self.screenshot = b'fake-png'
		self.device_pixel_ratio = 1.0
		self.clicks: list[tuple[float, float]] = []
		self.typed: list[str] = []
		self.calls: list[str] = []
		self.discarded: list[str] = []
		self.fail: set[str] = set()
		self.delays: dict[str, float] = {}
		self.on_click: Callable[[float, float], None] | None = None
		self._searches: dict[str, list[int]] = {}

	def add_node(
		self,
		node_id: int,
		tag: str = 'button',
		attributes: dict[str, str] | None = None,
		point: tuple[float, float] | None = None,
		backend_node_id: int | None = None,
	) -> int:
		"""Register a DOM node; returns its backend node id (node_id + 100 by default)."""
		backend = backend_node_id if backend_node_id is not None else node_id + 100
		flat: list[str] = []
		for name, value in (attributes or {}).items():
			flat.extend([name, value])
		node = {
			'nodeId': node_id,
			'backendNodeId': backend,
			'nodeName': tag.upper(),
			'localName': tag,
			'attributes': flat,
		}
		self.nodes[node_id] = node
		self.by_backend[backend] = node
		if point is not None:
			self.points[backend] = ClickPoint(x=point[0], y=point[1])
		return backend

	async def _call(self, name: str) -> None:
		self.calls.append(name)
		if name in self.delays:
			await asyncio.sleep(self.delays[name])
		if name in self.fail:
			raise CDPCommandError(name, 'scripted failure')

	def count(self, name: str) -> int:
		return self.calls.count(name)

	# DOM

	async def get_document(self, depth: int = 1, pierce: bool = False) -> dict[str, Any]:
		await self._call('get_document')
		return self.document

	async def query_selector(self, node_id: int, selector: str) -> int:
		await self._call('query_selector')
		matches = self._matches(node_id, selector)
		return matches[0] if matches else 0

	async def query_selector_all(self, node_id: int, selector: str) -> list[int]:
		await self._call('query_selector_all')
		return list(self._matches(node_id, selector))

	def _matches(self, node_id: int, selector: str) -> list[int]:
		if node_id == self.ROOT_ID:
			return self.css.get(selector, [])
		return self.nested_css.get((node_id, selector), [])

	async def describe_node(self, node_id: int | None = None, backend_node_id: int | None = None) -> dict[str, Any]:
		await self._call('describe_node')
		node = self.nodes.get(node_id) if node_id is not None else self.by_backend.get(backend_node_id)
		if node is None:
			raise CDPCommandError('DOM.describeNode', 'No node with given id found')
		return node

	async def get_click_point(self, node_id: int | None = None, backend_node_id: int | None = None) -> ClickPoint | None:
		await self._call('get_click_point')
		if node_id is not None:
			node = self.nodes.get(node_id)
			backend_node_id = node['backendNodeId'] if node else None
		return self.points.get(backend_node_id) if backend_node_id is not None else None

	async def get_node_for_location(self, x: int, y: int) -> dict[str, Any]:
		await self._call('get_node_for_location')
		backend = self.hit_test(x, y) if self.hit_test is not None else self.hits.get((x, y))
		if backend is None:
			raise CDPCommandError('DOM.getNodeForLocation', 'No node found at given location')
		return {'backendNodeId': backend}

	async def perform_search(self, query: str, include_user_agent_shadow_dom: bool = True) -> tuple[str, int]:
		await self._call('perform_search')
		search_id = f'search-{len(self._searches) + 1}'
		self._searches[search_id] = self.xpaths.get(query, [])
		return search_id, len(self._searches[search_id])

	async def get_search_results(self, search_id: str, from_index: int, to_index: int) -> list[int]:
		await self._call('get_search_results')
		return self._searches.get(search_id, [])[from_index:to_index]

	async def discard_search_results(self, search_id: str) -> None:
		await self._call('discard_search_results')
		self.discarded.append(search_id)

	# Accessibility

	async def get_full_ax_tree(self) -> list[dict[str, Any]]:
		await self._call('get_full_ax_tree')
		return self.ax_nodes

	# Page

	async def capture_screenshot(self) -> bytes:
		await self._call('capture_screenshot')
		return self.screenshot

	async def get_device_pixel_ratio(self) -> float:
		await self._call('get_device_pixel_ratio')
		return self.device_pixel_ratio

	async def click(self, x: float, y: float, button: str = 'left') -> None:
		await self._call('click')
		self.clicks.append((x, y))
		if self.on_click is not None:
			self.on_click(x, y)

	async def insert_text(self, text: str) -> None:
		await self._call('insert_text')
		self.typed.append(text)


class FakeOCR:
	"""
	Scripted OCR engine with the OCREngine search surface.

	`texts` maps on-screen strings to their click points. `visibility` holds
	optional per-text predicates over the 1-based query count for that text,
	so a string can appear only on some polls.
	"""

	def __init__(self, texts: dict[str, tuple[float, float]] | None = None, confidence: float = 90.0):
		self.texts = {text: ClickPoint(x=x, y=y) for text, (x, y) in (texts or {}).items()}
		self.confidence = confidence
		self.visibility: dict[str, Callable[[int], bool]] = {}
		self.queries: list[str] = []
		self.initialize_calls = 0
		self._ready = False

	@property
	def is_ready(self) -> bool:
		return self._ready

	async def initialize(self) -> None:
		self.initialize_calls += 1
		self._ready = True

	async def find_text(
		self,
		image: bytes,
		target: str,
		exact: bool = False,
		case_sensitive: bool = False,
		use_cache: bool = True,
		scale: float = 1.0,
	) -> TextSearchResult:
		self.queries.append(target)
		point = self.texts.get(target)
		rule = self.visibility.get(target)
		if point is None or (rule is not None and not rule(self.queries.count(target))):
			return TextSearchResult(found=False)
		bbox = BoundingRect(x=point.x - 20, y=point.y - 10, width=40, height=20)
		match = OCRMatch(text=target, confidence=self.confidence, bbox=bbox, click_point=point)
		return TextSearchResult(
			found=True,
			confidence=self.confidence,
			matched_text=target,
			click_point=point,
			bbox=bbox,
			all_matches=[match],
		)


def ax_node(
	backend_node_id: int,
	role: str,
	name: str = '',
	properties: dict[str, Any] | None = None,
	ignored: bool = False,
) -> dict[str, Any]:
	"""Build an Accessibility.getFullAXTree node."""
	return {
		'nodeId': str(backend_node_id),
		'backendDOMNodeId': backend_node_id,
		'ignored': ignored,
		'role': {'type': 'role', 'value': role},
		'name': {'type': 'computedString', 'value': name},
		'properties': [
			{'name': key, 'value': {'type': 'booleanOrUndefined', 'value': value}}
			for key, value in (properties or {}).items()
		],
	}


@pytest.fixture(autouse=True)
def relocator_settings(monkeypatch):
	"""Deterministic settings for every test."""
	monkeypatch.setenv('FEATURE_COORDINATE_VALIDATION', 'false')
	monkeypatch.setenv('FEATURE_NESTED_DOCUMENT_SEARCH', 'true')
	monkeypatch.setenv('FEATURE_CONCURRENT_STEP_EVALUATION', 'true')
	monkeypatch.setenv('FEATURE_STRATEGY_TELEMETRY', 'true')
	monkeypatch.setenv('RELOCATOR_MIN_CONFIDENCE', '0.5')
	monkeypatch.setenv('RELOCATOR_STRATEGY_TIMEOUT_MS', '1000')
	monkeypatch.setenv('RELOCATOR_MAX_CHAIN_LENGTH', '7')
	monkeypatch.setenv('RELOCATOR_AX_CACHE_TTL_MS', '0')
	monkeypatch.setenv('RELOCATOR_PAUSE_POLL_INTERVAL_MS', '10')
	return reload_settings()


@pytest.fixture(scope='function')
def page():
	"""Create an empty scripted page."""
	return FakePage()


@pytest.fixture(scope='function')
def fake_ocr():
	"""Create a scripted OCR engine with nothing on screen."""
	return FakeOCR()


@pytest.fixture(scope='function')
def make_ocr():
	"""Return the scripted OCR engine class for tests that need several screens."""
	return FakeOCR


@pytest.fixture(scope='function')
def ax():
	"""Return the AX node builder."""
	return ax_node


@pytest.fixture(scope='function')
def structural():
	"""Return a factory for structural selector strategies."""
	def _make(selector: str, confidence: float = 0.9) -> LocatorStrategy:
		return LocatorStrategy(type=StrategyType.STRUCTURAL_SELECTOR, selector=selector, confidence=confidence)
	return _make


@pytest.fixture(scope='function')
def coordinates():
	"""Return a factory for coordinates strategies."""
	def _make(x: float, y: float, confidence: float = 0.6) -> LocatorStrategy:
		return LocatorStrategy(type=StrategyType.COORDINATES, confidence=confidence, metadata={'x': x, 'y': y})
	return _make


@pytest.fixture(scope='function')
def registry(fake_ocr):
	"""Create the default evaluator registry on the scripted OCR engine."""
	return EvaluatorRegistry.default(ocr_engine=fake_ocr)
