"""
Structural Selector Evaluator

Resolves CSS selectors and XPath expressions against the live DOM. Multiple
matches are treated as ambiguity: the element is still found, but confidence
drops with each extra match.
"""

import logging
from typing import Any

from relocator.cdp.client import CDPCommandError
from relocator.config import get_settings
from relocator.schemas.strategy import LocatorStrategy, StrategyEvaluationResult, StrategyType
from relocator.strategies.base import StrategyEvaluator

logger = logging.getLogger(__name__)

MAX_UNIQUENESS_CHECK = 10
MULTIPLE_MATCH_PENALTY = 0.2
AMBIGUOUS_CONFIDENCE_FLOOR = 0.3


def is_xpath(selector: str) -> bool:
	"""Positional path expressions start with '/', '//' or '(//'."""
	return selector.startswith('/') or selector.startswith('(//')


def ambiguity_confidence(match_count: int, base_confidence: float) -> float:
	"""0 matches -> 0; 1 -> base; n -> max(0.3, base - 0.2*(n-1))."""
	if match_count <= 0:
		return 0.0
	if match_count == 1:
		return base_confidence
	return max(AMBIGUOUS_CONFIDENCE_FLOOR, base_confidence - MULTIPLE_MATCH_PENALTY * (match_count - 1))


class StructuralEvaluator(StrategyEvaluator):
	"""Evaluates structural_selector strategies (CSS or XPath)."""

	handled_types = frozenset({StrategyType.STRUCTURAL_SELECTOR})

	def __init__(self, search_nested_documents: bool | None = None, max_uniqueness_check: int = MAX_UNIQUENESS_CHECK):
		self.search_nested_documents = (
			search_nested_documents if search_nested_documents is not None
			else get_settings().nested_document_search_enabled
		)
		self.max_uniqueness_check = max_uniqueness_check

	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		selector = (strategy.selector or '').strip()
		if not selector:
			return self.not_found(strategy, 'Strategy missing selector')

		if is_xpath(selector):
			return await self._evaluate_xpath(page, selector, strategy)
		return await self._evaluate_css(page, selector, strategy)

	async def _evaluate_css(self, page: Any, selector: str, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		root = await page.get_document()
		root_id = root.get('nodeId')
		if not root_id:
			return self.not_found(strategy, 'Failed to get document')

		node_id = await page.query_selector(root_id, selector)
		if node_id:
			matches = await page.query_selector_all(root_id, selector)
			match_count = max(1, min(len(matches), self.max_uniqueness_check))
			return await self._build_result(page, node_id, strategy, match_count, is_xpath=False)

		if self.search_nested_documents:
			nested = await self._find_in_nested_documents(page, selector)
			if nested is not None:
				nested_id, match_count = nested
				logger.debug(f"Selector {selector!r} resolved inside a nested document")
				return await self._build_result(
					page, nested_id, strategy, match_count,
					is_xpath=False, found_in_nested_document=True,
				)

		return self.not_found(strategy, 'Element not found')

	async def _evaluate_xpath(self, page: Any, xpath: str, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		search_id, result_count = await page.perform_search(xpath)
		try:
			if result_count == 0:
				return self.not_found(strategy, 'XPath returned no results', is_xpath=True)
			node_ids = await page.get_search_results(search_id, 0, min(result_count, self.max_uniqueness_check))
		finally:
			if search_id:
				await self._discard_search(page, search_id)

		if not node_ids:
			return self.not_found(strategy, 'XPath returned no results', is_xpath=True)

		match_count = min(result_count, self.max_uniqueness_check)
		return await self._build_result(page, node_ids[0], strategy, match_count, is_xpath=True)

	async def _build_result(
		self,
		page: Any,
		node_id: int,
		strategy: LocatorStrategy,
		match_count: int,
		**extra: Any,
	) -> StrategyEvaluationResult:
		confidence = ambiguity_confidence(match_count, strategy.confidence)
		node = await page.describe_node(node_id=node_id)
		click_point = await page.get_click_point(node_id=node_id)
		return self.resolved(
			strategy,
			confidence,
			backend_node_id=node.get('backendNodeId'),
			click_point=click_point,
			match_count=match_count,
			**extra,
		)

	async def _find_in_nested_documents(self, page: Any, selector: str) -> tuple[int, int] | None:
		"""Query every shadow root and embedded document; first hit wins."""
		document = await page.get_document(depth=-1, pierce=True)
		for root_id in self.nested_roots(document):
			try:
				node_ids = await page.query_selector_all(root_id, selector)
			except CDPCommandError as e:
				logger.debug(f"Nested query on node {root_id} failed: {e}")
				continue
			if node_ids:
				return node_ids[0], max(1, min(len(node_ids), self.max_uniqueness_check))
		return None

	@staticmethod
	def nested_roots(document: dict[str, Any]) -> list[int]:
		"""Node ids of shadow roots and embedded documents, in document order."""
		roots: list[int] = []
		stack = [document]
		while stack:
			node = stack.pop()
			# Push in reverse so children are visited in document order
			nested: list[dict[str, Any]] = []
			for shadow in node.get('shadowRoots') or []:
				if shadow.get('nodeId'):
					roots.append(shadow['nodeId'])
				nested.append(shadow)
			content_document = node.get('contentDocument')
			if content_document:
				if content_document.get('nodeId'):
					roots.append(content_document['nodeId'])
				nested.append(content_document)
			nested.extend(node.get('children') or [])
			stack.extend(reversed(nested))
		return roots

	async def _discard_search(self, page: Any, search_id: str) -> None:
		try:
			await page.discard_search_results(search_id)
		except CDPCommandError as e:
			logger.debug(f"Failed to discard search {search_id}: {e}")
