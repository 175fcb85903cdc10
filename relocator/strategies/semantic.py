"""
Semantic Evaluator

Two modes:
- semantic_role: accessibility-tree query by role, accessible name and state filters
- semantic_attribute: test-id, label, placeholder, visible text, alt text and title
  lookups tried in that order, returning on the first hit
"""

import logging
from typing import Any

from relocator.cdp.accessibility import AccessibilityService, AXMatch
from relocator.schemas.strategy import (
	LocatorStrategy,
	SemanticAttributeMetadata,
	SemanticRoleMetadata,
	StrategyEvaluationResult,
	StrategyType,
)
from relocator.strategies.base import StrategyEvaluator
from relocator.strategies.structural import ambiguity_confidence

logger = logging.getLogger(__name__)

# Base confidence per attribute lookup
ATTRIBUTE_CONFIDENCE = {
	'test_id': 0.90,
	'label': 0.85,
	'placeholder': 0.80,
	'text': 0.85,  # exact; substring text matches come back at 0.75
	'alt_text': 0.80,
	'title': 0.75,
}

_CSS_ATTRIBUTES = {
	'test_id': 'data-testid',
	'placeholder': 'placeholder',
	'alt_text': 'alt',
	'title': 'title',
}


def css_attribute_selector(attribute: str, value: str, exact: bool) -> str:
	"""Attribute selector; substring matches are case-insensitive."""
	escaped = value.replace('\\', '\\\\').replace('"', '\\"')
	if attribute == 'data-testid':
		return f'[{attribute}="{escaped}"]'
	operator = '=' if exact else '*='
	return f'[{attribute}{operator}"{escaped}" i]'


class SemanticEvaluator(StrategyEvaluator):
	"""Evaluates semantic_role and semantic_attribute strategies."""

	handled_types = frozenset({StrategyType.SEMANTIC_ROLE, StrategyType.SEMANTIC_ATTRIBUTE})

	def __init__(self, accessibility: AccessibilityService | None = None):
		self.accessibility = accessibility or AccessibilityService()

	async def _evaluate(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		if strategy.type == StrategyType.SEMANTIC_ROLE:
			return await self._evaluate_role(page, strategy)
		return await self._evaluate_attribute(page, strategy)

	# Role mode

	async def _evaluate_role(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		metadata: SemanticRoleMetadata = strategy.metadata  # type: ignore[assignment]
		if not metadata.role:
			return self.not_found(strategy, 'Semantic role strategy requires role in metadata')

		matches = await self.accessibility.get_by_role(
			page,
			metadata.role,
			name=metadata.name,
			exact=metadata.exact,
			states=metadata.states,
			level=metadata.level,
		)
		if not matches:
			error = f'No element with role "{metadata.role}"'
			if metadata.name:
				error += f' and name "{metadata.name}"'
			return self.not_found(strategy, error, method='get_by_role')

		return await self._ax_result(page, strategy, matches, method='get_by_role', role=metadata.role, name=metadata.name)

	# Attribute mode

	async def _evaluate_attribute(self, page: Any, strategy: LocatorStrategy) -> StrategyEvaluationResult:
		metadata: SemanticAttributeMetadata = strategy.metadata  # type: ignore[assignment]
		lookups = metadata.lookups()
		if not lookups:
			return self.not_found(strategy, 'Semantic attribute strategy requires at least one lookup value')

		for method, value in lookups:
			result = await self._try_lookup(page, strategy, method, value, metadata.exact)
			if result is not None:
				return result
			logger.debug(f"Attribute lookup {method}={value!r} found nothing")

		return self.not_found(strategy, 'No matching element found', tried=[m for m, _ in lookups])

	async def _try_lookup(
		self,
		page: Any,
		strategy: LocatorStrategy,
		method: str,
		value: str,
		exact: bool,
	) -> StrategyEvaluationResult | None:
		if method == 'label':
			matches = await self.accessibility.get_by_label(page, value, exact=exact)
			return await self._ax_result(page, strategy, matches, method=method, value=value) if matches else None

		if method == 'text':
			matches = await self.accessibility.get_by_text(page, value, exact=exact)
			return await self._ax_result(page, strategy, matches, method=method, value=value) if matches else None

		selector = css_attribute_selector(_CSS_ATTRIBUTES[method], value, exact)
		root = await page.get_document()
		node_ids = await page.query_selector_all(root.get('nodeId'), selector)
		if not node_ids:
			return None

		node = await page.describe_node(node_id=node_ids[0])
		click_point = await page.get_click_point(node_id=node_ids[0])
		return self.resolved(
			strategy,
			ambiguity_confidence(len(node_ids), ATTRIBUTE_CONFIDENCE[method]),
			backend_node_id=node.get('backendNodeId'),
			click_point=click_point,
			match_count=len(node_ids),
			method=method,
			value=value,
			selector=selector,
		)

	async def _ax_result(
		self,
		page: Any,
		strategy: LocatorStrategy,
		matches: list[AXMatch],
		**metadata: Any,
	) -> StrategyEvaluationResult:
		best = matches[0]
		click_point = await page.get_click_point(backend_node_id=best.backend_node_id)
		return self.resolved(
			strategy,
			ambiguity_confidence(len(matches), best.confidence),
			backend_node_id=best.backend_node_id,
			click_point=click_point,
			match_count=len(matches),
			accessible_name=best.name,
			**metadata,
		)
