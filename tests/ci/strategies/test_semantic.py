"""
Tests for the semantic evaluator (role and attribute modes).
"""

import pytest

from relocator.schemas.strategy import ClickPoint, LocatorStrategy, StrategyType
from relocator.strategies.semantic import SemanticEvaluator, css_attribute_selector


def role(**metadata) -> LocatorStrategy:
	return LocatorStrategy(type=StrategyType.SEMANTIC_ROLE, confidence=0.9, metadata=metadata)


def attribute(**metadata) -> LocatorStrategy:
	return LocatorStrategy(type=StrategyType.SEMANTIC_ATTRIBUTE, confidence=0.85, metadata=metadata)


class TestRoleMode:
	"""Tests for role + accessible name queries."""

	async def test_role_with_name(self, page, ax):
		"""Test a named role query with a single match."""
		page.ax_nodes = [
			ax(201, 'button', 'Submit order'),
			ax(202, 'button', 'Cancel'),
			ax(203, 'link', 'Submit order'),
		]
		page.points[201] = ClickPoint(x=50, y=60)

		result = await SemanticEvaluator().evaluate(page, role(role='button', name='submit'))

		assert result.found is True
		assert result.confidence == pytest.approx(0.9)
		assert result.match_count == 1
		assert result.node_handle.backend_node_id == 201
		assert (result.click_point.x, result.click_point.y) == (50, 60)
		assert result.metadata['method'] == 'get_by_role'
		assert result.metadata['accessible_name'] == 'Submit order'

	async def test_role_without_name_ambiguous(self, page, ax):
		"""Test that two unnamed matches apply the ambiguity penalty."""
		page.ax_nodes = [ax(201, 'button', 'A'), ax(202, 'button', 'B')]

		result = await SemanticEvaluator().evaluate(page, role(role='button'))

		assert result.found is True
		assert result.match_count == 2
		assert result.confidence == pytest.approx(0.6)

	async def test_state_filter(self, page, ax):
		"""Test filtering by checked state."""
		page.ax_nodes = [
			ax(201, 'checkbox', 'Agree', {'checked': True}),
			ax(202, 'checkbox', 'Newsletter'),
		]

		result = await SemanticEvaluator().evaluate(page, role(role='checkbox', states={'checked': True}))

		assert result.found is True
		assert result.node_handle.backend_node_id == 201
		assert result.match_count == 1

	async def test_heading_level(self, page, ax):
		"""Test filtering headings by level."""
		page.ax_nodes = [
			ax(301, 'heading', 'Title', {'level': 2}),
			ax(302, 'heading', 'Details', {'level': 3}),
		]

		result = await SemanticEvaluator().evaluate(page, role(role='heading', level=3))

		assert result.found is True
		assert result.node_handle.backend_node_id == 302

	async def test_hidden_nodes_skipped(self, page, ax):
		"""Test that hidden nodes never match."""
		page.ax_nodes = [ax(201, 'button', 'Go', {'hidden': True})]

		result = await SemanticEvaluator().evaluate(page, role(role='button', name='Go'))

		assert result.found is False
		assert result.error == 'No element with role "button" and name "Go"'

	async def test_role_required(self, page):
		"""Test a role strategy without a role."""
		result = await SemanticEvaluator().evaluate(page, role())

		assert result.found is False
		assert result.error == 'Semantic role strategy requires role in metadata'


class TestAttributeMode:
	"""Tests for attribute lookups."""

	async def test_test_id_lookup_first(self, page):
		"""Test that a test-id hit returns without touching the AX tree."""
		page.add_node(5, point=(1, 2))
		page.css['[data-testid="save"]'] = [5]

		result = await SemanticEvaluator().evaluate(page, attribute(test_id='save', text='Save'))

		assert result.found is True
		assert result.confidence == pytest.approx(0.9)
		assert result.metadata['method'] == 'test_id'
		assert page.count('get_full_ax_tree') == 0

	async def test_falls_through_to_text(self, page, ax):
		"""Test that a failed test-id lookup falls through to visible text."""
		page.ax_nodes = [ax(401, 'button', 'Save')]

		result = await SemanticEvaluator().evaluate(page, attribute(test_id='nope', text='Save'))

		assert result.found is True
		assert result.metadata['method'] == 'text'
		assert result.confidence == pytest.approx(0.75)

	async def test_exact_text_confidence(self, page, ax):
		"""Test that exact text matches carry higher confidence."""
		page.ax_nodes = [ax(401, 'button', 'Save')]

		result = await SemanticEvaluator().evaluate(page, attribute(text='Save', exact=True))

		assert result.confidence == pytest.approx(0.85)

	async def test_label_only_matches_form_controls(self, page, ax):
		"""Test that labels resolve to form controls only."""
		page.ax_nodes = [ax(501, 'textbox', 'Email'), ax(502, 'button', 'Email')]

		result = await SemanticEvaluator().evaluate(page, attribute(label='Email'))

		assert result.found is True
		assert result.node_handle.backend_node_id == 501
		assert result.match_count == 1

	async def test_placeholder_lookup(self, page):
		"""Test the case-insensitive substring placeholder selector."""
		page.add_node(6)
		page.css['[placeholder*="Search" i]'] = [6]

		result = await SemanticEvaluator().evaluate(page, attribute(placeholder='Search'))

		assert result.found is True
		assert result.confidence == pytest.approx(0.8)
		assert result.metadata['selector'] == '[placeholder*="Search" i]'

	async def test_nothing_matches(self, page):
		"""Test the error when every lookup misses."""
		result = await SemanticEvaluator().evaluate(page, attribute(label='Missing'))

		assert result.found is False
		assert result.error == 'No matching element found'
		assert result.metadata['tried'] == ['label']

	async def test_lookup_required(self, page):
		"""Test an attribute strategy without lookup values."""
		result = await SemanticEvaluator().evaluate(page, attribute())

		assert result.found is False
		assert result.error == 'Semantic attribute strategy requires at least one lookup value'

	def test_css_attribute_selector(self):
		"""Test attribute selector construction."""
		assert css_attribute_selector('data-testid', 'a"b', False) == '[data-testid="a\\"b"]'
		assert css_attribute_selector('title', 'Help', True) == '[title="Help" i]'
		assert css_attribute_selector('alt', 'Logo', False) == '[alt*="Logo" i]'
