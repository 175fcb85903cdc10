"""
Accessibility Service

Queries the page's accessibility tree (Accessibility.getFullAXTree) by role,
accessible name, label, visible text and description.
"""

import logging
import time
import weakref
from dataclasses import dataclass
from typing import Any

from relocator.config import get_settings
from relocator.schemas.strategy import RoleStates

logger = logging.getLogger(__name__)

# Roles that can carry a form label
FORM_ROLES = frozenset({'textbox', 'checkbox', 'radio', 'combobox', 'listbox', 'spinbutton', 'slider'})


@dataclass
class AXMatch:
	"""A matching accessibility node."""
	backend_node_id: int
	role: str
	name: str
	confidence: float
	match_type: str  # role, name, label, text, description


def match_text(value: str, pattern: str, exact: bool) -> bool:
	"""Case-insensitive trimmed comparison: equality when exact, substring otherwise."""
	if not value:
		return False
	v = value.strip().lower()
	p = pattern.strip().lower()
	return v == p if exact else p in v


class AccessibilityService:
	"""
	Accessibility-tree locator.

	Trees are cached per page for a short TTL so a chain walk that issues several
	semantic queries fetches the tree once.
	"""

	def __init__(self, cache_ttl_ms: int | None = None, include_ignored: bool = False):
		self.cache_ttl_ms = cache_ttl_ms if cache_ttl_ms is not None else get_settings().ax_cache_ttl_ms
		self.include_ignored = include_ignored
		self._cache: weakref.WeakKeyDictionary[Any, tuple[float, list[dict[str, Any]]]] = weakref.WeakKeyDictionary()

	async def get_tree(self, page: Any, force_refresh: bool = False) -> list[dict[str, Any]]:
		"""
		Get the page's full AX tree, cached.

		Args:
			page: Page client
			force_refresh: Skip the cache

		Returns:
			Flat list of AX nodes
		"""
		now = time.monotonic()
		if not force_refresh:
			cached = self._cache.get(page)
			if cached and (now - cached[0]) * 1000 < self.cache_ttl_ms:
				return cached[1]

		nodes = await page.get_full_ax_tree()
		self._cache[page] = (now, nodes)
		logger.debug(f"Fetched AX tree ({len(nodes)} nodes)")
		return nodes

	def clear_cache(self, page: Any | None = None) -> None:
		if page is None:
			self._cache.clear()
		else:
			self._cache.pop(page, None)

	# Locators

	async def get_by_role(
		self,
		page: Any,
		role: str,
		name: str | None = None,
		exact: bool = False,
		states: RoleStates | None = None,
		level: int | None = None,
		include_hidden: bool = False,
	) -> list[AXMatch]:
		"""Find nodes with a role, optionally filtered by name, states and heading level."""
		tree = await self.get_tree(page)
		wanted_role = role.lower()
		matches: list[AXMatch] = []

		for node in tree:
			if node.get('ignored') and not self.include_ignored:
				continue
			if not include_hidden and self.is_hidden(node):
				continue
			if self.get_role(node).lower() != wanted_role:
				continue
			if name is not None and not match_text(self.get_accessible_name(node), name, exact):
				continue
			if states is not None and not self.matches_states(node, states):
				continue
			if level is not None and wanted_role == 'heading' and self.get_heading_level(node) != level:
				continue

			match = self._to_match(node, 'role', 0.90 if name else 0.80)
			if match:
				matches.append(match)

		return matches

	async def get_by_name(self, page: Any, name: str, exact: bool = False) -> list[AXMatch]:
		tree = await self.get_tree(page)
		matches = []
		for node in tree:
			if node.get('ignored') and not self.include_ignored:
				continue
			if self.is_hidden(node):
				continue
			if match_text(self.get_accessible_name(node), name, exact):
				match = self._to_match(node, 'name', 0.85)
				if match:
					matches.append(match)
		return matches

	async def get_by_label(self, page: Any, label: str, exact: bool = False) -> list[AXMatch]:
		"""Form controls whose accessible name matches the label."""
		tree = await self.get_tree(page)
		matches = []
		for node in tree:
			if node.get('ignored') and not self.include_ignored:
				continue
			if self.get_role(node).lower() not in FORM_ROLES:
				continue
			if match_text(self.get_accessible_name(node), label, exact):
				match = self._to_match(node, 'label', 0.85)
				if match:
					matches.append(match)
		return matches

	async def get_by_text(self, page: Any, text: str, exact: bool = False) -> list[AXMatch]:
		tree = await self.get_tree(page)
		matches = []
		for node in tree:
			if node.get('ignored') and not self.include_ignored:
				continue
			if self.is_hidden(node):
				continue
			if match_text(self.get_accessible_name(node), text, exact):
				match = self._to_match(node, 'text', 0.85 if exact else 0.75)
				if match:
					matches.append(match)
		return matches

	async def get_by_description(self, page: Any, description: str) -> list[AXMatch]:
		tree = await self.get_tree(page)
		matches = []
		for node in tree:
			if node.get('ignored'):
				continue
			desc = (node.get('description') or {}).get('value')
			if isinstance(desc, str) and match_text(desc, description, False):
				match = self._to_match(node, 'description', 0.80)
				if match:
					matches.append(match)
		return matches

	# Node helpers

	def get_accessible_name(self, node: dict[str, Any]) -> str:
		value = (node.get('name') or {}).get('value')
		return value.strip() if isinstance(value, str) else ''

	def get_role(self, node: dict[str, Any]) -> str:
		value = (node.get('role') or {}).get('value')
		return value if isinstance(value, str) else ''

	def is_hidden(self, node: dict[str, Any]) -> bool:
		if node.get('ignored'):
			return True
		return self._property_value(node, 'hidden') is True

	def matches_states(self, node: dict[str, Any], states: RoleStates) -> bool:
		for state in ('expanded', 'pressed', 'disabled', 'selected'):
			expected = getattr(states, state)
			if expected is None:
				continue
			# AX omits false-valued boolean properties
			actual = self._property_value(node, state)
			if bool(actual) != expected:
				return False
		if states.checked is not None:
			checked = self._property_value(node, 'checked')
			if states.checked == 'mixed':
				if checked != 'mixed':
					return False
			elif (checked is True or checked == 'true') != states.checked:
				return False
		return True

	def get_heading_level(self, node: dict[str, Any]) -> int | None:
		level = self._property_value(node, 'level')
		if isinstance(level, (int, float)) and 1 <= level <= 6:
			return int(level)
		return None

	def _property_value(self, node: dict[str, Any], name: str) -> Any:
		for prop in node.get('properties') or []:
			if prop.get('name') == name:
				return (prop.get('value') or {}).get('value')
		return None

	def _to_match(self, node: dict[str, Any], match_type: str, confidence: float) -> AXMatch | None:
		backend_node_id = node.get('backendDOMNodeId')
		if not backend_node_id:
			return None
		return AXMatch(
			backend_node_id=backend_node_id,
			role=self.get_role(node),
			name=self.get_accessible_name(node),
			confidence=confidence,
			match_type=match_type,
		)
