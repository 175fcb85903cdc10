"""
CDP Page Client

The page handle every evaluator works against. Wraps a browser_use BrowserSession
and serializes all remote-debugging commands on one channel, each with a timeout.
"""

import asyncio
import base64
import logging
from typing import Any

from browser_use import BrowserSession
from browser_use.browser.events import ClickCoordinateEvent
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from relocator.config import get_settings
from relocator.schemas.strategy import ClickPoint

logger = logging.getLogger(__name__)


class CDPCommandError(Exception):
	"""A remote-debugging command failed or timed out."""

	def __init__(self, method: str, message: str):
		self.method = method
		self.message = message
		super().__init__(f"{method}: {message}")


def quad_center(quad: list[float]) -> ClickPoint | None:
	"""Click point of a box-model quad: ((x1+x2)/2, (y1+y4)/2)."""
	if not quad or len(quad) < 8:
		return None
	x1, y1, x2, _y2, _x3, _y3, _x4, y4 = quad[:8]
	return ClickPoint(x=(x1 + x2) / 2, y=(y1 + y4) / 2)


class CDPPageClient:
	"""
	Serialized remote-debugging client for one page.

	No two callers may interleave commands on the same channel, so every command
	(and every dispatched click) runs under a single asyncio.Lock.
	"""

	def __init__(self, browser_session: BrowserSession, command_timeout: float | None = None):
		"""
		Initialize the page client.

		Args:
			browser_session: Attached browser_use session for the target page
			command_timeout: Per-command timeout in seconds (defaults to settings)
		"""
		self.browser_session = browser_session
		self.command_timeout = command_timeout if command_timeout is not None else get_settings().cdp_command_timeout_seconds
		self._lock = asyncio.Lock()
		self._commands_sent = 0

	@property
	def commands_sent(self) -> int:
		return self._commands_sent

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		"""
		Send one CDP command and return its result.

		Args:
			method: Fully-qualified method, e.g. "DOM.querySelector"
			params: Command parameters

		Returns:
			Result dict (empty if the command returns nothing)

		Raises:
			CDPCommandError: On transport failure or timeout
		"""
		try:
			domain, command = method.split('.', 1)
		except ValueError:
			raise CDPCommandError(method, 'method must be "Domain.command"')

		async def _dispatch() -> dict[str, Any]:
			cdp_session = await self.browser_session.get_or_create_cdp_session()
			handler = getattr(getattr(cdp_session.cdp_client.send, domain), command)
			kwargs: dict[str, Any] = {'session_id': cdp_session.session_id}
			if params is not None:
				kwargs['params'] = params
			return await handler(**kwargs)

		async with self._lock:
			self._commands_sent += 1
			try:
				result = await asyncio.wait_for(_dispatch(), timeout=self.command_timeout)
			except asyncio.TimeoutError as e:
				raise CDPCommandError(method, f'timed out after {self.command_timeout:.1f}s') from e
			except Exception as e:
				raise CDPCommandError(method, f'{type(e).__name__}: {e}') from e

		return result or {}

	# DOM reads

	async def get_document(self, depth: int = 1, pierce: bool = False) -> dict[str, Any]:
		result = await self.send('DOM.getDocument', {'depth': depth, 'pierce': pierce})
		return result.get('root', {})

	async def query_selector(self, node_id: int, selector: str) -> int:
		"""Return the first matching node id under node_id, or 0."""
		result = await self.send('DOM.querySelector', {'nodeId': node_id, 'selector': selector})
		return result.get('nodeId', 0) or 0

	async def query_selector_all(self, node_id: int, selector: str) -> list[int]:
		result = await self.send('DOM.querySelectorAll', {'nodeId': node_id, 'selector': selector})
		return [n for n in result.get('nodeIds', []) if n]

	async def describe_node(self, node_id: int | None = None, backend_node_id: int | None = None) -> dict[str, Any]:
		params: dict[str, Any] = {'depth': 0}
		if node_id is not None:
			params['nodeId'] = node_id
		if backend_node_id is not None:
			params['backendNodeId'] = backend_node_id
		result = await self.send('DOM.describeNode', params)
		return result.get('node', {})

	async def get_box_model(self, node_id: int | None = None, backend_node_id: int | None = None) -> dict[str, Any]:
		params: dict[str, Any] = {}
		if node_id is not None:
			params['nodeId'] = node_id
		if backend_node_id is not None:
			params['backendNodeId'] = backend_node_id
		result = await self.send('DOM.getBoxModel', params)
		return result.get('model', {})

	async def get_click_point(self, node_id: int | None = None, backend_node_id: int | None = None) -> ClickPoint | None:
		"""Center of the node's content quad, or None if it has no layout box."""
		try:
			model = await self.get_box_model(node_id=node_id, backend_node_id=backend_node_id)
		except CDPCommandError as e:
			logger.debug(f"No box model for node (nodeId={node_id}, backendNodeId={backend_node_id}): {e}")
			return None
		return quad_center(model.get('content', []))

	async def get_node_for_location(self, x: int, y: int) -> dict[str, Any]:
		"""Hit-test a viewport point. Returns {'backendNodeId': ..., 'nodeId'?: ...}."""
		return await self.send('DOM.getNodeForLocation', {
			'x': x,
			'y': y,
			'includeUserAgentShadowDOM': False,
			'ignorePointerEventsNone': True,
		})

	# Path-expression search

	async def perform_search(self, query: str, include_user_agent_shadow_dom: bool = True) -> tuple[str, int]:
		result = await self.send('DOM.performSearch', {
			'query': query,
			'includeUserAgentShadowDOM': include_user_agent_shadow_dom,
		})
		return result.get('searchId', ''), int(result.get('resultCount', 0))

	async def get_search_results(self, search_id: str, from_index: int, to_index: int) -> list[int]:
		result = await self.send('DOM.getSearchResults', {
			'searchId': search_id,
			'fromIndex': from_index,
			'toIndex': to_index,
		})
		return [n for n in result.get('nodeIds', []) if n]

	async def discard_search_results(self, search_id: str) -> None:
		await self.send('DOM.discardSearchResults', {'searchId': search_id})

	# Accessibility

	async def get_full_ax_tree(self) -> list[dict[str, Any]]:
		result = await self.send('Accessibility.getFullAXTree')
		return result.get('nodes', [])

	# Page

	@retry(
		stop=stop_after_attempt(3),
		wait=wait_exponential(multiplier=0.2, min=0.2, max=1.0),
		retry=retry_if_exception_type(CDPCommandError),
		reraise=True,
	)
	async def capture_screenshot(self) -> bytes:
		"""Capture the viewport as PNG bytes (device pixels)."""
		result = await self.send('Page.captureScreenshot', {'format': 'png', 'captureBeyondViewport': False})
		data = result.get('data')
		if not data:
			raise CDPCommandError('Page.captureScreenshot', 'empty screenshot data')
		return base64.b64decode(data)

	async def get_device_pixel_ratio(self) -> float:
		"""Ratio between screenshot pixels and CSS pixels."""
		result = await self.send('Runtime.evaluate', {'expression': 'window.devicePixelRatio', 'returnByValue': True})
		value = result.get('result', {}).get('value')
		try:
			ratio = float(value)
		except (TypeError, ValueError):
			return 1.0
		return ratio if ratio > 0 else 1.0

	# Input

	async def click(self, x: float, y: float, button: str = 'left') -> None:
		"""Click at a viewport point through the session's event bus."""
		async with self._lock:
			event = self.browser_session.event_bus.dispatch(
				ClickCoordinateEvent(
					coordinate_x=int(round(x)),
					coordinate_y=int(round(y)),
					button=button,
					force=True,
				)
			)
			await event
			result = await event.event_result(raise_if_any=False, raise_if_none=False)

		if result and isinstance(result, dict) and result.get('validation_error'):
			raise CDPCommandError('click', str(result['validation_error']))
		logger.debug(f"Clicked at ({x:.0f}, {y:.0f})")

	async def insert_text(self, text: str) -> None:
		await self.send('Input.insertText', {'text': text})
