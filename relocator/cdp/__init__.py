"""
Remote-debugging access for relocator.

Page client over a browser_use session and accessibility-tree queries.
"""

from relocator.cdp.accessibility import FORM_ROLES, AccessibilityService, AXMatch, match_text
from relocator.cdp.client import CDPCommandError, CDPPageClient, quad_center

__all__ = [
	'FORM_ROLES',
	'AccessibilityService',
	'AXMatch',
	'match_text',
	'CDPCommandError',
	'CDPPageClient',
	'quad_center',
]
