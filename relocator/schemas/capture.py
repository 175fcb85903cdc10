"""
Capture Evidence Schemas

Raw evidence recorded alongside a user interaction. The capture layer produces
these; the fallback chain builder turns them into locator strategies.
"""

import time
from typing import Literal

from pydantic import BaseModel, Field

from relocator.schemas.strategy import BoundingRect, ClickPoint


class DOMCapture(BaseModel):
	"""Element attributes read from the page at interaction time."""
	tag_name: str = Field(..., description="Element tag name")
	element_id: str | None = Field(None, description="id attribute")
	class_list: list[str] = Field(default_factory=list)
	attributes: dict[str, str] = Field(default_factory=dict)
	text_content: str | None = None
	inner_text: str | None = None
	accessible_name: str | None = None
	accessible_role: str | None = None
	placeholder: str | None = None
	xpath: str | None = None
	css_selector: str | None = None
	test_id: str | None = None
	x: float = Field(..., description="Interaction point x (CSS pixels)")
	y: float = Field(..., description="Interaction point y (CSS pixels)")
	bounding_rect: BoundingRect | None = None
	is_in_shadow_dom: bool = False

	@property
	def visible_text(self) -> str | None:
		text = self.text_content or self.inner_text
		return text.strip() if text else None


class VisionCapture(BaseModel):
	"""OCR reading of the element region at interaction time."""
	ocr_text: str | None = None
	confidence: float = Field(0.0, ge=0, le=100, description="OCR confidence 0-100")
	text_bbox: BoundingRect | None = None


class TrailPoint(BaseModel):
	"""One sampled cursor position."""
	x: float
	y: float
	timestamp: float = 0.0


class MouseCapture(BaseModel):
	"""Cursor trail leading up to the interaction."""
	trail: list[TrailPoint] = Field(default_factory=list)
	endpoint: ClickPoint
	pattern: Literal['direct', 'hesitant', 'corrective'] | None = None


class CapturedEvidence(BaseModel):
	"""Everything the capture layer recorded for one interaction."""
	dom: DOMCapture
	vision: VisionCapture | None = None
	mouse: MouseCapture | None = None
	event_type: Literal['click', 'type', 'select', 'navigate', 'scroll'] = 'click'
	value: str | None = None
	timestamp: float = Field(default_factory=time.time)
