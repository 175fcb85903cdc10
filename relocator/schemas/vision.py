"""
Vision Schemas

Models for OCR output, text search results and the conditional click poll.
"""

from enum import Enum

from pydantic import BaseModel, Field

from relocator.schemas.strategy import BoundingRect, ClickPoint


class OCRMatch(BaseModel):
	"""One recognized text fragment."""
	text: str
	confidence: float = Field(..., ge=0, le=100, description="Engine confidence 0-100")
	bbox: BoundingRect
	click_point: ClickPoint


class TextSearchResult(BaseModel):
	"""Result of searching a screenshot for a target string."""
	found: bool = False
	confidence: float = Field(0.0, ge=0, le=100)
	matched_text: str | None = None
	click_point: ClickPoint | None = None
	bbox: BoundingRect | None = None
	all_matches: list[OCRMatch] = Field(default_factory=list)


class InteractionType(str, Enum):
	"""What to do when a conditional target is found."""
	CLICK = "click"
	INPUT = "input"


class ConditionalConfig(BaseModel):
	"""Configuration for a conditional click poll."""
	search_terms: list[str] = Field(..., min_length=1, description="Texts to click when they appear, in priority order")
	success_text: str | None = Field(None, description="Text whose appearance ends the poll successfully")
	timeout_seconds: float = Field(120.0, gt=0, description="Idle timeout since the last click")
	poll_interval_ms: int = Field(1000, ge=0)
	settle_ms: int = Field(500, ge=0, description="Pause after each click")
	interaction_type: InteractionType = InteractionType.CLICK
	input_value: str | None = None


class ConditionalClickResult(BaseModel):
	"""Outcome of a conditional click poll."""
	buttons_clicked: int = 0
	clicked_texts: list[str] = Field(default_factory=list)
	click_targets: list[ClickPoint] = Field(default_factory=list)
	duration_ms: float = 0.0
	idle_ms: float = Field(0.0, description="Time since the last click (or start) when the poll ended")
	timed_out: bool = False
	success_text_found: bool = False
	cancelled: bool = False

	@property
	def success(self) -> bool:
		return self.success_text_found or (self.buttons_clicked > 0 and not self.cancelled)
