"""
Verification Schemas

Pydantic models for the verification pass over a recorded sequence:
recorded steps, per-step verification state, repairs, session summary
and progress events.
"""

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relocator.schemas.strategy import (
	ClickPoint,
	FallbackChain,
	LocatorStrategy,
	StrategyEvaluationResult,
)

# Step events that never need element resolution
NAVIGATION_EVENTS = frozenset({'open', 'navigate', 'goto', 'wait'})


# =============================================================================
# Recorded Steps
# =============================================================================


class StepBundle(BaseModel):
	"""Raw attributes stored alongside a step by the capture layer."""
	model_config = ConfigDict(extra='allow', populate_by_name=True)

	element_id: str | None = Field(None, alias='id', description="Stable element id")
	xpath: str | None = None
	class_name: str | None = None
	aria: str | None = Field(None, description="Accessible label")
	coordinates: ClickPoint | None = None


class RecordedStep(BaseModel):
	"""A step as persisted by the recording layer."""
	step_id: str | None = None
	step_index: int = 0
	event: str = Field(..., description="Step event type (click, input, open, ...)")
	label: str | None = None
	value: str | None = None
	bundle: StepBundle | None = None
	fallback_chain: FallbackChain | None = None

	@property
	def is_navigation(self) -> bool:
		return self.event.lower() in NAVIGATION_EVENTS

	@property
	def resolved_id(self) -> str:
		return self.step_id or f"step_{self.step_index}"


# =============================================================================
# Step State
# =============================================================================


class StepStatus(str, Enum):
	"""Per-step verification lifecycle."""
	PENDING = "pending"
	VERIFYING = "verifying"
	VERIFIED = "verified"
	FLAGGED = "flagged"
	REPAIRED = "repaired"
	SKIPPED = "skipped"


class RepairType(str, Enum):
	"""How an operator repaired a flagged step."""
	VISION_REGION = "vision_region"
	MANUAL_SELECTOR = "manual_selector"
	CLICK_AGAIN = "click_again"
	ACCEPT_COORDINATES = "accept_coordinates"
	CUSTOM = "custom"


class StepRepair(BaseModel):
	"""Operator-supplied replacement strategy for a flagged step."""
	repair_type: RepairType = Field(RepairType.CUSTOM, description="Repair kind")
	new_strategy: LocatorStrategy = Field(..., description="Strategy that replaces the broken chain")
	applied_at: float | None = Field(None, description="When the repair was accepted")
	notes: str | None = None


class StepVerificationResult(BaseModel):
	"""Verifier output for one step."""
	step_id: str
	verified: bool
	skipped: bool = False
	working_strategy: LocatorStrategy | None = None
	confidence: float = 0.0
	strategy_results: list[StrategyEvaluationResult] = Field(default_factory=list)
	failure_reason: str | None = None
	duration_ms: float = 0.0


class StepVerificationState(BaseModel):
	"""Live verification state of one recorded step."""
	step_index: int
	step_id: str
	label: str | None = None
	event: str
	status: StepStatus = StepStatus.PENDING
	working_strategy: LocatorStrategy | None = None
	confidence: float = 0.0
	strategy_results: list[StrategyEvaluationResult] = Field(default_factory=list)
	flag_reason: str | None = None
	repair: StepRepair | None = None
	duration_ms: float = 0.0

	@classmethod
	def from_step(cls, index: int, step: RecordedStep) -> 'StepVerificationState':
		return cls(
			step_index=index,
			step_id=step.resolved_id,
			label=step.label,
			event=step.event,
		)


# =============================================================================
# Session
# =============================================================================


class SessionStatus(str, Enum):
	"""Verification session lifecycle."""
	RUNNING = "running"
	PAUSED = "paused"
	COMPLETE = "complete"


class VerificationSummary(BaseModel):
	"""Counts derived from the step list."""
	total_steps: int = 0
	verified_count: int = 0
	flagged_count: int = 0
	repaired_count: int = 0
	skipped_count: int = 0
	pending_count: int = 0
	verification_rate: float = 1.0
	can_save: bool = False

	@classmethod
	def from_steps(cls, steps: list[StepVerificationState]) -> 'VerificationSummary':
		"""
		Recompute the summary from step states.

		can_save holds only when no step is flagged or mid-verification and at
		least one step has left the pending state.
		"""
		counts = {status: 0 for status in StepStatus}
		for step in steps:
			counts[step.status] += 1

		total = len(steps)
		actionable = total - counts[StepStatus.SKIPPED]
		resolved = counts[StepStatus.VERIFIED] + counts[StepStatus.REPAIRED]
		rate = resolved / actionable if actionable > 0 else 1.0

		processed = total - counts[StepStatus.PENDING]
		can_save = (
			counts[StepStatus.FLAGGED] == 0
			and counts[StepStatus.VERIFYING] == 0
			and processed > 0
		)

		return cls(
			total_steps=total,
			verified_count=counts[StepStatus.VERIFIED],
			flagged_count=counts[StepStatus.FLAGGED],
			repaired_count=counts[StepStatus.REPAIRED],
			skipped_count=counts[StepStatus.SKIPPED],
			pending_count=counts[StepStatus.PENDING],
			verification_rate=round(rate, 4),
			can_save=can_save,
		)


class VerificationSession(BaseModel):
	"""One verification pass over a recorded sequence."""
	session_id: str
	status: SessionStatus = SessionStatus.RUNNING
	steps: list[StepVerificationState] = Field(default_factory=list)
	summary: VerificationSummary = Field(default_factory=VerificationSummary)
	current_step_index: int = -1
	started_at: float = Field(default_factory=time.time)
	ended_at: float | None = None

	def refresh_summary(self) -> VerificationSummary:
		self.summary = VerificationSummary.from_steps(self.steps)
		return self.summary


# =============================================================================
# Progress Events
# =============================================================================


class ProgressEventType(str, Enum):
	"""Progress stream event kinds."""
	STEP_STARTED = "step_started"
	STEP_COMPLETE = "step_complete"
	SESSION_COMPLETE = "session_complete"
	ERROR = "error"


class ProgressEvent(BaseModel):
	"""Event delivered to progress subscribers."""
	type: ProgressEventType
	session_id: str
	step_index: int | None = None
	step_state: StepVerificationState | None = None
	summary: VerificationSummary | None = None
	error: str | None = None
	details: dict[str, Any] = Field(default_factory=dict)
