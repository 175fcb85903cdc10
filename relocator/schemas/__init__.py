"""
Schemas for relocator.

Pydantic models shared by evaluators, chain building, the decision engine
and the verification orchestrator.
"""

from relocator.schemas.capture import (
	CapturedEvidence,
	DOMCapture,
	MouseCapture,
	TrailPoint,
	VisionCapture,
)
from relocator.schemas.strategy import (
	CONFIDENCE_CEILINGS,
	COORDINATES_BASE_CONFIDENCE,
	BoundingRect,
	ClickPoint,
	CoordinatesMetadata,
	EvidenceMetadata,
	FallbackChain,
	LocatorStrategy,
	NodeHandle,
	RoleStates,
	SemanticAttributeMetadata,
	SemanticRoleMetadata,
	StrategyEvaluationResult,
	StrategyType,
	StructuralMetadata,
	TrailDirection,
	VisualTextMetadata,
	cap_confidence,
)
from relocator.schemas.verification import (
	NAVIGATION_EVENTS,
	ProgressEvent,
	ProgressEventType,
	RecordedStep,
	RepairType,
	SessionStatus,
	StepBundle,
	StepRepair,
	StepStatus,
	StepVerificationResult,
	StepVerificationState,
	VerificationSession,
	VerificationSummary,
)
from relocator.schemas.vision import (
	ConditionalClickResult,
	ConditionalConfig,
	InteractionType,
	OCRMatch,
	TextSearchResult,
)

__all__ = [
	# Capture
	'CapturedEvidence',
	'DOMCapture',
	'MouseCapture',
	'TrailPoint',
	'VisionCapture',
	# Strategy
	'CONFIDENCE_CEILINGS',
	'COORDINATES_BASE_CONFIDENCE',
	'BoundingRect',
	'ClickPoint',
	'CoordinatesMetadata',
	'EvidenceMetadata',
	'FallbackChain',
	'LocatorStrategy',
	'NodeHandle',
	'RoleStates',
	'SemanticAttributeMetadata',
	'SemanticRoleMetadata',
	'StrategyEvaluationResult',
	'StrategyType',
	'StructuralMetadata',
	'TrailDirection',
	'VisualTextMetadata',
	'cap_confidence',
	# Verification
	'NAVIGATION_EVENTS',
	'ProgressEvent',
	'ProgressEventType',
	'RecordedStep',
	'RepairType',
	'SessionStatus',
	'StepBundle',
	'StepRepair',
	'StepStatus',
	'StepVerificationResult',
	'StepVerificationState',
	'VerificationSession',
	'VerificationSummary',
	# Vision
	'ConditionalClickResult',
	'ConditionalConfig',
	'InteractionType',
	'OCRMatch',
	'TextSearchResult',
]
