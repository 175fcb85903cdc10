"""
Strategy Schemas

Pydantic models for locator strategies, fallback chains and live evaluation results.
Metadata is a tagged variant keyed by StrategyType: every strategy type owns exactly
one metadata model, and a strategy built with mismatched metadata is rejected.
"""

import json
import time
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Strategy Types & Confidence Table
# =============================================================================


class StrategyType(str, Enum):
	"""Kinds of recorded element re-location strategies."""
	STRUCTURAL_SELECTOR = "structural_selector"  # CSS or XPath
	SEMANTIC_ROLE = "semantic_role"  # accessibility role + name
	SEMANTIC_ATTRIBUTE = "semantic_attribute"  # test-id / label / placeholder / text / alt / title
	VISUAL_TEXT = "visual_text"  # OCR match
	COORDINATES = "coordinates"  # raw x,y
	EVIDENCE_SCORED = "evidence_scored"  # cursor trail + nearby attributes


# Upper bound on the confidence any strategy of a type may report
CONFIDENCE_CEILINGS: dict[StrategyType, float] = {
	StrategyType.STRUCTURAL_SELECTOR: 0.95,
	StrategyType.SEMANTIC_ROLE: 0.90,
	StrategyType.SEMANTIC_ATTRIBUTE: 0.90,
	StrategyType.VISUAL_TEXT: 0.85,
	StrategyType.EVIDENCE_SCORED: 0.85,
	StrategyType.COORDINATES: 0.70,
}

COORDINATES_BASE_CONFIDENCE = 0.60


def cap_confidence(strategy_type: StrategyType, confidence: float) -> float:
	"""Clamp a confidence into [0, ceiling-for-type]."""
	ceiling = CONFIDENCE_CEILINGS.get(StrategyType(strategy_type), 1.0)
	return max(0.0, min(confidence, ceiling))


# =============================================================================
# Geometry
# =============================================================================


class ClickPoint(BaseModel):
	"""Viewport point (CSS pixels) where an action should land."""
	model_config = ConfigDict(frozen=True)

	x: float
	y: float


class BoundingRect(BaseModel):
	"""Element bounding rectangle in CSS pixels."""
	model_config = ConfigDict(frozen=True)

	x: float
	y: float
	width: float = Field(0.0, ge=0)
	height: float = Field(0.0, ge=0)

	@property
	def area(self) -> float:
		return self.width * self.height

	def center(self) -> ClickPoint:
		return ClickPoint(x=self.x + self.width / 2, y=self.y + self.height / 2)


class TrailDirection(BaseModel):
	"""Unit vector of the cursor's approach direction."""
	model_config = ConfigDict(frozen=True)

	dx: float
	dy: float


class NodeHandle(BaseModel):
	"""
	Opaque reference to a live page node.

	Wraps the remote-debugging backend node id. Comparable and hashable, but
	never stable across page reloads.
	"""
	model_config = ConfigDict(frozen=True)

	backend_node_id: int

	def __str__(self) -> str:
		return f"node#{self.backend_node_id}"


# =============================================================================
# Metadata Variants
# =============================================================================


class _Metadata(BaseModel):
	model_config = ConfigDict(frozen=True, extra='forbid')


class StructuralMetadata(_Metadata):
	"""Metadata for structural_selector strategies."""
	kind: Literal['structural_selector'] = 'structural_selector'
	test_id: str | None = Field(None, description="data-testid the selector was built from")
	element_id: str | None = Field(None, description="Element id the selector was built from")
	is_xpath: bool | None = Field(None, description="Recorded selector is a path expression")
	source: str | None = Field(None, description="Where the selector came from (dom, computed, bundle)")


class RoleStates(_Metadata):
	"""Optional accessibility state filters."""
	checked: bool | Literal['mixed'] | None = None
	disabled: bool | None = None
	expanded: bool | None = None
	pressed: bool | None = None
	selected: bool | None = None


class SemanticRoleMetadata(_Metadata):
	"""Metadata for semantic_role strategies."""
	kind: Literal['semantic_role'] = 'semantic_role'
	role: str | None = Field(None, description="ARIA role to query")
	name: str | None = Field(None, description="Accessible name")
	exact: bool = Field(False, description="Exact (vs substring) name match")
	states: RoleStates = Field(default_factory=RoleStates)
	level: int | None = Field(None, ge=1, le=6, description="Heading level, only for role=heading")


class SemanticAttributeMetadata(_Metadata):
	"""Metadata for semantic_attribute strategies."""
	kind: Literal['semantic_attribute'] = 'semantic_attribute'
	test_id: str | None = None
	label: str | None = None
	placeholder: str | None = None
	text: str | None = None
	alt_text: str | None = None
	title: str | None = None
	exact: bool = False

	def lookups(self) -> list[tuple[str, str]]:
		"""Present (method, value) pairs in priority order."""
		ordered = [
			('test_id', self.test_id),
			('label', self.label),
			('placeholder', self.placeholder),
			('text', self.text),
			('alt_text', self.alt_text),
			('title', self.title),
		]
		return [(method, value) for method, value in ordered if value]


class VisualTextMetadata(_Metadata):
	"""Metadata for visual_text strategies."""
	kind: Literal['visual_text'] = 'visual_text'
	target_text: str | None = Field(None, description="Text to find on screen")
	exact: bool = False
	case_sensitive: bool = False
	use_cache: bool = True
	ocr_confidence: float | None = Field(None, ge=0, le=100, description="OCR confidence at capture time")
	text_bbox: BoundingRect | None = None


class CoordinatesMetadata(_Metadata):
	"""Metadata for coordinates strategies."""
	kind: Literal['coordinates'] = 'coordinates'
	x: float | None = None
	y: float | None = None
	bounding_rect: BoundingRect | None = None


class EvidenceMetadata(_Metadata):
	"""Metadata for evidence_scored strategies."""
	kind: Literal['evidence_scored'] = 'evidence_scored'
	endpoint: ClickPoint | None = Field(None, description="Where the cursor trail ended")
	expected_tag: str | None = None
	expected_id: str | None = None
	expected_classes: list[str] = Field(default_factory=list)
	trail_direction: TrailDirection | None = None
	trail_pattern: Literal['direct', 'hesitant', 'corrective'] | None = None
	bounding_rect: BoundingRect | None = None


StrategyMetadata = Union[
	StructuralMetadata,
	SemanticRoleMetadata,
	SemanticAttributeMetadata,
	VisualTextMetadata,
	CoordinatesMetadata,
	EvidenceMetadata,
]

METADATA_MODELS: dict[StrategyType, type[_Metadata]] = {
	StrategyType.STRUCTURAL_SELECTOR: StructuralMetadata,
	StrategyType.SEMANTIC_ROLE: SemanticRoleMetadata,
	StrategyType.SEMANTIC_ATTRIBUTE: SemanticAttributeMetadata,
	StrategyType.VISUAL_TEXT: VisualTextMetadata,
	StrategyType.COORDINATES: CoordinatesMetadata,
	StrategyType.EVIDENCE_SCORED: EvidenceMetadata,
}


# =============================================================================
# Strategy & Chain
# =============================================================================


class LocatorStrategy(BaseModel):
	"""One recorded way of re-locating an element. Immutable once captured."""
	model_config = ConfigDict(frozen=True, extra='forbid')

	type: StrategyType = Field(..., description="Strategy type")
	selector: str | None = Field(None, description="CSS or XPath selector (structural only)")
	confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence recorded at capture time")
	metadata: StrategyMetadata = Field(..., description="Type-specific payload")

	@model_validator(mode='before')
	@classmethod
	def _build_metadata_for_type(cls, data: Any) -> Any:
		if not isinstance(data, dict) or 'type' not in data:
			return data
		try:
			strategy_type = StrategyType(data['type'])
		except ValueError:
			return data
		model = METADATA_MODELS[strategy_type]
		metadata = data.get('metadata')
		if metadata is None:
			data = {**data, 'metadata': model()}
		elif isinstance(metadata, dict):
			payload = {k: v for k, v in metadata.items() if k != 'kind'}
			data = {**data, 'metadata': model(**payload)}
		return data

	@model_validator(mode='after')
	def _check_metadata_matches_type(self) -> 'LocatorStrategy':
		expected = METADATA_MODELS[self.type]
		if not isinstance(self.metadata, expected):
			raise ValueError(
				f"metadata for {self.type.value} must be {expected.__name__}, got {type(self.metadata).__name__}"
			)
		return self

	def dedup_key(self) -> tuple[str, str]:
		"""Key identifying near-duplicate strategies (same type + equivalent target)."""
		if self.selector:
			return (self.type.value, self.selector.strip())
		payload = self.metadata.model_dump(mode='json', exclude_none=True)
		return (self.type.value, json.dumps(payload, sort_keys=True))

	def describe(self) -> str:
		"""Short human-readable description for logs."""
		if self.selector:
			return f"{self.type.value}({self.selector})"
		meta = self.metadata
		if isinstance(meta, SemanticRoleMetadata):
			return f"{self.type.value}(role={meta.role}, name={meta.name})"
		if isinstance(meta, SemanticAttributeMetadata):
			pairs = ', '.join(f"{k}={v}" for k, v in meta.lookups())
			return f"{self.type.value}({pairs})"
		if isinstance(meta, VisualTextMetadata):
			return f"{self.type.value}({meta.target_text!r})"
		if isinstance(meta, CoordinatesMetadata):
			return f"{self.type.value}({meta.x}, {meta.y})"
		if isinstance(meta, EvidenceMetadata):
			endpoint = f"{meta.endpoint.x}, {meta.endpoint.y}" if meta.endpoint else "?"
			return f"{self.type.value}(endpoint={endpoint})"
		return self.type.value


class FallbackChain(BaseModel):
	"""Ordered (non-increasing confidence) list of strategies for one recorded step."""
	strategies: list[LocatorStrategy] = Field(default_factory=list)
	primary_strategy: StrategyType | None = Field(None, description="Type of the first strategy")
	recorded_at: float = Field(default_factory=time.time, description="Capture timestamp (epoch seconds)")

	@model_validator(mode='after')
	def _sync_primary_strategy(self) -> 'FallbackChain':
		self.primary_strategy = self.strategies[0].type if self.strategies else None
		return self

	def __len__(self) -> int:
		return len(self.strategies)

	@property
	def is_empty(self) -> bool:
		return not self.strategies


# =============================================================================
# Evaluation Result
# =============================================================================


class StrategyEvaluationResult(BaseModel):
	"""Outcome of one live evaluation attempt. Ephemeral."""
	strategy: LocatorStrategy
	found: bool = False
	confidence: float = Field(0.0, ge=0.0, le=1.0)
	node_handle: NodeHandle | None = None
	click_point: ClickPoint | None = None
	duration_ms: float = 0.0
	match_count: int | None = None
	error: str | None = None
	metadata: dict[str, Any] = Field(default_factory=dict)

	def qualifies(self, min_confidence: float) -> bool:
		"""Found and at or above the confidence floor."""
		return self.found and self.confidence >= min_confidence
