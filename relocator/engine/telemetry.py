"""
Strategy Telemetry

In-memory record of Decision Engine walks: one StrategyAttempt per evaluated
strategy, one ResolutionRecord per resolve() call, and per-type aggregates
derived from them.
"""

import logging
import time
from collections import deque

from pydantic import BaseModel, Field

from relocator.schemas.strategy import StrategyType

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000
SUCCESS_WEIGHT = 0.6
FIND_WEIGHT = 0.4


class StrategyAttempt(BaseModel):
	"""One evaluation during a chain walk."""
	strategy_type: StrategyType
	success: bool = Field(..., description="Evaluation reported found")
	confidence: float = 0.0
	duration_ms: float = 0.0
	error: str | None = None
	attempt_number: int = Field(..., ge=1)


class ResolutionRecord(BaseModel):
	"""Outcome of one chain walk."""
	step_id: str | None = None
	attempts: list[StrategyAttempt] = Field(default_factory=list)
	final_strategy: StrategyType | None = Field(None, description="Strategy whose result was returned as qualifying")
	success: bool = False
	total_duration_ms: float = 0.0
	timestamp: float = Field(default_factory=time.time)


class StrategyMetrics(BaseModel):
	"""Aggregates for one strategy type."""
	strategy_type: StrategyType
	total_evaluations: int = 0
	times_found: int = 0
	times_used: int = 0
	times_succeeded: int = 0
	average_confidence: float = 0.0
	average_duration_ms: float = 0.0
	success_rate: float = 0.0
	find_rate: float = 0.0

	@property
	def health(self) -> int:
		"""0-100 blend of success rate (60%) and find rate (40%)."""
		return round((self.success_rate * SUCCESS_WEIGHT + self.find_rate * FIND_WEIGHT) * 100)


class StrategyTelemetry:
	"""Bounded history of resolutions with per-type metrics."""

	def __init__(self, max_records: int = DEFAULT_HISTORY_SIZE):
		self._records: deque[ResolutionRecord] = deque(maxlen=max_records)

	def record(self, record: ResolutionRecord) -> None:
		self._records.append(record)
		logger.debug(
			f"Resolution recorded: step={record.step_id}, success={record.success}, "
			f"strategy={record.final_strategy.value if record.final_strategy else None}, attempts={len(record.attempts)}"
		)

	@property
	def records(self) -> list[ResolutionRecord]:
		return list(self._records)

	def clear(self) -> None:
		self._records.clear()

	def metrics_for(self, strategy_type: StrategyType) -> StrategyMetrics:
		total_evaluations = 0
		times_found = 0
		times_used = 0
		times_succeeded = 0
		total_confidence = 0.0
		total_duration = 0.0

		for record in self._records:
			for attempt in record.attempts:
				if attempt.strategy_type != strategy_type:
					continue
				total_evaluations += 1
				total_duration += attempt.duration_ms
				if attempt.success:
					times_found += 1
					total_confidence += attempt.confidence
			if record.final_strategy == strategy_type:
				times_used += 1
				if record.success:
					times_succeeded += 1

		return StrategyMetrics(
			strategy_type=strategy_type,
			total_evaluations=total_evaluations,
			times_found=times_found,
			times_used=times_used,
			times_succeeded=times_succeeded,
			average_confidence=total_confidence / times_found if times_found else 0.0,
			average_duration_ms=total_duration / total_evaluations if total_evaluations else 0.0,
			success_rate=times_succeeded / times_used if times_used else 0.0,
			find_rate=times_found / total_evaluations if total_evaluations else 0.0,
		)

	def all_metrics(self) -> dict[StrategyType, StrategyMetrics]:
		return {strategy_type: self.metrics_for(strategy_type) for strategy_type in StrategyType}

	def health(self, strategy_type: StrategyType) -> int:
		return self.metrics_for(strategy_type).health
