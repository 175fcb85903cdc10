"""
Replay-time resolution for relocator.
"""

from relocator.engine.decision import DecisionEngine
from relocator.engine.telemetry import ResolutionRecord, StrategyAttempt, StrategyMetrics, StrategyTelemetry

__all__ = [
	'DecisionEngine',
	'ResolutionRecord',
	'StrategyAttempt',
	'StrategyMetrics',
	'StrategyTelemetry',
]
