"""
Strategy evaluators for relocator.

One evaluator per strategy family plus a registry that dispatches by type.
"""

from relocator.strategies.base import StrategyEvaluator
from relocator.strategies.coordinates import CoordinatesEvaluator
from relocator.strategies.evidence import EvidenceScoredEvaluator, EvidenceScoringConfig
from relocator.strategies.registry import EvaluatorRegistry
from relocator.strategies.semantic import SemanticEvaluator
from relocator.strategies.structural import StructuralEvaluator, ambiguity_confidence, is_xpath
from relocator.strategies.visual_text import VisualTextEvaluator

__all__ = [
	'StrategyEvaluator',
	'CoordinatesEvaluator',
	'EvidenceScoredEvaluator',
	'EvidenceScoringConfig',
	'EvaluatorRegistry',
	'SemanticEvaluator',
	'StructuralEvaluator',
	'ambiguity_confidence',
	'is_xpath',
	'VisualTextEvaluator',
]
