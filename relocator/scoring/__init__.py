"""
Confidence scoring and fallback chain construction for relocator.
"""

from relocator.scoring.chain_builder import FallbackChainBuilder, is_likely_dynamic_id, trail_direction, validate_chain
from relocator.scoring.diversity import ChainOptimizer, DiversityAnalysis, StrategyCategory, diversity_score, selector_similarity
from relocator.scoring.scorer import SelectorAnalysis, StrategyScorer, has_dynamic_pattern, text_reliability

__all__ = [
	'FallbackChainBuilder',
	'is_likely_dynamic_id',
	'trail_direction',
	'validate_chain',
	'ChainOptimizer',
	'DiversityAnalysis',
	'StrategyCategory',
	'diversity_score',
	'selector_similarity',
	'SelectorAnalysis',
	'StrategyScorer',
	'has_dynamic_pattern',
	'text_reliability',
]
