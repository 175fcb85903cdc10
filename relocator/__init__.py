"""
Relocator - Element Relocation & Verification

Re-finds previously recorded page elements through ranked fallback chains of
structural, semantic, visual, behavioral and coordinate strategies, and
re-verifies recorded sequences against a changed page.
"""

from relocator.cdp.client import CDPCommandError, CDPPageClient
from relocator.engine.decision import DecisionEngine
from relocator.schemas.strategy import (
	FallbackChain,
	LocatorStrategy,
	StrategyEvaluationResult,
	StrategyType,
)
from relocator.scoring.chain_builder import FallbackChainBuilder
from relocator.strategies.registry import EvaluatorRegistry
from relocator.verification.orchestrator import RepairOrchestrator
from relocator.verification.verifier import StepVerifier
from relocator.vision.ocr import OCREngine

__all__ = [
	'CDPCommandError',
	'CDPPageClient',
	'DecisionEngine',
	'FallbackChain',
	'LocatorStrategy',
	'StrategyEvaluationResult',
	'StrategyType',
	'FallbackChainBuilder',
	'EvaluatorRegistry',
	'RepairOrchestrator',
	'StepVerifier',
	'OCREngine',
]
