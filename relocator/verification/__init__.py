"""
Verification and repair for relocator.

Re-tests recorded steps against the current page and lets an operator patch
the ones that no longer resolve.
"""

from relocator.verification.orchestrator import RepairOrchestrator
from relocator.verification.verifier import StepVerifier, basic_chain_from_bundle

__all__ = [
	'RepairOrchestrator',
	'StepVerifier',
	'basic_chain_from_bundle',
]
