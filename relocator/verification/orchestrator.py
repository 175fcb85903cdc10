"""
Repair Orchestrator

Runs a verification session over a recorded sequence in a background task and
exposes the pause / resume / stop / repair control surface to the host.

Session lifecycle:
- running -> paused -> running (any number of times)
- running | paused -> complete (all steps processed, or stop())

Cancellation is cooperative: the runner checks for stop once per step
boundary and on every tick of the pause-wait loop.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from uuid_extensions import uuid7str

from relocator.config import get_settings
from relocator.schemas.verification import (
	ProgressEvent,
	ProgressEventType,
	RecordedStep,
	SessionStatus,
	StepRepair,
	StepStatus,
	StepVerificationState,
	VerificationSession,
)
from relocator.verification.verifier import StepVerifier

logger = logging.getLogger(__name__)

REPAIR_MIN_CONFIDENCE = 0.5

ProgressCallback = Callable[[ProgressEvent], Any]


class RepairOrchestrator:
	"""
	Verification session owner.

	Holds at most one session at a time; starting a new one cancels the
	previous run.
	"""

	def __init__(
		self,
		verifier: StepVerifier | None = None,
		pause_poll_interval: float | None = None,
		repair_min_confidence: float = REPAIR_MIN_CONFIDENCE,
	):
		"""
		Initialize the orchestrator.

		Args:
			verifier: Step verifier (its engine's registry is used for repairs)
			pause_poll_interval: Seconds between checks while paused
			repair_min_confidence: Confidence a repair strategy must reach
		"""
		settings = get_settings()
		self.verifier = verifier or StepVerifier()
		self.pause_poll_interval = (
			pause_poll_interval if pause_poll_interval is not None
			else settings.pause_poll_interval_ms / 1000
		)
		self.repair_min_confidence = repair_min_confidence
		self.session: VerificationSession | None = None
		self._callbacks: list[ProgressCallback] = []
		self._cancel_event: asyncio.Event | None = None
		self._run_task: asyncio.Task[Any] | None = None
		logger.debug("RepairOrchestrator initialized")

	# Control surface

	async def start_verification(self, steps: list[RecordedStep], page: Any) -> VerificationSession:
		"""
		Start verifying a recorded sequence.

		Args:
			steps: Recorded steps in order
			page: Page client the steps are verified against

		Returns:
			The new session (status running, all steps pending)
		"""
		await self._cancel_run()

		self._cancel_event = asyncio.Event()
		self.session = VerificationSession(
			session_id=f"verify_{uuid7str()}",
			steps=[StepVerificationState.from_step(index, step) for index, step in enumerate(steps)],
		)
		self.session.refresh_summary()

		self._run_task = asyncio.create_task(
			self._run(self.session, list(steps), page, self._cancel_event),
			name=f"verification_{self.session.session_id}",
		)
		logger.info(f"Started verification session {self.session.session_id} ({len(steps)} steps)")
		return self.session

	def pause(self) -> bool:
		if self.session is None or self.session.status != SessionStatus.RUNNING:
			logger.debug("pause() ignored: no running session")
			return False
		self.session.status = SessionStatus.PAUSED
		logger.info(f"Verification session {self.session.session_id} paused")
		self._emit(ProgressEvent(
			type=ProgressEventType.STEP_COMPLETE,
			session_id=self.session.session_id,
			summary=self.session.summary,
			details={'paused': True},
		))
		return True

	def resume(self) -> bool:
		if self.session is None or self.session.status != SessionStatus.PAUSED:
			logger.debug("resume() ignored: session is not paused")
			return False
		self.session.status = SessionStatus.RUNNING
		logger.info(f"Verification session {self.session.session_id} resumed")
		return True

	def stop(self) -> bool:
		"""Stop the session; it becomes complete and keeps the progress made so far."""
		if self.session is None or self.session.status == SessionStatus.COMPLETE:
			logger.debug("stop() ignored: no active session")
			return False
		if self._cancel_event is not None:
			self._cancel_event.set()
		self.session.status = SessionStatus.COMPLETE
		self.session.ended_at = time.time()
		logger.info(f"Verification session {self.session.session_id} stopped")
		return True

	async def wait_until_complete(self, timeout: float | None = None) -> VerificationSession | None:
		"""Wait for the background run to finish."""
		if self._run_task is not None and not self._run_task.done():
			await asyncio.wait_for(asyncio.shield(self._run_task), timeout=timeout)
		return self.session

	def get_session(self) -> VerificationSession | None:
		return self.session

	def can_save(self) -> bool:
		return self.session.summary.can_save if self.session is not None else False

	def get_flagged_steps(self) -> list[tuple[int, StepVerificationState]]:
		if self.session is None:
			return []
		return [(index, state) for index, state in enumerate(self.session.steps) if state.status == StepStatus.FLAGGED]

	def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
		"""
		Subscribe to progress events.

		Returns:
			Callable that removes the subscription
		"""
		self._callbacks.append(callback)

		def unsubscribe() -> None:
			if callback in self._callbacks:
				self._callbacks.remove(callback)

		return unsubscribe

	# Repair

	async def repair_step(self, step_index: int, repair: StepRepair, page: Any) -> bool:
		"""
		Test an operator-supplied strategy for a flagged step.

		Args:
			step_index: Index of the step in the session
			repair: Repair carrying the replacement strategy
			page: Page client

		Returns:
			True if the step is repaired (or needed no repair), False otherwise
		"""
		if self.session is None or not 0 <= step_index < len(self.session.steps):
			logger.error(f"Invalid step index for repair: {step_index}")
			return False

		state = self.session.steps[step_index]
		if state.status != StepStatus.FLAGGED:
			logger.debug(f"Step {step_index} is {state.status.value}, no repair needed")
			return True

		result = await self.verifier.test_strategy(repair.new_strategy, page)
		if not (result.found and result.confidence >= self.repair_min_confidence):
			logger.warning(
				f"Repair for step {step_index} did not resolve: found={result.found}, "
				f"confidence={result.confidence:.2f}, error={result.error}"
			)
			return False

		state.status = StepStatus.REPAIRED
		state.repair = repair.model_copy(update={'applied_at': time.time()})
		state.working_strategy = repair.new_strategy
		state.confidence = result.confidence
		state.flag_reason = None
		self.session.refresh_summary()
		logger.info(f"✅ Step {step_index} repaired with {repair.new_strategy.describe()} ({result.confidence:.2f})")
		self._emit(ProgressEvent(
			type=ProgressEventType.STEP_COMPLETE,
			session_id=self.session.session_id,
			step_index=step_index,
			step_state=state,
			summary=self.session.summary,
		))
		return True

	# Runner

	async def _run(
		self,
		session: VerificationSession,
		steps: list[RecordedStep],
		page: Any,
		cancel_event: asyncio.Event,
	) -> None:
		try:
			for index, step in enumerate(steps):
				while session.status == SessionStatus.PAUSED and not cancel_event.is_set():
					await asyncio.sleep(self.pause_poll_interval)
				if cancel_event.is_set():
					logger.debug(f"Verification session {session.session_id} aborted before step {index}")
					return

				session.current_step_index = index
				await self._verify_one(session, index, step, page, cancel_event)

			if not cancel_event.is_set():
				session.status = SessionStatus.COMPLETE
				session.ended_at = time.time()
				session.refresh_summary()
				logger.info(
					f"Verification session {session.session_id} complete: "
					f"{session.summary.verified_count} verified, {session.summary.flagged_count} flagged, "
					f"{session.summary.skipped_count} skipped"
				)
				self._emit(ProgressEvent(
					type=ProgressEventType.SESSION_COMPLETE,
					session_id=session.session_id,
					summary=session.summary,
				))
		except asyncio.CancelledError:
			logger.debug(f"Verification session {session.session_id} cancelled")
			raise
		except Exception as e:
			logger.error(f"Verification session {session.session_id} failed: {e}", exc_info=True)
			session.status = SessionStatus.COMPLETE
			session.ended_at = time.time()
			session.refresh_summary()
			self._emit(ProgressEvent(
				type=ProgressEventType.ERROR,
				session_id=session.session_id,
				step_index=session.current_step_index,
				summary=session.summary,
				error=str(e),
			))

	async def _verify_one(
		self,
		session: VerificationSession,
		index: int,
		step: RecordedStep,
		page: Any,
		cancel_event: asyncio.Event,
	) -> None:
		state = session.steps[index]

		if step.is_navigation:
			state.status = StepStatus.SKIPPED
			state.duration_ms = 0.0
			session.refresh_summary()
			self._emit(ProgressEvent(
				type=ProgressEventType.STEP_COMPLETE,
				session_id=session.session_id,
				step_index=index,
				step_state=state,
				summary=session.summary,
			))
			return

		state.status = StepStatus.VERIFYING
		self._emit(ProgressEvent(
			type=ProgressEventType.STEP_STARTED,
			session_id=session.session_id,
			step_index=index,
			step_state=state,
		))

		try:
			result = await self.verifier.verify_step(step, page)
			state.status = StepStatus.VERIFIED if result.verified else StepStatus.FLAGGED
			state.working_strategy = result.working_strategy
			state.confidence = result.confidence
			state.strategy_results = result.strategy_results
			state.flag_reason = result.failure_reason
			state.duration_ms = result.duration_ms
		except Exception as e:
			logger.error(f"Verification of step {index} failed: {e}", exc_info=True)
			state.status = StepStatus.FLAGGED
			state.flag_reason = str(e) or "Verification error"
			state.duration_ms = 0.0

		if cancel_event.is_set():
			# Stopped mid-step: the finished evaluation is discarded
			state.status = StepStatus.PENDING
			state.working_strategy = None
			state.confidence = 0.0
			state.strategy_results = []
			state.flag_reason = None
			state.duration_ms = 0.0
			logger.debug(f"Discarded result of step {index} after stop")
			return

		session.refresh_summary()
		self._emit(ProgressEvent(
			type=ProgressEventType.STEP_COMPLETE,
			session_id=session.session_id,
			step_index=index,
			step_state=state,
			summary=session.summary,
		))

	async def _cancel_run(self) -> None:
		if self._cancel_event is not None:
			self._cancel_event.set()
		if self._run_task is not None and not self._run_task.done():
			self._run_task.cancel()
			try:
				await self._run_task
			except asyncio.CancelledError:
				pass
		self._run_task = None

	def _emit(self, event: ProgressEvent) -> None:
		for callback in list(self._callbacks):
			try:
				callback(event)
			except Exception as e:
				logger.error(f"Progress callback error: {e}", exc_info=True)
