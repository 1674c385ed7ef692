"""Runs single steps and whole sequences against the live API."""

import logging
import time
from collections.abc import Callable

from api_sequencer.errors import AlreadyRunning, StepError
from api_sequencer.http import HttpClient, RequestDescriptor
from api_sequencer.iteration import IterationEngine, failure_from
from api_sequencer.models import (
    EndpointDescriptor,
    ExecutionState,
    Failure,
    ParameterSet,
    SequenceStep,
    Success,
)
from api_sequencer.params import ParameterBuilder
from api_sequencer.session import Session

logger = logging.getLogger(__name__)

# Pause between consecutive steps of run_all, in seconds.
INTER_STEP_DELAY = 0.5


class SequenceExecutor:
    """Executes the steps of a session in positional order.

    A run for a step, or for the whole sequence, must finish before another
    one is started for the same target; overlapping requests raise
    AlreadyRunning.
    """

    def __init__(
        self,
        session: Session,
        client: HttpClient | None = None,
        builder: ParameterBuilder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.client = client or HttpClient(session.base_url, session.token)
        self.builder = builder or ParameterBuilder(session.base_url)
        self.iteration = IterationEngine(self.builder, self.client)
        self._sleep = sleep
        self._busy_steps: set[str] = set()
        self._sequence_busy = False

    @property
    def busy(self) -> bool:
        return self._sequence_busy or bool(self._busy_steps)

    def run_step(self, step_id: str) -> Success | Failure:
        if step_id in self._busy_steps:
            raise AlreadyRunning(f"Step {step_id} is already running")
        step = self.session.get_step(step_id)

        self._busy_steps.add(step_id)
        try:
            return self._execute(step)
        finally:
            self._busy_steps.discard(step_id)

    def run_all(self) -> list[Success | Failure]:
        """Run every step in order, halting at the first failure."""
        if self._sequence_busy:
            raise AlreadyRunning("The sequence is already running")

        self._sequence_busy = True
        results: list[Success | Failure] = []
        steps = list(self.session.steps)
        try:
            for position, step in enumerate(steps):
                result = self.run_step(step.id)
                results.append(result)
                if not result.ok:
                    logger.error("Sequence stopped at step %d: %s", position + 1, result.message)
                    break
                if position < len(steps) - 1:
                    self._sleep(INTER_STEP_DELAY)
        finally:
            self._sequence_busy = False

        succeeded = sum(1 for r in results if r.ok)
        logger.info("Sequence finished: %d/%d steps succeeded", succeeded, len(steps))
        return results

    def _execute(self, step: SequenceStep) -> Success | Failure:
        step.reset()
        self.session.results.pop(step.id, None)
        position = self.session.position(step.id)
        resolver = self.session.resolver()
        logger.info("Executing step %d: %s", position + 1, step.endpoint.label)

        try:
            if step.iteration.enabled:
                result = self.iteration.run(step, resolver, position)
            else:
                request = self.builder.build(step, resolver)
                result = self.client.execute(request)
        except StepError as e:
            result = failure_from(e)

        step.result = result
        step.execution_state = ExecutionState.RAN
        if result.ok:
            self.session.results[step.id] = result.payload
        else:
            logger.warning("Step %d failed: %s", position + 1, result.message)
        return result

    def run_endpoint(self, endpoint: EndpointDescriptor, parameters: ParameterSet | None = None) -> Success | Failure:
        """Ad-hoc call of one endpoint, outside the sequence.

        Placeholders may still reference results already in the session.
        """
        step = SequenceStep(endpoint=endpoint, parameters=parameters or ParameterSet())
        try:
            request = self.builder.build(step, self.session.resolver())
            return self.client.execute(request)
        except StepError as e:
            return failure_from(e)

    def test_connection(self) -> Success | Failure:
        """Check the token against the current-user endpoint."""
        request = RequestDescriptor(method="GET", url=f"{self.client.base_url}/users/me")
        try:
            return self.client.execute(request)
        except StepError as e:
            return failure_from(e)
