from datetime import timedelta
from typing import Any

import pytest

from mortiscope_jobs.events.exceptions import SchemaValidationError
from mortiscope_jobs.events.models import AnalysisRequested, RecalculationRequested
from mortiscope_jobs.events.registry import Event, EventName, build_event
from mortiscope_jobs.functions.base import JobFunction
from mortiscope_jobs.orchestration.client import Orchestrator
from mortiscope_jobs.orchestration.exceptions import (
    DuplicateFunctionError,
    FunctionNotFoundError,
)
from mortiscope_jobs.orchestration.memory_store import InMemoryRunQueue
from mortiscope_jobs.orchestration.step import StepContext


class _Recalculate(JobFunction):
    id = "recalculate"
    name = "Recalculate"
    trigger = EventName.RECALCULATION_REQUESTED
    payload_types = (RecalculationRequested,)

    def handle(self, event: Event, step: StepContext) -> Any:
        return None


class _Audit(_Recalculate):
    id = "audit-recalculation"
    name = "Audit Recalculation"
    retries = 0


class _Analyse(JobFunction):
    id = "analyse"
    name = "Analyse"
    trigger = EventName.ANALYSIS_REQUESTED
    payload_types = (AnalysisRequested,)

    def handle(self, event: Event, step: StepContext) -> Any:
        return None


def _orchestrator(clock) -> tuple[Orchestrator, InMemoryRunQueue]:
    queue = InMemoryRunQueue(clock)
    return Orchestrator(queue, default_retries=2, clock=clock), queue


class TestRegistration:
    def test_duplicate_id_rejected(self, clock) -> None:
        orchestrator, _queue = _orchestrator(clock)
        orchestrator.register(_Recalculate())

        with pytest.raises(DuplicateFunctionError):
            orchestrator.register(_Recalculate())

    def test_functions_for_event(self, clock) -> None:
        orchestrator, _queue = _orchestrator(clock)
        orchestrator.register_all([_Recalculate(), _Audit(), _Analyse()])

        ids = [fn.id for fn in orchestrator.functions_for(EventName.RECALCULATION_REQUESTED)]

        assert ids == ["recalculate", "audit-recalculation"]

    def test_get_function_unknown(self, clock) -> None:
        orchestrator, _queue = _orchestrator(clock)

        with pytest.raises(FunctionNotFoundError):
            orchestrator.get_function("missing")

    def test_max_attempts_uses_function_override(self, clock) -> None:
        orchestrator, _queue = _orchestrator(clock)

        assert orchestrator.max_attempts_for(_Recalculate()) == 3
        assert orchestrator.max_attempts_for(_Audit()) == 1


class TestSend:
    def test_fans_out_one_run_per_function(self, clock) -> None:
        orchestrator, queue = _orchestrator(clock)
        orchestrator.register_all([_Recalculate(), _Audit(), _Analyse()])

        run_ids = orchestrator.send(EventName.RECALCULATION_REQUESTED, {"caseId": "case-1"})

        runs = queue.all_runs()
        assert len(run_ids) == 2
        assert {run.function_id for run in runs} == {"recalculate", "audit-recalculation"}
        assert all(run.event_data == {"caseId": "case-1"} for run in runs)
        assert len({run.event_id for run in runs}) == 1

    def test_invalid_payload_queues_nothing(self, clock) -> None:
        orchestrator, queue = _orchestrator(clock)
        orchestrator.register(_Recalculate())

        with pytest.raises(SchemaValidationError):
            orchestrator.send(EventName.RECALCULATION_REQUESTED, {"case": "case-1"})

        assert queue.all_runs() == []

    def test_no_subscribers(self, clock) -> None:
        orchestrator, queue = _orchestrator(clock)

        assert orchestrator.send(EventName.ANALYSIS_REQUESTED, {"caseId": "c-1"}) == []
        assert queue.all_runs() == []

    def test_delayed_delivery(self, clock) -> None:
        orchestrator, queue = _orchestrator(clock)
        orchestrator.register(_Recalculate())
        deliver_at = clock() + timedelta(days=30)

        orchestrator.send(EventName.RECALCULATION_REQUESTED, {"caseId": "c-1"}, ts=deliver_at)

        assert queue.all_runs()[0].available_at == deliver_at
        assert queue.claim_next() is None

    def test_same_event_delivered_once_per_function(self, clock) -> None:
        orchestrator, queue = _orchestrator(clock)
        orchestrator.register(_Recalculate())
        event = build_event(EventName.RECALCULATION_REQUESTED, {"caseId": "c-1"})

        first = orchestrator.send_event(event)
        second = orchestrator.send_event(event)

        assert len(first) == 1
        assert second == []
        assert len(queue.all_runs()) == 1
