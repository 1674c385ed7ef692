from unittest.mock import MagicMock

import pytest

from api_sequencer.errors import NetworkFailure
from api_sequencer.iteration import IterationEngine, unify
from api_sequencer.models import (
    EndpointDescriptor,
    IterationConfig,
    IterationOutcome,
    IterationState,
    ParameterSet,
    SequenceStep,
    Success,
)
from api_sequencer.params import ParameterBuilder
from api_sequencer.resolver import VariableResolver

BASE_URL = "https://api.example.com"
SOURCE = "seq_1718000000000_aaaaaaaaa"
PROJECTS = {"data": [{"gid": "p1"}, {"gid": "p2"}, {"gid": "p3"}]}


def _iterated_step(expression: str = "step0.data", loop_variable: str = "project", unify_results: bool = True) -> SequenceStep:
    return SequenceStep(
        endpoint=EndpointDescriptor(method="GET", path="/projects/{project_gid}/tasks"),
        parameters=ParameterSet(path={"project_gid": "{{" + loop_variable + ".gid}}"}),
        iteration=IterationConfig(
            enabled=True,
            source_expression=expression,
            loop_variable=loop_variable,
            unify_results=unify_results,
        ),
    )


def _client(fail_on: set[str] = frozenset()) -> MagicMock:
    def execute(request):
        gid = request.url.split("/")[-2]
        if gid in fail_on:
            raise NetworkFailure("connection reset")
        tasks = [{"gid": f"{gid}-t1"}, {"gid": f"{gid}-t2"}]
        return Success(http_status=200, data=tasks, payload={"data": tasks})

    client = MagicMock()
    client.execute.side_effect = execute
    return client


def _run(step: SequenceStep, client: MagicMock, store=None):
    resolver = VariableResolver({SOURCE: PROJECTS} if store is None else store, [SOURCE, step.id])
    return IterationEngine(ParameterBuilder(BASE_URL), client).run(step, resolver, 1)


class TestIterationEngine:
    def test_all_iterations_succeed(self):
        client = _client()
        result = _run(_iterated_step(), client)

        assert result.ok
        summary = result.data
        assert summary.total_iterations == 3
        assert summary.succeeded == 3
        assert summary.failed == 0
        assert [i["gid"] for i in summary.unified_items] == ["p1-t1", "p1-t2", "p2-t1", "p2-t2", "p3-t1", "p3-t2"]
        assert client.execute.call_count == 3

    def test_payload_is_resolvable(self):
        result = _run(_iterated_step(), _client())
        assert result.payload["data"] == result.data.unified_items
        assert result.payload["total_iterations"] == 3
        assert result.http_status == 200

    def test_failed_element_does_not_stop_loop(self):
        result = _run(_iterated_step(), _client(fail_on={"p2"}))

        assert result.ok
        summary = result.data
        assert summary.failed == 1
        assert summary.succeeded == 2
        assert [o.state for o in summary.iterations] == [
            IterationState.SUCCEEDED, IterationState.FAILED, IterationState.SUCCEEDED,
        ]
        assert summary.iterations[1].result.kind == "NetworkFailure"
        assert [i["gid"] for i in summary.unified_items] == ["p1-t1", "p1-t2", "p3-t1", "p3-t2"]

    def test_all_elements_fail(self):
        result = _run(_iterated_step(), _client(fail_on={"p1", "p2", "p3"}))
        assert result.ok
        assert result.data.failed == 3
        assert result.data.unified_items == []
        assert result.http_status is None

    def test_without_unification_keeps_per_call_data(self):
        result = _run(_iterated_step(unify_results=False), _client())
        assert len(result.data.unified_items) == 3
        assert result.data.unified_items[0] == [{"gid": "p1-t1"}, {"gid": "p1-t2"}]

    def test_index_variable_in_scope(self):
        step = _iterated_step()
        step.parameters.query["offset"] = "{{project_index}}"
        client = _client()
        _run(step, client)
        offsets = [call.args[0].query["offset"] for call in client.execute.call_args_list]
        assert offsets == ["0", "1", "2"]

    def test_braced_source_expression(self):
        result = _run(_iterated_step(expression="{{ step0.data }}"), _client())
        assert result.data.total_iterations == 3

    def test_empty_source_array(self):
        result = _run(_iterated_step(), _client(), store={SOURCE: {"data": []}})
        assert result.ok
        assert result.data.total_iterations == 0
        assert result.data.unified_items == []

    def test_source_not_array_fails_step(self):
        client = _client()
        result = _run(_iterated_step(expression="step0.data[0]"), client)
        assert not result.ok
        assert result.kind == "IterationSourceNotArray"
        client.execute.assert_not_called()

    def test_source_must_be_earlier_step(self):
        step = _iterated_step(expression="step1.data")
        result = _run(step, _client())
        assert not result.ok
        assert result.kind == "UnknownStepReference"

    def test_source_without_result(self):
        result = _run(_iterated_step(), _client(), store={})
        assert result.kind == "UnknownStepReference"

    def test_empty_source_expression(self):
        result = _run(_iterated_step(expression="  "), _client())
        assert result.kind == "InvalidIterationConfig"

    @pytest.mark.parametrize("name", ["step0", "1item", "my-item"])
    def test_invalid_loop_variable(self, name):
        result = _run(_iterated_step(loop_variable=name), _client())
        assert not result.ok
        assert result.kind == "InvalidIterationConfig"

    def test_blank_loop_variable_defaults_to_item(self):
        step = _iterated_step(loop_variable="project")
        step.iteration.loop_variable = ""
        step.parameters.path["project_gid"] = "{{item.gid}}"
        result = _run(step, _client())
        assert result.data.succeeded == 3


class TestUnify:
    def test_skips_non_succeeded(self):
        outcomes = [
            IterationOutcome(index=0, state=IterationState.SUCCEEDED, result=Success(data={"gid": "a"})),
            IterationOutcome(index=1, state=IterationState.FAILED),
            IterationOutcome(index=2, state=IterationState.SUCCEEDED, result=Success(data=None)),
        ]
        assert unify(outcomes, True) == [{"gid": "a"}]
