import re

import pytest
from pydantic import TypeAdapter, ValidationError

from api_sequencer.models import (
    DataTransformations,
    EndpointDescriptor,
    ExecutionResult,
    ExecutionState,
    Failure,
    FieldMapping,
    IterationConfig,
    ParameterSet,
    SequenceStep,
    Success,
    UnifiedColumn,
    new_step_id,
)


class TestEndpointDescriptor:
    def test_method_is_upper_cased(self):
        ep = EndpointDescriptor(method="get", path="/projects")
        assert ep.method == "GET"
        assert ep.label == "GET /projects"

    def test_rejects_unknown_method(self):
        with pytest.raises(ValidationError):
            EndpointDescriptor(method="FETCH", path="/projects")

    def test_path_parameters_in_order(self):
        ep = EndpointDescriptor(method="GET", path="/projects/{project_gid}/sections/{section_gid}")
        assert ep.path_parameters() == ["project_gid", "section_gid"]

    def test_accepts_body(self):
        assert EndpointDescriptor(method="POST", path="/tasks").accepts_body is True
        assert EndpointDescriptor(method="DELETE", path="/tasks/{task_gid}").accepts_body is False

    def test_is_frozen(self):
        ep = EndpointDescriptor(method="GET", path="/projects")
        with pytest.raises(ValidationError):
            ep.path = "/tasks"


class TestParameterSet:
    def test_reads_camel_case_and_coerces_numbers(self):
        params = ParameterSet.model_validate({"path": {}, "query": {"limit": 5, "archived": True}, "body": None})
        assert params.query == {"limit": "5", "archived": True}

    def test_defaults_are_independent(self):
        a = ParameterSet()
        b = ParameterSet()
        a.query["limit"] = "1"
        assert b.query == {}


class TestIterationConfig:
    def test_wire_aliases(self):
        config = IterationConfig.model_validate({
            "enabled": True,
            "sourceExpression": "step0.data",
            "loopVariable": "project",
            "unifyResults": False,
        })
        assert config.source_expression == "step0.data"
        assert config.loop_variable == "project"
        assert config.model_dump(by_alias=True)["unifyResults"] is False

    def test_defaults(self):
        config = IterationConfig()
        assert config.enabled is False
        assert config.loop_variable == "item"
        assert config.unify_results is True


class TestExecutionResult:
    def test_discriminates_on_status(self):
        adapter = TypeAdapter(ExecutionResult)
        assert isinstance(adapter.validate_python({"status": "success", "data": [1]}), Success)
        failure = adapter.validate_python({"status": "failure", "message": "boom", "kind": "ApiError"})
        assert isinstance(failure, Failure)
        assert failure.ok is False


class TestSequenceStep:
    def test_new_step_id_format(self):
        assert re.match(r"^seq_\d+_[a-z0-9]{9}$", new_step_id())

    def test_steps_get_distinct_ids(self):
        ep = EndpointDescriptor(method="GET", path="/projects")
        assert SequenceStep(endpoint=ep).id != SequenceStep(endpoint=ep).id

    def test_reset_clears_result(self):
        step = SequenceStep(endpoint=EndpointDescriptor(method="GET", path="/projects"))
        step.result = Failure(message="boom")
        step.execution_state = ExecutionState.RAN
        assert step.failed is True

        step.reset()
        assert step.ran is False
        assert step.result is None


class TestDataTransformations:
    def test_count(self):
        transformations = DataTransformations(
            field_mappings=[FieldMapping(source_field="gid", target_field="id")],
            unified_columns=[UnifiedColumn(name="label", format_template="{name}")],
        )
        assert transformations.count == 2

    def test_unified_column_source_fields(self):
        column = UnifiedColumn(name="label", format_template="{name} (#{gid})")
        assert column.source_fields == ["name", "gid"]
