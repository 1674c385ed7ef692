from api_sequencer.models import (
    EndpointDescriptor,
    ExecutionState,
    Failure,
    FieldMapping,
    IterationSummary,
    SequenceStep,
    Success,
    UnifiedColumn,
)
from api_sequencer.transform import (
    TransformationEngine,
    final_result,
    flatten,
    grid_rows,
    render_template,
)

RECORDS = [
    {"gid": "1", "name": "Alpha", "owner": {"name": "Ada"}, "tags": ["a", "b"]},
    {"gid": "2", "name": "Beta", "owner": None, "tags": []},
]


def _ran(data, path: str = "/projects") -> SequenceStep:
    return SequenceStep(
        endpoint=EndpointDescriptor(method="GET", path=path),
        execution_state=ExecutionState.RAN,
        result=Success(http_status=200, data=data, payload={"data": data}),
    )


class TestFlatten:
    def test_dotted_keys_and_markers(self):
        flat = flatten(RECORDS[0])
        assert flat == {"gid": "1", "name": "Alpha", "owner.name": "Ada", "tags": "[Array(2)]"}

    def test_depth_limit(self):
        flat = flatten({"a": {"b": {"c": {"d": 1}}}})
        assert flat == {"a.b.c": "[Object]"}

    def test_scalar_record(self):
        assert flatten("x") == {"value": "x"}


class TestTransformationEngine:
    def test_mapping_and_unified_column(self):
        output = TransformationEngine().apply(
            RECORDS,
            [FieldMapping(source_field="gid", target_field="id")],
            [UnifiedColumn(name="label", format_template="{name} (#{gid})")],
        )
        assert output == [
            {"id": "1", "label": "Alpha (#1)"},
            {"id": "2", "label": "Beta (#2)"},
        ]

    def test_missing_source_is_empty(self):
        output = TransformationEngine().apply(
            RECORDS,
            [FieldMapping(source_field="owner.name", target_field="owner")],
            [UnifiedColumn(name="who", format_template="{owner.name}!")],
        )
        assert output[1] == {"owner": "", "who": "!"}

    def test_incomplete_entries_ignored(self):
        output = TransformationEngine().apply(
            RECORDS[:1],
            [FieldMapping(source_field="gid", target_field="")],
            [UnifiedColumn(name="", format_template="{gid}")],
        )
        assert output == [{}]

    def test_auto_populate(self):
        mappings = TransformationEngine().auto_populate(RECORDS)
        assert [(m.source_field, m.target_field) for m in mappings] == [
            ("gid", "gid"), ("name", "name"), ("owner.name", "owner.name"), ("tags", "tags"),
        ]
        assert TransformationEngine().auto_populate([]) == []

    def test_available_fields_sorted(self):
        assert TransformationEngine().available_fields(RECORDS) == ["gid", "name", "owner.name", "tags"]


class TestFinalResult:
    def test_last_step_with_data(self):
        steps = [_ran(RECORDS), _ran([]), SequenceStep(endpoint=EndpointDescriptor(method="GET", path="/x"))]
        assert final_result(steps) == RECORDS

    def test_failed_step_skipped(self):
        failed = SequenceStep(
            endpoint=EndpointDescriptor(method="GET", path="/x"),
            execution_state=ExecutionState.RAN,
            result=Failure(message="boom"),
        )
        assert final_result([_ran({"gid": "9"}), failed]) == [{"gid": "9"}]

    def test_iteration_uses_unified_items(self):
        summary = IterationSummary(total_iterations=2, succeeded=2, unified_items=RECORDS)
        assert final_result([_ran(summary)]) == RECORDS

    def test_nothing_ran(self):
        assert final_result([]) == []


class TestGrid:
    def test_rows_carry_metadata(self):
        rows = grid_rows([_ran(RECORDS[:1]), _ran({"gid": "x"}, "/users/me")])
        assert rows[0]["Step"] == 1
        assert rows[0]["Endpoint"] == "GET /projects"
        assert rows[0]["owner.name"] == "Ada"
        assert rows[1]["Records"] == 1
        assert rows[1]["Row"] == 1
        assert rows[1]["gid"] == "x"

    def test_render_template(self):
        assert render_template("{a}-{b}-{missing}", {"a": 1, "b": True}) == "1-true-"
