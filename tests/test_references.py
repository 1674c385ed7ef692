import pytest

from api_sequencer.models import ParameterSet
from api_sequencer.references import ReferenceRewriter

IDS = ["seq_1_aaaaaaaaa", "seq_2_bbbbbbbbb", "seq_3_ccccccccc"]


class TestToStable:
    def test_backward_reference_rewritten(self):
        rewriter = ReferenceRewriter(IDS)
        assert rewriter.to_stable("{{seq_1_aaaaaaaaa.data[0].gid}}", 2) == "{{step0.data[0].gid}}"

    def test_forward_and_self_references_untouched(self):
        rewriter = ReferenceRewriter(IDS)
        text = "{{seq_2_bbbbbbbbb.data}} {{seq_3_ccccccccc.data}}"
        assert rewriter.to_stable(text, 1) == text

    def test_text_outside_placeholders_untouched(self):
        rewriter = ReferenceRewriter(IDS)
        text = "seq_1_aaaaaaaaa and {{ seq_1_aaaaaaaaa.data.name }}"
        assert rewriter.to_stable(text, 1) == "seq_1_aaaaaaaaa and {{ step0.data.name }}"

    def test_non_string_passes_through(self):
        assert ReferenceRewriter(IDS).to_stable(True, 1) is True


class TestToRuntime:
    def test_stable_reference_rewritten(self):
        assert ReferenceRewriter(IDS).to_runtime("{{step1.data.gid}}", 2) == "{{seq_2_bbbbbbbbb.data.gid}}"

    def test_out_of_range_untouched(self):
        assert ReferenceRewriter(IDS[:1]).to_runtime("{{step4.data}}", 5) == "{{step4.data}}"

    @pytest.mark.parametrize("expression,index", [
        ("{{seq_1_aaaaaaaaa.data[0].gid}}", 1),
        ("{{seq_2_bbbbbbbbb.data.members[3].email}}", 2),
        ("prefix-{{seq_1_aaaaaaaaa.data.name}}-{{seq_2_bbbbbbbbb.data.gid}}", 2),
    ])
    def test_round_trip(self, expression, index):
        rewriter = ReferenceRewriter(IDS)
        assert rewriter.to_runtime(rewriter.to_stable(expression, index), index) == expression


class TestExpressions:
    def test_bare_mapping_expression(self):
        rewriter = ReferenceRewriter(IDS)
        stable = rewriter.expression_to_stable("seq_1_aaaaaaaaa.data[0].gid", 1)
        assert stable == "step0.data[0].gid"
        assert rewriter.expression_to_runtime(stable, 1) == "seq_1_aaaaaaaaa.data[0].gid"

    def test_braced_expression_keeps_braces(self):
        assert ReferenceRewriter(IDS).expression_to_stable("{{seq_1_aaaaaaaaa.data}}", 1) == "{{step0.data}}"

    def test_parameters(self):
        rewriter = ReferenceRewriter(IDS)
        params = ParameterSet(
            path={"project_gid": "{{seq_2_bbbbbbbbb.data.gid}}"},
            query={"workspace": "{{seq_1_aaaaaaaaa.data[0].gid}}", "archived": False},
            body='{"name": "{{seq_1_aaaaaaaaa.data[0].name}}"}',
        )
        stable = rewriter.parameters_to_stable(params, 2)
        assert stable.path == {"project_gid": "{{step1.data.gid}}"}
        assert stable.query == {"workspace": "{{step0.data[0].gid}}", "archived": False}
        assert stable.body == '{"name": "{{step0.data[0].name}}"}'
        assert rewriter.parameters_to_runtime(stable, 2) == params

    def test_mappings(self):
        rewriter = ReferenceRewriter(IDS)
        mappings = {"workspace_gid": "seq_1_aaaaaaaaa.data[0].gid", "empty": ""}
        assert rewriter.mappings_to_stable(mappings, 1) == {"workspace_gid": "step0.data[0].gid", "empty": ""}
