"""Tests for the provisioning graph and step catalog."""

import pytest

from eks_deploy_auto.exceptions import CycleError, SequenceError
from eks_deploy_auto.models import ProvisioningStep, StepKind
from eks_deploy_auto.sequence import DEFAULT_STEPS, ProvisioningGraph, default_graph
from eks_deploy_auto.sequence.templates import command_fields, render_command


def _step(name: str, *requires: str, **kwargs) -> ProvisioningStep:
    return ProvisioningStep(name=name, description=name, requires=requires, **kwargs)


class TestTemplates:
    """Tests for command template helpers."""

    def test_command_fields(self):
        argv = ("eksctl", "get", "cluster", "--name", "{cluster_name}", "--region={region}")
        assert command_fields(argv) == {"cluster_name", "region"}

    def test_escaped_braces_are_not_fields(self):
        assert command_fields(("jsonpath={{.status}}",)) == set()

    def test_render_command(self):
        assert render_command(("kubectl", "get", "ns", "{namespace}"), {"namespace": "webapp"}) == [
            "kubectl",
            "get",
            "ns",
            "webapp",
        ]

    def test_render_keeps_escaped_braces(self):
        assert render_command(("jsonpath={{.status}}",), {}) == ["jsonpath={.status}"]

    def test_render_missing_value(self):
        with pytest.raises(SequenceError) as exc_info:
            render_command(("echo", "{missing}"), {})
        assert "missing" in str(exc_info.value)


class TestProvisioningGraph:
    """Tests for ordering and validation of the graph."""

    def test_order_respects_dependencies(self):
        graph = ProvisioningGraph([_step("c", "b"), _step("b", "a"), _step("a")])
        assert [step.name for step in graph.order()] == ["a", "b", "c"]

    def test_order_is_stable(self):
        graph = ProvisioningGraph([_step("root"), _step("y", "root"), _step("x", "root")])
        assert [step.name for step in graph.order()] == ["root", "y", "x"]

    def test_duplicate_step(self):
        graph = ProvisioningGraph([_step("a")])
        with pytest.raises(SequenceError) as exc_info:
            graph.add(_step("a"))
        assert "Duplicate" in str(exc_info.value)

    def test_unknown_requirement(self):
        graph = ProvisioningGraph([_step("a", "ghost")])
        with pytest.raises(SequenceError) as exc_info:
            graph.order()
        assert "unknown step 'ghost'" in str(exc_info.value)

    def test_cycle(self):
        graph = ProvisioningGraph([_step("start"), _step("a", "start", "c"), _step("b", "a"), _step("c", "b")])

        with pytest.raises(CycleError) as exc_info:
            graph.order()

        assert exc_info.value.steps == ["a", "b", "c"]

    def test_tiers(self):
        graph = ProvisioningGraph([_step("a"), _step("b"), _step("c", "a", "b"), _step("d", "a")])
        assert [[step.name for step in tier] for tier in graph.tiers()] == [["a", "b"], ["c", "d"]]

    def test_ancestors(self):
        graph = ProvisioningGraph([_step("a"), _step("b", "a"), _step("c", "b"), _step("d")])
        assert graph.ancestors("c") == {"a", "b"}

    def test_verify_order_accepts_valid(self):
        graph = ProvisioningGraph([_step("a"), _step("b", "a")])
        graph.verify_order(["a", "b"])

    def test_verify_order_rejects_prerequisite_after(self):
        graph = ProvisioningGraph([_step("a"), _step("b", "a")])
        with pytest.raises(SequenceError) as exc_info:
            graph.verify_order(["b", "a"])
        assert "before its prerequisite 'a'" in str(exc_info.value)

    def test_verify_order_rejects_missing_and_repeated(self):
        graph = ProvisioningGraph([_step("a"), _step("b", "a")])
        with pytest.raises(SequenceError):
            graph.verify_order(["a"])
        with pytest.raises(SequenceError):
            graph.verify_order(["a", "a", "b"])

    def test_check_inputs_accepts_captured_value(self):
        graph = ProvisioningGraph(
            [
                _step("produce", captures=(("token", ("echo", "x")),)),
                _step("consume", "produce", commands=(("use", "{token}", "{region}"),)),
            ]
        )
        graph.check_inputs({"region"})

    def test_check_inputs_rejects_value_from_unrelated_step(self):
        graph = ProvisioningGraph(
            [
                _step("produce", captures=(("token", ("echo", "x")),)),
                _step("consume", commands=(("use", "{token}"),)),
            ]
        )
        with pytest.raises(SequenceError) as exc_info:
            graph.check_inputs(set())
        assert "consume" in str(exc_info.value)

    def test_check_inputs_verify_may_use_own_capture(self):
        graph = ProvisioningGraph(
            [_step("one", captures=(("token", ("echo", "x")),), verify=(("check", "{token}"),))]
        )
        graph.check_inputs(set())

    def test_split_at(self):
        graph = ProvisioningGraph([_step("a"), _step("b", "a"), _step("c", "b")])

        skipped, remaining = graph.split_at("b")

        assert [step.name for step in skipped] == ["a"]
        assert [step.name for step in remaining] == ["b", "c"]

    def test_split_at_unknown(self):
        with pytest.raises(SequenceError):
            ProvisioningGraph([_step("a")]).split_at("z")


class TestDefaultGraph:
    """Tests for the standard EKS provisioning steps."""

    def test_is_acyclic_and_ordered(self):
        graph = default_graph()
        order = [step.name for step in graph.order()]

        graph.verify_order(order)
        assert len(order) == len(DEFAULT_STEPS)

    def test_order(self):
        assert [step.name for step in default_graph().order()] == [
            "network",
            "cluster",
            "nodegroup",
            "rds-access",
            "oidc",
            "csi-driver",
            "secret-policy",
            "namespace",
            "service-account",
            "secret-provider-class",
            "deployment",
            "service",
            "exposure",
        ]

    def test_service_account_waits_for_oidc_and_csi_driver(self):
        ancestors = default_graph().ancestors("service-account")
        assert {"oidc", "csi-driver", "secret-policy", "namespace", "cluster"} <= ancestors

    def test_workload_chain(self):
        graph = default_graph()
        assert graph.get("deployment").requires == ("secret-provider-class",)
        assert graph.get("service").requires == ("deployment",)
        assert graph.get("exposure").requires == ("service",)

    def test_inputs_resolve_against_settings(self, settings):
        default_graph().check_inputs(settings.as_context())

    def test_manual_steps(self):
        manual = [step.name for step in DEFAULT_STEPS if step.kind is StepKind.MANUAL]
        assert manual == ["network", "exposure"]

    def test_tier_groups_independent_steps(self):
        tiers = [[step.name for step in tier] for tier in default_graph().tiers()]
        assert tiers[0] == ["network", "secret-policy"]
        assert set(tiers[2]) == {"nodegroup", "oidc"}
        assert set(tiers[3]) == {"rds-access", "csi-driver", "namespace"}

    def test_database_access_waits_for_nodegroup(self):
        assert {"cluster", "nodegroup"} <= default_graph().ancestors("rds-access")

    def test_verification_expects_output_where_reads_exit_zero(self):
        graph = default_graph()
        assert graph.get("rds-access").verify_expects == "{cluster_security_group}"
        assert graph.get("oidc").verify_expects == "already associated"

    def test_expected_output_placeholder_needs_a_producer(self):
        graph = ProvisioningGraph(
            [ProvisioningStep(name="a", description="a", verify=(("true",),), verify_expects="{nothing}")]
        )
        with pytest.raises(SequenceError, match="nothing"):
            graph.check_inputs([])
