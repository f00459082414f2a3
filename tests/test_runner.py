"""Tests for the provisioning sequence runner."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import click
import pytest

from eks_deploy_auto.config import settings_from_dict
from eks_deploy_auto.exceptions import ManifestValidationError, StepFailedError, ToolNotFoundError
from eks_deploy_auto.manifests import build_bundle
from eks_deploy_auto.models import ProvisioningStep, StepKind
from eks_deploy_auto.sequence import ProvisioningGraph, SequenceRunner, default_graph, required_tools
from eks_deploy_auto.sequence.runner import ALREADY_DONE, CONFIRMED, DONE, PLANNED, SKIPPED, describe


def _completed(stdout: str = "") -> MagicMock:
    return MagicMock(returncode=0, stdout=stdout, stderr="")


def _commands(mock_run) -> list[list[str]]:
    return [call.args[0] for call in mock_run.call_args_list]


class TestDryRun:
    """Tests for printing the sequence without executing it."""

    def test_dry_run_executes_nothing(self, settings, mock_subprocess):
        runner = SequenceRunner(default_graph(), settings, dry_run=True)

        outcomes = runner.run()

        mock_subprocess.assert_not_called()
        assert set(outcomes.values()) <= {PLANNED, SKIPPED}
        assert outcomes["cluster"] == PLANNED

    def test_dry_run_does_not_write_manifests(self, settings, mock_subprocess):
        SequenceRunner(default_graph(), settings, dry_run=True).run()
        assert not Path(settings.output_dir).exists()

    def test_dry_run_uses_capture_placeholders(self, settings, mock_subprocess):
        runner = SequenceRunner(default_graph(), settings, dry_run=True)
        runner.run()
        assert runner.values["cluster_security_group"] == "<cluster_security_group>"

    def test_invalid_bundle_stops_before_running(self, settings, mock_subprocess):
        with patch("eks_deploy_auto.sequence.runner.build_bundle") as mock_build:
            bundle = build_bundle(settings)
            bundle.service["spec"]["selector"] = {"app": "other"}
            mock_build.return_value = bundle

            with pytest.raises(ManifestValidationError):
                SequenceRunner(default_graph(), settings, dry_run=True).run()


class TestExecution:
    """Tests for running commands, captures and verification."""

    def test_runs_commands_then_verify(self, settings, mock_subprocess):
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="namespace",
                    description="Create {namespace}",
                    commands=(("kubectl", "apply", "-f", "{manifest_dir}/namespace.yaml"),),
                    verify=(("kubectl", "get", "namespace", "{namespace}"),),
                )
            ]
        )

        outcomes = SequenceRunner(graph, settings).run()

        assert outcomes == {"namespace": DONE}
        assert _commands(mock_subprocess) == [
            ["kubectl", "apply", "-f", f"{settings.output_dir}/namespace.yaml"],
            ["kubectl", "get", "namespace", "webapp"],
        ]

    def test_writes_manifests_before_running(self, settings, mock_subprocess, tmp_path):
        graph = ProvisioningGraph([ProvisioningStep(name="noop", description="noop")])
        SequenceRunner(graph, settings).run()
        assert (tmp_path / "manifests" / "deployment.yaml").exists()

    def test_captured_value_flows_to_later_step(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [_completed("sg-0cluster\n"), _completed()]
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="cluster",
                    description="cluster",
                    captures=(("cluster_security_group", ("aws", "eks", "describe-cluster")),),
                ),
                ProvisioningStep(
                    name="rds-access",
                    description="rds",
                    requires=("cluster",),
                    commands=(("aws", "ec2", "authorize", "--source-group", "{cluster_security_group}"),),
                ),
            ]
        )

        SequenceRunner(graph, settings).run()

        assert _commands(mock_subprocess)[1][-1] == "sg-0cluster"

    def test_failed_command_raises(self, settings, mock_subprocess):
        mock_subprocess.side_effect = subprocess.CalledProcessError(1, ["kubectl"], stderr="forbidden")
        graph = ProvisioningGraph(
            [ProvisioningStep(name="namespace", description="ns", commands=(("kubectl", "apply"),))]
        )

        with pytest.raises(StepFailedError) as exc_info:
            SequenceRunner(graph, settings).run()

        assert exc_info.value.step == "namespace"
        assert exc_info.value.returncode == 1
        assert "forbidden" in str(exc_info.value)

    def test_failed_verification_raises(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [
            _completed(),
            subprocess.CalledProcessError(1, ["kubectl"], stderr="NotFound"),
        ]
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="namespace",
                    description="ns",
                    commands=(("kubectl", "apply"),),
                    verify=(("kubectl", "get", "namespace", "{namespace}"),),
                )
            ]
        )

        with pytest.raises(StepFailedError) as exc_info:
            SequenceRunner(graph, settings).run()

        assert exc_info.value.command == ["kubectl", "get", "namespace", "webapp"]

    @staticmethod
    def _rds_graph() -> ProvisioningGraph:
        return ProvisioningGraph(
            [
                ProvisioningStep(
                    name="rds-access",
                    description="rds",
                    captures=(("cluster_security_group", ("aws", "eks", "describe-cluster")),),
                    verify=(("aws", "ec2", "describe-security-groups"),),
                    verify_expects="{cluster_security_group}",
                )
            ]
        )

    def test_verification_without_expected_output_raises(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [_completed("sg-0cluster\n"), _completed("")]

        with pytest.raises(StepFailedError) as exc_info:
            SequenceRunner(self._rds_graph(), settings).run()

        assert exc_info.value.command == ["aws", "ec2", "describe-security-groups"]
        assert "sg-0cluster" in exc_info.value.details

    def test_verification_with_expected_output_passes(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [_completed("sg-0cluster\n"), _completed("sg-0cluster\n")]

        assert SequenceRunner(self._rds_graph(), settings).run() == {"rds-access": DONE}

    def test_expected_output_may_come_from_stderr(self, settings, mock_subprocess):
        mock_subprocess.return_value = MagicMock(
            returncode=0, stdout="", stderr="IAM Open ID Connect provider is already associated with cluster"
        )
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="oidc",
                    description="oidc",
                    verify=(("eksctl", "utils", "associate-iam-oidc-provider"),),
                    verify_expects="already associated",
                )
            ]
        )

        assert SequenceRunner(graph, settings).run() == {"oidc": DONE}

    def test_already_existing_resource_counts_as_done(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [
            subprocess.CalledProcessError(254, ["aws"], stderr="An error occurred (EntityAlreadyExists)"),
            _completed(),
        ]
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="secret-policy",
                    description="policy",
                    commands=(("aws", "iam", "create-policy"),),
                    verify=(("aws", "iam", "get-policy"),),
                    already_done=("EntityAlreadyExists",),
                )
            ]
        )

        assert SequenceRunner(graph, settings).run() == {"secret-policy": ALREADY_DONE}

    def test_missing_tool(self, settings, mock_subprocess):
        mock_subprocess.side_effect = FileNotFoundError("eksctl")
        graph = ProvisioningGraph(
            [ProvisioningStep(name="cluster", description="c", commands=(("eksctl", "create", "cluster"),))]
        )

        with pytest.raises(ToolNotFoundError):
            SequenceRunner(graph, settings).run()

    def test_disabled_step_is_skipped(self, settings_data, tmp_path, mock_subprocess):
        del settings_data["database"]
        settings_data["output_dir"] = str(tmp_path)
        settings = settings_from_dict(settings_data)
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="rds-access",
                    description="rds",
                    commands=(("aws", "ec2", "authorize", "{db_security_group}"),),
                    skip_unless="db_security_group",
                )
            ]
        )

        assert SequenceRunner(graph, settings).run() == {"rds-access": SKIPPED}
        mock_subprocess.assert_not_called()

    def test_start_at_skips_but_still_captures(self, settings, mock_subprocess):
        mock_subprocess.side_effect = [_completed("sg-0cluster"), _completed()]
        graph = ProvisioningGraph(
            [
                ProvisioningStep(
                    name="cluster",
                    description="cluster",
                    commands=(("eksctl", "create", "cluster"),),
                    captures=(("cluster_security_group", ("aws", "eks", "describe-cluster")),),
                ),
                ProvisioningStep(
                    name="rds-access",
                    description="rds",
                    requires=("cluster",),
                    commands=(("aws", "ec2", "authorize", "{cluster_security_group}"),),
                ),
            ]
        )

        outcomes = SequenceRunner(graph, settings, start_at="rds-access").run()

        assert outcomes == {"cluster": SKIPPED, "rds-access": DONE}
        assert _commands(mock_subprocess) == [
            ["aws", "eks", "describe-cluster"],
            ["aws", "ec2", "authorize", "sg-0cluster"],
        ]


class TestManualSteps:
    """Tests for operator-confirmed steps."""

    @staticmethod
    def _graph() -> ProvisioningGraph:
        return ProvisioningGraph(
            [ProvisioningStep(name="network", description="Create the VPC {region}", kind=StepKind.MANUAL)]
        )

    def test_confirmed(self, settings, mock_subprocess):
        with patch("questionary.confirm") as mock_confirm:
            mock_confirm.return_value.unsafe_ask.return_value = True

            outcomes = SequenceRunner(self._graph(), settings).run()

        assert outcomes == {"network": CONFIRMED}
        assert "eu-west-1" in mock_confirm.call_args[0][0]

    def test_declined_aborts(self, settings, mock_subprocess):
        with patch("questionary.confirm") as mock_confirm:
            mock_confirm.return_value.unsafe_ask.return_value = False

            with pytest.raises(click.Abort):
                SequenceRunner(self._graph(), settings).run()

    def test_assume_yes_skips_prompt(self, settings, mock_subprocess):
        with patch("questionary.confirm") as mock_confirm:
            outcomes = SequenceRunner(self._graph(), settings, assume_yes=True).run()

        mock_confirm.assert_not_called()
        assert outcomes == {"network": CONFIRMED}


class TestHelpers:
    """Tests for runner helpers."""

    def test_required_tools(self):
        assert required_tools(default_graph().order()) == ["eksctl", "aws", "helm", "kubectl"]

    def test_describe_leaves_unknown_placeholders(self, settings):
        step = default_graph().get("exposure")
        assert "<load_balancer_hostname>" in describe(step, settings.as_context())
