#!/usr/bin/env python
"""Command-line interface for eks-deploy-auto.

This module provides the main CLI entry point, handling command-line
argument parsing and orchestrating rendering, validation, deployment and
verification.
"""

import sys
from pathlib import Path

import click
import questionary
from icecream import ic

from eks_deploy_auto import __version__, console
from eks_deploy_auto.cluster import Cluster
from eks_deploy_auto.config import load_settings, resolve_config_path, save_settings
from eks_deploy_auto.endpoint import probe_endpoint
from eks_deploy_auto.exceptions import ClusterConnectionError, DeployError, ManifestValidationError
from eks_deploy_auto.host import Host
from eks_deploy_auto.manifests import build_bundle, diff_bundle, load_bundle, validate_bundle, write_bundle
from eks_deploy_auto.models import DeploymentSettings
from eks_deploy_auto.prompts import PROMPT_STYLE, QMARK, collect_settings
from eks_deploy_auto.sequence import ProvisioningGraph, SequenceRunner, default_graph, required_tools


def init_settings(path: Path) -> None:
    """Create a settings file interactively.

    Args:
        path: Where to write the settings file.

    """
    if path.exists() and not questionary.confirm(
        f"{path} already exists. Overwrite it?", default=False, style=PROMPT_STYLE, qmark=QMARK
    ).unsafe_ask():
        console.warning("Keeping the existing settings file")
        return

    settings = collect_settings()
    save_settings(settings, path)
    console.success(f"Settings written to {console.highlight(str(path))}")


def render_manifests(settings: DeploymentSettings) -> None:
    """Validate the generated bundle and write it to the output directory."""
    bundle = build_bundle(settings)
    _report_issues(validate_bundle(bundle))
    console.action(f"Rendering manifests into {console.highlight(settings.output_dir)}")
    results = write_bundle(bundle, settings.output_dir)
    changed = sum(1 for _, was_changed in results if was_changed)
    console.success(f"{changed} of {len(results)} files changed")


def validate_all(settings: DeploymentSettings, graph: ProvisioningGraph) -> None:
    """Validate the provisioning graph and the manifest bundle.

    Files already present in the output directory are validated as they are
    on disk, so hand edits are checked too.

    Raises:
        ManifestValidationError: If the bundle breaks an invariant.
        SequenceError: If the graph is malformed.

    """
    graph.verify_order([step.name for step in graph.order()])
    graph.check_inputs(settings.as_context())
    console.success(f"Provisioning graph is acyclic ({len(graph)} steps)")

    output_dir = Path(settings.output_dir)
    if (output_dir / "deployment.yaml").exists():
        console.action(f"Validating rendered manifests in {console.highlight(str(output_dir))}")
        bundle = load_bundle(output_dir)
    else:
        console.action("Validating generated manifests")
        bundle = build_bundle(settings)
    _report_issues(validate_bundle(bundle))
    console.success("Manifest bundle is consistent")


def _report_issues(issues: list) -> None:
    if not issues:
        return
    for issue in issues:
        console.error(f"{issue.resource}: {issue.message}")
    raise ManifestValidationError(issues)


def show_diff(settings: DeploymentSettings) -> None:
    """Report which rendered files differ from the current settings."""
    changed = diff_bundle(build_bundle(settings), settings.output_dir)
    if not changed:
        console.success(f"{settings.output_dir} is up to date")
        return
    for filename in changed:
        console.warning(f"{filename} differs from the settings")
    sys.exit(1)


def show_plan(settings: DeploymentSettings, graph: ProvisioningGraph) -> None:
    """Print the provisioning steps grouped by tier."""
    values = settings.as_context()
    skipped = {step.name for step in graph if step.skip_unless and not values.get(step.skip_unless)}
    console.plan_table(graph.tiers(), skipped=skipped)


def deploy(
    settings: DeploymentSettings,
    graph: ProvisioningGraph,
    *,
    dry_run: bool,
    assume_yes: bool,
    start_at: str | None,
) -> None:
    """Run the provisioning sequence."""
    if not dry_run:
        host = Host()
        tools = host.ensure_tools(required_tools(graph.order()))
        console.summary_panel(
            "Tools",
            {name: host.tool_version(name) or path for name, path in tools.items()},
        )

    runner = SequenceRunner(graph, settings, dry_run=dry_run, assume_yes=assume_yes, start_at=start_at)
    ic(runner)
    runner.run()


def verify_deployment(settings: DeploymentSettings, *, select: bool) -> None:
    """Read the deployed resources back from the cluster."""
    cluster = Cluster(select_context=select)
    statuses = cluster.verify_resources(settings)
    console.status_table(statuses)
    if not all(status.ready for status in statuses):
        raise click.ClickException("Some resources are not ready")


def probe_deployment(settings: DeploymentSettings, *, select: bool) -> None:
    """Send a request to the load balancer of the deployed Service."""
    cluster = Cluster(select_context=select)
    hostname = cluster.load_balancer_hostname(settings.app.name, settings.app.namespace)
    probe_endpoint(hostname, settings.app.service_port)


@click.command(help="Render, validate and deploy an EKS workload with a Secrets Manager volume")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option("--config", "-c", "config_file", required=False, help="settings file (default: eks-deploy.yaml)")
@click.option("--init", required=False, is_flag=True, help="create the settings file interactively")
@click.option("--render", required=False, is_flag=True, help="write the manifests to the output directory")
@click.option("--validate", required=False, is_flag=True, help="check manifests and the provisioning graph")
@click.option("--diff", required=False, is_flag=True, help="compare rendered manifests with the settings")
@click.option("--plan", required=False, is_flag=True, help="print the provisioning steps")
@click.option("--deploy", "run_deploy", required=False, is_flag=True, help="run the provisioning sequence")
@click.option("--dry-run", required=False, is_flag=True, help="print commands without running them")
@click.option("--start-at", required=False, help="step to resume the sequence from")
@click.option("--yes", "-y", required=False, is_flag=True, help="assume manual steps are done")
@click.option("--verify", required=False, is_flag=True, help="read deployed resources back from the cluster")
@click.option("--probe", required=False, is_flag=True, help="send a request to the load balancer")
@click.option("--select", required=False, is_flag=True, default=False, help="prompt for context select")
def cli(
    version: bool,
    debug: bool,
    config_file: str | None,
    init: bool,
    render: bool,
    validate: bool,
    diff: bool,
    plan: bool,
    run_deploy: bool,
    dry_run: bool,
    start_at: str | None,
    yes: bool,
    verify: bool,
    probe: bool,
    select: bool,
) -> None:
    """Process CLI arguments and execute the requested actions.

    Actions run in the order render, validate, diff, plan, deploy, verify,
    probe. Without any action flag the plan is printed.
    """
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    config_path = resolve_config_path(config_file)
    ic(config_path)

    try:
        if init:
            init_settings(config_path)
            return

        settings = load_settings(config_path)
        graph = default_graph()

        if not any((render, validate, diff, plan, run_deploy, verify, probe)):
            plan = True

        if render:
            render_manifests(settings)
        if validate:
            validate_all(settings, graph)
        if diff:
            show_diff(settings)
        if plan:
            show_plan(settings, graph)
        if run_deploy:
            deploy(settings, graph, dry_run=dry_run, assume_yes=yes, start_at=start_at)
        if verify:
            verify_deployment(settings, select=select)
        if probe:
            probe_deployment(settings, select=select)
    except ClusterConnectionError as e:
        console.error(f"Cluster connection failed: {e}")
        sys.exit(1)
    except DeployError as e:
        raise click.ClickException(str(e)) from None


if __name__ == "__main__":
    cli()
