"""Provisioning sequence runner.

Walks the provisioning graph in dependency order, running each step's
commands through subprocess and reading the result back with the step's
verification commands before moving on.
"""

import subprocess
from collections.abc import Mapping

import click
import questionary
from icecream import ic
from rich.markup import escape

from eks_deploy_auto import console
from eks_deploy_auto.exceptions import StepFailedError, ToolNotFoundError
from eks_deploy_auto.manifests import build_bundle, ensure_valid, write_bundle
from eks_deploy_auto.models import DeploymentSettings, ProvisioningStep, StepKind
from eks_deploy_auto.prompts import QMARK, PROMPT_STYLE
from eks_deploy_auto.sequence.graph import ProvisioningGraph
from eks_deploy_auto.sequence.templates import render_command

# Outcomes recorded per step
DONE = "done"
ALREADY_DONE = "already done"
SKIPPED = "skipped"
CONFIRMED = "confirmed"
PLANNED = "planned"


class _Values(dict):
    """Template values that leave unknown placeholders visible."""

    def __missing__(self, key: str) -> str:
        return f"<{key}>"


def describe(step: ProvisioningStep, values: Mapping[str, str]) -> str:
    """Return the step description with placeholders filled in."""
    return step.description.format_map(_Values(values))


def required_tools(steps: list[ProvisioningStep]) -> list[str]:
    """Return the executables the given steps invoke, in first-use order."""
    tools: list[str] = []
    for step in steps:
        templates = [*step.commands, *step.verify, *(argv for _, argv in step.captures)]
        for argv in templates:
            if argv and argv[0] not in tools:
                tools.append(argv[0])
    return tools


class SequenceRunner:
    """Executes a provisioning graph for one set of deployment settings.

    Attributes:
        graph: The provisioning graph to run.
        settings: Deployment settings the commands are rendered from.
        dry_run: Print commands instead of executing them.
        assume_yes: Treat manual steps as already completed.
        start_at: Name of the first step to run; earlier steps only
            contribute their captured values.
        values: Template values, seeded from the settings and extended
            with captured outputs.
        outcomes: Outcome of every step handled so far.

    """

    def __init__(
        self,
        graph: ProvisioningGraph,
        settings: DeploymentSettings,
        *,
        dry_run: bool = False,
        assume_yes: bool = False,
        start_at: str | None = None,
    ) -> None:
        self.graph = graph
        self.settings = settings
        self.dry_run = dry_run
        self.assume_yes = assume_yes
        self.start_at = start_at
        self.values: dict[str, str] = settings.as_context()
        self.outcomes: dict[str, str] = {}

    def __repr__(self) -> str:
        return f"SequenceRunner(steps={len(self.graph)}, dry_run={self.dry_run}, start_at={self.start_at!r})"

    def prepare(self) -> None:
        """Validate the graph and the bundle, then write the manifests.

        Raises:
            SequenceError: If the graph is malformed.
            ManifestValidationError: If the bundle is inconsistent.

        """
        self.graph.check_inputs(self.values)
        bundle = build_bundle(self.settings)
        ensure_valid(bundle)
        if self.dry_run:
            console.info(f"Dry run: manifests would be written to {console.highlight(self.settings.output_dir)}")
            return
        console.action(f"Rendering manifests into {console.highlight(self.settings.output_dir)}")
        write_bundle(bundle, self.settings.output_dir)

    def run(self) -> dict[str, str]:
        """Run the sequence.

        Returns:
            Step name to outcome for every step in the graph.

        Raises:
            StepFailedError: If a command or verification fails.
            ToolNotFoundError: If a command's executable is missing.
            click.Abort: If the operator declines a manual step.

        """
        self.prepare()
        skipped, remaining = self.graph.split_at(self.start_at)

        for step in skipped:
            console.step(f"Skipping {console.highlight(step.name)} (runs before {self.start_at})")
            self.outcomes[step.name] = SKIPPED
            if not self._is_disabled(step):
                self._capture(step)

        total = len(remaining)
        for index, step in enumerate(remaining, start=1):
            console.newline()
            console.action(f"[{index}/{total}] {console.highlight(step.name)}: {escape(describe(step, self.values))}")
            self.outcomes[step.name] = self._run_step(step)

        ic(self.outcomes)
        console.newline()
        console.summary_panel(
            "Provisioning dry run" if self.dry_run else "Provisioning complete",
            dict(self.outcomes),
        )
        return self.outcomes

    def _is_disabled(self, step: ProvisioningStep) -> bool:
        return step.skip_unless is not None and not self.values.get(step.skip_unless)

    def _run_step(self, step: ProvisioningStep) -> str:
        if self._is_disabled(step):
            console.warning(f"Skipping {step.name}: '{step.skip_unless}' is not configured")
            return SKIPPED

        if step.kind is StepKind.MANUAL:
            return self._confirm(step)

        outcome = DONE
        for template in step.commands:
            if not self._execute(step, render_command(template, self.values)):
                outcome = ALREADY_DONE
        self._capture(step)
        for template in step.verify:
            self._verify(step, render_command(template, self.values))

        if self.dry_run:
            return PLANNED
        console.success(f"{step.name} {outcome}")
        return outcome

    def _confirm(self, step: ProvisioningStep) -> str:
        description = describe(step, self.values)
        if self.dry_run:
            console.step("Manual step, to be done by the operator")
            return PLANNED
        if self.assume_yes:
            console.info(f"Assuming manual step {console.highlight(step.name)} is complete")
            return CONFIRMED

        confirmed = questionary.confirm(
            f"{description}. Is this done?",
            default=False,
            style=PROMPT_STYLE,
            qmark=QMARK,
        ).unsafe_ask()
        if not confirmed:
            console.warning(f"Stopping before {step.name}; rerun with --start-at {step.name} once it is done")
            raise click.Abort()
        return CONFIRMED

    def _capture(self, step: ProvisioningStep) -> None:
        for name, template in step.captures:
            cmd = render_command(template, self.values)
            if self.dry_run:
                console.command(cmd)
                self.values[name] = f"<{name}>"
                continue
            value = self._run(step, cmd).stdout.strip()
            ic(name, value)
            if not value:
                console.warning(f"{step.name} did not report a value for {name}")
            self.values[name] = value

    def _execute(self, step: ProvisioningStep, cmd: list[str]) -> bool:
        """Run one command of a step.

        Returns:
            False if the command reported that the resource already exists,
            True otherwise.

        """
        console.command(cmd)
        if self.dry_run:
            return True
        try:
            self._run(step, cmd)
        except StepFailedError as err:
            if any(marker in err.details for marker in step.already_done):
                console.info(f"{step.name}: resource already exists")
                return False
            raise
        return True

    def _verify(self, step: ProvisioningStep, cmd: list[str]) -> None:
        console.command(cmd)
        if self.dry_run:
            return
        result = self._run(step, cmd)
        output = f"{result.stdout or ''}{result.stderr or ''}".strip()
        if output:
            console.console.print(f"[muted]{escape(output)}[/muted]")
        if step.verify_expects is None:
            return
        expected = step.verify_expects.format_map(self.values)
        if not expected or expected not in output:
            raise StepFailedError(
                step.name, cmd, result.returncode, f"verification output does not mention {expected!r}"
            )

    @staticmethod
    def _run(step: ProvisioningStep, cmd: list[str]) -> subprocess.CompletedProcess:
        ic(cmd)
        try:
            with console.spinner(f"Running {cmd[0]} {cmd[1] if len(cmd) > 1 else ''}..."):
                return subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as err:
            raise ToolNotFoundError(f"{cmd[0]} not found; please install it and ensure it's on PATH") from err
        except subprocess.CalledProcessError as err:
            stderr_msg = (err.stderr or "").strip()
            raise StepFailedError(step.name, cmd, err.returncode, stderr_msg) from err
