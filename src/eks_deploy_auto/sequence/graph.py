"""Provisioning dependency graph.

Steps form a directed acyclic graph; any order the graph produces keeps
every prerequisite strictly before the steps that need it. Steps in the
same tier have no ordering between them.
"""

from collections.abc import Iterable, Iterator, Sequence

from icecream import ic

from eks_deploy_auto.exceptions import CycleError, SequenceError
from eks_deploy_auto.models import ProvisioningStep
from eks_deploy_auto.sequence.templates import command_fields


class ProvisioningGraph:
    """Ordered collection of provisioning steps and their dependencies.

    Attributes:
        steps: Steps keyed by name, in insertion order.

    """

    def __init__(self, steps: Iterable[ProvisioningStep] = ()) -> None:
        self.steps: dict[str, ProvisioningStep] = {}
        for step in steps:
            self.add(step)

    def add(self, step: ProvisioningStep) -> None:
        """Add a step to the graph.

        Raises:
            SequenceError: If a step with the same name already exists.

        """
        if step.name in self.steps:
            raise SequenceError(f"Duplicate step name '{step.name}'")
        self.steps[step.name] = step

    def get(self, name: str) -> ProvisioningStep:
        try:
            return self.steps[name]
        except KeyError:
            raise SequenceError(f"Unknown step '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self.steps

    def __iter__(self) -> Iterator[ProvisioningStep]:
        return iter(self.steps.values())

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return f"ProvisioningGraph(steps={list(self.steps)!r})"

    def _check_references(self) -> None:
        for step in self.steps.values():
            for requirement in step.requires:
                if requirement not in self.steps:
                    raise SequenceError(f"Step '{step.name}' requires unknown step '{requirement}'")

    def order(self) -> list[ProvisioningStep]:
        """Return the steps in dependency order.

        Kahn's algorithm; among steps that are ready at the same time the one
        added first comes first, so the order is stable.

        Raises:
            SequenceError: If a step requires an unknown step.
            CycleError: If the dependencies contain a cycle.

        """
        self._check_references()
        remaining = {name: set(step.requires) for name, step in self.steps.items()}
        ordered: list[ProvisioningStep] = []

        while remaining:
            ready = [name for name, requires in remaining.items() if not requires]
            if not ready:
                raise CycleError(sorted(remaining))
            name = ready[0]
            ordered.append(self.steps[name])
            del remaining[name]
            for requires in remaining.values():
                requires.discard(name)

        ic([step.name for step in ordered])
        return ordered

    def tiers(self) -> list[list[ProvisioningStep]]:
        """Group steps by depth: each tier only depends on earlier tiers."""
        depth: dict[str, int] = {}
        for step in self.order():
            depth[step.name] = 1 + max((depth[r] for r in step.requires), default=-1)

        grouped: list[list[ProvisioningStep]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for step in self.order():
            grouped[depth[step.name]].append(step)
        return grouped

    def ancestors(self, name: str) -> set[str]:
        """Return every step that must run before ``name``, transitively."""
        seen: set[str] = set()
        pending = list(self.get(name).requires)
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self.get(current).requires)
        return seen

    def verify_order(self, names: Sequence[str]) -> None:
        """Check that an execution order honours every dependency.

        Args:
            names: Step names in the order they would run.

        Raises:
            SequenceError: If a name is unknown, repeated, missing, or
                appears before one of its prerequisites.

        """
        position: dict[str, int] = {}
        for index, name in enumerate(names):
            self.get(name)
            if name in position:
                raise SequenceError(f"Step '{name}' appears more than once")
            position[name] = index

        missing = set(self.steps) - set(position)
        if missing:
            raise SequenceError(f"Order is missing steps: {', '.join(sorted(missing))}")

        for name, index in position.items():
            for requirement in self.steps[name].requires:
                if position[requirement] >= index:
                    raise SequenceError(f"Step '{name}' runs before its prerequisite '{requirement}'")

    def check_inputs(self, context_keys: Iterable[str]) -> None:
        """Check that every placeholder a step uses has a producer.

        Commands, captures and the description may use settings values and
        values captured by prerequisite steps; verification commands and the
        expected verification output may also use the step's own captures.

        Args:
            context_keys: Names available from the deployment settings.

        Raises:
            SequenceError: If a step consumes a value nothing earlier produces.

        """
        base = set(context_keys)
        for step in self.order():
            available = set(base)
            for ancestor in self.ancestors(step.name):
                available.update(self.steps[ancestor].captured_names)

            used: set[str] = command_fields([step.description])
            for argv in step.commands:
                used |= command_fields(argv)
            for _, argv in step.captures:
                used |= command_fields(argv)
            missing = used - available

            for argv in (*step.verify, (step.verify_expects or "",)):
                missing |= command_fields(argv) - available - set(step.captured_names)

            if missing:
                raise SequenceError(
                    f"Step '{step.name}' uses values no earlier step provides: {', '.join(sorted(missing))}"
                )

    def split_at(self, start_at: str | None) -> tuple[list[ProvisioningStep], list[ProvisioningStep]]:
        """Split the order into steps before ``start_at`` and the rest.

        Args:
            start_at: Name of the first step to run, or None to run everything.

        Returns:
            (skipped, remaining) in dependency order.

        """
        ordered = self.order()
        if start_at is None:
            return [], ordered
        self.get(start_at)
        index = next(i for i, step in enumerate(ordered) if step.name == start_at)
        return ordered[:index], ordered[index:]
