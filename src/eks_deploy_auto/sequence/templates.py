"""Command template helpers.

Step commands are argv tuples whose items may carry ``str.format``
placeholders, e.g. ``("eksctl", "create", "cluster", "--name", "{cluster_name}")``.
"""

from collections.abc import Iterable, Mapping
from string import Formatter

from eks_deploy_auto.exceptions import SequenceError

_FORMATTER = Formatter()


def command_fields(argv: Iterable[str]) -> set[str]:
    """Return the placeholder names used by a command template."""
    fields: set[str] = set()
    for arg in argv:
        for _, field_name, _, _ in _FORMATTER.parse(arg):
            if field_name:
                fields.add(field_name)
    return fields


def render_command(argv: Iterable[str], values: Mapping[str, str]) -> list[str]:
    """Fill in a command template.

    Args:
        argv: The command template.
        values: Placeholder values.

    Returns:
        The concrete command line.

    Raises:
        SequenceError: If a placeholder has no value.

    """
    try:
        return [arg.format_map(values) for arg in argv]
    except KeyError as err:
        raise SequenceError(f"No value for placeholder {err} in command: {' '.join(argv)}") from err
