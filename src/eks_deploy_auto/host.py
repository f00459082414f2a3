"""Host system utilities for eks-deploy-auto.

This module checks that the command-line tools the provisioning steps
drive are installed. Installing them is left to the operator.
"""

import re
import shutil
import subprocess

from icecream import ic

from eks_deploy_auto import console
from eks_deploy_auto.exceptions import ToolNotFoundError

# Semantic version pattern used to pull a version out of tool output
_VERSION_PATTERN = re.compile(r"v?(\d+\.\d+\.\d+)")

_VERSION_COMMANDS: dict[str, list[str]] = {
    "aws": ["--version"],
    "eksctl": ["version"],
    "kubectl": ["version", "--client"],
    "helm": ["version", "--short"],
}

_INSTALL_HINTS: dict[str, str] = {
    "aws": "https://docs.aws.amazon.com/cli/latest/userguide/getting-started-install.html",
    "eksctl": "https://eksctl.io/installation/",
    "kubectl": "https://kubernetes.io/docs/tasks/tools/",
    "helm": "https://helm.sh/docs/intro/install/",
}


def normalize_version(version: str) -> str:
    """Extract a bare semantic version from a version string.

    Args:
        version: Version text such as ``v1.29.2`` or ``aws-cli/2.15.0 Python/3.11``.

    Returns:
        The version without a leading 'v', e.g. ``1.29.2``.

    Raises:
        ValueError: If no semantic version is present.

    """
    if not version:
        raise ValueError("Version string cannot be None or empty")

    match = _VERSION_PATTERN.search(version)
    if match is None:
        raise ValueError(f"Invalid version format: '{version}' does not contain a semantic version")
    return match.group(1)


class Host:
    """Locates the CLIs used by the provisioning steps.

    Attributes:
        paths: Resolved executable path for every tool found so far.

    """

    def __init__(self) -> None:
        self.paths: dict[str, str] = {}

    def __repr__(self) -> str:
        return f"Host(paths={self.paths!r})"

    def find_tool(self, name: str) -> str | None:
        """Return the path of a tool on PATH, or None."""
        path = shutil.which(name)
        if path is not None:
            self.paths[name] = path
        return path

    def ensure_tools(self, names: list[str]) -> dict[str, str]:
        """Ensure every named tool is installed.

        Args:
            names: Executables that must be on PATH.

        Returns:
            Tool name to resolved path.

        Raises:
            ToolNotFoundError: Listing every missing tool with install hints.

        """
        missing = [name for name in names if self.find_tool(name) is None]
        ic(self.paths, missing)
        if missing:
            hints = "; ".join(f"{name} ({_INSTALL_HINTS.get(name, 'see vendor docs')})" for name in missing)
            raise ToolNotFoundError(f"Required tools not found on PATH: {hints}")
        return {name: self.paths[name] for name in names}

    def tool_version(self, name: str) -> str:
        """Return the installed version of a tool.

        Returns:
            The normalized version, or an empty string if it cannot be read.

        """
        path = self.paths.get(name) or self.find_tool(name)
        if path is None:
            raise ToolNotFoundError(f"{name} not found on PATH")

        try:
            result = subprocess.run(
                [path, *_VERSION_COMMANDS.get(name, ["--version"])],
                capture_output=True,
                text=True,
                check=True,
                timeout=30,
            )
            return normalize_version(result.stdout or result.stderr)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, ValueError) as exc:
            console.warning(f"Could not determine {name} version: {exc}")
            return ""
