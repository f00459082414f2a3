"""Custom exceptions for eks-deploy-auto.

This module defines the exception hierarchy used throughout the application
so the CLI can turn failures into meaningful messages.
"""


class DeployError(Exception):
    """Base exception for all eks-deploy-auto errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch every deployment failure with a single
    except clause if desired.
    """

    pass


class ConfigurationError(DeployError):
    """Raised when the deployment settings file is missing or invalid.

    This can occur when:
    - The settings file does not exist or is not valid YAML
    - A required setting is absent
    - A value fails validation (names, ARNs, ports, image reference)
    """

    pass


class ManifestParsingError(DeployError):
    """Raised when a rendered manifest file cannot be read back."""

    pass


class ManifestValidationError(DeployError):
    """Raised when the manifest bundle violates a cross-resource invariant.

    Attributes:
        issues: The validation issues that were found.

    """

    def __init__(self, issues: list) -> None:
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(f"Manifest bundle is invalid: {summary}")


class SequenceError(DeployError):
    """Raised when the provisioning sequence is malformed.

    This can occur when:
    - Two steps share a name
    - A step depends on a step that does not exist
    - A step consumes a value nothing earlier produces
    """

    pass


class CycleError(SequenceError):
    """Raised when the provisioning steps form a dependency cycle.

    Attributes:
        steps: Names of the steps left on the cycle.

    """

    def __init__(self, steps: list[str]) -> None:
        self.steps = steps
        super().__init__(f"Dependency cycle between steps: {', '.join(steps)}")


class StepFailedError(DeployError):
    """Raised when a provisioning step or its verification command fails.

    Attributes:
        step: Name of the failing step.
        command: The command line that failed.
        returncode: Exit code of the command.
        details: Error output of the command.

    """

    def __init__(self, step: str, command: list[str], returncode: int, details: str = "") -> None:
        self.step = step
        self.command = command
        self.returncode = returncode
        self.details = details
        message = f"Step '{step}' failed (exit code {returncode}): {' '.join(command)}"
        if details:
            message = f"{message} - {details}"
        super().__init__(message)


class ToolNotFoundError(DeployError):
    """Raised when a required command-line tool is not on PATH.

    eks-deploy-auto drives aws, eksctl, kubectl and helm; none of them
    are installed by this tool.
    """

    pass


class ClusterConnectionError(DeployError):
    """Raised when connection to the Kubernetes cluster fails.

    This can occur when:
    - The kubeconfig is invalid or missing
    - The cluster is unreachable
    - Authentication fails
    """

    pass


class EndpointUnavailableError(DeployError):
    """Raised when the load balancer endpoint does not answer."""

    pass
