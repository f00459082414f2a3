"""eks-deploy-auto: generate and roll out an EKS workload from one settings file.

This package renders the Namespace, SecretProviderClass, Deployment and
Service for a containerised application, validates the references between
them, and walks the AWS provisioning steps in dependency order.

Example usage:
    from eks_deploy_auto import build_bundle, default_graph, load_settings

    settings = load_settings("eks-deploy.yaml")
    bundle = build_bundle(settings)
    order = [step.name for step in default_graph().order()]
"""

__version__ = "0.3.0"

from eks_deploy_auto.cli import cli
from eks_deploy_auto.config import load_settings
from eks_deploy_auto.exceptions import (
    ClusterConnectionError,
    ConfigurationError,
    CycleError,
    DeployError,
    EndpointUnavailableError,
    ManifestParsingError,
    ManifestValidationError,
    SequenceError,
    StepFailedError,
    ToolNotFoundError,
)
from eks_deploy_auto.manifests import ManifestBundle, build_bundle
from eks_deploy_auto.sequence import ProvisioningGraph, SequenceRunner, default_graph

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Settings and builders
    "load_settings",
    "build_bundle",
    "default_graph",
    # Classes
    "ManifestBundle",
    "ProvisioningGraph",
    "SequenceRunner",
    # Exceptions
    "DeployError",
    "ConfigurationError",
    "ManifestParsingError",
    "ManifestValidationError",
    "SequenceError",
    "CycleError",
    "StepFailedError",
    "ToolNotFoundError",
    "ClusterConnectionError",
    "EndpointUnavailableError",
]
