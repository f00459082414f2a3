"""Data models for eks-deploy-auto.

This module provides type-safe data structures for the application:
the deployment settings that act as the single source of truth for
every manifest and command, and the small records passed between
the manifest, sequence and cluster layers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

DEFAULT_MOUNT_PATH = "/mnt/secrets-store"
DEFAULT_OUTPUT_DIR = "manifests"


class StepKind(str, Enum):
    """How a provisioning step is carried out.

    Inherits from str to allow direct use in string contexts
    (e.g., plan tables, YAML output).
    """

    COMMAND = "command"
    MANUAL = "manual"


class ValidationIssue(NamedTuple):
    """A single broken invariant found in a manifest bundle.

    Attributes:
        resource: Kind/name of the resource the issue was found on.
        message: Human readable description of the problem.

    """

    resource: str
    message: str


class ResourceStatus(NamedTuple):
    """Read-back state of one live cluster resource.

    Attributes:
        kind: The resource kind.
        name: The resource name.
        ready: Whether the resource reached its expected state.
        detail: Extra information (ready replicas, hostname, error).

    """

    kind: str
    name: str
    ready: bool
    detail: str


@dataclass(frozen=True, slots=True)
class ClusterSettings:
    """EKS cluster parameters.

    Attributes:
        name: The EKS cluster name.
        region: AWS region the cluster lives in.
        account_id: 12 digit AWS account id.
        nodegroup: Name of the managed node group.
        private_subnets: Subnet ids of the pre-built VPC the cluster runs in.
        node_type: EC2 instance type of the node group.
        nodes: Desired node count.

    """

    name: str
    region: str
    account_id: str
    nodegroup: str
    private_subnets: tuple[str, ...] = ()
    node_type: str = "t3.medium"
    nodes: int = 2


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Workload parameters shared by the Deployment and Service.

    Attributes:
        name: Application name, used for the Deployment, Service and app label.
        namespace: Namespace every namespaced resource goes into.
        image: Full ECR image reference.
        replicas: Desired pod count.
        container_port: Port the container listens on.
        service_port: Port exposed by the load balancer.
        service_account: Service account bound to the pods.

    """

    name: str
    namespace: str
    image: str
    replicas: int = 1
    container_port: int = 80
    service_port: int = 80
    service_account: str = ""

    @property
    def service_account_name(self) -> str:
        """The configured service account, or ``<name>-sa``."""
        return self.service_account or f"{self.name}-sa"


@dataclass(frozen=True, slots=True)
class SecretSettings:
    """Secrets Manager entry mounted into the pods.

    Attributes:
        arn: ARN of the Secrets Manager secret.
        alias: File name the secret is mounted as.
        provider_class: SecretProviderClass name.
        mount_path: Directory the CSI volume is mounted at.
        policy_name: Name of the IAM policy granting read access.

    """

    arn: str
    alias: str
    provider_class: str = ""
    mount_path: str = DEFAULT_MOUNT_PATH
    policy_name: str = ""

    @property
    def partition(self) -> str:
        """AWS partition taken from the secret ARN."""
        parts = self.arn.split(":")
        return parts[1] if len(parts) > 1 and parts[1] else "aws"


@dataclass(frozen=True, slots=True)
class DatabaseSettings:
    """RDS network access parameters.

    Attributes:
        security_group: Security group of the RDS instance. Empty disables
            the RDS access step.
        port: Database port opened to the cluster.

    """

    security_group: str = ""
    port: int = 3306


@dataclass(frozen=True, slots=True)
class DeploymentSettings:
    """All settings needed to render manifests and run the sequence."""

    cluster: ClusterSettings
    app: AppSettings
    secret: SecretSettings
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    output_dir: str = DEFAULT_OUTPUT_DIR

    @property
    def provider_class_name(self) -> str:
        return self.secret.provider_class or f"{self.app.name}-secrets"

    @property
    def policy_name(self) -> str:
        return self.secret.policy_name or f"{self.app.name}-secret-read"

    @property
    def policy_arn(self) -> str:
        return f"arn:{self.secret.partition}:iam::{self.cluster.account_id}:policy/{self.policy_name}"

    def as_context(self) -> dict[str, str]:
        """Flatten the settings into the template context used by step commands.

        Returns:
            Mapping of placeholder name to its string value.

        """
        return {
            "cluster_name": self.cluster.name,
            "region": self.cluster.region,
            "account_id": self.cluster.account_id,
            "nodegroup": self.cluster.nodegroup,
            "private_subnets": ",".join(self.cluster.private_subnets),
            "node_type": self.cluster.node_type,
            "nodes": str(self.cluster.nodes),
            "app_name": self.app.name,
            "namespace": self.app.namespace,
            "image": self.app.image,
            "replicas": str(self.app.replicas),
            "container_port": str(self.app.container_port),
            "service_port": str(self.app.service_port),
            "service_account": self.app.service_account_name,
            "secret_arn": self.secret.arn,
            "secret_alias": self.secret.alias,
            "provider_class": self.provider_class_name,
            "mount_path": self.secret.mount_path,
            "policy_name": self.policy_name,
            "policy_arn": self.policy_arn,
            "db_security_group": self.database.security_group,
            "db_port": str(self.database.port),
            "manifest_dir": self.output_dir,
        }


@dataclass(frozen=True, slots=True)
class ProvisioningStep:
    """One node of the provisioning graph.

    Command templates use ``str.format`` placeholders resolved against the
    settings context plus values captured by earlier steps.

    Attributes:
        name: Unique step name.
        description: What the step does, shown in plans and prompts.
        kind: Whether the step runs commands or waits for the operator.
        requires: Names of steps that must complete first.
        commands: Command templates that perform the step.
        verify: Read-only command templates run after the step.
        captures: Value name to read-only command template whose output
            becomes available to later steps.
        skip_unless: Context key that must be non-empty for the step to run.
        already_done: Error output fragments meaning the resource already
            exists, so a failed create counts as done.
        verify_expects: Text template the verification output must contain,
            for read commands that exit 0 when nothing matches.

    """

    name: str
    description: str
    kind: StepKind = StepKind.COMMAND
    requires: tuple[str, ...] = ()
    commands: tuple[tuple[str, ...], ...] = ()
    verify: tuple[tuple[str, ...], ...] = ()
    captures: tuple[tuple[str, tuple[str, ...]], ...] = ()
    skip_unless: str | None = None
    already_done: tuple[str, ...] = ()
    verify_expects: str | None = None

    @property
    def captured_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.captures)
