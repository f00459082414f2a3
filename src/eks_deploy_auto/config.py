"""Deployment settings loading and validation.

Settings live in a single YAML file (``eks-deploy.yaml`` by default) that
every manifest and provisioning command is generated from. Validators
return ``True`` or an error message so they can double as questionary
``validate`` callbacks.
"""

import os
import re
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from eks_deploy_auto.exceptions import ConfigurationError
from eks_deploy_auto.models import (
    DEFAULT_MOUNT_PATH,
    DEFAULT_OUTPUT_DIR,
    AppSettings,
    ClusterSettings,
    DatabaseSettings,
    DeploymentSettings,
    SecretSettings,
)

DEFAULT_CONFIG_FILE = "eks-deploy.yaml"
CONFIG_ENV_VAR = "EKS_DEPLOY_CONFIG"
IMAGE_ENV_VAR = "EKS_DEPLOY_IMAGE"

# Kubernetes DNS subdomain name validation (RFC 1123)
_DNS_SUBDOMAIN_MAX_LENGTH = 253
_DNS_SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

# DNS labels (RFC 1123) for namespaces and label values; Service names follow RFC 1035
_DNS_LABEL_MAX_LENGTH = 63
_DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS_1035_LABEL_PATTERN = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")

_SUBNET_PATTERN = re.compile(r"^subnet-[0-9a-f]{8,17}$")
_ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")
_REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov)?-[a-z]+-\d$")
_SECRET_ARN_PATTERN = re.compile(
    r"^arn:(?P<partition>aws[a-z-]*):secretsmanager:(?P<region>[a-z0-9-]+):(?P<account>\d{12}):secret:(?P<name>[\w/+=.@-]+)$"
)
_IMAGE_PATTERN = re.compile(r"^[\w.-]+(:\d+)?/[a-z0-9._/-]+(:[\w][\w.-]{0,127}|@sha256:[a-f0-9]{64})?$")


def validate_k8s_name(name: str) -> bool | str:
    """Validate a Kubernetes resource name (DNS subdomain).

    Args:
        name: The name to validate.

    Returns:
        True if valid, or an error message string if invalid.

    """
    if not name:
        return "Name cannot be empty"
    if len(name) > _DNS_SUBDOMAIN_MAX_LENGTH:
        return f"Name must be {_DNS_SUBDOMAIN_MAX_LENGTH} characters or less"
    if not _DNS_SUBDOMAIN_PATTERN.match(name):
        return "Name must consist of lowercase alphanumeric characters, '-' or '.', and must start and end with an alphanumeric character"
    return True


def validate_k8s_label(name: str) -> bool | str:
    """Validate a namespace or label-like name (DNS label, no dots).

    Args:
        name: The name to validate.

    Returns:
        True if valid, or an error message string if invalid.

    """
    if not name:
        return "Name cannot be empty"
    if len(name) > _DNS_LABEL_MAX_LENGTH:
        return f"Name must be {_DNS_LABEL_MAX_LENGTH} characters or less"
    if not _DNS_LABEL_PATTERN.match(name):
        return (
            "Name must consist of lowercase alphanumeric characters or '-', "
            "and must start and end with an alphanumeric character"
        )
    return True


def validate_app_name(name: str) -> bool | str:
    """Validate the application name, which also names the Service and container."""
    result = validate_k8s_label(name)
    if result is not True:
        return result
    if not _DNS_1035_LABEL_PATTERN.match(name):
        return "Name must start with a lowercase letter"
    return True


def validate_secret_arn(arn: str) -> bool | str:
    """Validate a Secrets Manager secret ARN."""
    if not _SECRET_ARN_PATTERN.match(arn or ""):
        return "Must be a Secrets Manager ARN (arn:aws:secretsmanager:<region>:<account>:secret:<name>)"
    return True


def validate_image(image: str) -> bool | str:
    """Validate a container image reference including its registry."""
    if not _IMAGE_PATTERN.match(image or ""):
        return "Must be <registry>/<repository>[:tag|@sha256:digest]"
    return True


def validate_account_id(account_id: str) -> bool | str:
    if not _ACCOUNT_ID_PATTERN.match(account_id or ""):
        return "AWS account id must be exactly 12 digits"
    return True


def validate_region(region: str) -> bool | str:
    if not _REGION_PATTERN.match(region or ""):
        return "Must be an AWS region such as eu-west-1"
    return True


def secret_arn_parts(arn: str) -> dict[str, str] | None:
    """Split a Secrets Manager ARN into partition, region, account and name.

    Returns:
        The named parts, or None if the ARN is malformed.

    """
    match = _SECRET_ARN_PATTERN.match(arn or "")
    return match.groupdict() if match else None


def _section(data: dict[str, Any], key: str, *, required: bool = True) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        if required:
            raise ConfigurationError(f"Missing required section '{key}'")
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Section '{key}' must be a mapping")
    return value


def _require(section: dict[str, Any], section_name: str, key: str) -> Any:
    if section.get(key) in (None, ""):
        raise ConfigurationError(f"Missing required setting '{section_name}.{key}'")
    return section[key]


def _as_int(section: dict[str, Any], section_name: str, key: str, default: int) -> int:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"Setting '{section_name}.{key}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"Setting '{section_name}.{key}' must be an integer, got {value!r}") from err


def _subnets(cluster: dict[str, Any]) -> tuple[str, ...]:
    value = _require(cluster, "cluster", "private_subnets")
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ConfigurationError("Setting 'cluster.private_subnets' must be a list of subnet ids")
    return tuple(str(subnet).strip() for subnet in value if str(subnet).strip())


def settings_from_dict(data: dict[str, Any]) -> DeploymentSettings:
    """Build validated DeploymentSettings from a parsed settings document.

    Args:
        data: The parsed YAML mapping.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If a section or setting is missing or invalid.

    """
    cluster = _section(data, "cluster")
    app = _section(data, "app")
    secret = _section(data, "secret")
    database = _section(data, "database", required=False)

    settings = DeploymentSettings(
        cluster=ClusterSettings(
            name=str(_require(cluster, "cluster", "name")),
            region=str(_require(cluster, "cluster", "region")),
            account_id=str(_require(cluster, "cluster", "account_id")),
            nodegroup=str(cluster.get("nodegroup") or f"{_require(cluster, 'cluster', 'name')}-nodes"),
            private_subnets=_subnets(cluster),
            node_type=str(cluster.get("node_type") or "t3.medium"),
            nodes=_as_int(cluster, "cluster", "nodes", 2),
        ),
        app=AppSettings(
            name=str(_require(app, "app", "name")),
            namespace=str(_require(app, "app", "namespace")),
            image=str(os.environ.get(IMAGE_ENV_VAR) or _require(app, "app", "image")),
            replicas=_as_int(app, "app", "replicas", 1),
            container_port=_as_int(app, "app", "container_port", 80),
            service_port=_as_int(app, "app", "service_port", 80),
            service_account=str(app.get("service_account") or ""),
        ),
        secret=SecretSettings(
            arn=str(_require(secret, "secret", "arn")),
            alias=str(_require(secret, "secret", "alias")),
            provider_class=str(secret.get("provider_class") or ""),
            mount_path=str(secret.get("mount_path") or DEFAULT_MOUNT_PATH),
            policy_name=str(secret.get("policy_name") or ""),
        ),
        database=DatabaseSettings(
            security_group=str(database.get("security_group") or ""),
            port=_as_int(database, "database", "port", 3306),
        ),
        output_dir=str(data.get("output_dir") or DEFAULT_OUTPUT_DIR),
    )

    problems = validate_settings(settings)
    if problems:
        raise ConfigurationError("Invalid settings: " + "; ".join(problems))
    return settings


def validate_settings(settings: DeploymentSettings) -> list[str]:
    """Collect every validation problem in the settings.

    Args:
        settings: The settings to check.

    Returns:
        A list of problems, empty when the settings are valid.

    """
    problems: list[str] = []

    def check(label: str, result: bool | str) -> None:
        if result is not True:
            problems.append(f"{label}: {result}")

    check("cluster.name", validate_k8s_name(settings.cluster.name))
    check("cluster.region", validate_region(settings.cluster.region))
    check("cluster.account_id", validate_account_id(settings.cluster.account_id))
    check("cluster.nodegroup", validate_k8s_name(settings.cluster.nodegroup))
    if len(settings.cluster.private_subnets) < 2:
        problems.append("cluster.private_subnets: at least two subnets in different availability zones are required")
    for subnet in settings.cluster.private_subnets:
        if not _SUBNET_PATTERN.match(subnet):
            problems.append(f"cluster.private_subnets: {subnet!r} is not a subnet id")
    check("app.name", validate_app_name(settings.app.name))
    check("app.namespace", validate_k8s_label(settings.app.namespace))
    check("app.service_account", validate_k8s_name(settings.app.service_account_name))
    check("app.image", validate_image(settings.app.image))
    check("secret.arn", validate_secret_arn(settings.secret.arn))
    check("secret.provider_class", validate_k8s_name(settings.provider_class_name))

    if not settings.secret.alias or "/" in settings.secret.alias:
        problems.append("secret.alias: must be a non-empty file name")
    if not settings.secret.mount_path.startswith("/"):
        problems.append("secret.mount_path: must be an absolute path")
    if settings.cluster.nodes < 1:
        problems.append("cluster.nodes: must be at least 1")
    if settings.app.replicas < 0:
        problems.append("app.replicas: cannot be negative")
    for label, port in (
        ("app.container_port", settings.app.container_port),
        ("app.service_port", settings.app.service_port),
        ("database.port", settings.database.port),
    ):
        if not 1 <= port <= 65535:
            problems.append(f"{label}: must be between 1 and 65535")

    ic(problems)
    return problems


def resolve_config_path(config: str | None = None) -> Path:
    """Return the settings file path from the flag, environment or default."""
    return Path(config or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)


def load_settings(path: str | Path) -> DeploymentSettings:
    """Load and validate deployment settings from a YAML file.

    Args:
        path: Path to the settings file.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If the file does not exist, is malformed or invalid.

    """
    try:
        with open(path) as stream:
            data = yaml.safe_load(stream)
    except FileNotFoundError as err:
        raise ConfigurationError(f"Settings file '{path}' does not exist (run with --init to create it)") from err
    except yaml.YAMLError as err:
        raise ConfigurationError(f"Settings file '{path}' contains malformed YAML: {err}") from err

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file '{path}' must contain a YAML mapping")

    ic(data)
    return settings_from_dict(data)


def settings_to_dict(settings: DeploymentSettings) -> dict[str, Any]:
    """Convert settings back into the on-disk document layout."""
    data = asdict(settings)
    data["cluster"]["private_subnets"] = list(settings.cluster.private_subnets)
    if not settings.database.security_group:
        data.pop("database")
    return data


def save_settings(settings: DeploymentSettings, path: str | Path) -> None:
    """Write settings to a YAML file."""
    with open(path, "w") as stream:
        yaml.safe_dump(settings_to_dict(settings), stream, sort_keys=False)
