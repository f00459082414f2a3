"""Interactive prompts for creating a settings file.

The answers are validated inline with the same validators the settings
loader uses, so a file written by ``--init`` always loads.
"""

import questionary
from questionary import Style

from eks_deploy_auto import console
from eks_deploy_auto.config import (
    settings_from_dict,
    validate_account_id,
    validate_app_name,
    validate_image,
    validate_k8s_label,
    validate_k8s_name,
    validate_region,
    validate_secret_arn,
)
from eks_deploy_auto.models import DEFAULT_MOUNT_PATH, DEFAULT_OUTPUT_DIR, DeploymentSettings

PROMPT_STYLE = Style(
    [
        ("qmark", "fg:#ff9900 bold"),  # AWS orange question mark
        ("question", "bold"),
        ("answer", "fg:#5fafff bold"),
        ("pointer", "fg:#ff9900 bold"),
        ("highlighted", "fg:#1c1c1c bg:#ff9900 bold"),
        ("instruction", "fg:#6c6c6c italic"),
        ("text", ""),
    ]
)

QMARK = "? "


def _validate_int(minimum: int, maximum: int = 65535):
    def validate(value: str) -> bool | str:
        if not value.isdigit() or not minimum <= int(value) <= maximum:
            return f"Must be a number between {minimum} and {maximum}"
        return True

    return validate


def _text(message: str, *, validate=None, default: str = "") -> str:
    return questionary.text(
        message,
        default=default,
        validate=validate,
        style=PROMPT_STYLE,
        qmark=QMARK,
    ).unsafe_ask()


def collect_settings() -> DeploymentSettings:
    """Interactively collect the deployment settings.

    Returns:
        The validated DeploymentSettings.

    Raises:
        ConfigurationError: If the answers do not form valid settings.

    """
    console.action("Cluster")
    cluster_name = _text("EKS cluster name", validate=validate_k8s_name)
    cluster = {
        "name": cluster_name,
        "region": _text("AWS region", validate=validate_region, default="eu-west-1"),
        "account_id": _text("AWS account id", validate=validate_account_id),
        "private_subnets": _text(
            "Private subnet ids (comma separated)",
            validate=lambda x: True if x.count(",") >= 1 else "At least two subnets are required",
        ),
        "nodegroup": _text("Node group name", validate=validate_k8s_name, default=f"{cluster_name}-nodes"),
        "node_type": _text("Node instance type", default="t3.medium"),
        "nodes": _text("Node count", validate=_validate_int(1, 100), default="2"),
    }

    console.action("Application")
    app_name = _text("Application name", validate=validate_app_name)
    app = {
        "name": app_name,
        "namespace": _text("Namespace", validate=validate_k8s_label, default=app_name),
        "image": _text("Image URI (<account>.dkr.ecr.<region>.amazonaws.com/<repo>:<tag>)", validate=validate_image),
        "replicas": _text("Replicas", validate=_validate_int(0, 100), default="1"),
        "container_port": _text("Container port", validate=_validate_int(1), default="80"),
        "service_port": _text("Load balancer port", validate=_validate_int(1), default="80"),
        "service_account": _text("Service account", validate=validate_k8s_name, default=f"{app_name}-sa"),
    }

    console.action("Secret")
    secret = {
        "arn": _text("Secrets Manager ARN", validate=validate_secret_arn),
        "alias": _text(
            "File name to mount the secret as",
            validate=lambda x: True if x and "/" not in x else "Must be a plain file name",
        ),
        "mount_path": _text("Mount path", default=DEFAULT_MOUNT_PATH),
    }

    data = {"cluster": cluster, "app": app, "secret": secret, "output_dir": DEFAULT_OUTPUT_DIR}

    if questionary.confirm(
        "Open database access to the cluster?", default=False, style=PROMPT_STYLE, qmark=QMARK
    ).unsafe_ask():
        data["database"] = {
            "security_group": _text(
                "RDS security group id",
                validate=lambda x: True if x.startswith("sg-") else "Must be a security group id (sg-...)",
            ),
            "port": _text("Database port", validate=_validate_int(1), default="3306"),
        }

    return settings_from_dict(data)
