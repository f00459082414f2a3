"""Manifest builders.

Every manifest in the bundle is generated from DeploymentSettings, so the
image reference, secret ARN and namespace are typed once and cannot drift
between documents.
"""

from dataclasses import dataclass
from typing import Any

import yaml

from eks_deploy_auto.models import DeploymentSettings

SECRETS_STORE_API_VERSION = "secrets-store.csi.x-k8s.io/v1"
SECRETS_STORE_DRIVER = "secrets-store.csi.k8s.io"
SECRET_VOLUME_NAME = "secrets-store-inline"

NLB_ANNOTATIONS = {
    "service.beta.kubernetes.io/aws-load-balancer-type": "nlb",
    "service.beta.kubernetes.io/aws-load-balancer-internal": "false",
    "service.beta.kubernetes.io/aws-load-balancer-cross-zone-load-balancing-enabled": "true",
}

SECRET_READ_ACTIONS = ["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"]

Manifest = dict[str, Any]


@dataclass(frozen=True)
class ManifestBundle:
    """The deployable unit: four manifests plus the secret read policy.

    Attributes:
        namespace: The Namespace manifest.
        secret_provider_class: The SecretProviderClass manifest.
        deployment: The Deployment manifest.
        service: The Service manifest.
        secret_policy: IAM policy document attached to the service account.
        service_account: Name of the service account the policy is attached to.

    """

    namespace: Manifest
    secret_provider_class: Manifest
    deployment: Manifest
    service: Manifest
    secret_policy: dict[str, Any]
    service_account: str

    def manifests(self) -> list[tuple[str, Manifest]]:
        """Return (file name, manifest) pairs in apply order."""
        return [
            ("namespace.yaml", self.namespace),
            ("secret-provider-class.yaml", self.secret_provider_class),
            ("deployment.yaml", self.deployment),
            ("service.yaml", self.service),
        ]


def _labels(settings: DeploymentSettings) -> dict[str, str]:
    return {"app": settings.app.name}


def build_namespace(settings: DeploymentSettings) -> Manifest:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": settings.app.namespace},
    }


def build_secret_provider_class(settings: DeploymentSettings) -> Manifest:
    """Build the SecretProviderClass binding the secret to a CSI volume.

    The AWS provider expects ``parameters.objects`` as a YAML document
    embedded in a string, not as a nested list.
    """
    objects = yaml.safe_dump(
        [{"objectName": settings.secret.arn, "objectAlias": settings.secret.alias}],
        default_flow_style=False,
        sort_keys=False,
    )
    return {
        "apiVersion": SECRETS_STORE_API_VERSION,
        "kind": "SecretProviderClass",
        "metadata": {
            "name": settings.provider_class_name,
            "namespace": settings.app.namespace,
        },
        "spec": {
            "provider": "aws",
            "parameters": {"objects": objects},
        },
    }


def build_deployment(settings: DeploymentSettings) -> Manifest:
    """Build the Deployment running the application container."""
    app = settings.app
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": app.name,
            "namespace": app.namespace,
            "labels": _labels(settings),
        },
        "spec": {
            "replicas": app.replicas,
            "selector": {"matchLabels": _labels(settings)},
            "template": {
                "metadata": {"labels": _labels(settings)},
                "spec": {
                    "serviceAccountName": app.service_account_name,
                    "volumes": [
                        {
                            "name": SECRET_VOLUME_NAME,
                            "csi": {
                                "driver": SECRETS_STORE_DRIVER,
                                "readOnly": True,
                                "volumeAttributes": {"secretProviderClass": settings.provider_class_name},
                            },
                        }
                    ],
                    "containers": [
                        {
                            "name": app.name,
                            "image": app.image,
                            "imagePullPolicy": "Always",
                            "ports": [{"containerPort": app.container_port}],
                            "volumeMounts": [
                                {
                                    "name": SECRET_VOLUME_NAME,
                                    "mountPath": settings.secret.mount_path,
                                    "readOnly": True,
                                }
                            ],
                        }
                    ],
                },
            },
        },
    }


def build_service(settings: DeploymentSettings) -> Manifest:
    """Build the LoadBalancer Service fronted by an internet-facing NLB."""
    app = settings.app
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": app.name,
            "namespace": app.namespace,
            "annotations": dict(NLB_ANNOTATIONS),
        },
        "spec": {
            "type": "LoadBalancer",
            "selector": _labels(settings),
            "ports": [
                {
                    "protocol": "TCP",
                    "port": app.service_port,
                    "targetPort": app.container_port,
                }
            ],
        },
    }


def build_secret_policy(settings: DeploymentSettings) -> dict[str, Any]:
    """Build the IAM policy document granting read access to the secret."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(SECRET_READ_ACTIONS),
                "Resource": [settings.secret.arn],
            }
        ],
    }


def build_bundle(settings: DeploymentSettings) -> ManifestBundle:
    """Build the complete manifest bundle from the settings.

    Args:
        settings: The deployment settings.

    Returns:
        The generated ManifestBundle.

    """
    return ManifestBundle(
        namespace=build_namespace(settings),
        secret_provider_class=build_secret_provider_class(settings),
        deployment=build_deployment(settings),
        service=build_service(settings),
        secret_policy=build_secret_policy(settings),
        service_account=settings.app.service_account_name,
    )
