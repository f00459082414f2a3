"""Kubernetes cluster interaction utilities.

This module provides the Cluster class for reading the deployed
resources back through the Kubernetes API once the sequence has run.
"""

from collections.abc import Callable
from typing import Any

import click
import questionary
from icecream import ic
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from eks_deploy_auto import console
from eks_deploy_auto.exceptions import ClusterConnectionError
from eks_deploy_auto.manifests.builders import SECRETS_STORE_API_VERSION
from eks_deploy_auto.models import DeploymentSettings, ResourceStatus
from eks_deploy_auto.prompts import PROMPT_STYLE, QMARK

_SPC_GROUP, _SPC_VERSION = SECRETS_STORE_API_VERSION.split("/")
_SPC_PLURAL = "secretproviderclasses"


class Cluster:
    """Reads deployment state from an EKS cluster.

    Attributes:
        context: The active Kubernetes context name.

    """

    def __init__(self, *, select_context: bool) -> None:
        """Initialize Cluster with context selection.

        Args:
            select_context: If True, prompt user to select a context.
                           If False, use the current context.

        """
        self.context: str = self._set_context(select_context=select_context)
        config.load_kube_config(context=self.context)

    @staticmethod
    def _set_context(*, select_context: bool) -> str:
        """Set the Kubernetes context to use.

        Returns:
            The selected or current context name.

        Raises:
            ClusterConnectionError: If kubeconfig is invalid or missing.
            click.Abort: If user cancels context selection.

        """
        try:
            contexts, current_context = config.list_kube_config_contexts()
        except ConfigException as e:
            raise ClusterConnectionError(f"Invalid or missing kubeconfig: {e}") from e
        if select_context:
            context_names: list[str] = [context["name"] for context in contexts]
            context: str | None = questionary.select(
                "Select context to work with",
                choices=context_names,
                style=PROMPT_STYLE,
                qmark=QMARK,
            ).ask()
            if context is None:
                console.warning("Context selection cancelled.")
                raise click.Abort()
        else:
            context = str(current_context["name"])
        console.action(f"Working with {console.highlight(context)} cluster")
        return context

    def __repr__(self) -> str:
        return f"Cluster(context={self.context!r})"

    @staticmethod
    def get_all_namespaces() -> list[str]:
        """Get all namespaces in the cluster."""
        try:
            ns_list = [ns.metadata.name for ns in client.CoreV1Api().list_namespace().items]
        except MaxRetryError as e:
            raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        ic(ns_list)
        return ns_list

    @staticmethod
    def _read(kind: str, name: str, reader: Callable[[], Any], check: Callable[[Any], tuple[bool, str]]) -> ResourceStatus:
        try:
            obj = reader()
        except ApiException as e:
            if e.status == 404:
                return ResourceStatus(kind, name, False, "not found")
            return ResourceStatus(kind, name, False, f"API error {e.status}: {e.reason}")
        except MaxRetryError as e:
            raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        ready, detail = check(obj)
        return ResourceStatus(kind, name, ready, detail)

    @staticmethod
    def _deployment_state(deployment: Any) -> tuple[bool, str]:
        desired = deployment.spec.replicas or 0
        ready = deployment.status.ready_replicas or 0
        return ready >= desired, f"{ready}/{desired} replicas ready"

    @staticmethod
    def _service_state(service: Any) -> tuple[bool, str]:
        hostname = Cluster._hostname(service)
        if hostname:
            return True, hostname
        return False, "load balancer pending"

    @staticmethod
    def _hostname(service: Any) -> str:
        load_balancer = service.status.load_balancer
        ingress = (load_balancer.ingress or []) if load_balancer else []
        if not ingress:
            return ""
        return ingress[0].hostname or ""

    def verify_resources(self, settings: DeploymentSettings) -> list[ResourceStatus]:
        """Read back every resource of the bundle.

        Args:
            settings: The deployment settings naming the resources.

        Returns:
            One ResourceStatus per resource, in apply order.

        Raises:
            ClusterConnectionError: If the cluster is unreachable.

        """
        namespace = settings.app.namespace
        name = settings.app.name
        core_v1_api = client.CoreV1Api()
        apps_v1_api = client.AppsV1Api()
        custom_api = client.CustomObjectsApi()

        with console.spinner("Reading deployed resources..."):
            statuses = [
                self._read(
                    "Namespace",
                    namespace,
                    lambda: core_v1_api.read_namespace(namespace),
                    lambda ns: (ns.status.phase == "Active", ns.status.phase or ""),
                ),
                self._read(
                    "ServiceAccount",
                    settings.app.service_account_name,
                    lambda: core_v1_api.read_namespaced_service_account(settings.app.service_account_name, namespace),
                    lambda sa: self._role_annotation(sa),
                ),
                self._read(
                    "SecretProviderClass",
                    settings.provider_class_name,
                    lambda: custom_api.get_namespaced_custom_object(
                        _SPC_GROUP, _SPC_VERSION, namespace, _SPC_PLURAL, settings.provider_class_name
                    ),
                    lambda spc: (spc.get("spec", {}).get("provider") == "aws", "provider aws"),
                ),
                self._read(
                    "Deployment",
                    name,
                    lambda: apps_v1_api.read_namespaced_deployment(name, namespace),
                    self._deployment_state,
                ),
                self._read(
                    "Service",
                    name,
                    lambda: core_v1_api.read_namespaced_service(name, namespace),
                    self._service_state,
                ),
            ]

        ic(statuses)
        return statuses

    @staticmethod
    def _role_annotation(service_account: Any) -> tuple[bool, str]:
        annotations = service_account.metadata.annotations or {}
        role = annotations.get("eks.amazonaws.com/role-arn", "")
        if role:
            return True, role
        return False, "no IAM role annotation"

    @staticmethod
    def load_balancer_hostname(name: str, namespace: str) -> str:
        """Return the NLB hostname of a Service, or an empty string if pending.

        Raises:
            ClusterConnectionError: If the cluster is unreachable.

        """
        try:
            service = client.CoreV1Api().read_namespaced_service(name, namespace)
        except MaxRetryError as e:
            raise ClusterConnectionError(f"Failed to connect to the Kubernetes cluster: {e.reason}") from e
        except ApiException as e:
            if e.status == 404:
                return ""
            raise ClusterConnectionError(f"Failed to read service {namespace}/{name}: {e.reason}") from e
        return Cluster._hostname(service)
