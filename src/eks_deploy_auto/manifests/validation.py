"""Cross-resource validation of a manifest bundle.

The cluster validates each manifest on its own; the checks here cover
the references between them (selectors, the SecretProviderClass name,
namespaces and the secret read policy) that only fail at runtime.
"""

from fnmatch import fnmatchcase
from typing import Any

import yaml
from icecream import ic

from eks_deploy_auto.config import validate_secret_arn
from eks_deploy_auto.exceptions import ManifestValidationError
from eks_deploy_auto.manifests.builders import SECRETS_STORE_DRIVER, Manifest, ManifestBundle
from eks_deploy_auto.models import ValidationIssue

_READ_ACTION = "secretsmanager:GetSecretValue"


def _dig(manifest: Manifest, *path: str | int) -> Any:
    current: Any = manifest
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
    return current


def _ref(manifest: Manifest) -> str:
    return f"{manifest.get('kind', '?')}/{_dig(manifest, 'metadata', 'name') or '?'}"


def _mapping(manifest: Manifest, path: tuple[str, ...], issues: list[ValidationIssue]) -> dict[str, Any]:
    """Return the mapping at ``path``, recording an issue if something else is there."""
    value = _dig(manifest, *path)
    if value is None:
        return {}
    if not isinstance(value, dict):
        issues.append(ValidationIssue(_ref(manifest), f"{'.'.join(path)} must be a mapping"))
        return {}
    return value


def _mappings(
    manifest: Manifest, value: Any, label: str, issues: list[ValidationIssue]
) -> list[dict[str, Any]]:
    """Return the mapping items of a list field, recording an issue for anything else."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        issues.append(ValidationIssue(_ref(manifest), f"{label} must be a list of mappings"))
        return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []
    return value


def secret_objects(secret_provider_class: Manifest) -> list[dict[str, Any]]:
    """Return the objects declared by a SecretProviderClass.

    Args:
        secret_provider_class: The SecretProviderClass manifest.

    Returns:
        The parsed ``parameters.objects`` list, empty if absent or malformed.

    """
    raw = _dig(secret_provider_class, "spec", "parameters", "objects")
    if isinstance(raw, str):
        try:
            raw = yaml.safe_load(raw)
        except yaml.YAMLError:
            return []
    if not isinstance(raw, list):
        return []
    return [obj for obj in raw if isinstance(obj, dict)]


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]


def policy_allows_read(policy: dict[str, Any], secret_arn: str) -> bool:
    """Check whether an IAM policy document allows reading a secret.

    Only Allow statements are considered; wildcards follow IAM's ``*``/``?``
    matching.
    """
    if not isinstance(policy, dict):
        return False
    for statement in _as_list_of_dicts(policy.get("Statement")):
        if statement.get("Effect") != "Allow":
            continue
        actions = _as_list(statement.get("Action"))
        resources = _as_list(statement.get("Resource"))
        if any(fnmatchcase(_READ_ACTION, action) for action in actions) and any(
            fnmatchcase(secret_arn, resource) for resource in resources
        ):
            return True
    return False


def _as_list_of_dicts(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _check_kinds(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues = []
    expected = {
        "Namespace": bundle.namespace,
        "SecretProviderClass": bundle.secret_provider_class,
        "Deployment": bundle.deployment,
        "Service": bundle.service,
    }
    for kind, manifest in expected.items():
        if manifest.get("kind") != kind:
            issues.append(ValidationIssue(_ref(manifest), f"expected kind {kind}, found {manifest.get('kind')!r}"))
    return issues


def _check_selector(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    pod_labels = _mapping(bundle.deployment, ("spec", "template", "metadata", "labels"), issues)
    match_labels = _mapping(bundle.deployment, ("spec", "selector", "matchLabels"), issues)
    selector = _mapping(bundle.service, ("spec", "selector"), issues)

    if selector.get("app") is None or selector.get("app") != pod_labels.get("app"):
        issues.append(
            ValidationIssue(
                _ref(bundle.service),
                f"selector app={selector.get('app')!r} does not match pod label app={pod_labels.get('app')!r}",
            )
        )
    for key, value in match_labels.items():
        if pod_labels.get(key) != value:
            issues.append(
                ValidationIssue(_ref(bundle.deployment), f"matchLabels {key}={value!r} is not a pod template label")
            )
    return issues


def _containers(bundle: ManifestBundle, issues: list[ValidationIssue]) -> list[dict[str, Any]]:
    raw = _dig(bundle.deployment, "spec", "template", "spec", "containers")
    return _mappings(bundle.deployment, raw, "spec.template.spec.containers", issues)


def _check_secret_volume(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    provider_class = _dig(bundle.secret_provider_class, "metadata", "name")
    raw_volumes = _dig(bundle.deployment, "spec", "template", "spec", "volumes")
    volumes = _mappings(bundle.deployment, raw_volumes, "spec.template.spec.volumes", issues)
    csi_volumes = [
        volume for volume in volumes if _dig(volume, "csi", "driver") == SECRETS_STORE_DRIVER
    ]

    if not csi_volumes:
        issues.append(ValidationIssue(_ref(bundle.deployment), "no secrets-store CSI volume declared"))
    for volume in csi_volumes:
        referenced = _dig(volume, "csi", "volumeAttributes", "secretProviderClass")
        if referenced != provider_class:
            issues.append(
                ValidationIssue(
                    _ref(bundle.deployment),
                    f"volume {volume.get('name')!r} references SecretProviderClass {referenced!r}, "
                    f"bundle declares {provider_class!r}",
                )
            )

    declared = [volume.get("name") for volume in volumes]
    for container in _containers(bundle, issues):
        label = f"container {container.get('name')!r} volumeMounts"
        for mount in _mappings(bundle.deployment, container.get("volumeMounts"), label, issues):
            if mount.get("name") not in declared:
                issues.append(
                    ValidationIssue(
                        _ref(bundle.deployment),
                        f"container {container.get('name')!r} mounts undeclared volume {mount.get('name')!r}",
                    )
                )
    return issues


def _check_namespaces(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues = []
    namespace = _dig(bundle.namespace, "metadata", "name")
    for manifest in (bundle.secret_provider_class, bundle.deployment, bundle.service):
        found = _dig(manifest, "metadata", "namespace")
        if found != namespace:
            issues.append(ValidationIssue(_ref(manifest), f"namespace {found!r} differs from bundle namespace {namespace!r}"))
    return issues


def _check_secret_access(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues = []
    spc_ref = _ref(bundle.secret_provider_class)
    objects = secret_objects(bundle.secret_provider_class)

    if _dig(bundle.secret_provider_class, "spec", "provider") != "aws":
        issues.append(ValidationIssue(spc_ref, "provider must be 'aws'"))
    if not objects:
        issues.append(ValidationIssue(spc_ref, "parameters.objects declares no secret"))

    for obj in objects:
        arn = str(obj.get("objectName", ""))
        if validate_secret_arn(arn) is not True:
            issues.append(ValidationIssue(spc_ref, f"objectName {arn!r} is not a Secrets Manager ARN"))
            continue
        if not obj.get("objectAlias"):
            issues.append(ValidationIssue(spc_ref, f"object {arn!r} has no objectAlias"))
        if not policy_allows_read(bundle.secret_policy, arn):
            issues.append(
                ValidationIssue(
                    f"ServiceAccount/{bundle.service_account}",
                    f"attached policy does not allow {_READ_ACTION} on {arn}",
                )
            )

    account = _dig(bundle.deployment, "spec", "template", "spec", "serviceAccountName")
    if account != bundle.service_account:
        issues.append(
            ValidationIssue(
                _ref(bundle.deployment),
                f"serviceAccountName {account!r} is not the account holding the secret policy ({bundle.service_account!r})",
            )
        )
    return issues


def _check_ports(bundle: ManifestBundle) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    container_ports = []
    # malformed containers are already reported by _check_secret_volume
    for container in _containers(bundle, []):
        label = f"container {container.get('name')!r} ports"
        for port in _mappings(bundle.deployment, container.get("ports"), label, issues):
            container_ports.append(port.get("containerPort"))

    for port in _mappings(bundle.service, _dig(bundle.service, "spec", "ports"), "spec.ports", issues):
        target = port.get("targetPort", port.get("port"))
        if target not in container_ports:
            issues.append(ValidationIssue(_ref(bundle.service), f"targetPort {target!r} is not a container port"))
    return issues


def validate_bundle(bundle: ManifestBundle) -> list[ValidationIssue]:
    """Check every cross-resource invariant of the bundle.

    Args:
        bundle: The bundle to check.

    Returns:
        The issues found, empty when the bundle is consistent.

    """
    issues: list[ValidationIssue] = []
    for check in (
        _check_kinds,
        _check_selector,
        _check_secret_volume,
        _check_namespaces,
        _check_secret_access,
        _check_ports,
    ):
        issues.extend(check(bundle))
    ic(issues)
    return issues


def ensure_valid(bundle: ManifestBundle) -> None:
    """Raise if the bundle violates any invariant.

    Raises:
        ManifestValidationError: With every issue found.

    """
    issues = validate_bundle(bundle)
    if issues:
        raise ManifestValidationError(issues)
