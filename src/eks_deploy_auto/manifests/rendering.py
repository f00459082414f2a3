"""Manifest rendering, parsing and diffing.

Rendering is deterministic: the same bundle always produces the same
bytes, so re-rendering unchanged settings leaves every file untouched.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from eks_deploy_auto import console
from eks_deploy_auto.exceptions import ManifestParsingError
from eks_deploy_auto.manifests.builders import Manifest, ManifestBundle

POLICY_FILE = "secret-read-policy.json"


class _BlockDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockDumper.add_representer(str, _represent_str)


def render_manifest(manifest: Manifest) -> str:
    """Render a single manifest as YAML, preserving key order."""
    return yaml.dump(manifest, Dumper=_BlockDumper, sort_keys=False, default_flow_style=False)


def render_policy(policy: dict[str, Any]) -> str:
    return json.dumps(policy, indent=2) + "\n"


def render_bundle(bundle: ManifestBundle) -> dict[str, str]:
    """Render every file of the bundle.

    Args:
        bundle: The bundle to render.

    Returns:
        Mapping of file name to file content, in apply order.

    """
    rendered = {filename: render_manifest(manifest) for filename, manifest in bundle.manifests()}
    rendered[POLICY_FILE] = render_policy(bundle.secret_policy)
    return rendered


def write_bundle(bundle: ManifestBundle, directory: str | Path) -> list[tuple[Path, bool]]:
    """Write the rendered bundle, skipping files whose content is unchanged.

    Args:
        bundle: The bundle to write.
        directory: Target directory, created if missing.

    Returns:
        (path, changed) for every file of the bundle.

    """
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    results: list[tuple[Path, bool]] = []

    for filename, content in render_bundle(bundle).items():
        path = target / filename
        if path.exists() and path.read_text() == content:
            console.step(f"{filename} unchanged")
            results.append((path, False))
            continue
        path.write_text(content)
        console.step(f"Wrote {console.highlight(str(path))}")
        results.append((path, True))

    ic(results)
    return results


def parse_manifest_file(path: str | Path) -> list[dict[str, Any]]:
    """Parse a YAML manifest file.

    Args:
        path: Path to the manifest file.

    Returns:
        The non-empty documents in the file.

    Raises:
        ManifestParsingError: If the file does not exist, contains malformed
            YAML, or a document is not a YAML mapping.

    """
    try:
        with open(path) as stream:
            docs = [doc for doc in yaml.safe_load_all(stream) if doc is not None]
    except FileNotFoundError as err:
        raise ManifestParsingError(f"Manifest file '{path}' does not exist") from err
    except yaml.YAMLError as err:
        raise ManifestParsingError(f"Manifest file '{path}' contains malformed YAML: {err}") from err

    for doc in docs:
        if not isinstance(doc, dict):
            raise ManifestParsingError(
                f"File '{path}' does not contain a valid YAML mapping. Expected a Kubernetes resource document."
            )
    return docs


def _single(path: Path) -> dict[str, Any]:
    docs = parse_manifest_file(path)
    if len(docs) != 1:
        raise ManifestParsingError(f"File '{path}' must contain exactly one document, found {len(docs)}")
    return docs[0]


def load_bundle(directory: str | Path) -> ManifestBundle:
    """Read a previously rendered (or hand-edited) bundle back from disk.

    Args:
        directory: Directory holding the bundle files.

    Returns:
        The bundle; the service account is taken from the Deployment.

    Raises:
        ManifestParsingError: If a file is missing or malformed.

    """
    source = Path(directory)
    namespace = _single(source / "namespace.yaml")
    secret_provider_class = _single(source / "secret-provider-class.yaml")
    deployment = _single(source / "deployment.yaml")
    service = _single(source / "service.yaml")

    policy_path = source / POLICY_FILE
    try:
        secret_policy = json.loads(policy_path.read_text())
    except FileNotFoundError as err:
        raise ManifestParsingError(f"Policy file '{policy_path}' does not exist") from err
    except json.JSONDecodeError as err:
        raise ManifestParsingError(f"Policy file '{policy_path}' is not valid JSON: {err}") from err

    template_spec: Any = deployment
    for key in ("spec", "template", "spec"):
        template_spec = template_spec.get(key) if isinstance(template_spec, dict) else None
    if not isinstance(template_spec, dict):
        template_spec = {}
    return ManifestBundle(
        namespace=namespace,
        secret_provider_class=secret_provider_class,
        deployment=deployment,
        service=service,
        secret_policy=secret_policy,
        service_account=str(template_spec.get("serviceAccountName") or ""),
    )


def diff_bundle(bundle: ManifestBundle, directory: str | Path) -> list[str]:
    """Compare the desired bundle with files on disk.

    Documents are compared after parsing, so formatting-only edits do not
    count as a difference.

    Args:
        bundle: The desired bundle.
        directory: Directory of previously rendered files.

    Returns:
        File names that are missing or differ; empty when nothing would change.

    """
    source = Path(directory)
    changed: list[str] = []

    for filename, manifest in bundle.manifests():
        path = source / filename
        try:
            current = parse_manifest_file(path)
        except ManifestParsingError:
            changed.append(filename)
            continue
        if current != [manifest]:
            changed.append(filename)

    policy_path = source / POLICY_FILE
    try:
        if json.loads(policy_path.read_text()) != bundle.secret_policy:
            changed.append(POLICY_FILE)
    except (OSError, json.JSONDecodeError):
        changed.append(POLICY_FILE)

    ic(changed)
    return changed
