"""Manifest bundle subpackage.

This package contains the builders that generate the Namespace,
SecretProviderClass, Deployment and Service from the deployment settings,
the cross-resource validation, and rendering/diffing of the bundle.
"""

from eks_deploy_auto.manifests.builders import ManifestBundle, build_bundle
from eks_deploy_auto.manifests.rendering import (
    diff_bundle,
    load_bundle,
    parse_manifest_file,
    render_bundle,
    write_bundle,
)
from eks_deploy_auto.manifests.validation import ensure_valid, validate_bundle

__all__ = [
    # builders
    "ManifestBundle",
    "build_bundle",
    # rendering
    "render_bundle",
    "write_bundle",
    "parse_manifest_file",
    "load_bundle",
    "diff_bundle",
    # validation
    "validate_bundle",
    "ensure_valid",
]
