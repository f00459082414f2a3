"""Provisioning sequence subpackage.

This package contains the dependency graph of provisioning steps, the
default step catalog and the runner that executes it.
"""

from eks_deploy_auto.sequence.graph import ProvisioningGraph
from eks_deploy_auto.sequence.runner import SequenceRunner, required_tools
from eks_deploy_auto.sequence.steps import DEFAULT_STEPS, default_graph

__all__ = [
    "ProvisioningGraph",
    "SequenceRunner",
    "required_tools",
    "DEFAULT_STEPS",
    "default_graph",
]
