"""Shared test fixtures for eks-deploy-auto tests."""

import copy
from unittest.mock import MagicMock, patch

import pytest
import yaml

from eks_deploy_auto.config import settings_from_dict

SECRET_ARN = "arn:aws:secretsmanager:eu-west-1:123456789012:secret:webapp/db-credentials-AbCdEf"
IMAGE = "123456789012.dkr.ecr.eu-west-1.amazonaws.com/webapp:1.4.2"

SETTINGS_DATA = {
    "cluster": {
        "name": "demo-cluster",
        "region": "eu-west-1",
        "account_id": "123456789012",
        "private_subnets": ["subnet-0a1b2c3d4e5f60718", "subnet-0f1e2d3c4b5a69788"],
        "nodegroup": "demo-nodes",
        "node_type": "t3.medium",
        "nodes": 2,
    },
    "app": {
        "name": "webapp",
        "namespace": "webapp",
        "image": IMAGE,
        "replicas": 2,
        "container_port": 80,
        "service_port": 80,
        "service_account": "webapp-sa",
    },
    "secret": {
        "arn": SECRET_ARN,
        "alias": "db-credentials",
    },
    "database": {
        "security_group": "sg-0123456789abcdef0",
        "port": 3306,
    },
    "output_dir": "manifests",
}


@pytest.fixture
def settings_data():
    """A fresh copy of a valid settings document."""
    return copy.deepcopy(SETTINGS_DATA)


@pytest.fixture
def settings(settings_data, tmp_path):
    """Validated settings writing manifests under tmp_path."""
    settings_data["output_dir"] = str(tmp_path / "manifests")
    return settings_from_dict(settings_data)


@pytest.fixture
def config_file(settings_data, tmp_path):
    """Settings file on disk pointing its output at tmp_path."""
    settings_data["output_dir"] = str(tmp_path / "manifests")
    path = tmp_path / "eks-deploy.yaml"
    path.write_text(yaml.safe_dump(settings_data))
    return path


@pytest.fixture
def mock_kube_contexts():
    """Mock kubernetes config contexts."""
    with patch("kubernetes.config.list_kube_config_contexts") as mock:
        mock.return_value = ([{"name": "test-context"}], {"name": "test-context"})
        yield mock


@pytest.fixture
def mock_kube_config():
    """Mock kubernetes config loading."""
    with patch("kubernetes.config.load_kube_config") as mock:
        yield mock


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for command execution."""
    with patch("subprocess.run") as mock:
        mock.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock
