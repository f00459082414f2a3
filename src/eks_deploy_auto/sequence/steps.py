"""Default provisioning step catalog.

The steps take an empty AWS account with a pre-built VPC to a running,
load-balanced workload::

    network -> cluster -> nodegroup -> csi-driver ----+
               nodegroup -> rds-access                |
               cluster -> oidc -----------------------+-> service-account
    secret-policy ------------------------------------+
               nodegroup -> namespace ----------------+
    service-account -> secret-provider-class -> deployment -> service -> exposure

Placeholders come from DeploymentSettings.as_context() or from values
captured by a prerequisite step.
"""

from eks_deploy_auto.models import ProvisioningStep, StepKind
from eks_deploy_auto.sequence.graph import ProvisioningGraph

CSI_DRIVER_CHART_REPO = "https://kubernetes-sigs.github.io/secrets-store-csi-driver/charts"
AWS_PROVIDER_INSTALLER = (
    "https://raw.githubusercontent.com/aws/secrets-store-csi-driver-provider-aws/main/deployment/aws-provider-installer.yaml"
)

_REGION = ("--region", "{region}")


def _apply(filename: str) -> tuple[str, ...]:
    return ("kubectl", "apply", "-f", f"{{manifest_dir}}/{filename}")


DEFAULT_STEPS: tuple[ProvisioningStep, ...] = (
    ProvisioningStep(
        name="network",
        description="Create the VPC with public and private subnets ({private_subnets}), NAT and internet gateways",
        kind=StepKind.MANUAL,
    ),
    ProvisioningStep(
        name="cluster",
        description="Create the EKS control plane {cluster_name}",
        requires=("network",),
        commands=(
            (
                "eksctl", "create", "cluster", "--name", "{cluster_name}", *_REGION,
                "--vpc-private-subnets", "{private_subnets}", "--without-nodegroup",
            ),
        ),
        captures=(
            (
                "cluster_security_group",
                (
                    "aws", "eks", "describe-cluster", "--name", "{cluster_name}", *_REGION,
                    "--query", "cluster.resourcesVpcConfig.clusterSecurityGroupId", "--output", "text",
                ),
            ),
        ),
        verify=(("eksctl", "get", "cluster", "--name", "{cluster_name}", *_REGION),),
        already_done=("already exists",),
    ),
    ProvisioningStep(
        name="nodegroup",
        description="Create the managed node group {nodegroup}",
        requires=("cluster",),
        commands=(
            (
                "eksctl", "create", "nodegroup", "--cluster", "{cluster_name}", *_REGION,
                "--name", "{nodegroup}", "--node-type", "{node_type}", "--nodes", "{nodes}",
                "--node-private-networking",
            ),
        ),
        verify=(("eksctl", "get", "nodegroup", "--cluster", "{cluster_name}", *_REGION, "--name", "{nodegroup}"),),
        already_done=("already exists",),
    ),
    ProvisioningStep(
        name="rds-access",
        description="Allow the cluster security group to reach the database on port {db_port}",
        requires=("nodegroup",),
        commands=(
            (
                "aws", "ec2", "authorize-security-group-ingress", "--group-id", "{db_security_group}",
                "--protocol", "tcp", "--port", "{db_port}", "--source-group", "{cluster_security_group}", *_REGION,
            ),
        ),
        verify=(
            (
                "aws", "ec2", "describe-security-groups", "--group-ids", "{db_security_group}", *_REGION,
                "--query",
                "SecurityGroups[].IpPermissions[?FromPort==`{db_port}`][]"
                ".UserIdGroupPairs[?GroupId=='{cluster_security_group}'][].GroupId",
                "--output", "text",
            ),
        ),
        skip_unless="db_security_group",
        already_done=("InvalidPermission.Duplicate",),
        verify_expects="{cluster_security_group}",
    ),
    ProvisioningStep(
        name="oidc",
        description="Associate the cluster OIDC provider with IAM",
        requires=("cluster",),
        commands=(
            ("eksctl", "utils", "associate-iam-oidc-provider", "--cluster", "{cluster_name}", *_REGION, "--approve"),
        ),
        # without --approve eksctl only reports whether the provider exists
        verify=(("eksctl", "utils", "associate-iam-oidc-provider", "--cluster", "{cluster_name}", *_REGION),),
        verify_expects="already associated",
    ),
    ProvisioningStep(
        name="csi-driver",
        description="Install the Secrets Store CSI driver and the AWS provider",
        requires=("nodegroup",),
        commands=(
            ("helm", "repo", "add", "secrets-store-csi-driver", CSI_DRIVER_CHART_REPO, "--force-update"),
            (
                "helm", "upgrade", "--install", "csi-secrets-store",
                "secrets-store-csi-driver/secrets-store-csi-driver",
                "--namespace", "kube-system", "--set", "syncSecret.enabled=true",
            ),
            ("kubectl", "apply", "-f", AWS_PROVIDER_INSTALLER),
        ),
        verify=(("kubectl", "get", "csidriver", "secrets-store.csi.k8s.io"),),
    ),
    ProvisioningStep(
        name="secret-policy",
        description="Create the IAM policy {policy_name} allowing read of the application secret",
        commands=(
            (
                "aws", "iam", "create-policy", "--policy-name", "{policy_name}",
                "--policy-document", "file://{manifest_dir}/secret-read-policy.json",
            ),
        ),
        verify=(("aws", "iam", "get-policy", "--policy-arn", "{policy_arn}"),),
        already_done=("EntityAlreadyExists",),
    ),
    ProvisioningStep(
        name="namespace",
        description="Create the {namespace} namespace",
        requires=("nodegroup",),
        commands=(_apply("namespace.yaml"),),
        verify=(("kubectl", "get", "namespace", "{namespace}"),),
    ),
    ProvisioningStep(
        name="service-account",
        description="Create the IAM-backed service account {service_account}",
        requires=("oidc", "csi-driver", "secret-policy", "namespace"),
        commands=(
            (
                "eksctl", "create", "iamserviceaccount", "--name", "{service_account}",
                "--namespace", "{namespace}", "--cluster", "{cluster_name}", *_REGION,
                "--attach-policy-arn", "{policy_arn}", "--approve", "--override-existing-serviceaccounts",
            ),
        ),
        verify=(("kubectl", "get", "serviceaccount", "{service_account}", "--namespace", "{namespace}"),),
    ),
    ProvisioningStep(
        name="secret-provider-class",
        description="Apply the SecretProviderClass {provider_class}",
        requires=("service-account",),
        commands=(_apply("secret-provider-class.yaml"),),
        verify=(("kubectl", "get", "secretproviderclass", "{provider_class}", "--namespace", "{namespace}"),),
    ),
    ProvisioningStep(
        name="deployment",
        description="Apply the {app_name} Deployment",
        requires=("secret-provider-class",),
        commands=(_apply("deployment.yaml"),),
        verify=(
            ("kubectl", "rollout", "status", "deployment/{app_name}", "--namespace", "{namespace}", "--timeout=300s"),
        ),
    ),
    ProvisioningStep(
        name="service",
        description="Apply the {app_name} LoadBalancer Service",
        requires=("deployment",),
        commands=(_apply("service.yaml"),),
        captures=(
            (
                "load_balancer_hostname",
                (
                    "kubectl", "get", "service", "{app_name}", "--namespace", "{namespace}",
                    "--output", "jsonpath={{.status.loadBalancer.ingress[0].hostname}}",
                ),
            ),
        ),
        verify=(("kubectl", "get", "service", "{app_name}", "--namespace", "{namespace}"),),
    ),
    ProvisioningStep(
        name="exposure",
        description="Add the TLS listener to the load balancer and point the DNS record at {load_balancer_hostname}",
        kind=StepKind.MANUAL,
        requires=("service",),
    ),
)


def default_graph() -> ProvisioningGraph:
    """Build the provisioning graph for the standard EKS deployment."""
    return ProvisioningGraph(DEFAULT_STEPS)
