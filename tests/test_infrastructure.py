"""
Tests for the database and Prisma service stacks
"""
import pytest

from stackgraph import StackState
from infrastructure.app import DATABASE_STACK_NAME, SERVICE_STACK_NAME, create_app
from infrastructure.config import PRISMA_VERSION, name_tag
from infrastructure.database_stack import DatabaseStack

DATABASE_ORDER = [
    "StackAlarmTopic",
    "VPC",
    "PublicSubnet1",
    "PublicSubnet2",
    "DatabaseSubnetGroup",
    "ParameterGroup",
    "DatabaseSecurityGroup",
    "DatabaseCluster",
    "DatabaseInstance",
    "DatabaseCPUAlarm",
    "DatabaseMemoryAlarm",
    "InternetGateway",
    "InternetGatewayAttachment",
    "PublicRouteTable",
    "DefaultPublicRoute",
    "PublicSubnet1RouteTableAssociation",
    "PublicSubnet2RouteTableAssociation",
]

SERVICE_ORDER = [
    "VPC",
    "PublicSubnet1",
    "PublicSubnet2",
    "InternetGateway",
    "InternetGatewayAttachment",
    "PublicRouteTable",
    "PublicRoute",
    "PublicSubnet1RouteTableAssociation",
    "PublicSubnet2RouteTableAssociation",
    "ECSCluster",
    "FargateContainerSecurityGroup",
    "PublicLoadBalancerSG",
    "EcsSecurityGroupIngressFromPublicALB",
    "EcsSecurityGroupIngressFromSelf",
    "PublicLoadBalancer",
    "PrismaTargetGroup",
    "PublicLoadBalancerListener",
    "PrismaLogs",
    "ECSRole",
    "ECSTaskExecutionRole",
    "TaskDefinition",
    "PrismaService",
]


def prisma_config_of(manifest):
    container = manifest.resource("TaskDefinition").properties["ContainerDefinitions"][0]
    environment = {entry["Name"]: entry["Value"] for entry in container["Environment"]}
    return container, environment["PRISMA_CONFIG"]


@pytest.fixture(scope="function")
def manifests(deployment_config):
    return create_app(deployment_config, max_workers=1).synth()


def test_create_app_synthesizes_database_first(deployment_config):
    app = create_app(deployment_config, max_workers=1)

    assert app.stack(DATABASE_STACK_NAME).state == StackState.EXPORTED
    assert app.stack(SERVICE_STACK_NAME).state == StackState.BUILDING
    assert app.stack(SERVICE_STACK_NAME).imports() == [DATABASE_STACK_NAME]


def test_database_stack_emitted_in_declaration_order(manifests):
    manifest = manifests[DATABASE_STACK_NAME]

    assert manifest.logical_ids() == DATABASE_ORDER
    assert manifest.resource("DefaultPublicRoute").depends_on == [
        "InternetGateway",
        "InternetGatewayAttachment",
        "PublicRouteTable",
    ]
    assert manifest.resource("DatabaseInstance").properties["DBClusterIdentifier"] == "${Ref:DatabaseCluster}"


def test_database_outputs_are_late_bound_without_state(manifests):
    outputs = manifests[DATABASE_STACK_NAME].outputs

    assert outputs["DatabaseEndpoint"].value == "${GetAtt:DatabaseCluster.Endpoint.Address}"
    assert outputs["DatabaseEndpoint"].resolved is False
    assert outputs["DatabasePort"].value == "${GetAtt:DatabaseCluster.Endpoint.Port}"


def test_service_stack_emitted_in_declaration_order(manifests):
    manifest = manifests[SERVICE_STACK_NAME]

    assert manifest.logical_ids() == SERVICE_ORDER
    assert manifest.imports == [DATABASE_STACK_NAME]
    assert manifest.resource("PublicLoadBalancerListener").depends_on == [
        "PublicLoadBalancer",
        "PrismaTargetGroup",
    ]
    assert "PublicLoadBalancerListener" in manifest.resource("PrismaService").depends_on


def test_alb_ingress_uses_load_balancer_security_group(manifests):
    manifest = manifests[SERVICE_STACK_NAME]

    ingress = manifest.resource("EcsSecurityGroupIngressFromPublicALB").properties
    network = manifest.resource("PrismaService").properties["NetworkConfiguration"]["AwsvpcConfiguration"]

    assert ingress["SourceSecurityGroupId"] == "${Ref:PublicLoadBalancerSG}"
    assert network["SecurityGroups"] == ["${Ref:FargateContainerSecurityGroup}"]


def test_prisma_config_imports_database_endpoint(manifests):
    container, prisma_config = prisma_config_of(manifests[SERVICE_STACK_NAME])

    assert container["Image"] == f"prismagraphql/prisma:{PRISMA_VERSION}"
    assert "    host: ${ImportValue:DatabaseStack:DatabaseEndpoint}\n" in prisma_config
    assert "    port: ${ImportValue:DatabaseStack:DatabasePort}\n" in prisma_config
    assert "managementApiSecret: management-secret\n" in prisma_config


def test_prisma_config_uses_materialized_endpoint(deployment_config, materialized_state):
    manifests = create_app(deployment_config, materialized=materialized_state, max_workers=1).synth()

    database_outputs = manifests[DATABASE_STACK_NAME].outputs
    _, prisma_config = prisma_config_of(manifests[SERVICE_STACK_NAME])

    assert database_outputs["DatabaseEndpoint"].resolved is True
    assert "    host: prisma-db.cluster-abc123.us-east-2.rds.amazonaws.com\n" in prisma_config
    assert "    port: 3306\n" in prisma_config


def test_service_outputs_are_exported(manifests):
    outputs = manifests[SERVICE_STACK_NAME].outputs

    assert outputs["ClusterName"].value == "${Ref:ECSCluster}"
    assert outputs["ClusterName"].export_name == "PrismaServiceStack:ClusterName"
    assert outputs["ExternalUrl"].value == "http://${GetAtt:PublicLoadBalancer.DNSName}"
    assert outputs["ExternalUrl"].resolved is False


def test_synthesis_is_deterministic(deployment_config):
    first = create_app(deployment_config, max_workers=1).synth()
    second = create_app(deployment_config, max_workers=4).synth()

    assert {name: m.to_json() for name, m in first.items()} == \
        {name: m.to_json() for name, m in second.items()}


def test_subnets_follow_configured_zones(deployment_config):
    deployment_config.availability_zones = ["us-east-2c", "us-east-2a"]

    stack = DatabaseStack(None, "Standalone", config=deployment_config)
    manifest = stack.synthesize()

    zones = [manifest.resource(f"PublicSubnet{index}").properties["AvailabilityZone"] for index in (1, 2)]
    assert zones == ["us-east-2c", "us-east-2a"]


def test_both_stacks_tag_public_subnets(manifests):
    for stack_name in (DATABASE_STACK_NAME, SERVICE_STACK_NAME):
        subnet = manifests[stack_name].resource("PublicSubnet2")
        assert subnet.properties["Tags"] == name_tag("prisma-db Public Subnet (AZ2)")
