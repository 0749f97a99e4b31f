from typing import Any, Dict, List, Optional

from stackgraph import App, ExportHandle, Join, Stack
from infrastructure.config import (
    DATABASE_NAME,
    FARGATE_CPU,
    FARGATE_MEMORY,
    JVM_OPTS,
    LOAD_BALANCER_IDLE_TIMEOUT,
    LOG_RETENTION_DAYS,
    PRISMA_PORT,
    PRISMA_VERSION,
    SERVICE_SUBNET_CIDRS,
    SERVICE_VPC_CIDR,
    DeploymentConfig,
    name_tag,
)

CONTAINER_NAME = "prisma-container"

# awsvpc networking and load balancer registration for the ECS service
ECS_SERVICE_ACTIONS = [
    "ec2:AttachNetworkInterface",
    "ec2:CreateNetworkInterface",
    "ec2:CreateNetworkInterfacePermission",
    "ec2:DeleteNetworkInterface",
    "ec2:DeleteNetworkInterfacePermission",
    "ec2:Describe*",
    "ec2:DetachNetworkInterface",
    "elasticloadbalancing:DeregisterInstancesFromLoadBalancer",
    "elasticloadbalancing:DeregisterTargets",
    "elasticloadbalancing:Describe*",
    "elasticloadbalancing:RegisterInstancesWithLoadBalancer",
    "elasticloadbalancing:RegisterTargets",
]

# Image pulls from ECR and log delivery to CloudWatch
TASK_EXECUTION_ACTIONS = [
    "ecr:GetAuthorizationToken",
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "logs:CreateLogStream",
    "logs:PutLogEvents",
]


def policy_document(statements: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"Version": "2012-10-17", "Statement": statements}


def assume_role_policy(service: str) -> Dict[str, Any]:
    return policy_document([{
        "Effect": "Allow",
        "Principal": {"Service": [service]},
        "Action": ["sts:AssumeRole"],
    }])


def allow_policy(name: str, actions: List[str]) -> Dict[str, Any]:
    return {
        "PolicyName": name,
        "PolicyDocument": policy_document([{
            "Effect": "Allow",
            "Action": actions,
            "Resource": ["*"],
        }]),
    }


def prisma_config(
    config: DeploymentConfig,
    database_endpoint: ExportHandle,
    database_port: ExportHandle
) -> Join:
    """
    Prisma server configuration document

    The database host and port come from the database stack's exports and
    stay late-bound until that stack has been applied.
    """
    return Join(parts=[
        f"port: {PRISMA_PORT}\n",
        f"managementApiSecret: {config.prisma_management_secret}\n",
        "databases:\n",
        "  default:\n",
        "    connector: mysql\n",
        "    host: ", database_endpoint, "\n",
        "    port: ", database_port, "\n",
        f"    user: {config.database_username}\n",
        f"    password: {config.database_password}\n",
        "    migrations: true\n",
    ])


class ServiceStack(Stack):
    """Prisma on Fargate behind an internet-facing application load balancer"""

    def __init__(
        self,
        scope: Optional[App],
        name: str,
        config: DeploymentConfig,
        database_endpoint: ExportHandle,
        database_port: ExportHandle,
        **kwargs
    ) -> None:
        super().__init__(scope, name, region=config.region, **kwargs)

        self._declare_network(config)

        self.ecs_cluster = self.declare("AWS::ECS::Cluster", {}, logical_id="ECSCluster")

        container_security_group = self.declare(
            "AWS::EC2::SecurityGroup",
            {
                "GroupDescription": "Access to the Fargate containers",
                "VpcId": self.vpc.ref,
            },
            logical_id="FargateContainerSecurityGroup"
        )

        load_balancer_security_group = self.declare(
            "AWS::EC2::SecurityGroup",
            {
                "GroupDescription": "Access to the public facing load balancer",
                "VpcId": self.vpc.ref,
                "SecurityGroupIngress": [{"CidrIp": "0.0.0.0/0", "IpProtocol": "-1"}],
            },
            logical_id="PublicLoadBalancerSG"
        )

        self.declare(
            "AWS::EC2::SecurityGroupIngress",
            {
                "Description": "Ingress from the public ALB",
                "GroupId": container_security_group.ref,
                "IpProtocol": "-1",
                "SourceSecurityGroupId": load_balancer_security_group.ref,
            },
            logical_id="EcsSecurityGroupIngressFromPublicALB"
        )

        self.declare(
            "AWS::EC2::SecurityGroupIngress",
            {
                "Description": "Ingress from other containers in the same security group",
                "GroupId": container_security_group.ref,
                "IpProtocol": "-1",
                "SourceSecurityGroupId": container_security_group.ref,
            },
            logical_id="EcsSecurityGroupIngressFromSelf"
        )

        self.load_balancer = self.declare(
            "AWS::ElasticLoadBalancingV2::LoadBalancer",
            {
                "Scheme": "internet-facing",
                "LoadBalancerAttributes": [{
                    "Key": "idle_timeout.timeout_seconds",
                    "Value": LOAD_BALANCER_IDLE_TIMEOUT,
                }],
                "Subnets": [subnet.ref for subnet in self.subnets],
                "SecurityGroups": [load_balancer_security_group.ref],
            },
            logical_id="PublicLoadBalancer"
        )

        target_group = self.declare(
            "AWS::ElasticLoadBalancingV2::TargetGroup",
            {
                "HealthCheckIntervalSeconds": 6,
                "HealthCheckPath": "/status",
                "HealthCheckProtocol": "HTTP",
                "HealthCheckTimeoutSeconds": 5,
                "HealthyThresholdCount": 2,
                "Name": f"{self.name}-prisma",
                "Port": 80,
                "Protocol": "HTTP",
                "UnhealthyThresholdCount": 2,
                "VpcId": self.vpc.ref,
                "TargetType": "ip",
            },
            logical_id="PrismaTargetGroup"
        )

        # Also implied by LoadBalancerArn; kept as an explicit hint
        listener = self.declare(
            "AWS::ElasticLoadBalancingV2::Listener",
            {
                "DefaultActions": [{"TargetGroupArn": target_group.ref, "Type": "forward"}],
                "LoadBalancerArn": self.load_balancer.ref,
                "Port": 80,
                "Protocol": "HTTP",
            },
            logical_id="PublicLoadBalancerListener",
            depends_on=[self.load_balancer]
        )

        self.declare(
            "AWS::Logs::LogGroup",
            {"LogGroupName": self.name, "RetentionInDays": LOG_RETENTION_DAYS},
            logical_id="PrismaLogs"
        )

        self.declare(
            "AWS::IAM::Role",
            {
                "AssumeRolePolicyDocument": assume_role_policy("ecs.amazonaws.com"),
                "Path": "/",
                "Policies": [allow_policy("ecs-service", ECS_SERVICE_ACTIONS)],
            },
            logical_id="ECSRole"
        )

        execution_role = self.declare(
            "AWS::IAM::Role",
            {
                "AssumeRolePolicyDocument": assume_role_policy("ecs-tasks.amazonaws.com"),
                "Path": "/",
                "Policies": [allow_policy("AmazonECSTaskExecutionRolePolicy", TASK_EXECUTION_ACTIONS)],
            },
            logical_id="ECSTaskExecutionRole"
        )

        self.task_definition = self.declare(
            "AWS::ECS::TaskDefinition",
            {
                "Cpu": FARGATE_CPU,
                "Memory": FARGATE_MEMORY,
                "RequiresCompatibilities": ["FARGATE"],
                "Family": "prisma",
                "NetworkMode": "awsvpc",
                "ExecutionRoleArn": execution_role.ref,
                "TaskRoleArn": execution_role.ref,
                "ContainerDefinitions": [{
                    "Name": CONTAINER_NAME,
                    "Essential": True,
                    "Image": f"prismagraphql/prisma:{PRISMA_VERSION}",
                    "PortMappings": [{"ContainerPort": PRISMA_PORT}],
                    "Environment": [
                        {
                            "Name": "PRISMA_CONFIG",
                            "Value": prisma_config(config, database_endpoint, database_port),
                        },
                        {"Name": "JAVA_OPTS", "Value": JVM_OPTS},
                    ],
                    "Ulimits": [{"Name": "nofile", "HardLimit": 1000000, "SoftLimit": 1000000}],
                    "LogConfiguration": {
                        "LogDriver": "awslogs",
                        "Options": {
                            "awslogs-group": self.name,
                            "awslogs-region": self.region,
                            "awslogs-stream-prefix": "prisma",
                        },
                    },
                }],
            },
            logical_id="TaskDefinition"
        )

        self.service = self.declare(
            "AWS::ECS::Service",
            {
                "Cluster": self.ecs_cluster.ref,
                "ServiceName": "Prisma",
                "LaunchType": "FARGATE",
                "DesiredCount": 1,
                "DeploymentConfiguration": {"MaximumPercent": 200, "MinimumHealthyPercent": 50},
                "TaskDefinition": self.task_definition.ref,
                "LoadBalancers": [{
                    "ContainerName": CONTAINER_NAME,
                    "ContainerPort": PRISMA_PORT,
                    "TargetGroupArn": target_group.ref,
                }],
                "NetworkConfiguration": {
                    "AwsvpcConfiguration": {
                        "AssignPublicIp": "ENABLED",
                        "SecurityGroups": [container_security_group.ref],
                        "Subnets": [subnet.ref for subnet in self.subnets],
                    },
                },
            },
            logical_id="PrismaService",
            depends_on=[listener]
        )

        self.output(
            "ClusterName",
            self.ecs_cluster.ref,
            description="The name of the ECS cluster",
            export_name=f"{self.name}:ClusterName"
        )
        self.output(
            "ExternalUrl",
            Join(parts=["http://", self.load_balancer.get_att("DNSName")]),
            description="The url of the external load balancer",
            export_name=f"{self.name}:ExternalUrl"
        )

    def _declare_network(self, config: DeploymentConfig) -> None:
        self.vpc = self.declare(
            "AWS::EC2::VPC",
            {
                "CidrBlock": SERVICE_VPC_CIDR,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
            },
            logical_id="VPC"
        )

        self.subnets = [
            self.declare(
                "AWS::EC2::Subnet",
                {
                    "VpcId": self.vpc.ref,
                    "AvailabilityZone": zone,
                    "CidrBlock": cidr,
                    "MapPublicIpOnLaunch": True,
                    "Tags": name_tag(f"{DATABASE_NAME} Public Subnet (AZ{index})"),
                },
                logical_id=f"PublicSubnet{index}"
            )
            for index, (zone, cidr) in enumerate(zip(config.zones, SERVICE_SUBNET_CIDRS), start=1)
        ]

        gateway = self.declare("AWS::EC2::InternetGateway", {}, logical_id="InternetGateway")

        attachment = self.declare(
            "AWS::EC2::VPCGatewayAttachment",
            {"InternetGatewayId": gateway.ref, "VpcId": self.vpc.ref},
            logical_id="InternetGatewayAttachment"
        )

        route_table = self.declare(
            "AWS::EC2::RouteTable",
            {"VpcId": self.vpc.ref},
            logical_id="PublicRouteTable"
        )

        self.declare(
            "AWS::EC2::Route",
            {
                "RouteTableId": route_table.ref,
                "DestinationCidrBlock": "0.0.0.0/0",
                "GatewayId": gateway.ref,
            },
            logical_id="PublicRoute",
            depends_on=[attachment]
        )

        for index, subnet in enumerate(self.subnets, start=1):
            self.declare(
                "AWS::EC2::SubnetRouteTableAssociation",
                {"RouteTableId": route_table.ref, "SubnetId": subnet.ref},
                logical_id=f"PublicSubnet{index}RouteTableAssociation"
            )
