from typing import Optional

from stackgraph import App, Stack
from infrastructure.config import (
    BACKUP_RETENTION_DAYS,
    DATABASE_CLUSTER_PARAMETER_GROUP,
    DATABASE_ENGINE,
    DATABASE_INSTANCE_CLASS,
    DATABASE_MAX_CONNECTIONS,
    DATABASE_NAME,
    DATABASE_PARAMETER_FAMILY,
    DATABASE_PORT,
    DATABASE_SUBNET_CIDRS,
    DATABASE_VPC_CIDR,
    PREFERRED_BACKUP_WINDOW,
    PREFERRED_MAINTENANCE_WINDOW,
    DeploymentConfig,
    name_tag,
)
from infrastructure.monitoring import declare_database_alarms


class DatabaseStack(Stack):
    """Aurora MySQL cluster in its own public VPC, with alarms and outputs"""

    def __init__(
        self,
        scope: Optional[App],
        name: str,
        config: DeploymentConfig,
        **kwargs
    ) -> None:
        super().__init__(scope, name, region=config.region, **kwargs)

        self.alarm_topic = self.declare(
            "AWS::SNS::Topic",
            {"DisplayName": "Stack Alarm Topic"},
            logical_id="StackAlarmTopic"
        )

        self.vpc = self.declare(
            "AWS::EC2::VPC",
            {
                "CidrBlock": DATABASE_VPC_CIDR,
                "EnableDnsHostnames": True,
                "EnableDnsSupport": True,
            },
            logical_id="VPC"
        )

        # Public subnets, one per availability zone
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
            for index, (zone, cidr) in enumerate(zip(config.zones, DATABASE_SUBNET_CIDRS), start=1)
        ]

        subnet_group = self.declare(
            "AWS::RDS::DBSubnetGroup",
            {
                "DBSubnetGroupDescription": "CloudFormation managed DB subnet group",
                "SubnetIds": [subnet.ref for subnet in self.subnets],
            },
            logical_id="DatabaseSubnetGroup"
        )

        parameter_group = self.declare(
            "AWS::RDS::DBParameterGroup",
            {
                "Description": "Prisma DB parameter group",
                "Family": DATABASE_PARAMETER_FAMILY,
                "Parameters": {"max_connections": DATABASE_MAX_CONNECTIONS},
            },
            logical_id="ParameterGroup"
        )

        security_group = self.declare(
            "AWS::EC2::SecurityGroup",
            {
                "VpcId": self.vpc.ref,
                "GroupDescription": "Access to database",
                "SecurityGroupIngress": [{
                    "CidrIp": "0.0.0.0/0",
                    "FromPort": DATABASE_PORT,
                    "ToPort": DATABASE_PORT,
                    "IpProtocol": "tcp",
                }],
                "Tags": name_tag(f"{DATABASE_NAME}-security-group"),
            },
            logical_id="DatabaseSecurityGroup"
        )

        self.cluster = self.declare(
            "AWS::RDS::DBCluster",
            {
                "MasterUsername": config.database_username,
                "MasterUserPassword": config.database_password,
                "Engine": DATABASE_ENGINE,
                "BackupRetentionPeriod": BACKUP_RETENTION_DAYS,
                "PreferredBackupWindow": PREFERRED_BACKUP_WINDOW,
                "PreferredMaintenanceWindow": PREFERRED_MAINTENANCE_WINDOW,
                "DBSubnetGroupName": subnet_group.ref,
                "VpcSecurityGroupIds": [security_group.ref],
                "DBClusterParameterGroupName": DATABASE_CLUSTER_PARAMETER_GROUP,
            },
            logical_id="DatabaseCluster"
        )

        self.instance = self.declare(
            "AWS::RDS::DBInstance",
            {
                "Engine": DATABASE_ENGINE,
                "DBClusterIdentifier": self.cluster.ref,
                "DBInstanceClass": DATABASE_INSTANCE_CLASS,
                "DBSubnetGroupName": subnet_group.ref,
                "DBParameterGroupName": parameter_group.ref,
                "PubliclyAccessible": True,
                "DBInstanceIdentifier": DATABASE_NAME,
            },
            logical_id="DatabaseInstance"
        )

        self.alarms = declare_database_alarms(self, self.instance, self.alarm_topic)

        self._declare_routing()

        self.output(
            "DatabaseEndpoint",
            self.cluster.get_att("Endpoint.Address"),
            description="The database endpoint"
        )
        self.output(
            "DatabasePort",
            self.cluster.get_att("Endpoint.Port"),
            description="The database port"
        )

    def _declare_routing(self) -> None:
        gateway = self.declare(
            "AWS::EC2::InternetGateway",
            {"Tags": name_tag(DATABASE_NAME)},
            logical_id="InternetGateway"
        )

        attachment = self.declare(
            "AWS::EC2::VPCGatewayAttachment",
            {"InternetGatewayId": gateway.ref, "VpcId": self.vpc.ref},
            logical_id="InternetGatewayAttachment"
        )

        route_table = self.declare(
            "AWS::EC2::RouteTable",
            {
                "VpcId": self.vpc.ref,
                "Tags": name_tag(f"{DATABASE_NAME} Public Routes"),
            },
            logical_id="PublicRouteTable"
        )

        # The route needs the gateway attached, which no property expresses
        route = self.declare(
            "AWS::EC2::Route",
            {
                "RouteTableId": route_table.ref,
                "DestinationCidrBlock": "0.0.0.0/0",
                "GatewayId": gateway.ref,
            },
            logical_id="DefaultPublicRoute"
        )
        self.add_dependency(route, attachment)

        for index, subnet in enumerate(self.subnets, start=1):
            self.declare(
                "AWS::EC2::SubnetRouteTableAssociation",
                {"RouteTableId": route_table.ref, "SubnetId": subnet.ref},
                logical_id=f"PublicSubnet{index}RouteTableAssociation"
            )
