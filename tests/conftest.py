"""
Pytest fixtures for testing stackgraph
"""
import pytest

from stackgraph import App, MaterializedState, Stack
from infrastructure.config import DeploymentConfig


@pytest.fixture(scope="function")
def deployment_env(monkeypatch):
    """Deployment settings as the CLI reads them from the environment"""
    monkeypatch.setenv("DATABASE_USERNAME", "prisma")
    monkeypatch.setenv("DATABASE_PASSWORD", "prisma-password")
    monkeypatch.setenv("PRISMA_MANAGEMENT_SECRET", "management-secret")
    monkeypatch.setenv("AWS_REGION", "us-east-2")
    monkeypatch.setenv("AVAILABILITY_ZONES", "")
    monkeypatch.setenv("CDK_DEFAULT_REGION", "")


@pytest.fixture(scope="function")
def deployment_config():
    """Deployment configuration for the default region"""
    return DeploymentConfig(
        region="us-east-2",
        database_username="prisma",
        database_password="prisma-password",
        prisma_management_secret="management-secret"
    )


@pytest.fixture(scope="function")
def materialized_state():
    """Attribute values reported after the database stack was applied"""
    return MaterializedState(stacks={
        "DatabaseStack": {
            "DatabaseCluster": {
                "Ref": "prisma-db-cluster",
                "Endpoint.Address": "prisma-db.cluster-abc123.us-east-2.rds.amazonaws.com",
                "Endpoint.Port": "3306"
            }
        },
        "Data": {
            "cluster": {"address": "data.cluster.local"}
        }
    })


@pytest.fixture(scope="function")
def app():
    """Composition root synthesizing one stack at a time"""
    return App(max_workers=1)


@pytest.fixture(scope="function")
def data_stack(app):
    """Producer stack exporting a cluster endpoint"""
    stack = Stack(app, "Data")
    cluster = stack.declare("AWS::RDS::DBCluster", {"Engine": "aurora-mysql"}, logical_id="cluster")
    stack.output("endpoint", cluster.get_att("address"))
    return stack


@pytest.fixture(scope="function")
def chain_stack():
    """Standalone stack with a three-node reference chain"""
    stack = Stack(name="Chain")
    vpc = stack.declare("AWS::EC2::VPC", {"CidrBlock": "10.0.0.0/16"}, logical_id="Vpc")
    subnet = stack.declare(
        "AWS::EC2::Subnet",
        {"VpcId": vpc.ref, "CidrBlock": "10.0.0.0/24"},
        logical_id="Subnet"
    )
    stack.declare(
        "AWS::EC2::SubnetRouteTableAssociation",
        {"SubnetId": subnet.ref},
        logical_id="Association"
    )
    return stack
