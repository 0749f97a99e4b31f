import os
from typing import Dict, List, Optional

import boto3
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Naming
DATABASE_NAME = "prisma-db"

# Database cluster settings
DATABASE_ENGINE = "aurora-mysql"
DATABASE_PORT = 3306
DATABASE_INSTANCE_CLASS = "db.t2.small"
DATABASE_PARAMETER_FAMILY = "aurora-mysql5.7"
DATABASE_CLUSTER_PARAMETER_GROUP = "default.aurora-mysql5.7"
DATABASE_MAX_CONNECTIONS = "300"
BACKUP_RETENTION_DAYS = 35
PREFERRED_BACKUP_WINDOW = "02:00-03:00"
PREFERRED_MAINTENANCE_WINDOW = "mon:03:00-mon:04:00"

# Alarm thresholds
CPU_ALARM_THRESHOLD = 80  # percent
FREEABLE_MEMORY_ALARM_THRESHOLD = 700000000  # bytes
ALARM_PERIOD = 300  # seconds
ALARM_EVALUATION_PERIODS = 2

# Prisma service settings
PRISMA_VERSION = "1.34.0"
PRISMA_PORT = 60000
FARGATE_CPU = "1024"
FARGATE_MEMORY = "2048"
JVM_OPTS = "-Xmx1350m"
LOG_RETENTION_DAYS = 7
LOAD_BALANCER_IDLE_TIMEOUT = "30"  # seconds

# Network layout
DATABASE_VPC_CIDR = "10.192.0.0/16"
DATABASE_SUBNET_CIDRS = ["10.192.12.0/24", "10.192.13.0/24"]
SERVICE_VPC_CIDR = "10.0.0.0/16"
SERVICE_SUBNET_CIDRS = ["10.0.0.0/24", "10.0.1.0/24"]

DEFAULT_REGION = "us-east-2"


def name_tag(value: str) -> List[Dict[str, str]]:
    """Resource tag list carrying a Name"""
    return [{"Key": "Name", "Value": value}]


class DeploymentConfig(BaseModel):
    """Settings sourced from the environment for one deployment"""
    region: str = DEFAULT_REGION
    availability_zones: List[str] = Field(default_factory=list)
    database_username: str
    database_password: str
    prisma_management_secret: str = ""

    @field_validator("region")
    @classmethod
    def region_must_be_known(cls, v):
        regions = boto3.session.Session().get_available_regions("ec2")
        if regions and v not in regions:
            raise ValueError(f"Unknown AWS region: {v}")
        return v

    @field_validator("database_username", "database_password")
    @classmethod
    def credentials_must_not_be_empty(cls, v):
        if not v:
            raise ValueError("Database credentials must not be empty")
        return v

    @property
    def zones(self) -> List[str]:
        """Two availability zones for the public subnets"""
        if self.availability_zones:
            return self.availability_zones
        return [f"{self.region}b", f"{self.region}a"]


def resolve_region() -> str:
    """
    Pick the deployment region

    Order: AWS_REGION, CDK_DEFAULT_REGION, the local boto3 session
    (profile or AWS_DEFAULT_REGION), then the default region.
    """
    region = os.environ.get("AWS_REGION") or os.environ.get("CDK_DEFAULT_REGION")
    if region:
        return region
    return boto3.session.Session().region_name or DEFAULT_REGION


def load_config(env_file: Optional[str] = None) -> DeploymentConfig:
    """
    Load deployment settings from the environment

    Args:
        env_file: Optional .env file; variables already set in the
            environment take precedence

    Returns:
        Validated deployment configuration
    """
    load_dotenv(env_file, override=False)

    zones = os.environ.get("AVAILABILITY_ZONES", "")

    return DeploymentConfig(
        region=resolve_region(),
        availability_zones=[zone.strip() for zone in zones.split(",") if zone.strip()],
        database_username=os.environ.get("DATABASE_USERNAME", ""),
        database_password=os.environ.get("DATABASE_PASSWORD", ""),
        prisma_management_secret=os.environ.get("PRISMA_MANAGEMENT_SECRET", "")
    )
