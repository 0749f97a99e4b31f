"""
Unit tests for deployment configuration
"""
import os

import pytest
from pydantic import ValidationError

from infrastructure.config import (
    DEFAULT_REGION,
    DeploymentConfig,
    load_config,
    resolve_region,
)


def test_load_config_from_environment(deployment_env, mocker):
    mocker.patch.dict(os.environ, {"AVAILABILITY_ZONES": "us-east-2a, us-east-2c"})

    config = load_config()

    assert config.region == "us-east-2"
    assert config.database_username == "prisma"
    assert config.prisma_management_secret == "management-secret"
    assert config.zones == ["us-east-2a", "us-east-2c"]


def test_default_zones_follow_region(deployment_config):
    assert deployment_config.zones == ["us-east-2b", "us-east-2a"]


def test_env_file_fills_missing_settings(tmp_path, mocker):
    mocker.patch.dict(os.environ, {"AWS_REGION": "us-west-2"}, clear=True)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "DATABASE_USERNAME=admin\n"
        "DATABASE_PASSWORD=from-file\n"
        "AWS_REGION=eu-west-1\n"
    )

    config = load_config(str(env_file))

    assert config.database_username == "admin"
    assert config.database_password == "from-file"
    # Variables already set win over the file
    assert config.region == "us-west-2"


def test_missing_credentials_rejected(mocker):
    mocker.patch.dict(os.environ, {"AWS_REGION": "us-east-2"}, clear=True)

    with pytest.raises(ValidationError):
        load_config()


def test_unknown_region_rejected():
    with pytest.raises(ValidationError):
        DeploymentConfig(
            region="mars-north-1",
            database_username="prisma",
            database_password="secret"
        )


def test_region_falls_back_to_boto3_session(mocker):
    mocker.patch.dict(os.environ, {}, clear=True)
    session = mocker.patch("infrastructure.config.boto3.session.Session")
    session.return_value.region_name = "eu-central-1"

    assert resolve_region() == "eu-central-1"


def test_region_defaults_without_session_region(mocker):
    mocker.patch.dict(os.environ, {}, clear=True)
    session = mocker.patch("infrastructure.config.boto3.session.Session")
    session.return_value.region_name = None

    assert resolve_region() == DEFAULT_REGION


def test_cdk_default_region_used_when_aws_region_unset(mocker):
    mocker.patch.dict(os.environ, {"CDK_DEFAULT_REGION": "ap-southeast-2"}, clear=True)

    assert resolve_region() == "ap-southeast-2"
