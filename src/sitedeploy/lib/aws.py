"""boto3 client construction from the worker configuration."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig

from sitedeploy.models.config import AWSConfig

# Long-poll receives hold the connection for up to 20s
READ_TIMEOUT_SECONDS = 30


def create_client(
    aws: AWSConfig, service: str, *, max_pool_connections: int = 10
) -> Any:
    """Create a boto3 client for a service from explicit configuration.

    Credentials fall back to the standard boto3 chain (profile, instance
    role, ...) when not set in the configuration.
    """
    kwargs: dict[str, Any] = {
        "region_name": aws.region,
        "config": BotoConfig(
            read_timeout=READ_TIMEOUT_SECONDS,
            max_pool_connections=max_pool_connections,
            retries={"mode": "standard"},
        ),
    }
    if aws.access_key_id and aws.secret_access_key:
        kwargs["aws_access_key_id"] = aws.access_key_id
        kwargs["aws_secret_access_key"] = aws.secret_access_key
    if aws.endpoint_url:
        kwargs["endpoint_url"] = aws.endpoint_url
    return boto3.client(service, **kwargs)
