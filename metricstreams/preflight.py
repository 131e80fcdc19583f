"""
Pre-deployment checks against the AWS account.
"""

import logging
from typing import Any, Dict

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .arns import parse_arn

logger = logging.getLogger(__name__)


class PreflightError(RuntimeError):
    """Raised when a deployment prerequisite is not met."""

    def __init__(self, reason: str, hint: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.hint = hint

    def to_dict(self) -> Dict[str, str]:
        return {"reason": self.reason, "hint": self.hint}


def check_secret(secret_arn: str, region: str) -> Dict[str, Any]:
    """
    Check that the license key secret exists and is readable.

    Only the secret's metadata is fetched; the value is resolved by Terraform.

    Args:
        secret_arn: Secret ARN
        region: Region to query when the ARN does not name one

    Returns:
        Secret metadata summary

    Raises:
        PreflightError: If the secret is missing, deleted or not accessible
    """
    arn = parse_arn(secret_arn)
    if arn is None or arn.service != "secretsmanager":
        raise PreflightError(
            f"Not a Secrets Manager ARN: {secret_arn}",
            "NR_SECRET_ARN must be the complete ARN of the New Relic license key secret"
        )

    client = boto3.client("secretsmanager", region_name=arn.region or region)

    try:
        response = client.describe_secret(SecretId=secret_arn)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code == "ResourceNotFoundException":
            raise PreflightError(f"Secret not found: {secret_arn}",
                                 "Create the secret or fix NR_SECRET_ARN") from e
        if code == "AccessDeniedException":
            raise PreflightError(f"Access denied to secret: {secret_arn}",
                                 "Grant secretsmanager:DescribeSecret and GetSecretValue to the deploying identity") from e
        raise PreflightError(f"Failed to describe secret: {e}") from e
    except BotoCoreError as e:
        raise PreflightError(f"Failed to describe secret: {e}",
                             "Check AWS credentials and region") from e

    if response.get("DeletedDate"):
        raise PreflightError(f"Secret is scheduled for deletion: {secret_arn}",
                             "Restore the secret before deploying")

    logger.info(f"Secret {response.get('Name')} is available")
    return {
        "name": response.get("Name"),
        "arn": response.get("ARN", secret_arn),
        "rotation_enabled": bool(response.get("RotationEnabled")),
    }
