"""
Resource composition for the New Relic metric streams stack.

Builds the full resource graph from two inputs: the dead-letter bucket name
and the ARN of the Secrets Manager secret holding the New Relic license key.
CloudWatch streams metrics for the included namespaces into a Firehose
delivery stream, which forwards them to New Relic over HTTPS and spills
failed batches into the bucket.
"""

import logging
from typing import Any, Dict, List

from .config import ConfigError, StackInputs
from .graph import ResourceGraph
from .tags import base_tags

logger = logging.getLogger(__name__)

NEW_RELIC_ENDPOINT_NAME = "New Relic"
NEW_RELIC_ENDPOINT_URL = "https://aws-api.newrelic.com/cloudwatch-metrics/v1"

DELIVERY_STREAM_NAME = "new-relic-delivery-stream"
METRIC_STREAM_NAME = "new-relic-metric-stream"
FIREHOSE_ROLE_NAME = "new-relic-metric-streams-integration-role"
METRIC_STREAM_ROLE_NAME = "cloudwatch-metric-streams-role"
LOG_GROUP_NAME = "new-relic-metric-streams-integration"
LOG_STREAM_NAME = "newrelic-delivery-stream"
LOG_RETENTION_DAYS = 90

BUFFERING_INTERVAL_SECONDS = 60
BUFFERING_SIZE_MB = 1
RETRY_DURATION_SECONDS = 60
OUTPUT_FORMAT = "opentelemetry0.7"

FIREHOSE_PRINCIPAL = "firehose.amazonaws.com"
METRIC_STREAM_PRINCIPAL = "streams.metrics.cloudwatch.amazonaws.com"

# Add to this list if more namespaces are required to be included
INCLUDED_NAMESPACES = [
    "AWS/NetworkELB",
    "AWS/ApplicationELB",
    "AWS/ApiGateway",
    "AWS/ECS",
    "AWS/Cognito",
    "AWS/DynamoDB",
    "AWS/Lambda",
    "AWS/SQS",
    "AWS/ElastiCache",
]

BUCKET_ACTIONS = [
    "s3:AbortMultipartUpload",
    "s3:GetBucketLocation",
    "s3:GetObject",
    "s3:ListBucket",
    "s3:ListBucketMultipartUploads",
    "s3:PutObject",
]
LOG_ACTIONS = ["logs:PutLogEvents"]
FIREHOSE_ACTIONS = ["firehose:PutRecord", "firehose:PutRecordBatch"]

FIREHOSE_ARN_OUTPUT = "KinesisDataFirehoseArn"
METRIC_STREAM_ARN_OUTPUT = "CloudwatchMetricStreamArn"


def _assume_role_document(principal: str) -> Dict[str, Any]:
    return {
        "statement": [{
            "effect": "Allow",
            "actions": ["sts:AssumeRole"],
            "principals": [{"type": "Service", "identifiers": [principal]}],
        }]
    }


def _allow_document(actions: List[str], resources: List[Any]) -> Dict[str, Any]:
    return {
        "statement": [{
            "effect": "Allow",
            "actions": list(actions),
            "resources": list(resources),
        }]
    }


def compose_metric_streams(inputs: StackInputs) -> ResourceGraph:
    """
    Compose the metric streams resource graph.

    Args:
        inputs: Resolved stack inputs

    Returns:
        Validated ResourceGraph with the Firehose and metric stream ARN outputs

    Raises:
        ConfigError: If the bucket name or secret ARN is empty
    """
    if not inputs.bucket_name or not inputs.bucket_name.strip():
        raise ConfigError("Bucket name must not be empty")
    if not inputs.secret_arn or not inputs.secret_arn.strip():
        raise ConfigError("Secret ARN must not be empty")

    logger.info(f"Composing {inputs.stack_name} in {inputs.region} (bucket: {inputs.bucket_name})")

    graph = ResourceGraph(
        region=inputs.region,
        tags=base_tags(inputs.stack_name, inputs.tags),
    )

    # S3 bucket for data that failed to be sent to New Relic
    bucket = graph.add_resource("aws_s3_bucket", "backup", {
        "bucket": inputs.bucket_name,
        "force_destroy": True,
    })
    graph.add_resource("aws_s3_bucket_public_access_block", "backup", {
        "bucket": bucket.ref("id"),
        "block_public_acls": True,
        "block_public_policy": True,
        "ignore_public_acls": True,
        "restrict_public_buckets": True,
    })

    # Firehose role
    firehose_trust = graph.add_data("aws_iam_policy_document", "firehose_assume",
                                    _assume_role_document(FIREHOSE_PRINCIPAL))
    firehose_role = graph.add_resource("aws_iam_role", "firehose", {
        "name": FIREHOSE_ROLE_NAME,
        "assume_role_policy": firehose_trust.ref("json"),
    })

    # Log group and log stream for Firehose delivery diagnostics
    log_group = graph.add_resource("aws_cloudwatch_log_group", "firehose", {
        "name": LOG_GROUP_NAME,
        "retention_in_days": LOG_RETENTION_DAYS,
    })
    log_stream = graph.add_resource("aws_cloudwatch_log_stream", "firehose", {
        "name": LOG_STREAM_NAME,
        "log_group_name": log_group.ref("name"),
    })

    bucket_arn = bucket.ref("arn")
    s3_policy = graph.add_data("aws_iam_policy_document", "firehose_s3",
                               _allow_document(BUCKET_ACTIONS, [bucket_arn, bucket_arn.with_suffix("/*")]))
    graph.add_resource("aws_iam_role_policy", "firehose_s3", {
        "name": "S3Policy",
        "role": firehose_role.ref("id"),
        "policy": s3_policy.ref("json"),
    })

    logs_policy = graph.add_data("aws_iam_policy_document", "firehose_logs",
                                 _allow_document(LOG_ACTIONS, [log_group.ref("arn").with_suffix(":log-stream:*")]))
    graph.add_resource("aws_iam_role_policy", "firehose_logs", {
        "name": "CloudwatchPolicy",
        "role": firehose_role.ref("id"),
        "policy": logs_policy.ref("json"),
    })

    # License key, resolved by Terraform at plan time
    license_key = graph.add_data("aws_secretsmanager_secret_version", "nr_license_key", {
        "secret_id": inputs.secret_arn,
    })

    delivery_stream = graph.add_resource("aws_kinesis_firehose_delivery_stream", "newrelic", {
        "name": DELIVERY_STREAM_NAME,
        "destination": "http_endpoint",
        "http_endpoint_configuration": {
            "name": NEW_RELIC_ENDPOINT_NAME,
            "url": NEW_RELIC_ENDPOINT_URL,
            "access_key": license_key.ref("secret_string"),
            "buffering_interval": BUFFERING_INTERVAL_SECONDS,
            "buffering_size": BUFFERING_SIZE_MB,
            "retry_duration": RETRY_DURATION_SECONDS,
            "role_arn": firehose_role.ref("arn"),
            "s3_backup_mode": "FailedDataOnly",
            "request_configuration": {
                "content_encoding": "GZIP",
            },
            "cloudwatch_logging_options": {
                "enabled": True,
                "log_group_name": log_group.ref("name"),
                "log_stream_name": log_stream.ref("name"),
            },
            "s3_configuration": {
                "bucket_arn": bucket_arn,
                "role_arn": firehose_role.ref("arn"),
                "compression_format": "UNCOMPRESSED",
                "prefix": "delivery",
                "error_output_prefix": "error",
            },
        },
    })

    # Metric stream role
    metric_stream_trust = graph.add_data("aws_iam_policy_document", "metric_stream_assume",
                                         _assume_role_document(METRIC_STREAM_PRINCIPAL))
    metric_stream_role = graph.add_resource("aws_iam_role", "metric_stream", {
        "name": METRIC_STREAM_ROLE_NAME,
        "assume_role_policy": metric_stream_trust.ref("json"),
    })
    firehose_policy = graph.add_data("aws_iam_policy_document", "metric_stream_firehose",
                                     _allow_document(FIREHOSE_ACTIONS, [delivery_stream.ref("arn")]))
    graph.add_resource("aws_iam_role_policy", "metric_stream_firehose", {
        "name": "Policy",
        "role": metric_stream_role.ref("id"),
        "policy": firehose_policy.ref("json"),
    })

    metric_stream = graph.add_resource("aws_cloudwatch_metric_stream", "newrelic", {
        "name": METRIC_STREAM_NAME,
        "firehose_arn": delivery_stream.ref("arn"),
        "role_arn": metric_stream_role.ref("arn"),
        "output_format": OUTPUT_FORMAT,
        "include_filter": [{"namespace": ns} for ns in INCLUDED_NAMESPACES],
    })

    graph.add_output(FIREHOSE_ARN_OUTPUT, delivery_stream.ref("arn"),
                     description="Kinesis Data Firehose ARN")
    graph.add_output(METRIC_STREAM_ARN_OUTPUT, metric_stream.ref("arn"),
                     description="Cloudwatch Metric Stream ARN")

    graph.validate()
    logger.debug(f"Composed {len(graph.blocks)} blocks")
    return graph


def included_namespaces(graph: ResourceGraph) -> List[str]:
    """Namespaces selected by the graph's metric stream."""
    streams = graph.blocks_of_type("aws_cloudwatch_metric_stream")
    return [f["namespace"] for s in streams for f in s.body.get("include_filter", [])]
