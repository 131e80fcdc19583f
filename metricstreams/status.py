"""
Live status of the deployed delivery stream and metric stream.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .stack import DELIVERY_STREAM_NAME, METRIC_STREAM_NAME

logger = logging.getLogger(__name__)

HEALTHY_DELIVERY_STATES = {"ACTIVE"}
HEALTHY_METRIC_STREAM_STATES = {"running"}


@dataclass
class StreamStatus:
    """Status of the two streaming resources, as reported by AWS."""
    delivery_stream_state: Optional[str] = None
    metric_stream_state: Optional[str] = None
    delivery_stream_arn: Optional[str] = None
    metric_stream_arn: Optional[str] = None
    included_namespaces: List[str] = field(default_factory=list)
    last_update: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return (
            self.delivery_stream_state in HEALTHY_DELIVERY_STATES
            and self.metric_stream_state in HEALTHY_METRIC_STREAM_STATES
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "delivery_stream": {
                "state": self.delivery_stream_state,
                "arn": self.delivery_stream_arn,
            },
            "metric_stream": {
                "state": self.metric_stream_state,
                "arn": self.metric_stream_arn,
                "included_namespaces": self.included_namespaces,
                "last_update": self.last_update,
            },
            "errors": self.errors,
        }


def get_stream_status(region: str,
                      delivery_stream_name: str = DELIVERY_STREAM_NAME,
                      metric_stream_name: str = METRIC_STREAM_NAME) -> StreamStatus:
    """
    Query Firehose and CloudWatch for the current state of both streams.

    Lookup failures are recorded on the result rather than raised.

    Args:
        region: AWS region
        delivery_stream_name: Firehose delivery stream name
        metric_stream_name: CloudWatch metric stream name

    Returns:
        StreamStatus
    """
    status = StreamStatus()

    try:
        firehose = boto3.client("firehose", region_name=region)
        description = firehose.describe_delivery_stream(
            DeliveryStreamName=delivery_stream_name
        )["DeliveryStreamDescription"]
        status.delivery_stream_state = description.get("DeliveryStreamStatus")
        status.delivery_stream_arn = description.get("DeliveryStreamARN")
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to describe delivery stream {delivery_stream_name}: {e}")
        status.errors.append(f"delivery stream: {e}")

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=region)
        stream = cloudwatch.get_metric_stream(Name=metric_stream_name)
        status.metric_stream_state = stream.get("State")
        status.metric_stream_arn = stream.get("Arn")
        status.included_namespaces = [f["Namespace"] for f in stream.get("IncludeFilters", [])]
        if stream.get("LastUpdateDate"):
            status.last_update = stream["LastUpdateDate"].isoformat()
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to get metric stream {metric_stream_name}: {e}")
        status.errors.append(f"metric stream: {e}")

    return status
