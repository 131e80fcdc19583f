"""
AWS console link builders for stack resources.
"""

import urllib.parse
from typing import Dict

from .stack import DELIVERY_STREAM_NAME, LOG_GROUP_NAME, LOG_STREAM_NAME, METRIC_STREAM_NAME


class ConsoleLinkBuilder:
    """Builds AWS console URLs for the stack's resources."""

    def __init__(self, region: str):
        self.region = region

    def build_log_group_url(self, log_group: str) -> str:
        encoded_group = urllib.parse.quote(log_group, safe='')
        return f"https://console.aws.amazon.com/cloudwatch/home?region={self.region}#logsV2:log-groups/log-group/{encoded_group}"

    def build_log_stream_url(self, log_group: str, log_stream: str) -> str:
        encoded_group = urllib.parse.quote(log_group, safe='')
        encoded_stream = urllib.parse.quote(log_stream, safe='')
        return f"https://console.aws.amazon.com/cloudwatch/home?region={self.region}#logsV2:log-groups/log-group/{encoded_group}/log-events/{encoded_stream}"

    def build_firehose_url(self, stream_name: str) -> str:
        return f"https://console.aws.amazon.com/firehose/home?region={self.region}#/details/{stream_name}/monitoring"

    def build_metric_stream_url(self, stream_name: str) -> str:
        encoded_name = urllib.parse.quote(stream_name, safe='')
        return f"https://console.aws.amazon.com/cloudwatch/home?region={self.region}#metric-streams:streamsList/{encoded_name}"

    def build_s3_console_url(self, bucket_name: str) -> str:
        return f"https://console.aws.amazon.com/s3/buckets/{bucket_name}?region={self.region}"

    def build_stack_links(self, bucket_name: str) -> Dict[str, str]:
        """Links for every console-visible resource in the stack."""
        return {
            "delivery_stream": self.build_firehose_url(DELIVERY_STREAM_NAME),
            "metric_stream": self.build_metric_stream_url(METRIC_STREAM_NAME),
            "delivery_logs": self.build_log_stream_url(LOG_GROUP_NAME, LOG_STREAM_NAME),
            "log_group": self.build_log_group_url(LOG_GROUP_NAME),
            "failed_deliveries": self.build_s3_console_url(bucket_name) + "&prefix=error",
        }

    def build_tail_command(self) -> str:
        """AWS CLI command to tail Firehose delivery errors."""
        return f"aws logs tail {LOG_GROUP_NAME} --region {self.region} --log-stream-names {LOG_STREAM_NAME} --follow"
