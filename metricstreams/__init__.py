"""
Metric Streams - CloudWatch metric streaming to New Relic, provisioned with Terraform.

This package composes the Terraform resource graph (S3 dead-letter bucket,
Kinesis Data Firehose delivery stream, IAM roles and the CloudWatch metric
stream) and provides a CLI to synthesize, deploy and destroy it.
"""

__version__ = "0.1.0"
__author__ = "Metric Streams"
