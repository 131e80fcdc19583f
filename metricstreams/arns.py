"""
ARN parsing helpers for stack outputs.
"""

import re
from dataclasses import dataclass
from typing import Optional

# arn:partition:service:region:account-id:resource
ARN_PATTERN = re.compile(
    r"^arn:(?P<partition>aws[a-zA-Z-]*):(?P<service>[a-z0-9-]+):"
    r"(?P<region>[a-z0-9-]*):(?P<account>\d{12}|):(?P<resource>.+)$"
)


@dataclass
class Arn:
    """Parsed Amazon Resource Name."""
    partition: str
    service: str
    region: str
    account: str
    resource: str

    @property
    def resource_name(self) -> str:
        """Last path segment of the resource, e.g. the stream name."""
        return re.split(r"[/:]", self.resource)[-1]


def parse_arn(value: str) -> Optional[Arn]:
    """
    Parse an ARN string.

    Args:
        value: Candidate ARN

    Returns:
        Parsed Arn, or None if the value is not a syntactically valid ARN
    """
    if not value:
        return None

    match = ARN_PATTERN.match(value.strip())
    if not match:
        return None

    return Arn(**match.groupdict())


def is_valid_arn(value: str, service: Optional[str] = None) -> bool:
    """Check ARN syntax, optionally requiring a specific service."""
    arn = parse_arn(value)
    if arn is None:
        return False
    return service is None or arn.service == service
