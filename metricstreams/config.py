"""
Stack input resolution: CLI context, environment variables and context.json.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .state import is_valid_stack_name

logger = logging.getLogger(__name__)

BUCKET_NAME_KEY = "BACKUP_BUCKET_NAME"
SECRET_ARN_KEY = "NR_SECRET_ARN"
REQUIRED_KEYS = [BUCKET_NAME_KEY, SECRET_ARN_KEY]

DEFAULT_STACK_NAME = "NewRelicMetricStreamInfra"
DEFAULT_REGION = "us-west-2"
CONTEXT_FILE = "context.json"


class ConfigError(ValueError):
    """Raised when stack inputs are missing or malformed."""


@dataclass
class StackInputs:
    """Resolved inputs for one stack."""
    bucket_name: str
    secret_arn: str
    region: str = DEFAULT_REGION
    stack_name: str = DEFAULT_STACK_NAME
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            BUCKET_NAME_KEY: self.bucket_name,
            SECRET_ARN_KEY: self.secret_arn,
            "region": self.region,
            "stack_name": self.stack_name,
            "tags": dict(self.tags),
        }


def parse_context_pairs(pairs: List[str]) -> Dict[str, str]:
    """
    Parse "KEY=VALUE" strings given with -c/--context.

    Raises:
        ConfigError: If a pair is not in KEY=VALUE form or the key is empty
    """
    context = {}

    for pair in pairs:
        if "=" not in pair:
            raise ConfigError(f"Invalid context format: {pair}. Expected 'KEY=VALUE'")

        key, value = pair.split("=", 1)
        if not key.strip():
            raise ConfigError(f"Invalid context format: {pair}. Key must not be empty")

        context[key.strip()] = value.strip()

    return context


def load_context_file(path: Optional[Path] = None) -> Dict[str, str]:
    """
    Read the "context" object from a context.json file.

    A missing file yields an empty context.
    """
    context_file = path or Path(CONTEXT_FILE)
    if not context_file.exists():
        return {}

    try:
        with open(context_file, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse {context_file}: {e}") from e

    context = data.get("context", {}) if isinstance(data, dict) else {}
    if not isinstance(context, dict):
        raise ConfigError(f"'context' in {context_file} must be an object")

    logger.debug(f"Loaded {len(context)} context values from {context_file}")
    return {str(k): str(v) for k, v in context.items() if v is not None}


def resolve_region(region: Optional[str] = None) -> str:
    """Region from the explicit value, AWS_REGION, AWS_DEFAULT_REGION, then the default."""
    return (
        region
        or os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
        or DEFAULT_REGION
    )


def load_inputs(
    context_pairs: Optional[List[str]] = None,
    region: Optional[str] = None,
    stack_name: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None,
    context_file: Optional[Path] = None,
) -> StackInputs:
    """
    Resolve stack inputs.

    Precedence for each required key: -c KEY=VALUE, then environment
    variable, then context.json.

    Raises:
        ConfigError: If a required input is missing or empty, or the stack name is invalid
    """
    stack_name = stack_name or DEFAULT_STACK_NAME
    if not is_valid_stack_name(stack_name):
        raise ConfigError(
            f"Invalid stack name: {stack_name}. "
            f"Use a letter followed by letters, digits or hyphens"
        )

    file_context = load_context_file(context_file)
    cli_context = parse_context_pairs(context_pairs or [])

    values = {}
    for key in REQUIRED_KEYS:
        value = cli_context.get(key) or os.environ.get(key) or file_context.get(key)
        if not value or not value.strip():
            raise ConfigError(
                f"Missing required input {key}. "
                f"Pass it with -c {key}=..., set the {key} environment variable "
                f"or add it to {CONTEXT_FILE}"
            )
        values[key] = value.strip()

    return StackInputs(
        bucket_name=values[BUCKET_NAME_KEY],
        secret_arn=values[SECRET_ARN_KEY],
        region=resolve_region(region),
        stack_name=stack_name,
        tags=dict(tags or {}),
    )
