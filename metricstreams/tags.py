"""
Tagging utilities for consistent resource tagging across stacks.
"""

from typing import Dict, List, Optional

from .config import ConfigError

PROJECT_TAG = "metricstreams"


def base_tags(stack_name: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Generate base tags for a stack.

    The values must be stable between runs: they end up in the provider's
    default_tags and any change shows up as a diff on every resource.

    Args:
        stack_name: Stack name
        extra: Additional tags to include

    Returns:
        Dictionary of tags to apply to resources
    """
    tags = {
        "project": PROJECT_TAG,
        "stack": stack_name,
        "managed_by": "terraform",
    }

    if extra:
        tags.update(extra)

    return tags


def parse_user_tags(tag_strings: List[str]) -> Dict[str, str]:
    """
    Parse user-provided tag strings in format "key=value".

    Args:
        tag_strings: List of tag strings in "key=value" format

    Returns:
        Dictionary of parsed tags

    Raises:
        ConfigError: If tag string format is invalid
    """
    tags = {}

    for tag_str in tag_strings:
        if "=" not in tag_str:
            raise ConfigError(f"Invalid tag format: {tag_str}. Expected 'key=value'")

        key, value = tag_str.split("=", 1)
        if not key.strip() or not value.strip():
            raise ConfigError(f"Invalid tag format: {tag_str}. Key and value must not be empty")

        tags[key.strip()] = value.strip()

    return tags

