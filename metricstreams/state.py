"""
Local working-directory state for stacks.
"""

import json
import os
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .graph import ResourceGraph

TEMPLATE_FILE = "main.tf.json"
INPUTS_FILE = "inputs.json"
OUTPUTS_FILE = "outputs.json"

STACK_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,127}$")


def is_valid_stack_name(stack_name: str) -> bool:
    """
    Validate stack name format: a letter followed by letters, digits or hyphens.

    Args:
        stack_name: Name to validate

    Returns:
        bool: True if valid format
    """
    return bool(stack_name) and bool(STACK_NAME_PATTERN.match(stack_name))


def get_home() -> Path:
    """
    Get the Metric Streams home directory.

    Returns:
        Path: Home directory
    """
    home = os.environ.get("METRICSTREAMS_HOME", ".metricstreams")
    return Path(home).resolve()


def get_stack_dir(stack_name: str) -> Path:
    """
    Get the working directory for a specific stack.

    Args:
        stack_name: Stack name

    Returns:
        Path: Stack directory

    Raises:
        ValueError: If stack name is invalid
    """
    if not is_valid_stack_name(stack_name):
        raise ValueError(f"Invalid stack name: {stack_name}")

    return get_home() / stack_name


def create_stack_dir(stack_name: str) -> Path:
    """
    Create stack directory and return its path.

    Args:
        stack_name: Stack name

    Returns:
        Path: Created stack directory
    """
    stack_dir = get_stack_dir(stack_name)
    stack_dir.mkdir(parents=True, exist_ok=True)
    return stack_dir


def write_template(stack_name: str, graph: ResourceGraph) -> Path:
    """
    Render the graph into the stack directory as main.tf.json.

    Args:
        stack_name: Stack name
        graph: Composed resource graph

    Returns:
        Path: Written template file
    """
    template_file = create_stack_dir(stack_name) / TEMPLATE_FILE

    with open(template_file, "w") as f:
        f.write(graph.to_json() + "\n")

    return template_file


def read_template(stack_name: str) -> Optional[Dict[str, Any]]:
    """Read the synthesized template, or None if the stack was never synthesized."""
    template_file = get_stack_dir(stack_name) / TEMPLATE_FILE

    if not template_file.exists():
        return None

    with open(template_file, "r") as f:
        return json.load(f)


def write_inputs_json(stack_name: str, inputs: Dict[str, Any]) -> None:
    """
    Record the inputs a stack was synthesized with.

    Args:
        stack_name: Stack name
        inputs: Stack inputs (the secret ARN, never the secret value)
    """
    data = dict(inputs)
    data["synthesized_at"] = datetime.now().isoformat()

    with open(create_stack_dir(stack_name) / INPUTS_FILE, "w") as f:
        json.dump(data, f, indent=2)


def read_inputs_json(stack_name: str) -> Dict[str, Any]:
    """
    Read the recorded stack inputs.

    Raises:
        FileNotFoundError: If the stack was never synthesized
    """
    inputs_file = get_stack_dir(stack_name) / INPUTS_FILE

    if not inputs_file.exists():
        raise FileNotFoundError(f"Stack {stack_name} not found")

    with open(inputs_file, "r") as f:
        return json.load(f)


def write_outputs_json(stack_name: str, outputs: Dict[str, Any]) -> None:
    """
    Write Terraform outputs to outputs.json.

    Args:
        stack_name: Stack name
        outputs: Flattened Terraform outputs (name -> value)
    """
    with open(create_stack_dir(stack_name) / OUTPUTS_FILE, "w") as f:
        json.dump(outputs, f, indent=2)


def read_outputs_json(stack_name: str) -> Optional[Dict[str, Any]]:
    """
    Read Terraform outputs from outputs.json.

    Returns:
        Dict: Outputs or None if not found
    """
    outputs_file = get_stack_dir(stack_name) / OUTPUTS_FILE

    if not outputs_file.exists():
        return None

    with open(outputs_file, "r") as f:
        return json.load(f)


def list_stacks() -> List[str]:
    """List all synthesized stack names."""
    home = get_home()

    if not home.exists():
        return []

    return sorted(
        item.name for item in home.iterdir()
        if item.is_dir() and is_valid_stack_name(item.name) and (item / TEMPLATE_FILE).exists()
    )


def stack_exists(stack_name: str) -> bool:
    stack_dir = get_stack_dir(stack_name)
    return stack_dir.exists() and (stack_dir / INPUTS_FILE).exists()


def cleanup_stack(stack_name: str) -> None:
    """
    Remove stack directory and all its contents, Terraform state included.

    Args:
        stack_name: Stack name
    """
    stack_dir = get_stack_dir(stack_name)

    if stack_dir.exists():
        shutil.rmtree(stack_dir)
