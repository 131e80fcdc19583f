"""
Stack lifecycle: synthesize, plan, deploy and destroy.
"""

import logging
from pathlib import Path
from typing import Any, Dict

from .arns import is_valid_arn
from .config import StackInputs
from .events import emit_event, EventTypes
from .preflight import PreflightError, check_secret
from .stack import FIREHOSE_ARN_OUTPUT, METRIC_STREAM_ARN_OUTPUT, compose_metric_streams, included_namespaces
from .state import write_inputs_json, write_outputs_json, write_template
from .terraform import get_terraform_outputs, tf_apply, tf_destroy, tf_init, tf_plan

logger = logging.getLogger(__name__)

# Output name -> ARN service it must belong to
EXPECTED_OUTPUTS = {
    FIREHOSE_ARN_OUTPUT: "firehose",
    METRIC_STREAM_ARN_OUTPUT: "cloudwatch",
}


def synth(inputs: StackInputs) -> Path:
    """
    Compose the stack and write main.tf.json into its working directory.

    Args:
        inputs: Resolved stack inputs

    Returns:
        Path of the written template

    Raises:
        ConfigError: If inputs are empty
        GraphError: If the composed graph is inconsistent
    """
    graph = compose_metric_streams(inputs)
    template_file = write_template(inputs.stack_name, graph)
    write_inputs_json(inputs.stack_name, inputs.to_dict())

    emit_event(inputs.stack_name, EventTypes.SYNTH, {
        "template": str(template_file),
        "resources": len([b for b in graph.blocks if b.kind == "resource"]),
        "namespaces": included_namespaces(graph),
    })
    logger.info(f"Synthesized {inputs.stack_name} to {template_file}")
    return template_file


def plan(inputs: StackInputs) -> bool:
    """Synthesize, then run terraform init and plan."""
    synth(inputs)
    return tf_init(inputs.stack_name) and tf_plan(inputs.stack_name)


def validate_outputs(outputs: Dict[str, Any]) -> Dict[str, str]:
    """
    Check the exported ARNs are present and well formed.

    Returns:
        Mapping of output name to problem; empty when all outputs are valid
    """
    problems = {}
    for name, service in EXPECTED_OUTPUTS.items():
        value = outputs.get(name)
        if not value:
            problems[name] = "missing"
        elif not is_valid_arn(str(value), service):
            problems[name] = f"not a valid {service} ARN: {value}"
    return problems


def deploy(inputs: StackInputs, preflight: bool = True) -> Dict[str, Any]:
    """
    Deploy the stack.

    Args:
        inputs: Resolved stack inputs
        preflight: Check the license key secret with boto3 before running Terraform

    Returns:
        Deployment result with status and outputs
    """
    stack_name = inputs.stack_name
    synth(inputs)

    if preflight:
        try:
            secret = check_secret(inputs.secret_arn, inputs.region)
        except PreflightError as e:
            emit_event(stack_name, EventTypes.ERROR, e.to_dict())
            return {"stack": stack_name, "status": "failed", "error": e.reason, "hint": e.hint}
        emit_event(stack_name, EventTypes.PREFLIGHT_OK, {"secret": secret["name"]})

    for step_name, step in (("init", tf_init), ("plan", tf_plan), ("apply", tf_apply)):
        if not step(stack_name):
            return {
                "stack": stack_name,
                "status": "failed",
                "error": f"terraform {step_name} failed",
                "hint": "Check terraform.log for details"
            }

    outputs = get_terraform_outputs(stack_name)
    problems = validate_outputs(outputs)
    if problems:
        emit_event(stack_name, EventTypes.ERROR, {
            "reason": "Stack outputs are missing or invalid",
            "hint": "Run terraform output in the stack directory",
            "problems": problems
        })
        return {"stack": stack_name, "status": "failed", "error": "invalid outputs", "problems": problems}

    write_outputs_json(stack_name, outputs)
    emit_event(stack_name, EventTypes.OUTPUTS, outputs)
    logger.info(f"Deployed {stack_name}")

    return {"stack": stack_name, "status": "success", "outputs": outputs}


def destroy(stack_name: str) -> bool:
    """
    Destroy the stack's resources.

    The dead-letter bucket is emptied and removed along with everything else.
    """
    logger.info(f"Destroying {stack_name}")
    if not tf_init(stack_name):
        return False
    return tf_destroy(stack_name)
