"""
Terraform wrapper functions for stack provisioning.
"""

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Tuple

from .state import get_stack_dir
from .events import emit_event, EventTypes

logger = logging.getLogger(__name__)

TERRAFORM_LOG = "terraform.log"


def _run_terraform_command(
    stack_name: str,
    command: List[str],
    event_type: Optional[str],
    success_data: Optional[Dict[str, Any]] = None
) -> Tuple[bool, str]:
    """
    Run a terraform command in the stack directory and emit events.

    Args:
        stack_name: Stack name
        command: Terraform command to run
        event_type: Event type to emit on success, or None when the caller emits it
        success_data: Additional data for success event

    Returns:
        Tuple of (success, output)
    """
    stack_dir = get_stack_dir(stack_name)
    stack_dir.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Running {' '.join(command)} in {stack_dir}")

    try:
        process = subprocess.Popen(
            command,
            cwd=stack_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1
        )

        output_lines = []
        with open(stack_dir / TERRAFORM_LOG, "a") as log_file:
            log_file.write(f"=== {' '.join(command)} ===\n")

            for line in process.stdout:
                line = line.rstrip()
                output_lines.append(line)
                log_file.write(line + "\n")
                log_file.flush()

                if ("apply" in command or "destroy" in command) and line.strip():
                    emit_event(stack_name, EventTypes.TF_APPLY_LINE, {"line": line})

        process.wait()
        output = "\n".join(output_lines)

        if process.returncode == 0:
            if event_type:
                emit_event(stack_name, event_type, success_data or {})
            return True, output

        emit_event(stack_name, EventTypes.ERROR, {
            "reason": f"Terraform command failed: {' '.join(command)}",
            "hint": "Check terraform.log for details",
            "last_lines": output_lines[-40:]
        })
        logger.error(f"{' '.join(command)} exited with {process.returncode}")
        return False, output

    except OSError as e:
        emit_event(stack_name, EventTypes.ERROR, {
            "reason": f"Failed to run terraform command: {str(e)}",
            "hint": "Check terraform installation and permissions"
        })
        logger.error(f"Failed to run {' '.join(command)}: {e}")
        return False, str(e)


def tf_init(stack_name: str) -> bool:
    """Run terraform init."""
    success, _ = _run_terraform_command(
        stack_name,
        ["terraform", "init", "-upgrade", "-no-color", "-input=false"],
        EventTypes.TF_INIT,
        {"ok": True}
    )
    return success


def tf_plan(stack_name: str) -> bool:
    """
    Run terraform plan and record resource counts.

    Args:
        stack_name: Stack name

    Returns:
        True if successful
    """
    success, output = _run_terraform_command(
        stack_name,
        ["terraform", "plan", "-no-color", "-input=false"],
        None
    )

    if success:
        emit_event(stack_name, EventTypes.TF_PLAN, summarize_plan(output))

    return success


def summarize_plan(output: str) -> Dict[str, Any]:
    """Count the resources a plan would add, change and destroy."""
    return {
        "adds": output.count("will be created"),
        "changes": output.count("will be updated"),
        "destroys": output.count("will be destroyed"),
        "replaces": output.count("must be replaced"),
        "ok": True
    }


def tf_apply(stack_name: str) -> bool:
    """Run terraform apply."""
    emit_event(stack_name, EventTypes.TF_APPLY_START, {})

    success, _ = _run_terraform_command(
        stack_name,
        ["terraform", "apply", "-auto-approve", "-no-color", "-input=false"],
        EventTypes.TF_APPLY_DONE,
        {"ok": True}
    )
    return success


def tf_destroy(stack_name: str) -> bool:
    """Run terraform destroy."""
    emit_event(stack_name, EventTypes.DESTROY_START, {})

    success, _ = _run_terraform_command(
        stack_name,
        ["terraform", "destroy", "-auto-approve", "-no-color", "-input=false"],
        EventTypes.DESTROY_DONE,
        {"ok": True}
    )
    return success


def get_terraform_outputs(stack_name: str) -> Dict[str, Any]:
    """
    Get terraform outputs flattened to name -> value.

    Sensitive outputs are left out.

    Args:
        stack_name: Stack name

    Returns:
        Dictionary of terraform outputs, empty on failure
    """
    stack_dir = get_stack_dir(stack_name)

    try:
        result = subprocess.run(
            ["terraform", "output", "-json", "-no-color"],
            cwd=stack_dir,
            capture_output=True,
            text=True,
            check=True
        )
        raw = json.loads(result.stdout or "{}")

    except subprocess.CalledProcessError as e:
        emit_event(stack_name, EventTypes.ERROR, {
            "reason": f"Failed to get terraform outputs: {e.stderr}",
            "hint": "Terraform apply may have failed"
        })
        return {}
    except OSError as e:
        emit_event(stack_name, EventTypes.ERROR, {
            "reason": f"Failed to run terraform output: {str(e)}",
            "hint": "Check terraform installation and permissions"
        })
        return {}
    except json.JSONDecodeError as e:
        emit_event(stack_name, EventTypes.ERROR, {
            "reason": f"Failed to parse terraform outputs: {str(e)}",
            "hint": "Terraform output format may be unexpected"
        })
        return {}

    return {
        name: entry.get("value")
        for name, entry in raw.items()
        if isinstance(entry, dict) and not entry.get("sensitive")
    }
