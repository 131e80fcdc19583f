"""Main CLI entrypoint for Metric Streams."""

import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from .config import ConfigError, StackInputs, load_inputs, DEFAULT_STACK_NAME, resolve_region
from .deploy import deploy, destroy, plan, synth
from .events import tail_events, get_status_from_events
from .graph import GraphError
from .links import ConsoleLinkBuilder
from .state import cleanup_stack, list_stacks, read_inputs_json, read_outputs_json, read_template, stack_exists
from .status import get_stream_status
from .tags import parse_user_tags


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, output_json, verbose):
    """Metric Streams - stream CloudWatch metrics to New Relic."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def _json_mode() -> bool:
    return click.get_current_context().obj.get('json', False)


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None, default=str))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not _json_mode():
        click.echo(message)


def _fail(message: str, code: int = 1, hint: Optional[str] = None) -> None:
    if _json_mode():
        data = {'error': message}
        if hint:
            data['hint'] = hint
        _json_output(data)
    else:
        click.echo(f"❌ {message}", err=True)
        if hint:
            click.echo(f"   Hint: {hint}", err=True)
    sys.exit(code)


def stack_input_options(func):
    """Options shared by every command that composes the stack."""
    func = click.option('--tag', 'tags', multiple=True, help='Extra resource tag key=value')(func)
    func = click.option('--stack', 'stack_name', default=DEFAULT_STACK_NAME, show_default=True,
                        help='Stack name')(func)
    func = click.option('--region', default=None, help='AWS region')(func)
    func = click.option('--context', '-c', 'context', multiple=True,
                        help='Stack input KEY=VALUE (BACKUP_BUCKET_NAME, NR_SECRET_ARN)')(func)
    return func


def _load(context: List[str], region: Optional[str], stack_name: str, tags: List[str]) -> StackInputs:
    try:
        return load_inputs(
            context_pairs=list(context),
            region=region,
            stack_name=stack_name,
            tags=parse_user_tags(list(tags)),
        )
    except ConfigError as e:
        _fail(str(e))


def _require_stack(stack_name: str) -> Dict[str, Any]:
    try:
        if stack_exists(stack_name):
            return read_inputs_json(stack_name)
    except ValueError as e:
        _fail(str(e))
    _fail(f"Stack {stack_name} not found", code=2, hint="Run 'metricstreams synth' first")


@main.command('synth')
@stack_input_options
def synth_cmd(context, region, stack_name, tags):
    """Write the Terraform configuration without deploying."""
    inputs = _load(context, region, stack_name, tags)
    try:
        template_file = synth(inputs)
    except (ConfigError, GraphError) as e:
        _fail(f"Synth failed: {e}")

    if _json_mode():
        _json_output({'stack': inputs.stack_name, 'template': str(template_file)})
    else:
        _human_output(f"✅ Synthesized {inputs.stack_name}")
        _human_output(f"Template: {template_file}")


@main.command('plan')
@stack_input_options
def plan_cmd(context, region, stack_name, tags):
    """Synthesize and show the Terraform plan."""
    inputs = _load(context, region, stack_name, tags)
    try:
        ok = plan(inputs)
    except (ConfigError, GraphError) as e:
        _fail(f"Plan failed: {e}")

    if not ok:
        _fail("Plan failed", hint="Check terraform.log for details")

    if _json_mode():
        _json_output({'stack': inputs.stack_name, 'status': get_status_from_events(inputs.stack_name)})
    else:
        _human_output(f"📋 Plan for {inputs.stack_name} written to terraform.log")


@main.command('deploy')
@stack_input_options
@click.option('--skip-preflight', is_flag=True, help='Do not check the license key secret before deploying')
def deploy_cmd(context, region, stack_name, tags, skip_preflight):
    """Deploy the stack."""
    inputs = _load(context, region, stack_name, tags)
    _human_output(f"🚀 Deploying {inputs.stack_name} to {inputs.region}")

    try:
        result = deploy(inputs, preflight=not skip_preflight)
    except (ConfigError, GraphError) as e:
        _fail(f"Deployment failed: {e}")

    if result['status'] != 'success':
        _fail(f"Deployment failed: {result.get('error')}", hint=result.get('hint'))

    if _json_mode():
        _json_output(result)
        return

    _human_output("✅ Deployment complete")
    for name, value in result['outputs'].items():
        _human_output(f"  {name}: {value}")
    links = ConsoleLinkBuilder(inputs.region).build_stack_links(inputs.bucket_name)
    _human_output(f"🔗 Delivery stream: {links['delivery_stream']}")


@main.command('destroy')
@click.option('--stack', 'stack_name', default=DEFAULT_STACK_NAME, show_default=True, help='Stack name')
@click.option('--yes', is_flag=True, help='Skip confirmation prompt')
@click.option('--purge', is_flag=True, help='Also remove the local stack directory')
def destroy_cmd(stack_name, yes, purge):
    """Destroy the stack, including the dead-letter bucket and its contents."""
    _require_stack(stack_name)

    if not yes and not _json_mode():
        if not click.confirm(f"Are you sure you want to destroy {stack_name}?"):
            _human_output("Cancelled")
            return

    if not destroy(stack_name):
        _fail(f"Destroy of {stack_name} failed", hint="Check terraform.log for details")

    if purge:
        cleanup_stack(stack_name)

    if _json_mode():
        _json_output({'stack': stack_name, 'status': 'destroyed', 'purged': purge})
    else:
        _human_output(f"🗑️  Destroyed {stack_name}")


@main.command('outputs')
@click.option('--stack', 'stack_name', default=DEFAULT_STACK_NAME, show_default=True, help='Stack name')
def outputs_cmd(stack_name):
    """Show the exported ARNs and console links."""
    inputs = _require_stack(stack_name)
    outputs = read_outputs_json(stack_name)
    if outputs is None:
        _fail(f"Stack {stack_name} has no outputs", code=2, hint="Run 'metricstreams deploy' first")

    builder = ConsoleLinkBuilder(inputs.get('region') or resolve_region())
    links = builder.build_stack_links(inputs.get('BACKUP_BUCKET_NAME', ''))

    if _json_mode():
        _json_output({'stack': stack_name, 'outputs': outputs, 'links': links})
        return

    for name, value in outputs.items():
        _human_output(f"{name}: {value}")
    for name, url in links.items():
        _human_output(f"🔗 {name}: {url}")
    _human_output(f"Tail delivery errors: {builder.build_tail_command()}")


@main.command('status')
@click.option('--stack', 'stack_name', default=DEFAULT_STACK_NAME, show_default=True, help='Stack name')
def status_cmd(stack_name):
    """Show local stack status and the live state of both streams."""
    inputs = _require_stack(stack_name)
    region = inputs.get('region') or resolve_region()
    local_status = get_status_from_events(stack_name)
    live = get_stream_status(region)
    drift = _namespace_drift(stack_name, live.included_namespaces)

    if _json_mode():
        _json_output({'stack': stack_name, 'status': local_status, 'live': live.to_dict(),
                      'namespace_drift': drift})
        return

    icon = "✅" if live.healthy else "⚠️"
    _human_output(f"{icon} {stack_name}: {local_status}")
    _human_output(f"  Delivery stream: {live.delivery_stream_state or 'unknown'}")
    _human_output(f"  Metric stream: {live.metric_stream_state or 'unknown'}")
    if live.included_namespaces:
        _human_output(f"  Namespaces: {', '.join(live.included_namespaces)}")
    for error in live.errors:
        _human_output(f"  ❗ {error}")
    if drift:
        _human_output("  ⚠️  Live namespaces differ from the synthesized template; run 'metricstreams deploy'")


@main.command('logs')
@click.option('--stack', 'stack_name', default=DEFAULT_STACK_NAME, show_default=True, help='Stack name')
@click.option('--follow', is_flag=True, help='Follow events in real-time')
def logs_cmd(stack_name, follow):
    """Show the stack's event log."""
    _require_stack(stack_name)

    try:
        for event in tail_events(stack_name, follow=follow):
            if _json_mode():
                _json_output(event)
            else:
                _print_event_human(event)
    except KeyboardInterrupt:
        _human_output("\n👋 Stopped following logs")


@main.command('list')
def list_cmd():
    """List synthesized stacks."""
    stacks = list_stacks()

    if _json_mode():
        _json_output({'stacks': [{'stack': s, 'status': get_status_from_events(s)} for s in stacks]})
        return

    if not stacks:
        _human_output("No stacks found")
    for stack_name in stacks:
        _human_output(f"{stack_name}: {get_status_from_events(stack_name)}")


def _namespace_drift(stack_name: str, live_namespaces: List[str]) -> bool:
    """True when the deployed metric stream selects different namespaces than the template."""
    template = read_template(stack_name)
    if not template or not live_namespaces:
        return False
    streams = template.get('resource', {}).get('aws_cloudwatch_metric_stream', {})
    expected = {f['namespace'] for s in streams.values() for f in s.get('include_filter', [])}
    return expected != set(live_namespaces)


def _print_event_human(event: Dict[str, Any]) -> None:
    event_type = event.get('type', '')
    data = event.get('data', {})
    ts = event.get('ts', '')

    if event_type == 'TF_APPLY_LINE':
        _human_output(f"  {data.get('line', '')}")
    elif event_type == 'ERROR':
        _human_output(f"[{ts}] ❌ {data.get('reason', 'Unknown error')}")
        if data.get('hint'):
            _human_output(f"    Hint: {data['hint']}")
    elif event_type == 'TF_PLAN' and 'adds' in data:
        _human_output(f"[{ts}] TF_PLAN +{data['adds']} ~{data['changes']} -{data['destroys']}")
    else:
        _human_output(f"[{ts}] {event_type}")


if __name__ == '__main__':
    main()
