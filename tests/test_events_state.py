"""
Basic tests for stack state and the event log.
"""

import json

import pytest
from metricstreams.config import StackInputs
from metricstreams.events import EventTypes, emit_event, get_status_from_events, read_events, tail_events
from metricstreams.stack import compose_metric_streams
from metricstreams.state import (
    cleanup_stack,
    get_stack_dir,
    is_valid_stack_name,
    list_stacks,
    read_inputs_json,
    read_outputs_json,
    read_template,
    stack_exists,
    write_inputs_json,
    write_outputs_json,
    write_template,
)

STACK = "NewRelicMetricStreamInfra"


@pytest.fixture(autouse=True)
def home(monkeypatch, tmp_path):
    monkeypatch.setenv("METRICSTREAMS_HOME", str(tmp_path))
    return tmp_path


class TestStackNames:
    """Test stack name validation."""

    @pytest.mark.parametrize("name", ["NewRelicMetricStreamInfra", "a", "prod-streams-2"])
    def test_valid(self, name):
        assert is_valid_stack_name(name)

    @pytest.mark.parametrize("name", ["", "1stack", "../etc", "has space", "under_score", "a" * 129])
    def test_invalid(self, name):
        assert not is_valid_stack_name(name)

    def test_invalid_rejected(self):
        with pytest.raises(ValueError, match="Invalid stack name"):
            get_stack_dir("../escape")


class TestState:
    """Test stack state files."""

    def test_template_round_trip(self, home):
        graph = compose_metric_streams(StackInputs(bucket_name="acme-nr-backup", secret_arn="arn"))
        path = write_template(STACK, graph)

        assert path == home.resolve() / STACK / "main.tf.json"
        assert read_template(STACK)["resource"]["aws_s3_bucket"]["backup"]["bucket"] == "acme-nr-backup"

    def test_missing_files(self):
        assert read_template(STACK) is None
        assert read_outputs_json(STACK) is None
        assert not stack_exists(STACK)

        with pytest.raises(FileNotFoundError):
            read_inputs_json(STACK)

    def test_inputs_and_outputs(self):
        write_inputs_json(STACK, {"BACKUP_BUCKET_NAME": "acme"})
        write_outputs_json(STACK, {"KinesisDataFirehoseArn": "arn:aws:firehose:us-west-2:123456789012:deliverystream/x"})

        assert stack_exists(STACK)
        inputs = read_inputs_json(STACK)
        assert inputs["BACKUP_BUCKET_NAME"] == "acme"
        assert "synthesized_at" in inputs
        assert read_outputs_json(STACK)["KinesisDataFirehoseArn"].startswith("arn:aws:firehose")

    def test_list_and_cleanup(self, home):
        graph = compose_metric_streams(StackInputs(bucket_name="b", secret_arn="arn"))
        write_template("stack-b", graph)
        write_template("stack-a", graph)
        (home / "not a stack").mkdir()

        assert list_stacks() == ["stack-a", "stack-b"]

        cleanup_stack("stack-a")
        assert list_stacks() == ["stack-b"]


class TestEvents:
    """Test NDJSON event log."""

    def test_status_progression(self):
        assert get_status_from_events(STACK) == "unknown"

        emit_event(STACK, EventTypes.SYNTH, {})
        assert get_status_from_events(STACK) == "synthesized"
        emit_event(STACK, EventTypes.TF_INIT, {"ok": True})
        assert get_status_from_events(STACK) == "initialized"
        emit_event(STACK, EventTypes.TF_APPLY_DONE, {"ok": True})
        assert get_status_from_events(STACK) == "applied"
        emit_event(STACK, EventTypes.OUTPUTS, {})
        assert get_status_from_events(STACK) == "deployed"
        emit_event(STACK, EventTypes.ERROR, {"reason": "boom"})
        assert get_status_from_events(STACK) == "failed"

    def test_malformed_lines_skipped(self, home):
        emit_event(STACK, EventTypes.SYNTH, {})
        with open(home / STACK / "logs.ndjson", "a") as f:
            f.write("not json\n\n")
        emit_event(STACK, EventTypes.TF_INIT, {})

        events = read_events(STACK)
        assert [e["type"] for e in events] == ["SYNTH", "TF_INIT"]

    def test_event_shape(self, home):
        emit_event(STACK, EventTypes.TF_PLAN, {"adds": 3})

        line = (home / STACK / "logs.ndjson").read_text().strip()
        event = json.loads(line)
        assert set(event) == {"ts", "type", "data"}
        assert event["data"] == {"adds": 3}

    def test_tail_without_follow(self):
        assert list(tail_events(STACK)) == []

        emit_event(STACK, EventTypes.SYNTH, {})
        emit_event(STACK, EventTypes.TF_INIT, {})
        assert [e["type"] for e in tail_events(STACK)] == ["SYNTH", "TF_INIT"]
