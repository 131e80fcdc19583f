"""
Basic tests for input resolution and tagging.
"""

import json

import pytest
from metricstreams.config import (
    ConfigError,
    DEFAULT_STACK_NAME,
    load_context_file,
    load_inputs,
    parse_context_pairs,
    resolve_region,
)
from metricstreams.tags import base_tags, parse_user_tags

SECRET_ARN = "arn:aws:secretsmanager:us-west-2:123456789012:secret:nr-key-AbCdEf"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the caller's environment and working directory."""
    for key in ("BACKUP_BUCKET_NAME", "NR_SECRET_ARN", "AWS_REGION", "AWS_DEFAULT_REGION"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestContextPairs:
    """Test -c KEY=VALUE parsing."""

    def test_parse(self):
        context = parse_context_pairs(["BACKUP_BUCKET_NAME=acme", f"NR_SECRET_ARN={SECRET_ARN}"])
        assert context == {"BACKUP_BUCKET_NAME": "acme", "NR_SECRET_ARN": SECRET_ARN}

    def test_value_with_equals(self):
        assert parse_context_pairs(["KEY=a=b"]) == {"KEY": "a=b"}

    def test_invalid(self):
        with pytest.raises(ConfigError, match="Invalid context format"):
            parse_context_pairs(["BACKUP_BUCKET_NAME"])

        with pytest.raises(ConfigError, match="Key must not be empty"):
            parse_context_pairs(["=value"])


class TestLoadInputs:
    """Test layered input resolution."""

    def test_from_cli_context(self):
        inputs = load_inputs(context_pairs=["BACKUP_BUCKET_NAME=acme-nr-backup", f"NR_SECRET_ARN={SECRET_ARN}"])

        assert inputs.bucket_name == "acme-nr-backup"
        assert inputs.secret_arn == SECRET_ARN
        assert inputs.region == "us-west-2"
        assert inputs.stack_name == DEFAULT_STACK_NAME

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("BACKUP_BUCKET_NAME", "env-bucket")
        monkeypatch.setenv("NR_SECRET_ARN", SECRET_ARN)

        inputs = load_inputs()
        assert inputs.bucket_name == "env-bucket"

    def test_from_context_file(self, tmp_path):
        (tmp_path / "context.json").write_text(json.dumps({
            "context": {"BACKUP_BUCKET_NAME": "file-bucket", "NR_SECRET_ARN": SECRET_ARN}
        }))

        inputs = load_inputs()
        assert inputs.bucket_name == "file-bucket"

    def test_precedence(self, monkeypatch, tmp_path):
        """Test CLI context beats environment, which beats context.json."""
        (tmp_path / "context.json").write_text(json.dumps({
            "context": {"BACKUP_BUCKET_NAME": "file-bucket", "NR_SECRET_ARN": "file-arn"}
        }))
        monkeypatch.setenv("NR_SECRET_ARN", "env-arn")

        inputs = load_inputs(context_pairs=["BACKUP_BUCKET_NAME=cli-bucket"])
        assert inputs.bucket_name == "cli-bucket"
        assert inputs.secret_arn == "env-arn"

    def test_missing_input(self):
        with pytest.raises(ConfigError, match="NR_SECRET_ARN"):
            load_inputs(context_pairs=["BACKUP_BUCKET_NAME=acme"])

    def test_blank_input(self):
        with pytest.raises(ConfigError, match="BACKUP_BUCKET_NAME"):
            load_inputs(context_pairs=["BACKUP_BUCKET_NAME=  ", f"NR_SECRET_ARN={SECRET_ARN}"])

    def test_null_context_value_is_missing(self, tmp_path):
        (tmp_path / "context.json").write_text(json.dumps({
            "context": {"BACKUP_BUCKET_NAME": None, "NR_SECRET_ARN": SECRET_ARN}
        }))

        assert "BACKUP_BUCKET_NAME" not in load_context_file()
        with pytest.raises(ConfigError, match="Missing required input BACKUP_BUCKET_NAME"):
            load_inputs()

    @pytest.mark.parametrize("name", ["bad_name", "../etc", "1stack"])
    def test_invalid_stack_name(self, name):
        with pytest.raises(ConfigError, match="Invalid stack name"):
            load_inputs(context_pairs=["BACKUP_BUCKET_NAME=acme", f"NR_SECRET_ARN={SECRET_ARN}"], stack_name=name)

    def test_malformed_context_file(self, tmp_path):
        (tmp_path / "context.json").write_text("{not json")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_context_file()

    def test_missing_context_file(self):
        assert load_context_file() == {}

    def test_to_dict_has_no_secret_value(self):
        inputs = load_inputs(context_pairs=["BACKUP_BUCKET_NAME=acme", f"NR_SECRET_ARN={SECRET_ARN}"])
        data = inputs.to_dict()

        assert data["BACKUP_BUCKET_NAME"] == "acme"
        assert data["NR_SECRET_ARN"] == SECRET_ARN


class TestRegion:
    """Test region resolution."""

    def test_explicit(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        assert resolve_region("ap-southeast-2") == "ap-southeast-2"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-central-1")
        assert resolve_region() == "eu-central-1"

        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        assert resolve_region() == "eu-west-1"

    def test_default(self):
        assert resolve_region() == "us-west-2"


class TestTags:
    """Test tagging functionality."""

    def test_base_tags(self):
        tags = base_tags("NewRelicMetricStreamInfra")

        assert tags["project"] == "metricstreams"
        assert tags["stack"] == "NewRelicMetricStreamInfra"
        assert tags["managed_by"] == "terraform"

    def test_base_tags_stable(self):
        assert base_tags("s") == base_tags("s")

    def test_base_tags_with_extra(self):
        tags = base_tags("s", {"owner": "platform", "stage": "dev"})

        assert tags["owner"] == "platform"
        assert tags["stage"] == "dev"

    def test_parse_user_tags(self):
        assert parse_user_tags(["owner=platform", "env=prod"]) == {"owner": "platform", "env": "prod"}

    def test_parse_user_tags_invalid(self):
        with pytest.raises(ConfigError, match="Invalid tag format"):
            parse_user_tags(["invalid-tag"])

        with pytest.raises(ConfigError, match="Key and value must not be empty"):
            parse_user_tags(["=value"])

        with pytest.raises(ConfigError, match="Key and value must not be empty"):
            parse_user_tags(["key="])
