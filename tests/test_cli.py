#!/usr/bin/env python3
"""
Tests for the memshield CLI.

Every command runs against services built on a temporary data directory
and an in-memory credential backend.
"""

import json
import re

import pytest
from click.testing import CliRunner

from memshield import __version__
from memshield.cli import main
from memshield.config.models import MemshieldSettings
from memshield.logging.security_log import EventType
from memshield.services import build_services
from memshield.vault.keyring_store import SecretKey

pytestmark = pytest.mark.cli

HEX64 = re.compile(r"\b[0-9a-f]{64}\b")


@pytest.fixture
def services(tmp_path, memory_backend):
    services = build_services(MemshieldSettings(data_dir=tmp_path / "data"), backend=memory_backend)
    yield services
    services.close()


@pytest.fixture
def invoke(services):
    runner = CliRunner()

    def _invoke(args, **kwargs):
        return runner.invoke(main, args, obj={"services": services}, catch_exceptions=False, **kwargs)

    return _invoke


class TestMain:

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("redact", "token", "key", "secrets", "harden", "logs"):
            assert command in result.output


class TestRedact:

    def test_file(self, invoke, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("keep <private>drop</private> key sk-1234567890abcdefghij1234567890\n")
        result = invoke(["redact", str(path)])
        assert result.exit_code == 0
        assert "keep  key [REDACTED]" in result.output
        assert "drop" not in result.output
        assert "sk-1234567890" not in result.output

    def test_stdin(self, invoke):
        result = invoke(["redact"], input="a <secret>b</secret> c")
        assert result.exit_code == 0
        assert "a [REDACTED] c" in result.output

    def test_count(self, invoke):
        result = invoke(["redact", "--count"], input="password=hunter2 and token=abcdefghijklmnopqrstuvwxyz")
        assert result.exit_code == 0
        assert "Redactions: 2" in result.output

    def test_json(self, invoke):
        payload = json.dumps({"args": "<private>secret args</private>", "cmd": "ls"})
        result = invoke(["redact", "--json"], input=payload)
        assert result.exit_code == 0
        assert '{"args": "", "cmd": "ls"}' in result.output

    def test_json_invalid_warns(self, invoke):
        result = invoke(["redact", "--json"], input="not json <private>x</private>")
        assert result.exit_code == 0
        assert "not valid JSON" in result.output
        assert "not json" in result.output


class TestTokenCommands:

    def test_show_without_token(self, invoke):
        result = invoke(["token", "show"])
        assert result.exit_code == 0
        assert "No API token configured" in result.output

    def test_regenerate_show_verify(self, invoke, services):
        result = invoke(["token", "regenerate"])
        assert result.exit_code == 0
        token = HEX64.search(result.output).group(0)
        assert services.tokens.validate_token(token)

        shown = invoke(["token", "show"])
        assert f"{token[:8]}..." in shown.output
        assert token not in shown.output

        assert invoke(["token", "verify", token]).exit_code == 0
        bad = invoke(["token", "verify", "0" * 64])
        assert bad.exit_code == 1
        assert "not valid" in bad.output

    def test_show_reveal(self, invoke, services):
        result = invoke(["token", "show", "--reveal"])
        assert result.exit_code == 0
        assert services.tokens.get_or_create_token() in result.output


class TestKeyCommands:

    def test_status_without_key(self, invoke):
        result = invoke(["key", "status"])
        assert "No database encryption key" in result.output

    def test_rotate_without_key_fails(self, invoke):
        result = invoke(["key", "rotate"])
        assert result.exit_code == 1
        assert "No existing encryption key" in result.output

    def test_rotate_masks_keys(self, invoke, services):
        old = services.encryption.get_or_create_key()
        result = invoke(["key", "rotate"])
        assert result.exit_code == 0
        assert f"Old key: {old[:8]}..." in result.output
        assert old not in result.output
        assert HEX64.search(result.output) is None
        assert "NOT stored" in result.output

    def test_rotate_reveal_then_confirm(self, invoke, services, memory_backend):
        old = services.encryption.get_or_create_key()
        result = invoke(["key", "rotate", "--reveal"])
        assert result.exit_code == 0
        new = HEX64.findall(result.output)[-1]
        assert new != old
        # Rotation alone stores nothing
        assert memory_backend.values[SecretKey.DB_ENCRYPTION_KEY.value] == old

        confirmed = invoke(["key", "confirm", new])
        assert confirmed.exit_code == 0
        assert memory_backend.values[SecretKey.DB_ENCRYPTION_KEY.value] == new

    def test_confirm_prompts_and_rejects_malformed(self, invoke, services):
        old = services.encryption.get_or_create_key()
        result = invoke(["key", "confirm"], input="not-a-key\n")
        assert result.exit_code == 1
        assert services.encryption.get_or_create_key() == old

    def test_delete_requires_confirmation(self, invoke, services):
        services.encryption.get_or_create_key()

        aborted = invoke(["key", "delete"], input="n\n")
        assert aborted.exit_code == 1
        assert services.encryption.has_key()

        deleted = invoke(["key", "delete"], input="y\n")
        assert deleted.exit_code == 0
        assert not services.encryption.has_key()

    def test_delete_yes(self, invoke, services):
        services.encryption.get_or_create_key()
        assert invoke(["key", "delete", "--yes"]).exit_code == 0
        assert not services.encryption.has_key()


class TestSecretsCommands:

    def test_set_list_delete(self, invoke, services):
        result = invoke(["secrets", "set", "GEMINI_API_KEY"], input="gem-value\n")
        assert result.exit_code == 0
        assert "gem-value" not in result.output
        assert services.store.get_secret(SecretKey.GEMINI_API_KEY) == "gem-value"

        listed = invoke(["secrets", "list"])
        assert "GEMINI_API_KEY" in listed.output
        assert "set" in listed.output
        assert "gem-value" not in listed.output

        assert invoke(["secrets", "delete", "GEMINI_API_KEY"]).exit_code == 0
        assert services.store.get_secret(SecretKey.GEMINI_API_KEY) is None

    def test_case_insensitive_name(self, invoke, services):
        invoke(["secrets", "set", "anthropic_api_key"], input="ant-value\n")
        assert services.store.get_secret(SecretKey.ANTHROPIC_API_KEY) == "ant-value"

    def test_unknown_name(self, invoke):
        result = CliRunner().invoke(main, ["secrets", "set", "NOPE"], input="x\n")
        assert result.exit_code == 2

    def test_delete_missing(self, invoke):
        result = invoke(["secrets", "delete", "GEMINI_API_KEY"])
        assert result.exit_code == 0
        assert "not found" in result.output


class TestHarden:

    def test_harden(self, invoke, services):
        result = invoke(["harden"])
        assert result.exit_code == 0
        assert "Hardened permissions" in result.output
        [event] = services.audit.get_recent_events(event_type=EventType.PERMISSIONS_HARDENED)
        assert event["decision"] == "allow"


class TestLogsCommands:

    def test_no_events(self, invoke):
        result = invoke(["logs"])
        assert result.exit_code == 0
        assert "No events found" in result.output

    def test_shows_events(self, invoke, services):
        services.tokens.get_or_create_token()
        result = invoke(["logs", "--limit", "5"])
        assert result.exit_code == 0
        assert "Showing" in result.output

    def test_unknown_type(self, invoke):
        result = invoke(["logs", "--type", "nonsense"])
        assert result.exit_code == 1
        assert "Unknown event type" in result.output

    def test_verify(self, invoke, services):
        services.tokens.get_or_create_token()
        result = invoke(["logs", "verify"])
        assert result.exit_code == 0
        assert "entries intact" in result.output

    def test_verify_json(self, invoke, services):
        services.tokens.get_or_create_token()
        result = invoke(["logs", "verify", "--json"])
        assert result.exit_code == 0
        assert '"valid": true' in result.output

    def test_stats(self, invoke, services):
        services.tokens.get_or_create_token()
        result = invoke(["logs", "stats"])
        assert result.exit_code == 0
        assert "Total Events" in result.output

    def test_prune(self, invoke):
        result = invoke(["logs", "prune"])
        assert result.exit_code == 0
        assert "No events to prune" in result.output

    def test_export(self, invoke, services, tmp_path):
        services.tokens.get_or_create_token()
        output = tmp_path / "out.csv"
        result = invoke(["logs", "export", "-o", str(output)])
        assert result.exit_code == 0
        assert output.exists()

    def test_audit_disabled(self, tmp_path, memory_backend):
        services = build_services(
            MemshieldSettings(data_dir=tmp_path / "data", audit_log_enabled=False),
            backend=memory_backend,
        )
        result = CliRunner().invoke(main, ["logs"], obj={"services": services})
        assert result.exit_code == 1
        assert "Audit logging is disabled" in result.output
