"""Tests for the CLI entry point."""

from __future__ import annotations

import io
import json
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from deal_relay.__main__ import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_SUCCESS,
    configure_logging,
    create_parser,
    load_events,
    main,
    run_config_check,
    run_relay,
    validate_config,
)
from deal_relay.config import clear_settings_cache
from deal_relay.relay import RelayResult

REQUIRED_ENV = {
    "SLACK_WEBHOOK_URL": "https://hooks.example/x",
    "SLACK_CHANNEL": "#sales",
    "SLACK_USERNAME": "bot",
}


@pytest.fixture(autouse=True)
def clear_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_parser_has_version(self):
        """Parser should have version flag."""
        parser = create_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_parser_default_values(self):
        """Parser should have correct defaults."""
        parser = create_parser()
        args = parser.parse_args([])
        assert args.events == "-"
        assert args.config_check is False
        assert args.log_level is None
        assert args.dry_run is False

    def test_parser_events_file(self):
        parser = create_parser()
        args = parser.parse_args(["events.json", "--dry-run"])
        assert args.events == "events.json"
        assert args.dry_run is True


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_logging_info(self):
        """Should configure logging at INFO level."""
        configure_logging("INFO")
        import logging

        assert logging.getLogger().level == logging.INFO

    def test_configure_logging_quiets_httpx(self):
        configure_logging("DEBUG")
        import logging

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_configure_logging_to_stdout(self):
        configure_logging("INFO")
        import logging
        import sys

        streams = [
            h.stream for h in logging.getLogger().handlers if isinstance(h, logging.StreamHandler)
        ]
        assert sys.stdout in streams
        assert sys.stderr not in streams


class TestValidateConfig:
    """Tests for configuration validation."""

    def test_valid_config(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = validate_config()
        assert settings is not None

    def test_invalid_config(self, capsys):
        with patch.dict(os.environ, {}, clear=True):
            settings = validate_config()
        assert settings is None
        assert "Configuration validation failed" in capsys.readouterr().err


class TestLoadEvents:
    """Tests for reading event batches."""

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "events.json"
        path.write_text(json.dumps([{"id": 1, "payload": {"kind": "deal added"}}]))

        events = load_events(str(path))

        assert [e.id for e in events] == ["1"]
        assert events[0].payload == {"kind": "deal added"}

    def test_load_from_stdin(self):
        stdin = io.StringIO(json.dumps([{"id": "a", "payload": {}}, {"id": "b", "payload": {}}]))

        events = load_events("-", stdin=stdin)

        assert [e.id for e in events] == ["a", "b"]

    def test_not_a_list(self):
        with pytest.raises(ValueError, match="list"):
            load_events("-", stdin=io.StringIO("{}"))

    def test_entry_without_id(self):
        with pytest.raises(ValueError, match="Invalid event"):
            load_events("-", stdin=io.StringIO('[{"payload": {}}]'))

    def test_entry_with_non_mapping_payload_skipped(self):
        """Test that one bad payload does not drop the rest of the batch."""
        stdin = io.StringIO(
            json.dumps(
                [
                    {"id": "a", "payload": {}},
                    {"id": "b", "payload": "deal added"},
                    {"id": "c", "payload": {}},
                ]
            )
        )

        events = load_events("-", stdin=stdin)

        assert [e.id for e in events] == ["a", "c"]


class TestRunConfigCheck:
    def test_config_check_succeeds(self, capsys):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = validate_config()
        assert settings is not None

        assert run_config_check(settings) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Configuration is valid!" in out
        assert "https://hooks.example/***" in out


class TestRunRelay:
    @pytest.mark.asyncio
    async def test_success(self):
        relay = AsyncMock()
        relay.process_batch.return_value = RelayResult()

        assert await run_relay(relay, []) == EXIT_SUCCESS

    @pytest.mark.asyncio
    async def test_failure(self):
        relay = AsyncMock()
        relay.process_batch.side_effect = RuntimeError("boom")

        assert await run_relay(relay, []) == EXIT_ERROR


class TestMain:
    """Tests for the main entry point."""

    def test_config_error_exit_code(self):
        with patch.dict(os.environ, {}, clear=True), pytest.raises(SystemExit) as exc_info:
            main(["--config-check"])
        assert exc_info.value.code == EXIT_CONFIG_ERROR

    def test_config_check_exit_code(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True), pytest.raises(SystemExit) as exc_info:
            main(["--config-check"])
        assert exc_info.value.code == EXIT_SUCCESS

    def test_missing_events_file(self, tmp_path: Path):
        missing = tmp_path / "nope.json"
        with patch.dict(os.environ, REQUIRED_ENV, clear=True), pytest.raises(SystemExit) as exc_info:
            main([str(missing)])
        assert exc_info.value.code == EXIT_ERROR

    def test_dry_run_batch(self, tmp_path: Path, capsys):
        path = tmp_path / "events.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "evt-1",
                        "payload": {
                            "kind": "deal added",
                            "current": {"title": "Acme Co", "stage_id": 3},
                        },
                    }
                ]
            )
        )
        env = {**REQUIRED_ENV, "PIPEDRIVE_STAGE_NAMES": '{"3": "Proposal"}'}

        with (
            patch.dict(os.environ, env, clear=True),
            patch("httpx.AsyncClient") as mock_client_class,
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["--dry-run", str(path)])

        assert exc_info.value.code == EXIT_SUCCESS
        mock_client_class.assert_not_called()
        assert "1 notifications, 1 delivered" in capsys.readouterr().out
