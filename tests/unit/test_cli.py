"""Tests for the python -m callouts command line."""

import json
from unittest.mock import patch

import pytest

from callouts.__main__ import EXIT_CONFIG, EXIT_FAILED, EXIT_OK, main

pytestmark = pytest.mark.usefixtures("restore_root_logger")

MOCK = "https://mock.example.com"


class TestSendCommand:
    """Tests for `send` against the built-in mock transport."""

    def test_success(self, capsys):
        assert main(["send", f"{MOCK}/success", "--mock"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "status: 200" in out
        assert '{"status": "ok"}' in out

    def test_failed_outcome(self, capsys):
        assert main(["send", f"{MOCK}/error", "--mock"]) == EXIT_FAILED
        captured = capsys.readouterr()
        assert "status: 500" in captured.out
        assert "HTTP 500" in captured.err

    def test_retries_then_exhausts(self, capsys):
        with patch("time.sleep") as mock_sleep:
            code = main(["send", f"{MOCK}/ratelimit", "--mock", "--attempts", "3"])
        assert code == EXIT_FAILED
        assert mock_sleep.call_count == 2
        assert "attempts: 3" in capsys.readouterr().out

    def test_plaintext_target_is_config_error(self, capsys):
        assert main(["send", "http://mock.example.com/success", "--mock"]) == EXIT_CONFIG
        assert "plaintext" in capsys.readouterr().err

    def test_invalid_attempts_is_config_error(self):
        assert main(["send", f"{MOCK}/success", "--mock", "--attempts", "0"]) == EXIT_CONFIG

    def test_invalid_header_is_config_error(self):
        assert main(["send", f"{MOCK}/success", "--mock", "-H", "no-colon"]) == EXIT_CONFIG

    def test_log_path_records_every_attempt(self, tmp_path):
        log_path = tmp_path / "attempts.jsonl"
        with patch("time.sleep"):
            main(
                [
                    "send",
                    f"{MOCK}/timeout",
                    "--mock",
                    "--attempts",
                    "2",
                    "--log-path",
                    str(log_path),
                ]
            )

        rows = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert [row["record"]["attempt"] for row in rows] == [1, 2]
        assert all(row["record"]["error"] == "timeout" for row in rows)

    def test_named_reference_with_config(self, tmp_path, capsys):
        config = tmp_path / "callouts.yaml"
        config.write_text(
            "named_credentials:\n"
            "  orders_api:\n"
            "    base_url: https://api.example.com\n",
            encoding="utf-8",
        )
        code = main(["send", "callout:orders_api/success", "--mock", "--config", str(config)])
        assert code == EXIT_OK

    def test_missing_config_file(self, tmp_path):
        code = main(["send", f"{MOCK}/success", "--config", str(tmp_path / "absent.yaml")])
        assert code == EXIT_CONFIG


class TestCheckConfigCommand:
    """Tests for `check-config`."""

    def test_valid_config(self, tmp_path, capsys):
        config = tmp_path / "callouts.yaml"
        config.write_text(
            "retry:\n"
            "  max_attempts: 4\n"
            "named_credentials:\n"
            "  orders_api:\n"
            "    base_url: https://api.example.com\n",
            encoding="utf-8",
        )
        assert main(["check-config", str(config)]) == EXIT_OK
        out = capsys.readouterr().out
        assert "4 attempts" in out
        assert "named credential: orders_api" in out

    def test_invalid_config(self, tmp_path):
        config = tmp_path / "callouts.yaml"
        config.write_text("dispatch:\n  batch_size: 0\n", encoding="utf-8")
        assert main(["check-config", str(config)]) == EXIT_CONFIG


class TestArgumentParsing:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])
