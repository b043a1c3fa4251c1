"""Tests for the command line entry point."""

import json
import os
from unittest.mock import MagicMock, patch

import pytest

from play_reconciler.__main__ import build_parser, main
from play_reconciler.models.subscription import CanonicalSnapshot, SubscriptionState
from play_reconciler.services.provider_adapter import PlayDeveloperClient, ProviderError, set_provider_client


@pytest.fixture(autouse=True)
def preserve_env(monkeypatch):
    """main() exports its options to the environment; restore them afterwards."""
    for name in ("LOG_LEVEL", "LOG_FORMAT", "CONFIG_PATH"):
        if name in os.environ:
            monkeypatch.setenv(name, os.environ[name])
        else:
            monkeypatch.delenv(name, raising=False)


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestParser:
    def test_defaults_to_serve(self):
        args = build_parser().parse_args(["--port", "9000"])
        assert args.command is None
        assert args.port == 9000

    def test_fetch_arguments(self):
        args = build_parser().parse_args(["fetch", "com.example.app", "token-123"])
        assert (args.package_name, args.purchase_token) == ("com.example.app", "token-123")


class TestCheckConfig:
    def test_valid_config(self, capsys):
        assert run(["--log-format", "console", "check-config"]) == 0
        out = capsys.readouterr().out
        assert "Package: com.example.app" in out
        assert "listener off" in out

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text("provider: [unclosed")

        assert run(["--config", str(path), "check-config"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err


class TestFetch:
    def test_prints_snapshot(self, capsys):
        provider = MagicMock(spec=PlayDeveloperClient)
        provider.fetch_subscription.return_value = CanonicalSnapshot(
            state=SubscriptionState.ACTIVE.value,
            start_time_millis=1,
            expiry_time_millis=2,
            region_code="US",
        )
        set_provider_client(provider)

        assert run(["--log-format", "console", "fetch", "com.example.app", "token-123"]) == 0

        provider.fetch_subscription.assert_called_once_with("com.example.app", "token-123")
        body = json.loads(capsys.readouterr().out)
        assert body["state"] == SubscriptionState.ACTIVE.value
        assert body["expiry_time_millis"] == 2

    def test_provider_error(self, capsys):
        provider = MagicMock(spec=PlayDeveloperClient)
        provider.fetch_subscription.side_effect = ProviderError(404, "not found")
        set_provider_client(provider)

        assert run(["--log-format", "console", "fetch", "com.example.app", "token-123"]) == 1
        assert "Provider error (404)" in capsys.readouterr().err


class TestServe:
    def test_runs_uvicorn(self):
        with patch("uvicorn.run") as uvicorn_run:
            assert run(["--port", "9001", "--log-format", "json"]) == 0

        kwargs = uvicorn_run.call_args.kwargs
        assert uvicorn_run.call_args.args[0] == "play_reconciler.main:app"
        assert kwargs["port"] == 9001
        assert kwargs["access_log"] is False
