"""Tests for the crossposter command line."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from crossposter.cli import main


class TestConfigCommand:
    """Tests for ``crossposter config``."""

    def test_show(self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CROSSPOSTER_LINKEDIN__CLIENT_SECRET", "very-secret")
        assert main(["config", "--show"]) == 0
        out = capsys.readouterr().out
        assert "CrossPoster Configuration" in out
        assert "very-secret" not in out

    def test_env_to_file(self, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
        target = tmp_path / "crossposter.env"
        assert main(["config", "--env", "-o", str(target)]) == 0
        assert "Configuration written to" in capsys.readouterr().out
        assert "export CROSSPOSTER_SERVER__PORT=" in target.read_text(encoding="utf-8")

    def test_show_and_env_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            main(["config", "--show", "--env"])


class TestServeCommand:
    """Tests for ``crossposter serve``."""

    def test_serve_uses_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CROSSPOSTER_SERVER__PORT", "9200")
        with patch("uvicorn.run") as run:
            assert main(["serve"]) == 0
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9200
        assert kwargs["log_level"] == "info"

    def test_serve_flags_override(self) -> None:
        with patch("uvicorn.run") as run:
            main(["serve", "--host", "0.0.0.0", "-p", "8081"])  # noqa: S104
        assert run.call_args.kwargs["host"] == "0.0.0.0"  # noqa: S104
        assert run.call_args.kwargs["port"] == 8081

    def test_reload_uses_factory_string(self) -> None:
        with patch("uvicorn.run") as run:
            main(["serve", "--reload"])
        assert run.call_args.args[0] == "crossposter.app:create_app"
        assert run.call_args.kwargs["factory"] is True
        assert run.call_args.kwargs["reload"] is True


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 0
    assert "serve" in capsys.readouterr().out
