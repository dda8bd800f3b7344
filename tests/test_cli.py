"""Tests for the rmm-dashboard command line entry point."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import cli
from api import AuthenticationError
from common.config import Config, ConfigError, DattoConfig

CONFIG = Config(datto=DattoConfig(api_url="https://rmm.test", api_key="k", secret_key="s"))


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.env_file is None
    assert args.log_level is None


def test_log_overrides():
    args = cli.build_parser().parse_args(["--log-level", "DEBUG", "--log-file", "x.log"])
    with patch.object(cli.Config, "from_env", return_value=CONFIG):
        config = cli.load_config(args)
    assert config.log_level == "DEBUG"
    assert config.log_file == "x.log"


def test_config_error_exits(capsys):
    with patch.object(cli, "load_config", side_effect=ConfigError("DATTO_API_URL must be set")):
        with pytest.raises(SystemExit) as info:
            cli.main([])
    assert info.value.code == 1
    assert "Configuration error: DATTO_API_URL must be set" in capsys.readouterr().err


def test_rmm_failure_exits(capsys):
    with patch.object(cli, "load_config", return_value=CONFIG), patch.object(
        cli, "setup_logging"
    ), patch.object(cli, "build_backends", side_effect=AuthenticationError("rejected")):
        with pytest.raises(SystemExit) as info:
            cli.main([])
    assert info.value.code == 1
    assert "Failed to connect to Datto RMM: rejected" in capsys.readouterr().err


def test_runs_dashboard():
    with patch.object(cli, "load_config", return_value=CONFIG), patch.object(
        cli, "setup_logging"
    ) as setup, patch.object(cli, "build_backends", return_value="backends"), patch(
        "ui_service.ui.main", return_value=0
    ) as run_ui:
        with pytest.raises(SystemExit) as info:
            cli.main([])
    assert info.value.code == 0
    setup.assert_called_once_with(level="INFO", log_file=None)
    run_ui.assert_called_once_with(CONFIG, "backends")
