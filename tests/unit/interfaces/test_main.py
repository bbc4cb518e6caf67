"""Tests for the unified entry point dispatcher."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from stepwise.interfaces.main import _VALID_MODES, main
from stepwise.shared.exceptions import ConfigurationError


class TestMainDispatch:
    def test_valid_modes_set(self) -> None:
        assert {"api", "worker"} == _VALID_MODES

    @patch("stepwise.interfaces.main.os.environ", {"STEPWISE_MODE": "worker"})
    @patch("stepwise.interfaces.main.run_worker")
    def test_dispatch_worker(self, mock_run: MagicMock) -> None:
        main()

        mock_run.assert_called_once()

    @patch("stepwise.interfaces.main.os.environ", {})
    @patch("stepwise.interfaces.main.run_api")
    def test_default_mode_is_api(self, mock_run: MagicMock) -> None:
        main()

        mock_run.assert_called_once()

    @patch("stepwise.interfaces.main.os.environ", {"STEPWISE_MODE": "invalid"})
    def test_invalid_mode_exits(self) -> None:
        with pytest.raises(SystemExit, match="1"):
            main()

    @patch("stepwise.interfaces.main.os.environ", {"STEPWISE_MODE": "  Worker  "})
    @patch("stepwise.interfaces.main.run_worker")
    def test_mode_is_stripped_and_lowered(self, mock_run: MagicMock) -> None:
        main()

        mock_run.assert_called_once()

    @patch("stepwise.interfaces.main.os.environ", {"STEPWISE_MODE": "api"})
    @patch(
        "stepwise.interfaces.main.run_api",
        side_effect=ConfigurationError("Missing required environment variable"),
    )
    def test_configuration_error_exits(self, mock_run: MagicMock) -> None:
        with pytest.raises(SystemExit, match="1"):
            main()


class TestRunWorker:
    def test_disposes_database_when_pool_stops(self) -> None:
        container = MagicMock()

        with (
            patch("stepwise.interfaces.bootstrap.build_container", return_value=container),
            patch("stepwise.interfaces.config.AppConfig.from_env"),
        ):
            from stepwise.interfaces.main import run_worker

            run_worker()

        container.worker_pool.return_value.run.assert_called_once()
        container.database.dispose.assert_called_once()
