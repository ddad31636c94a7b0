"""Unit tests for the command cache flusher."""

import subprocess
from unittest.mock import patch, MagicMock

from loadchaos.integrations.cache_flush import CommandCacheFlusher


class TestCommandCacheFlusher:
    @patch("loadchaos.integrations.cache_flush.subprocess.run")
    def test_runs_command_without_shell(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        assert CommandCacheFlusher("redis-cli -n 0 FLUSHALL")() is True
        assert mock_run.call_args[0][0] == ["redis-cli", "-n", "0", "FLUSHALL"]

    @patch("loadchaos.integrations.cache_flush.subprocess.run")
    def test_nonzero_exit_is_soft_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stderr="nope")
        assert CommandCacheFlusher(["flush"])() is False

    @patch("loadchaos.integrations.cache_flush.subprocess.run")
    def test_timeout_is_soft_failure(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("flush", 30)
        assert CommandCacheFlusher("flush")() is False

    @patch("loadchaos.integrations.cache_flush.subprocess.run")
    def test_missing_binary_is_soft_failure(self, mock_run):
        mock_run.side_effect = FileNotFoundError("flush")
        assert CommandCacheFlusher("flush")() is False
