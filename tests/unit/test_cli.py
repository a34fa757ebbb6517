"""
Unit tests for CLI commands.
"""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest
from typer.testing import CliRunner

from kubeassist.cli import _chat, _handle_command, _run_prompt, app
from kubeassist.config import Config
from kubeassist.errors import AIDisabledError, SendError

runner = CliRunner()


def enabled_config(**overrides):
    return Config(ai_enabled=True, **overrides)


class TestVersionCommand:
    """Tests for version command."""

    def test_version_displays_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "kubeassist version 0.1.0" in result.stdout


class TestSkillsCommand:
    """Tests for skills command."""

    def test_lists_builtin_skills(self):
        with patch("kubeassist.cli.load_config", return_value=Config()):
            result = runner.invoke(app, ["skills"])

        assert result.exit_code == 0
        for name in ("diagnostics", "security", "optimization"):
            assert name in result.stdout


class TestPromptCommands:
    """Tests for diagnose, explain and chat."""

    @patch("kubeassist.cli._one_shot", new_callable=AsyncMock, return_value=True)
    def test_diagnose_builds_prompt(self, one_shot):
        with patch("kubeassist.cli.load_config", return_value=enabled_config(kubernetes_namespace="prod")):
            result = runner.invoke(app, ["diagnose", "Pod", "web-1"])

        assert result.exit_code == 0
        prompt = one_shot.call_args[0][1]
        assert prompt.startswith("Diagnose the Pod 'web-1' in namespace 'prod'.")

    @patch("kubeassist.cli._one_shot", new_callable=AsyncMock, return_value=False)
    def test_explain_failure_exits_non_zero(self, one_shot):
        with patch("kubeassist.cli.load_config", return_value=enabled_config()):
            result = runner.invoke(app, ["explain", "Deployment", "api", "--namespace", "shop"])

        assert result.exit_code == 1
        assert "Explain the Deployment 'api' in namespace 'shop'." in one_shot.call_args[0][1]

    def test_chat_requires_ai_enabled(self):
        with patch("kubeassist.cli.load_config", return_value=Config(ai_enabled=False)):
            result = runner.invoke(app, ["chat"])

        assert result.exit_code == 1
        assert "AI features are disabled" in result.output


class TestInstallRuntimeCommand:
    """Tests for install-runtime command."""

    def test_found(self):
        with patch("kubeassist.cli.resolve_cli_path", return_value="/usr/local/bin/copilot"):
            result = runner.invoke(app, ["install-runtime"])

        assert result.exit_code == 0
        assert "/usr/local/bin/copilot" in result.stdout

    def test_unavailable(self):
        with patch("kubeassist.cli.resolve_cli_path", return_value=None):
            result = runner.invoke(app, ["install-runtime"])

        assert result.exit_code == 1
        assert "npm install -g @github/copilot" in result.output


class TestTurnHelpers:
    """Tests for the chat helpers."""

    @pytest.mark.asyncio
    async def test_run_prompt_reports_errors_without_raising(self):
        orchestrator = Mock()
        orchestrator.active_model.return_value = "gpt-4.1"
        orchestrator.send = AsyncMock(side_effect=AIDisabledError("AI features are disabled"))

        assert await _run_prompt(orchestrator, "hello") is False

    @pytest.mark.asyncio
    async def test_run_prompt_success(self):
        orchestrator = Mock()
        orchestrator.active_model.return_value = "gpt-4.1"
        orchestrator.send = AsyncMock(return_value="done")

        assert await _run_prompt(orchestrator, "hello") is True
        assert orchestrator.send.call_args[0][0] == "hello"

    @pytest.mark.asyncio
    async def test_run_prompt_turn_failure(self):
        orchestrator = Mock()
        orchestrator.active_model.return_value = "gpt-4.1"
        orchestrator.send = AsyncMock(side_effect=SendError("AI request failed"))

        assert await _run_prompt(orchestrator, "hello") is False

    @pytest.mark.asyncio
    async def test_slash_commands(self):
        orchestrator = Mock()
        orchestrator.set_skill = AsyncMock()
        orchestrator.set_model = AsyncMock()
        orchestrator.reset_session = AsyncMock()
        orchestrator.active_skill.return_value = "security"

        await _handle_command(orchestrator, "skill security")
        await _handle_command(orchestrator, "model o3")
        await _handle_command(orchestrator, "reset")

        orchestrator.set_skill.assert_awaited_once_with("security")
        orchestrator.set_model.assert_awaited_once_with("o3")
        orchestrator.reset_session.assert_awaited_once()


class TestChatInterrupt:
    """Tests for Ctrl-C handling in chat."""

    @pytest.mark.asyncio
    async def test_cancelled_chat_stops_orchestrator(self):
        orchestrator = Mock()
        orchestrator.stop = AsyncMock()

        with patch("kubeassist.cli.build_orchestrator", return_value=orchestrator), patch(
            "kubeassist.cli.asyncio.to_thread", new_callable=AsyncMock, side_effect=asyncio.CancelledError()
        ), patch("kubeassist.cli.console") as console:
            await _chat(enabled_config(), "", "", "", "", "")

        orchestrator.stop.assert_awaited_once()
        printed = [call.args[0] for call in console.print.call_args_list]
        assert "\n[yellow]Chat interrupted.[/yellow]" in printed

    def test_interrupt_outside_loop_is_reported(self):
        with patch("kubeassist.cli.load_config", return_value=enabled_config()), patch(
            "kubeassist.cli._chat", new_callable=AsyncMock, side_effect=KeyboardInterrupt()
        ), patch("kubeassist.cli.console") as console:
            result = runner.invoke(app, ["chat"])

        assert result.exit_code == 0
        console.print.assert_called_with("\n[yellow]Chat interrupted.[/yellow]")
