"""Tests for console.py module."""

from unittest.mock import patch

from eks_deploy_auto import console
from eks_deploy_auto.models import ResourceStatus
from eks_deploy_auto.sequence import default_graph


class TestConsoleOutput:
    """Tests for console output functions."""

    def test_info_message(self):
        with patch.object(console.console, "print") as mock_print:
            console.info("Test message")
            mock_print.assert_called_once()
            call_arg = mock_print.call_args[0][0]
            assert "ℹ" in call_arg
            assert "Test message" in call_arg

    def test_success_message(self):
        with patch.object(console.console, "print") as mock_print:
            console.success("Operation complete")
            assert "✓" in mock_print.call_args[0][0]

    def test_warning_message(self):
        with patch.object(console.console, "print") as mock_print:
            console.warning("Be careful")
            assert "⚠" in mock_print.call_args[0][0]

    def test_error_message(self):
        with patch.object(console.console, "print") as mock_print:
            console.error("Something failed")
            assert "✗" in mock_print.call_args[0][0]

    def test_command_escapes_markup(self):
        """Brackets in command lines must not be read as Rich markup."""
        with patch.object(console.console, "print") as mock_print:
            console.command(["echo", "[bold]literal[/bold]"])
            call_arg = mock_print.call_args[0][0]
            assert call_arg.startswith("[muted]$[/muted] echo")
            assert "\\[bold]" in call_arg

    def test_highlight_returns_markup(self):
        assert console.highlight("important") == "[highlight]important[/highlight]"

    def test_newline(self):
        with patch.object(console.console, "print") as mock_print:
            console.newline()
            mock_print.assert_called_once_with()


class TestConsoleTables:
    """Tests for panels and tables."""

    def test_summary_panel(self):
        with patch.object(console.console, "print") as mock_print:
            console.summary_panel("Test Summary", {"Key1": "Value1", "Key2": "Value2"})
            mock_print.assert_called_once()

    def test_plan_table_rows(self):
        graph = default_graph()
        with patch.object(console.console, "print") as mock_print:
            console.plan_table(graph.tiers(), skipped={"rds-access"})

        table = mock_print.call_args[0][0]
        assert table.row_count == len(graph)

    def test_status_table(self):
        statuses = [
            ResourceStatus("Deployment", "webapp", True, "2/2 replicas ready"),
            ResourceStatus("Service", "webapp", False, "load balancer pending"),
        ]
        with patch.object(console.console, "print") as mock_print:
            console.status_table(statuses)

        assert mock_print.call_args[0][0].row_count == 2


class TestConsoleSpinner:
    """Tests for spinner context manager."""

    def test_spinner_context_manager(self):
        with patch.object(console.console, "status") as mock_status:
            mock_status.return_value.__enter__ = lambda x: None
            mock_status.return_value.__exit__ = lambda x, *args: None
            with console.spinner("Loading..."):
                pass
            mock_status.assert_called_once()
