"""Unit tests for the winfw command line."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from winfw import __version__
from winfw.cli import app
from winfw.services.factory import BACKENDS
from winfw.services.netsh import NetshBackend

from fakes import FirewallSimulator


runner = CliRunner()


@pytest.fixture
def simulator():
    return FirewallSimulator()


@pytest.fixture
def cli_backend(simulator, audit):
    """Route rule and policy commands to a simulated elevated netsh backend."""
    def factory(ctx):
        return NetshBackend(ctx, simulator, elevated=True, audit=audit)

    with patch("winfw.commands.rule.get_backend", side_effect=factory), \
         patch("winfw.commands.policy.get_backend", side_effect=factory):
        yield simulator


@pytest.fixture
def unelevated_backend(audit):
    def factory(ctx):
        return NetshBackend(ctx, FirewallSimulator(), elevated=False, audit=audit)

    with patch("winfw.commands.rule.get_backend", side_effect=factory):
        yield


class TestRoot:
    def test_version(self):
        """Should print the version and exit."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"winfw version {__version__}" in result.output

    def test_no_args_shows_help(self):
        """Should show help when run without a command."""
        result = runner.invoke(app, [])
        assert "rule" in result.output
        assert "policy" in result.output


class TestRuleCommands:
    """Tests for winfw rule ..."""

    def test_add_port(self, cli_backend):
        """Should add the rule and report it."""
        result = runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        assert result.exit_code == 0, result.output
        assert "Rule added: Web (TCP/8080)" in result.output
        assert cli_backend.names() == ["Web"]

    def test_add_port_udp_outbound(self, cli_backend):
        """Should pass protocol and direction through."""
        result = runner.invoke(app, ["rule", "add-port", "Dns", "53", "-p", "udp", "--outbound"])

        assert result.exit_code == 0, result.output
        flags = cli_backend.rules[0]["flags"]
        assert flags["dir"] == "out"
        assert flags["protocol"] == "udp"

    def test_add_program(self, cli_backend, program):
        """Should add a program rule."""
        result = runner.invoke(app, ["rule", "add-program", "MyApp", program])

        assert result.exit_code == 0, result.output
        assert cli_backend.names() == ["MyApp"]

    def test_add_program_missing_file(self, cli_backend, tmp_path):
        """Should exit with the validation code when the program is missing."""
        result = runner.invoke(app, ["rule", "add-program", "MyApp", str(tmp_path / "nope.exe")])

        assert result.exit_code == 3
        assert cli_backend.calls == []

    def test_add_ip_block(self, cli_backend):
        """Should add a blocking remote IP rule."""
        result = runner.invoke(app, ["rule", "add-ip", "Bad", "10.0.0.1-10.0.0.255", "--block"])

        assert result.exit_code == 0, result.output
        flags = cli_backend.rules[0]["flags"]
        assert flags["action"] == "block"
        assert flags["remoteip"] == "10.0.0.1-10.0.0.255"

    def test_add_ip_local(self, cli_backend):
        result = runner.invoke(app, ["rule", "add-ip", "Lan", "LocalSubnet", "--local"])

        assert result.exit_code == 0, result.output
        assert cli_backend.rules[0]["flags"]["localip"] == "LocalSubnet"

    def test_invalid_port(self, cli_backend):
        """Should exit 3 for an out-of-range port."""
        result = runner.invoke(app, ["rule", "add-port", "Web", "0"])

        assert result.exit_code == 3
        assert cli_backend.calls == []

    def test_invalid_ip(self, cli_backend):
        result = runner.invoke(app, ["rule", "add-ip", "Bad", "999.1.1.1"])
        assert result.exit_code == 3

    def test_delete(self, cli_backend):
        """Should delete an existing rule."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])
        result = runner.invoke(app, ["rule", "delete", "Web"])

        assert result.exit_code == 0, result.output
        assert "Rule deleted: Web" in result.output
        assert cli_backend.names() == []

    def test_delete_missing(self, cli_backend):
        """Should exit with the firewall error code for a missing rule."""
        result = runner.invoke(app, ["rule", "delete", "Ghost"])
        assert result.exit_code == 15

    def test_list(self, cli_backend):
        """Should list rule names."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])
        runner.invoke(app, ["rule", "add-port", "Api", "8081"])

        result = runner.invoke(app, ["rule", "list"])

        assert result.exit_code == 0, result.output
        assert "Web" in result.output
        assert "Api" in result.output
        assert "2 rule(s)" in result.output

    def test_list_filter(self, cli_backend):
        """Should only show names with the given prefix."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])
        runner.invoke(app, ["rule", "add-port", "Api", "8081"])

        result = runner.invoke(app, ["rule", "list", "--filter", "We"])

        assert result.exit_code == 0, result.output
        assert "1 rule(s)" in result.output

    def test_list_empty(self, cli_backend):
        result = runner.invoke(app, ["rule", "list"])

        assert result.exit_code == 0, result.output
        assert "No rules found" in result.output

    def test_exists(self, cli_backend):
        """Should exit 0 when present and 1 when absent."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        assert runner.invoke(app, ["rule", "exists", "Web"]).exit_code == 0
        assert runner.invoke(app, ["rule", "exists", "Ghost"]).exit_code == 1

    def test_enable_disable(self, cli_backend):
        """Should toggle the rule."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        disabled = runner.invoke(app, ["rule", "disable", "Web"])
        assert disabled.exit_code == 0, disabled.output
        assert "Rule disabled: Web" in disabled.output
        assert cli_backend.rules[0]["enabled"] is False

        enabled = runner.invoke(app, ["rule", "enable", "Web"])
        assert enabled.exit_code == 0, enabled.output
        assert cli_backend.rules[0]["enabled"] is True

    def test_not_elevated(self, unelevated_backend):
        """Should exit with the prerequisite code without elevation."""
        result = runner.invoke(app, ["rule", "add-port", "Web", "8080"])
        assert result.exit_code == 6

    def test_preconditions_fail(self):
        """Should exit 6 when the host fails the pre-flight checks."""
        with patch("winfw.core.safety.sys.platform", "linux"), \
             patch("winfw.commands.common.configure_audit_logger"):
            result = runner.invoke(app, ["rule", "list"])
        assert result.exit_code == 6


class TestPolicyCommands:
    """Tests for winfw policy ..."""

    def test_export_import(self, cli_backend, tmp_path):
        """Should export and re-import the policy."""
        path = str(tmp_path / "policy.wfw")
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        exported = runner.invoke(app, ["policy", "export", path])
        assert exported.exit_code == 0, exported.output

        runner.invoke(app, ["rule", "add-port", "Api", "8081"])
        imported = runner.invoke(app, ["policy", "import", path])

        assert imported.exit_code == 0, imported.output
        assert cli_backend.names() == ["Web"]

    def test_import_missing_file(self, cli_backend, tmp_path):
        result = runner.invoke(app, ["policy", "import", str(tmp_path / "missing.wfw")])
        assert result.exit_code == 3

    def test_reset_requires_force(self, cli_backend):
        """Should refuse to reset without --force."""
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        result = runner.invoke(app, ["policy", "reset"])

        assert result.exit_code == 1
        assert cli_backend.names() == ["Web"]

    def test_reset_with_force(self, cli_backend):
        runner.invoke(app, ["rule", "add-port", "Web", "8080"])

        result = runner.invoke(app, ["policy", "reset", "--force"])

        assert result.exit_code == 0, result.output
        assert cli_backend.names() == []

    def test_reset_dry_run_without_force(self, cli_backend):
        """A dry run does not need --force."""
        result = runner.invoke(app, ["policy", "reset", "--dry-run"])
        assert result.exit_code == 0, result.output


class TestHostCommands:
    """Tests for check, backend and compare."""

    def test_check_fails_off_windows(self):
        with patch("winfw.core.safety.sys.platform", "linux"), \
             patch("winfw.core.safety.query_service_running", return_value=False), \
             patch("winfw.core.safety.is_elevated", return_value=False):
            result = runner.invoke(app, ["check"])
        assert result.exit_code == 6

    def test_check_passes(self):
        with patch("winfw.core.safety.sys.platform", "win32"), \
             patch("winfw.core.safety.query_service_running", return_value=True), \
             patch("winfw.core.safety.is_elevated", return_value=True):
            result = runner.invoke(app, ["check"])
        assert result.exit_code == 0, result.output
        assert "All pre-flight checks passed" in result.output

    def test_backend_explicit(self, tmp_path):
        """Should report an explicit choice."""
        result = runner.invoke(
            app, ["backend", "--backend", "netsh", "--config", str(tmp_path / "config.yaml")],
        )

        assert result.exit_code == 0, result.output
        assert "netsh requested explicitly" in result.output

    def test_backend_auto_by_version(self, tmp_path):
        with patch("winfw.services.factory.platform.version", return_value="6.1.7601"):
            result = runner.invoke(app, ["backend", "--config", str(tmp_path / "config.yaml")])

        assert result.exit_code == 0, result.output
        assert "6.1 < 10.0" in result.output

    @pytest.mark.parametrize("variable,value", [
        ("WINFW_BACKEND", "bogus"),
        ("WINFW_TIMEOUT", "soon"),
        ("WINFW_ENCODING", "no-such-codec"),
    ])
    def test_backend_bad_environment(self, tmp_path, variable, value):
        """A malformed WINFW_* variable is a configuration error, not a traceback."""
        result = runner.invoke(
            app, ["backend", "--config", str(tmp_path / "config.yaml")], env={variable: value},
        )

        assert result.exit_code == 2
        assert "Invalid WINFW_* environment variable" in result.output
        assert variable in result.output

    def test_compare(self, tmp_path, audit, program):
        """Should run both backends and save the report."""
        report = tmp_path / "report.txt"

        def build(ctx, kind, audit=None):
            return BACKENDS[kind](ctx, FirewallSimulator(), elevated=True, audit=audit)

        with patch("winfw.cli.check_system_requirements", return_value=(True, "ok")), \
             patch("winfw.cli.configure_audit_logger", return_value=audit), \
             patch("winfw.cli.build_backend", side_effect=build):
            result = runner.invoke(app, [
                "compare", "--program", program, "--report", str(report),
                "--config", str(tmp_path / "config.yaml"),
            ])

        assert result.exit_code == 0, result.output
        text = report.read_text(encoding="utf-8")
        assert "(netsh) ===" in text
        assert "(powershell) ===" in text
        assert "23/23 steps as expected" in text

    def test_compare_preconditions(self, tmp_path):
        with patch("winfw.cli.check_system_requirements", return_value=(False, "Only Windows is supported")):
            result = runner.invoke(app, ["compare", "--config", str(tmp_path / "config.yaml")])
        assert result.exit_code == 6


class TestConfigCommands:
    """Tests for winfw config ..."""

    def test_example(self):
        result = runner.invoke(app, ["config", "example"])
        assert result.exit_code == 0
        assert "backend: auto" in result.output

    def test_init_then_validate(self, tmp_path):
        path = str(tmp_path / "config.yaml")

        created = runner.invoke(app, ["config", "init", "--config", path])
        assert created.exit_code == 0, created.output

        again = runner.invoke(app, ["config", "init", "--config", path])
        assert again.exit_code == 2

        validated = runner.invoke(app, ["config", "validate", "--config", path])
        assert validated.exit_code == 0, validated.output

    def test_validate_missing(self, tmp_path):
        result = runner.invoke(app, ["config", "validate", "--config", str(tmp_path / "none.yaml")])
        assert result.exit_code == 2
