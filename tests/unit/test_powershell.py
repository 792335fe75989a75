"""Unit tests for the PowerShell backend and session."""

import asyncio
from pathlib import Path

import pytest

from winfw.services.powershell import (
    POWERSHELL_ARGS,
    PowerShellBackend,
    PowerShellSession,
    ps_quote,
    ps_wildcard_escape,
)
from winfw.services.rules import Outcome

from fakes import PS_NO_MATCH, FakeExecutor


@pytest.fixture
def fake_ps(ctx, audit):
    executor = FakeExecutor()
    backend = PowerShellBackend(ctx, executor, elevated=True, audit=audit)
    return backend, executor


class TestPsQuote:
    """Tests for PowerShell literal quoting."""

    def test_plain_value(self):
        assert ps_quote("Web") == "'Web'"

    def test_embedded_quote_doubled(self):
        assert ps_quote("O'Brien") == "'O''Brien'"

    def test_typographic_quotes_doubled(self):
        assert ps_quote("it’s") == "'it’’s'"

    def test_variables_not_expanded(self):
        """Single-quoted literals keep $ and backticks verbatim."""
        assert ps_quote("$env:TEMP `n") == "'$env:TEMP `n'"

    def test_non_string(self):
        assert ps_quote(8080) == "'8080'"


class TestWildcardEscape:
    """Tests for escaping rule names passed to -DisplayName."""

    @pytest.mark.parametrize("name,escaped", [
        ("Web", "Web"),
        ("*", "`*"),
        ("Web?", "Web`?"),
        ("[x]", "`[x`]"),
        ("a`b", "a``b"),
    ])
    def test_escapes_metacharacters(self, name, escaped):
        assert ps_wildcard_escape(name) == escaped


class TestScriptRendering:
    """Tests for the rendered scripts."""

    def test_prelude_on_every_script(self, fake_ps):
        backend, _ = fake_ps
        for template, params in [
            ("list_rules", {}),
            ("get_rule", {"name": "x"}),
            ("reset_policy", {}),
        ]:
            script = backend.render(template, **params)
            assert script.startswith("$ProgressPreference = 'SilentlyContinue'\n")

    def test_new_program_rule(self, fake_ps, program):
        backend, executor = fake_ps
        asyncio.run(backend.add_outbound_program_rule("My App", program))

        script = executor.scripts[0]
        assert "DisplayName = 'My App'" in script
        assert "Direction = 'Outbound'" in script
        assert "Action = 'Allow'" in script
        assert f"Program = {ps_quote(program)}" in script
        assert "LocalPort" not in script
        assert "New-NetFirewallRule @params" in script

    def test_new_port_rule(self, fake_ps):
        backend, executor = fake_ps
        asyncio.run(backend.add_port_rule("Web", 8080, protocol="tcp"))

        script = executor.scripts[0]
        assert "Protocol = 'TCP'" in script
        assert "LocalPort = '8080'" in script
        assert "Program" not in script

    def test_new_ip_rules(self, fake_ps):
        backend, executor = fake_ps
        asyncio.run(backend.add_remote_ip_rule("Bad", "10.0.0.1-10.0.0.255", allow=False))
        asyncio.run(backend.add_local_ip_rule("Lan", "LocalSubnet", inbound=False))

        remote, local = executor.scripts
        assert "RemoteAddress = '10.0.0.1-10.0.0.255'" in remote
        assert "Action = 'Block'" in remote
        assert "LocalAddress = 'LocalSubnet'" in local
        assert "Direction = 'Outbound'" in local

    def test_hostile_name_stays_literal(self, fake_ps):
        """A name that tries to close the string cannot inject code."""
        backend, executor = fake_ps
        name = "x'; Remove-NetFirewallRule -All; '"

        asyncio.run(backend.delete_rule(name))

        script = executor.scripts[0]
        assert "-DisplayName 'x''; Remove-NetFirewallRule -All; '''" in script
        assert "\nRemove-NetFirewallRule -All" not in script

    def test_set_enabled_script(self, fake_ps):
        backend, executor = fake_ps
        asyncio.run(backend.set_rule_enabled("Web", False))
        script = executor.scripts[0]
        assert "Get-NetFirewallRule -DisplayName 'Web'" in script
        assert "$rules | Set-NetFirewallRule -Enabled 'False'" in script

    @pytest.mark.parametrize("operation", ["delete", "disable", "exists"])
    def test_wildcard_name_is_literal(self, fake_ps, operation):
        """A name like * selects only the rule literally called *."""
        backend, executor = fake_ps
        calls = {
            "delete": lambda: backend.delete_rule("*"),
            "disable": lambda: backend.set_rule_enabled("*", False),
            "exists": lambda: backend.rule_exists("*"),
        }
        asyncio.run(calls[operation]())

        script = executor.scripts[0]
        assert "-DisplayName '`*'" in script
        assert "$_.DisplayName -eq '*'" in script

    def test_policy_scripts(self, fake_ps, tmp_path):
        backend, executor = fake_ps
        path = tmp_path / "policy.xml"
        path.write_text("<Objs />", encoding="utf-8")

        asyncio.run(backend.export_policy(str(path)))
        asyncio.run(backend.import_policy(str(path)))
        asyncio.run(backend.reset_policy())

        export, import_, reset = executor.scripts
        assert f"Export-Clixml -Path {ps_quote(str(path))}" in export
        assert "Get-NetFirewallPortFilter" in export
        assert f"Import-Clixml -Path {ps_quote(str(path))}" in import_
        assert "ContainsKey($rule.DisplayName)" in import_
        assert "Remove-NetFirewallRule -All" in reset
        assert "-DefaultInboundAction Block -DefaultOutboundAction Allow" in reset

    def test_list_only_enabled(self, fake_ps):
        backend, executor = fake_ps
        asyncio.run(backend.list_rules())
        assert "Get-NetFirewallRule -Enabled True" in executor.scripts[0]


class TestPowerShellSession:
    """Tests for the per-call session."""

    def test_invocation(self, fake_ps):
        backend, executor = fake_ps
        asyncio.run(backend.list_rules())

        command = executor.calls[0]
        assert command[0] == "powershell.exe"
        assert command[1:-1] == POWERSHELL_ARGS
        assert command[-1].endswith(".ps1")

    def test_script_written_with_bom(self, ctx):
        seen = {}

        class Capture(FakeExecutor):
            async def run(self, command, **kwargs):
                seen["raw"] = Path(command[-1]).read_bytes()
                return await super().run(command, **kwargs)

        async def scenario():
            async with PowerShellSession(ctx, Capture()) as session:
                await session.run("Write-Output 'é'")

        asyncio.run(scenario())
        assert seen["raw"].startswith(b"\xef\xbb\xbf")

    def test_workdir_removed_after_call(self, ctx):
        executor = FakeExecutor()

        async def scenario():
            async with PowerShellSession(ctx, executor) as session:
                await session.run("Get-Date")
                return session, Path(executor.calls[0][-1])

        session, script_path = asyncio.run(scenario())

        assert not script_path.exists()
        assert not script_path.parent.exists()

    def test_workdir_removed_on_error(self, ctx):
        class Exploding(FakeExecutor):
            async def run(self, command, **kwargs):
                self.calls.append(list(command))
                raise RuntimeError("spawn failed")

        executor = Exploding()

        async def scenario():
            async with PowerShellSession(ctx, executor) as session:
                await session.run("Get-Date")

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())
        assert not Path(executor.calls[0][-1]).parent.exists()

    def test_run_requires_open_session(self, ctx):
        session = PowerShellSession(ctx, FakeExecutor())
        with pytest.raises(RuntimeError):
            asyncio.run(session.run("Get-Date"))


class TestPowerShellClassification:
    """Tests for translating session output into results."""

    def test_delete_missing_rule_is_absent(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stderr=PS_NO_MATCH.format(cmdlet="Remove-NetFirewallRule", name="Ghost"), return_code=1)

        result = asyncio.run(backend.delete_rule("Ghost"))

        assert result.outcome == Outcome.ABSENT
        assert result.message == "Rule not found: Ghost"

    def test_set_enabled_missing_rule_is_absent(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stderr=PS_NO_MATCH.format(cmdlet="Set-NetFirewallRule", name="Ghost"), return_code=1)

        assert asyncio.run(backend.set_rule_enabled("Ghost", True)).outcome == Outcome.ABSENT

    def test_error_stream_is_failure(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stderr="New-NetFirewallRule : Access is denied.", return_code=0)

        result = asyncio.run(backend.add_port_rule("Web", 80))

        assert result.outcome == Outcome.FAILED
        assert "Access is denied" in result.message

    def test_exists_empty_output_is_absent(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stdout="")
        executor.reply(stdout="Web\n")

        missing = asyncio.run(backend.rule_exists("Web"))
        present = asyncio.run(backend.rule_exists("Web"))

        assert missing.outcome == Outcome.ABSENT and not missing.exists
        assert present.exists

    def test_exists_failure(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stderr="powershell.exe : The term is not recognized", return_code=1)

        result = asyncio.run(backend.rule_exists("Web"))
        assert result.outcome == Outcome.FAILED

    def test_list_rules_lines(self, fake_ps):
        backend, executor = fake_ps
        executor.reply(stdout="Core Networking - DNS (UDP-Out)\r\n\r\nWeb\r\n")

        result = asyncio.run(backend.list_rules())
        assert result.rules == ["Core Networking - DNS (UDP-Out)", "Web"]


class TestPowerShellAgainstSimulator:
    """End-to-end behavior against the simulated firewall."""

    def test_import_skips_existing_rules(self, powershell, simulator, tmp_path):
        path = str(tmp_path / "policy.xml")
        asyncio.run(powershell.add_port_rule("A", 80))
        asyncio.run(powershell.add_port_rule("B", 81))
        asyncio.run(powershell.export_policy(path))
        asyncio.run(powershell.delete_rule("B"))

        result = asyncio.run(powershell.import_policy(path))

        assert result.success
        assert simulator.names() == ["A", "B"]

    def test_list_excludes_disabled_rules(self, powershell):
        asyncio.run(powershell.add_port_rule("A", 80))
        asyncio.run(powershell.add_port_rule("B", 81))
        asyncio.run(powershell.set_rule_enabled("B", False))

        assert asyncio.run(powershell.list_rules()).rules == ["A"]

    def test_name_with_quote_round_trips(self, powershell, simulator):
        asyncio.run(powershell.add_port_rule("O'Brien", 80))

        assert simulator.names() == ["O'Brien"]
        assert asyncio.run(powershell.rule_exists("O'Brien")).exists
