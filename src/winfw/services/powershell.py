"""PowerShell NetSecurity backend.

Each operation renders a script from ``templates/powershell`` and runs it
in a fresh ``powershell.exe`` process. Every value reaches the script as
a single-quoted PowerShell literal, so rule names, paths and addresses
are never interpreted as code. Rule names are also wildcard-escaped and
compared exactly, so a name only ever targets the rule carrying it.
"""

import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from winfw.core.context import ExecutionContext
from winfw.core.executor import CommandExecutor, CommandResult
from winfw.services.backend import FirewallBackend
from winfw.services.output_parser import POWERSHELL_ABSENT, parse_line_list
from winfw.services.rules import Direction, Outcome, RuleIntent, RuleKind


POWERSHELL_ARGS = [
    "-NoLogo",
    "-NoProfile",
    "-NonInteractive",
    "-ExecutionPolicy", "Bypass",
    "-File",
]

# Windows PowerShell 5.1 reads BOM-less scripts in the ANSI code page
SCRIPT_ENCODING = "utf-8-sig"

# PowerShell accepts the typographic single quotes as string delimiters too
_SINGLE_QUOTES = re.compile("(['‘’‚‛])")

# Metacharacters of -DisplayName and other wildcard-aware parameters
_WILDCARD_CHARS = re.compile(r"([`*?\[\]])")

DIRECTION_NAMES = {
    Direction.INBOUND: "Inbound",
    Direction.OUTBOUND: "Outbound",
}


def ps_quote(value: Any) -> str:
    """Render a value as a PowerShell single-quoted string literal."""
    return "'" + _SINGLE_QUOTES.sub(r"\1\1", str(value)) + "'"


def ps_wildcard_escape(value: Any) -> str:
    """Backtick-escape wildcard characters, as [WildcardPattern]::Escape does.

    For example "Web*" becomes "Web`*" and matches only that name.
    """
    return _WILDCARD_CHARS.sub(r"`\1", str(value))


def get_jinja_env() -> Environment:
    """Get Jinja2 environment for PowerShell script templates."""
    env = Environment(
        loader=PackageLoader("winfw", "templates"),
        autoescape=select_autoescape(),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["psq"] = ps_quote
    env.filters["pswild"] = ps_wildcard_escape
    return env


class PowerShellSession:
    """A scratch directory for scripts run by one ``powershell.exe`` call.

    Usage:
        async with PowerShellSession(ctx, executor) as session:
            result = await session.run(script)

    The directory and everything written to it are removed on exit,
    whether the call succeeded, raised or was cancelled.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        powershell: Optional[str] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.powershell = powershell or ctx.config.powershell_path
        self._workdir: Optional[Path] = None

    async def __aenter__(self) -> "PowerShellSession":
        self._workdir = Path(tempfile.mkdtemp(prefix="winfw-"))
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    async def run(self, script: str, description: Optional[str] = None) -> CommandResult:
        """Write the script to a file and execute it."""
        if self._workdir is None:
            raise RuntimeError("PowerShell session is not open")

        if self.ctx.dry_run or self.ctx.is_debug:
            self.ctx.console.script(script, title=description or "PowerShell")

        script_path = self._workdir / "command.ps1"
        script_path.write_text(script, encoding=SCRIPT_ENCODING)

        return await self.executor.run(
            [self.powershell, *POWERSHELL_ARGS, str(script_path)],
            description=description,
        )


class PowerShellBackend(FirewallBackend):
    """Firewall backend driving the NetSecurity cmdlets."""

    name = "powershell"
    display_name = "PowerShell NetSecurity"
    policy_suffix = ".xml"
    absent_phrases = POWERSHELL_ABSENT

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._jinja_env = get_jinja_env()

    def render(self, template: str, **params: Any) -> str:
        """Render a script template."""
        return self._jinja_env.get_template(f"powershell/{template}.ps1.j2").render(**params)

    async def _run_script(
        self,
        template: str,
        description: Optional[str] = None,
        **params: Any,
    ) -> CommandResult:
        script = self.render(template, **params)
        async with PowerShellSession(self.ctx, self.executor) as session:
            return await session.run(script, description=description)

    async def _add_rule(self, intent: RuleIntent) -> CommandResult:
        params: dict[str, Any] = {
            "name": intent.name,
            "direction": DIRECTION_NAMES[intent.direction],
            "action": intent.action.value.capitalize(),
            "program": intent.program_path,
            "protocol": intent.protocol if intent.kind == RuleKind.PORT else None,
            "port": intent.port,
            "remote_address": None,
            "local_address": None,
        }
        if intent.kind == RuleKind.REMOTE_IP:
            params["remote_address"] = intent.ip_expression
        elif intent.kind == RuleKind.LOCAL_IP:
            params["local_address"] = intent.ip_expression

        return await self._run_script(
            "new_rule", description=f"Adding rule {intent.name}", **params
        )

    async def _delete_rule(self, name: str) -> CommandResult:
        return await self._run_script(
            "remove_rule", description=f"Deleting rule {name}", name=name
        )

    async def _show_rules(self) -> CommandResult:
        return await self._run_script("list_rules")

    def _parse_rule_list(self, output: str) -> list[str]:
        return parse_line_list(output)

    async def _query_rule(self, name: str) -> CommandResult:
        return await self._run_script("get_rule", name=name)

    def _classify_existence(self, result: CommandResult) -> Outcome:
        # Lookup errors are silenced in the script; no output means no rule
        if not result.success:
            return Outcome.FAILED
        if parse_line_list(result.stdout):
            return Outcome.SUCCESS
        return Outcome.ABSENT

    async def _set_rule_enabled(self, name: str, enabled: bool) -> CommandResult:
        return await self._run_script(
            "set_rule_enabled",
            description=f"{'Enabling' if enabled else 'Disabling'} rule {name}",
            name=name,
            enabled="True" if enabled else "False",
        )

    async def _export_policy(self, path: str) -> CommandResult:
        return await self._run_script(
            "export_policy", description=f"Exporting policy to {path}", path=path
        )

    async def _import_policy(self, path: str) -> CommandResult:
        return await self._run_script(
            "import_policy", description=f"Importing policy from {path}", path=path
        )

    async def _reset_policy(self) -> CommandResult:
        return await self._run_script("reset_policy", description="Resetting firewall policy")
