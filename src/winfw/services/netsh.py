"""netsh advfirewall backend.

Each operation is a single ``netsh advfirewall`` invocation built as an
argument vector of subcommand tokens and ``key=value`` flags. Output is
human-readable text in the console language; rule names are scraped
from the ``Rule Name:`` lines and absent rules are recognized by the
localized no-match phrase.
"""

from winfw.core.executor import CommandResult
from winfw.services.backend import FirewallBackend
from winfw.services.output_parser import NETSH_ABSENT, parse_netsh_rule_names
from winfw.services.rules import Direction, RuleIntent, RuleKind


FIREWALL_CONTEXT = ["advfirewall", "firewall"]

# netsh dir= values
DIRECTION_FLAGS = {
    Direction.INBOUND: "in",
    Direction.OUTBOUND: "out",
}

# netsh address flag per IP rule kind
ADDRESS_FLAGS = {
    RuleKind.REMOTE_IP: "remoteip",
    RuleKind.LOCAL_IP: "localip",
}


def rule_flags(intent: RuleIntent) -> list[str]:
    """Convert a validated intent to ``netsh ... add rule`` flags."""
    args = [
        f"name={intent.name}",
        f"dir={DIRECTION_FLAGS[intent.direction]}",
        f"action={intent.action.value}",
    ]

    if intent.kind == RuleKind.PROGRAM:
        args.append(f"program={intent.program_path}")
        args.append("enable=yes")
    elif intent.kind == RuleKind.PORT:
        args.append(f"protocol={intent.protocol.lower()}")
        args.append(f"localport={intent.port}")
    else:
        args.append(f"{ADDRESS_FLAGS[intent.kind]}={intent.ip_expression}")

    return args


class NetshBackend(FirewallBackend):
    """Firewall backend driving ``netsh advfirewall``."""

    name = "netsh"
    display_name = "netsh advfirewall"
    policy_suffix = ".wfw"
    absent_phrases = NETSH_ABSENT

    @property
    def netsh(self) -> str:
        return self.ctx.config.netsh_path

    def _firewall(self, *args: str) -> list[str]:
        return [self.netsh, *FIREWALL_CONTEXT, *args]

    def _advfirewall(self, *args: str) -> list[str]:
        return [self.netsh, "advfirewall", *args]

    async def _add_rule(self, intent: RuleIntent) -> CommandResult:
        command = self._firewall("add", "rule", *rule_flags(intent))
        return await self.executor.run(command, description=f"Adding rule {intent.name}")

    async def _delete_rule(self, name: str) -> CommandResult:
        return await self.executor.run(
            self._firewall("delete", "rule", f"name={name}"),
            description=f"Deleting rule {name}",
        )

    async def _show_rules(self) -> CommandResult:
        return await self.executor.run(self._firewall("show", "rule", "name=all"))

    def _parse_rule_list(self, output: str) -> list[str]:
        return parse_netsh_rule_names(output)

    async def _query_rule(self, name: str) -> CommandResult:
        return await self.executor.run(self._firewall("show", "rule", f"name={name}"))

    async def _set_rule_enabled(self, name: str, enabled: bool) -> CommandResult:
        flag = "yes" if enabled else "no"
        return await self.executor.run(
            self._firewall("set", "rule", f"name={name}", "new", f"enable={flag}"),
            description=f"{'Enabling' if enabled else 'Disabling'} rule {name}",
        )

    async def _export_policy(self, path: str) -> CommandResult:
        return await self.executor.run(
            self._advfirewall("export", path),
            description=f"Exporting policy to {path}",
        )

    async def _import_policy(self, path: str) -> CommandResult:
        # Replaces the whole policy, including rules created since the export
        return await self.executor.run(
            self._advfirewall("import", path),
            description=f"Importing policy from {path}",
        )

    async def _reset_policy(self) -> CommandResult:
        return await self.executor.run(
            self._advfirewall("reset"),
            description="Resetting firewall policy",
        )
