"""Parsing of localized firewall tool output.

netsh and the NetSecurity cmdlets only report "rule not found" as free
text in the console language. The phrases recognized here are the only
place that text is matched; hosts using a display language other than
English or Simplified Chinese will see absent rules reported as failures.
"""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class AbsentPhrases:
    """Per-locale phrases a backend prints when no rule matches."""
    backend: str
    phrases: dict[str, tuple[str, ...]]

    def matches(self, text: str) -> bool:
        """Return True if any known phrase occurs in the text."""
        if not text:
            return False
        return any(
            phrase in text
            for locale_phrases in self.phrases.values()
            for phrase in locale_phrases
        )


NETSH_ABSENT = AbsentPhrases(
    backend="netsh",
    phrases={
        "en-US": ("No rules match the specified criteria", "No rules match"),
        "zh-CN": ("没有与指定条件匹配的规则", "没有规则匹配"),
    },
)

POWERSHELL_ABSENT = AbsentPhrases(
    backend="powershell",
    phrases={
        "en-US": ("No MSFT_NetFirewallRule objects found",),
        "zh-CN": ("的 MSFT_NetFirewallRule 对象", "找不到 MSFT_NetFirewallRule 对象"),
    },
)

# Labels of the name line in "netsh advfirewall firewall show rule" output
NETSH_RULE_NAME_LABELS: tuple[str, ...] = ("Rule Name", "规则名称")

# ASCII or full-width colon
_SEPARATOR = re.compile(r"[:：]")


def parse_netsh_rule_names(output: str) -> list[str]:
    """Extract rule names from netsh tabular output.

    Each line starting with a rule-name label yields the text after the
    first separator, so names containing colons survive intact.
    """
    names: list[str] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        for label in NETSH_RULE_NAME_LABELS:
            if not line.startswith(label):
                continue
            remainder = line[len(label):]
            match = _SEPARATOR.match(remainder.lstrip())
            if match is None:
                continue
            value = remainder.lstrip()[match.end():].strip()
            if value:
                names.append(value)
            break
    return names


def parse_line_list(output: str) -> list[str]:
    """Split one-value-per-line output into a list, skipping blank lines."""
    return [line.strip() for line in output.splitlines() if line.strip()]
