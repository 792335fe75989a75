"""Input validation utilities.

Provides validation for everything that ends up in a firewall command:
- Rule names
- Program and policy file paths
- Ports and protocols
- IP expressions (keyword, range, subnet or single address)

All validators return the validated value or raise ValidationError.
"""

import ipaddress
import os
import re
from enum import Enum
from pathlib import Path
from typing import Union

from winfw.core.exceptions import ValidationError


MIN_PORT = 1
MAX_PORT = 65535

SUPPORTED_PROTOCOLS: frozenset[str] = frozenset({"TCP", "UDP"})

# Address keywords understood by both netsh and the NetSecurity cmdlets
IP_KEYWORDS: frozenset[str] = frozenset({
    "any", "localsubnet", "dns", "dhcp", "wins", "defaultgateway",
})

# netsh treats name=all as "every rule"
RESERVED_RULE_NAMES: frozenset[str] = frozenset({"all"})

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

MAX_IPV4_PREFIX = 32
MAX_IPV6_PREFIX = 128


class IpExpressionKind(str, Enum):
    """Form an IP expression parsed as."""
    KEYWORD = "keyword"
    RANGE = "range"
    SUBNET = "subnet"
    ADDRESS = "address"


def validate_rule_name(name: str) -> str:
    """Validate a firewall rule name.

    Args:
        name: Rule display name

    Returns:
        The validated name

    Raises:
        ValidationError: If the name is empty, reserved or contains
            characters that cannot be passed to netsh
    """
    if name is None or not str(name).strip():
        raise ValidationError(
            "Rule name cannot be empty",
            hint="Provide a descriptive rule name",
        )

    if CONTROL_CHARS.search(name):
        raise ValidationError(
            "Rule name contains control characters",
            hint="Use printable characters only",
        )

    if '"' in name:
        raise ValidationError(
            "Rule name cannot contain double quotes",
            hint="netsh cannot express embedded double quotes in rule names",
        )

    if name.strip().lower() in RESERVED_RULE_NAMES:
        raise ValidationError(
            f"'{name}' is a reserved rule name",
            hint="netsh interprets name=all as every rule in the store",
        )

    return name


def validate_program_path(path: Union[str, Path]) -> str:
    """Validate that a program path points to an existing file.

    Raises:
        ValidationError: If the path is empty or the file does not exist
    """
    value = str(path) if path is not None else ""
    if not value.strip():
        raise ValidationError(
            "Program path cannot be empty",
            hint="Provide the full path to an executable",
        )

    if CONTROL_CHARS.search(value) or '"' in value:
        raise ValidationError(
            "Program path contains invalid characters",
            hint="Use a plain filesystem path",
        )

    if not os.path.isfile(value):
        raise ValidationError(
            f"Program not found: {value}",
            hint="Check the path and make sure the file exists",
        )

    return value


def validate_port(value: int) -> int:
    """Validate a port number.

    Raises:
        ValidationError: If port is out of valid range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Invalid port number: {value!r}",
            hint=f"Port must be an integer between {MIN_PORT} and {MAX_PORT}",
        )

    if not MIN_PORT <= value <= MAX_PORT:
        raise ValidationError(
            f"Invalid port number: {value}",
            hint=f"Port must be between {MIN_PORT} and {MAX_PORT}",
        )

    return value


def validate_protocol(value: str) -> str:
    """Validate and normalize a port-rule protocol.

    Returns:
        Upper-case protocol name (TCP or UDP)

    Raises:
        ValidationError: If the protocol is not supported for port rules
    """
    normalized = (value or "").strip().upper()
    if normalized not in SUPPORTED_PROTOCOLS:
        raise ValidationError(
            f"Invalid protocol: {value}",
            hint=f"Port rules support: {', '.join(sorted(SUPPORTED_PROTOCOLS))}",
        )
    return normalized


def _parse_address(text: str) -> Union[ipaddress.IPv4Address, ipaddress.IPv6Address]:
    return ipaddress.ip_address(text.strip())


def parse_ip_expression(value: str) -> tuple[IpExpressionKind, str]:
    """Parse an IP expression into its form and canonical text.

    Supported forms:
    - Keyword: Any, LocalSubnet, DNS, DHCP, WINS, DefaultGateway
    - Range: 10.0.0.1-10.0.0.255
    - Subnet: 192.168.1.0/24 (IPv4 prefix 0-32)
    - Single address: 192.168.1.1

    The canonical text is rebuilt from the parsed parts, so whitespace
    around ``-`` and ``/`` never reaches the backends.

    Raises:
        ValidationError: If the expression matches none of the forms
    """
    if value is None or not value.strip():
        raise ValidationError(
            "IP address cannot be empty",
            hint="Use an address, range, subnet or keyword such as LocalSubnet",
        )

    text = value.strip()

    if text.lower() in IP_KEYWORDS:
        return IpExpressionKind.KEYWORD, text

    try:
        if "-" in text:
            parts = text.split("-")
            if len(parts) != 2:
                raise ValueError("range must have exactly two endpoints")
            start, end = _parse_address(parts[0]), _parse_address(parts[1])
            if start.version != end.version:
                raise ValueError("range endpoints must be the same IP version")
            return IpExpressionKind.RANGE, f"{start}-{end}"

        if "/" in text:
            parts = text.split("/")
            if len(parts) != 2:
                raise ValueError("subnet must have exactly one prefix")
            address = _parse_address(parts[0])
            prefix_text = parts[1].strip()
            if not prefix_text.isdigit():
                raise ValueError(f"prefix is not a number: {prefix_text}")
            max_prefix = MAX_IPV4_PREFIX if address.version == 4 else MAX_IPV6_PREFIX
            prefix = int(prefix_text)
            if not 0 <= prefix <= max_prefix:
                raise ValueError(f"prefix must be between 0 and {max_prefix}")
            return IpExpressionKind.SUBNET, f"{address}/{prefix}"

        return IpExpressionKind.ADDRESS, str(_parse_address(text))

    except ValueError as e:
        raise ValidationError(
            f"Invalid IP address: {value}",
            hint="Use an address, A-B range, A/n subnet or a keyword (Any, LocalSubnet, DNS, DHCP, WINS, DefaultGateway)",
            details=[str(e)],
        ) from e


def validate_ip_expression(value: str) -> str:
    """Validate an IP expression and return its canonical text.

    Raises:
        ValidationError: If the expression is malformed
    """
    _, canonical = parse_ip_expression(value)
    return canonical


def validate_import_file(path: Union[str, Path]) -> str:
    """Validate that a policy file to import exists.

    Raises:
        ValidationError: If the path is empty or missing
    """
    value = str(path) if path is not None else ""
    if not value.strip():
        raise ValidationError("Policy file path cannot be empty")

    if not os.path.isfile(value):
        raise ValidationError(
            f"Policy file not found: {value}",
            hint="Export a policy first with: winfw policy export <path>",
        )

    return value


def validate_export_path(path: Union[str, Path]) -> str:
    """Validate a destination path for a policy export.

    Raises:
        ValidationError: If the path is empty or its directory is missing
    """
    value = str(path) if path is not None else ""
    if not value.strip():
        raise ValidationError("Export path cannot be empty")

    if CONTROL_CHARS.search(value) or '"' in value:
        raise ValidationError(
            "Export path contains invalid characters",
            hint="Use a plain filesystem path",
        )

    parent = Path(value).parent
    if not parent.is_dir():
        raise ValidationError(
            f"Export directory does not exist: {parent}",
            hint="Create the directory first",
        )

    return value
