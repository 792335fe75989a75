"""Firewall backends and the services built on them."""

from winfw.services.backend import FirewallBackend
from winfw.services.netsh import NetshBackend
from winfw.services.powershell import PowerShellBackend, PowerShellSession
from winfw.services.factory import BackendKind, create_backend

__all__ = [
    "FirewallBackend",
    "NetshBackend",
    "PowerShellBackend",
    "PowerShellSession",
    "BackendKind",
    "create_backend",
]
