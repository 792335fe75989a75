"""
Windows Firewall management - netsh and PowerShell backends behind one contract.

Adds, removes, enumerates and toggles Windows Defender Firewall rules and
exports, imports or resets the firewall policy.
"""

__version__ = "1.0.0"
__author__ = "Windows Firewall Tools Team"
