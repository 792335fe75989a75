"""Shared fixtures for the unit tests."""

import pytest

from winfw.core.audit import AuditLogger
from winfw.core.config import AppConfig, EnvironmentOverrides, FirewallConfig
from winfw.core.context import ExecutionContext
from winfw.services.netsh import NetshBackend
from winfw.services.powershell import PowerShellBackend

from fakes import FakeExecutor, FirewallSimulator


@pytest.fixture
def app_config(tmp_path):
    """Default configuration with no environment overrides."""
    return AppConfig(
        config_path=tmp_path / "config.yaml",
        config=FirewallConfig(),
        overrides=EnvironmentOverrides(backend=None, encoding=None, timeout=None),
    )


@pytest.fixture
def ctx(tmp_path, app_config):
    return ExecutionContext(config_path=tmp_path / "config.yaml", _config=app_config)


@pytest.fixture
def dry_run_ctx(tmp_path, app_config):
    return ExecutionContext(dry_run=True, config_path=tmp_path / "config.yaml", _config=app_config)


@pytest.fixture
def audit(tmp_path):
    return AuditLogger(log_path=tmp_path / "audit.log")


@pytest.fixture
def program(tmp_path):
    """An existing file standing in for an executable."""
    path = tmp_path / "My App" / "app.exe"
    path.parent.mkdir()
    path.write_bytes(b"MZ")
    return str(path)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def simulator():
    return FirewallSimulator()


@pytest.fixture
def netsh(ctx, simulator, audit):
    return NetshBackend(ctx, simulator, elevated=True, audit=audit)


@pytest.fixture
def powershell(ctx, simulator, audit):
    return PowerShellBackend(ctx, simulator, elevated=True, audit=audit)


@pytest.fixture(params=["netsh", "powershell"])
def backend(request, ctx, audit):
    """Each backend wired to its own simulated firewall."""
    simulator = FirewallSimulator()
    backend_cls = NetshBackend if request.param == "netsh" else PowerShellBackend
    instance = backend_cls(ctx, simulator, elevated=True, audit=audit)
    instance.simulator = simulator
    return instance
