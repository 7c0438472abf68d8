"""Pytest configuration and fixtures for sqlite_bridge tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from sqlite_bridge.application import Connection
from sqlite_bridge.infrastructure.config import Config
from sqlite_bridge.infrastructure.container import BindingContext
from sqlite_bridge.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    """Provide an isolated Prometheus registry."""
    return CollectorRegistry(auto_describe=True)


@pytest.fixture
def metrics_registry(collector_registry: CollectorRegistry) -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    return MetricsRegistry(registry=collector_registry)


@pytest.fixture
def binding_context(metrics_registry: MetricsRegistry) -> Generator[BindingContext, None, None]:
    """Provide a binding context isolated from the default one."""
    context = BindingContext(config=Config(), metrics=metrics_registry)
    yield context
    context.close_all()


@pytest.fixture
def db(binding_context: BindingContext) -> Generator[Connection, None, None]:
    """Provide an open in-memory connection."""
    connection = Connection(":memory:", context=binding_context)
    yield connection
    if connection.is_open:
        connection.close()


@pytest.fixture
def file_db(binding_context: BindingContext, temp_dir: Path) -> Generator[Connection, None, None]:
    """Provide an open connection to a database file."""
    connection = Connection(temp_dir / "source.db", context=binding_context)
    yield connection
    if connection.is_open:
        connection.close()


@pytest.fixture
def session_support(binding_context: BindingContext) -> None:
    """Skip when the loaded SQLite library lacks the session extension."""
    if not binding_context.engine.has_sessions:
        pytest.skip("SQLite library built without the session extension")


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests against the SQLite library")
    config.addinivalue_line("markers", "slow: Slow tests")
