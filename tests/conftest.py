"""
Pytest fixtures for IntelliCode tests.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add tests dir for harness import
sys.path.insert(0, str(Path(__file__).parent))

from mock_mcp import MockMCP, no_delay

from intellicode_mcp.config import Config
from intellicode_mcp.memory_bank import MemoryBank
from intellicode_mcp.memory_initializer import initialize_memory_bank
from intellicode_mcp.mcp_logger import configure_logging
from intellicode_mcp.tools import build_router


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """Keep log files out of the home directory."""
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("INTELLICODE_LOG_DIR", str(log_dir))
    configure_logging(str(log_dir))
    yield log_dir


@pytest.fixture
def memory_root(tmp_path):
    return tmp_path / "memory"


@pytest.fixture
def config(tmp_path, memory_root):
    """Default config pointed at a throwaway memory bank and search cache."""
    base = Config().with_memory_root(str(memory_root))
    serpapi = replace(base.integrations.serpapi, cache_dir=str(tmp_path / "cache"))
    return replace(base, integrations=replace(base.integrations, serpapi=serpapi))


@pytest.fixture
def seeded_config(config):
    """Config whose memory bank has been initialized with the default documents."""
    initialize_memory_bank(config)
    return config


@pytest.fixture
def bank(memory_root):
    return MemoryBank(memory_root)


@pytest.fixture
def mcp():
    return MockMCP()


@pytest.fixture
def router(config, mcp):
    """Router over the real tools with ESLint, tsc and SerpAPI mocked."""
    return build_router(config, handlers=mcp.handlers(), delay=no_delay)


@pytest.fixture
def seeded_router(seeded_config, mcp):
    return build_router(seeded_config, handlers=mcp.handlers(), delay=no_delay)
