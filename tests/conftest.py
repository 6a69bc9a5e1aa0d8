"""Test configuration and fixtures for gatedql."""

import warnings
# Silence Strawberry deprecation chatter to keep test output clean
warnings.filterwarnings("ignore", category=DeprecationWarning, module=r"strawberry.*")

from dotenv import load_dotenv
import pytest
import asyncio
import logging
import os
import sys

from gatedql.registry import get_metadata_storage

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def event_loop_policy():
    """Set event loop policy for Windows compatibility."""
    if sys.platform.startswith("win"):
        # Use SelectorEventLoop instead of ProactorEventLoop on Windows
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    yield asyncio.get_event_loop_policy()


@pytest.fixture(scope="session", autouse=True)
def gatedql_log_level():
    """Honour GATEDQL_LOG_LEVEL (e.g. DEBUG) for the library logger."""
    level = os.getenv("GATEDQL_LOG_LEVEL")
    if level:
        logging.getLogger("gatedql").setLevel(level.upper())
    yield


@pytest.fixture(autouse=True)
def clean_registry():
    """Every test declares its own classes against an empty process-wide registry."""
    registry = get_metadata_storage()
    registry.clear()
    yield registry
    registry.clear()


@pytest.fixture
def gatedql_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="gatedql")
    return caplog
