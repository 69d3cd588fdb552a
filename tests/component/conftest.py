"""
Component Test Layer Configuration

Layer 3: Component Tests
- Service classes wired to in-memory repositories and collaborators
- No database, no network
- Service-specific fixtures live in each service directory's conftest.py

Usage:
    pytest tests/component -v
    pytest tests/component/seasonal_credit -v
"""

import os
import sys

import pytest

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )
