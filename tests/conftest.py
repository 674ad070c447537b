"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import pytest

sys.path.append(os.path.join(os.getcwd(), "src"))

# Settings are read once on import, so the environment is set up front
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SYNC_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("SYNC_RECONCILE_ENABLED", "false")

from capacityhub.domain.models import Allocation, Project, ProjectPriority, Resource  # noqa: E402


@pytest.fixture
def resource() -> Resource:
    """40h contract with 8h non-project time: 32h effective capacity."""
    return Resource(id=1, name="Ada Lovelace", weekly_capacity=40, non_project_hours=8)


@pytest.fixture
def projects() -> list:
    return [
        Project(id=10, name="Apollo", priority=ProjectPriority.HIGH),
        Project(id=20, name="Hermes", priority=ProjectPriority.LOW),
    ]


@pytest.fixture
def overallocated() -> list:
    """Two allocations of resource 1 totalling 45h in week 2025-03-03."""
    return [
        Allocation(
            id=100,
            project_id=10,
            resource_id=1,
            weekly_allocations={"2025-03-03": 25, "2025-03-10": 10},
        ),
        Allocation(
            id=200,
            project_id=20,
            resource_id=1,
            weekly_allocations={"2025-03-03": 20, "2025-03-10": 5},
        ),
    ]
