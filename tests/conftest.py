"""Pytest configuration and fixtures for the project estimator tests."""

import copy
from typing import Any, Dict

import pytest

from estimator.blob_store import BlobStore
from estimator.project_service import ProjectService
from estimator.project_store import ProjectStore



@pytest.fixture
def sample_tree() -> Dict[str, Any]:
    """
    T-shirt sized tree used across the rollup tests.

    Realistic: A1 = S + M = 3h, A2 = XL = 8h (one unsized task),
    B1 = XS + XXL = 16.5h, module C has no features. Total 27.5h.
    """
    return {
        "modules": [
            {
                "id": "module-a",
                "name": "Accounts",
                "description": "Users and roles",
                "features": [
                    {
                        "id": "feature-a1",
                        "name": "Login",
                        "complexity": "low",
                        "sub_features": [
                            {"id": "a1-1", "name": "Form", "estimation": {"tshirt_size": "S", "estimated_hours": 1}},
                            {"id": "a1-2", "name": "Session", "estimation": {"tshirt_size": "M", "estimated_hours": 2}},
                        ],
                    },
                    {
                        "id": "feature-a2",
                        "name": "Roles",
                        "complexity": "high",
                        "sub_features": [
                            {"id": "a2-1", "name": "Permission model", "estimation": {"tshirt_size": "XL", "estimated_hours": 8}},
                            {"id": "a2-2", "name": "Not sized yet"},
                        ],
                    },
                ],
            },
            {
                "id": "module-b",
                "name": "Billing",
                "features": [
                    {
                        "id": "feature-b1",
                        "name": "Invoices",
                        "complexity": "medium",
                        "sub_features": [
                            {"id": "b1-1", "name": "PDF layout", "estimation": {"tshirt_size": "XS", "estimated_hours": 0.5}},
                            {"id": "b1-2", "name": "Payment provider", "estimation": {"tshirt_size": "XXL", "estimated_hours": 16}},
                        ],
                    },
                ],
            },
            {"id": "module-c", "name": "Reporting"},
        ]
    }


@pytest.fixture
def fibonacci_tree() -> Dict[str, Any]:
    """One feature sized 3 (6h) and 8 (20h) points."""
    return {
        "modules": [
            {
                "id": "m1",
                "name": "Core",
                "features": [
                    {
                        "id": "f1",
                        "name": "Search",
                        "sub_features": [
                            {"id": "s1", "estimation": {"fibonacci_points": 3, "estimated_hours": 6}},
                            {"id": "s2", "estimation": {"fibonacci_points": 8, "estimated_hours": 20}},
                        ],
                    }
                ],
            }
        ]
    }


@pytest.fixture
def tree_copy(sample_tree):
    """Factory returning fresh deep copies of sample_tree."""
    return lambda: copy.deepcopy(sample_tree)


@pytest.fixture
def store(tmp_path) -> ProjectStore:
    return ProjectStore(tmp_path / "data" / "estimator_db.json")


@pytest.fixture
def blobs(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "uploads")


@pytest.fixture
def service(store, blobs) -> ProjectService:
    return ProjectService(store, blobs)


@pytest.fixture
def owner(store) -> Dict[str, Any]:
    return store.create_user("owner@example.com", "not-a-real-hash", "Owner")


@pytest.fixture
def project(service, owner) -> Dict[str, Any]:
    return service.create_project(owner["id"], "Booking Platform", "Online booking for clinics")
