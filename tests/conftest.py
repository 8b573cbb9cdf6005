"""Shared fixtures for API and service tests."""

from collections.abc import Iterator
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from coursemarket.files.service import FileService
from coursemarket.main import app, app_state
from coursemarket.payments.checkout import CheckoutService
from coursemarket.payments.webhooks import WebhookReconciler
from coursemarket.purchases.access import AccessPolicy

from tests.fakes import (
    FakeCourseService,
    FakeGateway,
    FakeStorage,
    FakeUserService,
    InMemoryPurchaseLedger,
    Services,
)


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan, so no Cassandra connection is attempted."""
    return TestClient(app)


@pytest.fixture
def services() -> Iterator[Services]:
    """Install in-memory collaborators into the application state."""
    ledger = InMemoryPurchaseLedger()
    users = FakeUserService()
    courses = FakeCourseService()
    storage = FakeStorage()
    gateway = FakeGateway()
    files = Mock(spec=FileService)

    app_state.storage = storage
    app_state.payment_gateway = gateway
    app_state.user_service = users
    app_state.ledger = ledger
    app_state.access_policy = AccessPolicy(ledger)
    app_state.course_service = courses
    app_state.file_service = files
    app_state.checkout_service = CheckoutService(
        course_service=courses, ledger=ledger, gateway=gateway, currency="usd"
    )
    app_state.webhook_reconciler = WebhookReconciler(
        gateway=gateway,
        ledger=ledger,
        user_service=users,
        course_service=courses,
        currency="usd",
    )

    yield Services(
        ledger=ledger,
        users=users,
        courses=courses,
        storage=storage,
        gateway=gateway,
        files=files,
    )

    for name in (
        "storage",
        "payment_gateway",
        "user_service",
        "ledger",
        "access_policy",
        "course_service",
        "file_service",
        "checkout_service",
        "webhook_reconciler",
    ):
        setattr(app_state, name, None)
