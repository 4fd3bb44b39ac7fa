"""Fixtures for the REST API tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from hookrelay.api.app import create_app
from hookrelay.config.settings import HandshakeProof

from conftest import WebhookConsumer

if TYPE_CHECKING:
    from collections.abc import Iterator

    from hookrelay.config.settings import AppConfig


@pytest.fixture
def echo_consumer() -> WebhookConsumer:
    # Secrets are generated server-side, so API tests use echo proofs.
    return WebhookConsumer(mode=HandshakeProof.ECHO)


@pytest.fixture
def api_config(app_config: AppConfig) -> AppConfig:
    app_config.subscriptions.handshake_proof = HandshakeProof.ECHO
    return app_config


@pytest.fixture
def client(api_config: AppConfig, echo_consumer: WebhookConsumer) -> Iterator[TestClient]:
    """TestClient with the engine lifespan running."""
    app = create_app(config=api_config, transport=echo_consumer.transport)
    with TestClient(app) as test_client:
        yield test_client

