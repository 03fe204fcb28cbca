"""Shared fixtures for API tests."""

from collections.abc import AsyncGenerator, Iterator
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from coursefeed.feed import FeedSessionRegistry
from coursefeed.feed.session import FeedBackends
from coursefeed.main import create_app
from tests.fakes import FakeClock, make_backends, make_settings, sample_courses, sample_quizzes


LEARNER_HEADERS = {"X-Learner-ID": "learner-1"}


@pytest.fixture
def feed_backends() -> FeedBackends:
    return make_backends(sample_courses(), quizzes=sample_quizzes())


@pytest.fixture
def app(feed_backends) -> FastAPI:
    application = create_app()

    @asynccontextmanager
    async def test_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.feed_registry = FeedSessionRegistry(feed_backends, make_settings(), FakeClock())
        yield
        await app.state.feed_registry.close_all()

    application.router.lifespan_context = test_lifespan
    return application


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        test_client.headers.update(LEARNER_HEADERS)
        yield test_client
