from typing import List, Optional, Union

import pytest
from fastapi.testclient import TestClient

from app.config.settings import Settings
from app.core.cache import AnalysisCache
from app.core.database import Database
from app.core.dependencies import Container
from app.core.locks import KeyedLock
from app.repositories.implementations.sql_conversation_repository import SQLConversationRepository
from app.repositories.implementations.sql_test_case_repository import SQLTestCaseRepository
from app.repositories.interfaces.ai_service import AICompletion, CompletionOptions, IAIService, TokenUsage
from app.services import test_case_service as synthesizer
from app.services.conversational_workflow_service import ConversationalWorkflowService
from main import create_app

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeAIService(IAIService):
    """Scripted AI gateway: each call pops the next reply"""

    def __init__(self, replies: Optional[List[Union[str, AICompletion]]] = None):
        self.replies: List[Union[str, AICompletion]] = list(replies or [])
        self.prompts: List[str] = []
        self.options: List[Optional[CompletionOptions]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    def script(self, *replies: Union[str, AICompletion]) -> None:
        self.replies.extend(replies)

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> AICompletion:
        self.prompts.append(prompt)
        self.options.append(options)
        if not self.replies:
            return AICompletion(success=False, error="no scripted reply", model="fake")
        reply = self.replies.pop(0)
        if isinstance(reply, AICompletion):
            return reply
        return AICompletion(success=True, text=reply, usage=TokenUsage(total_tokens=42), model="fake")


def failed_completion(timed_out: bool = False) -> AICompletion:
    return AICompletion(success=False, error="provider unavailable", timed_out=timed_out, model="fake")


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url="sqlite://", environment="test")


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_tables()
    yield db
    db.drop_tables()


@pytest.fixture
def session(database):
    db = database.session_factory()
    yield db
    db.close()


@pytest.fixture
def repository(session):
    return SQLConversationRepository(session)


@pytest.fixture
def test_case_repository(session):
    return SQLTestCaseRepository(session)


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def cache():
    return AnalysisCache(ttl_seconds=30.0, max_items=64)


@pytest.fixture
def workflow(repository, fake_ai, cache):
    return ConversationalWorkflowService(
        repository=repository,
        ai_service=fake_ai,
        locks=KeyedLock(),
        cache=cache,
    )


@pytest.fixture
def ai_workflow(repository, fake_ai, cache):
    """Workflow that answers chat turns with the AI provider"""
    return ConversationalWorkflowService(
        repository=repository,
        ai_service=fake_ai,
        locks=KeyedLock(),
        cache=cache,
        chat_ai_replies=True,
        ai_timeout_seconds=5.0,
    )


@pytest.fixture
def test_case_service(test_case_repository, repository, fake_ai):
    return synthesizer.TestCaseService(
        test_case_repository=test_case_repository,
        conversation_repository=repository,
        ai_service=fake_ai,
        min_count=10,
        max_count=18,
    )


@pytest.fixture
def container(settings, fake_ai):
    c = Container(settings, ai_service=fake_ai)
    c.database.create_tables()
    yield c
    c.database.drop_tables()


@pytest.fixture
def test_client(settings, container):
    """Synchronous test client bound to an in-memory database"""
    app = create_app(settings, container)
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-User-Id": USER_ID}
