from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config.settings import Settings
from app.core.cache import AnalysisCache
from app.core.database import Database
from app.core.locks import KeyedLock
from app.repositories.interfaces.ai_service import IAIService
from app.repositories.interfaces.conversation_repository import IConversationRepository
from app.repositories.interfaces.test_case_repository import ITestCaseRepository
from app.repositories.implementations.openai_service import OpenAIService
from app.repositories.implementations.sql_conversation_repository import SQLConversationRepository
from app.repositories.implementations.sql_test_case_repository import SQLTestCaseRepository
from app.services.conversational_workflow_service import ConversationalWorkflowService
from app.services.test_case_service import TestCaseService


class Container:
    """Dependency injection container"""

    def __init__(self, settings: Settings, ai_service: Optional[IAIService] = None):
        self.settings = settings
        self.database = Database(settings.database_url)
        self.locks = KeyedLock()
        self.analysis_cache = AnalysisCache(
            ttl_seconds=settings.analysis_cache_ttl_seconds,
            max_items=settings.analysis_cache_max_items,
        )
        self._ai_service = ai_service

    def ai_service(self) -> IAIService:
        """Get AI service instance (singleton)"""
        if self._ai_service is None:
            self._ai_service = self._build_ai_service()
        return self._ai_service

    def _build_ai_service(self) -> IAIService:
        s = self.settings
        if s.ai_provider.lower() == "gemini":
            from app.repositories.implementations.gemini_service import GeminiService

            return GeminiService(
                api_key=s.gemini_api_key,
                model_name=s.gemini_model,
                timeout_seconds=s.ai_timeout_seconds,
                max_tokens=s.ai_max_tokens,
                temperature=s.ai_temperature,
            )
        return OpenAIService(
            api_key=s.openai_api_key,
            base_url=s.openai_base_url,
            model=s.openai_model,
            timeout_seconds=s.ai_timeout_seconds,
            max_tokens=s.ai_max_tokens,
            temperature=s.ai_temperature,
        )

    def conversation_repository(self, db: Session) -> IConversationRepository:
        return SQLConversationRepository(db)

    def test_case_repository(self, db: Session) -> ITestCaseRepository:
        return SQLTestCaseRepository(db)

    def workflow_service(self, db: Session) -> ConversationalWorkflowService:
        """Get workflow service bound to a request session"""
        return ConversationalWorkflowService(
            repository=self.conversation_repository(db),
            ai_service=self.ai_service(),
            locks=self.locks,
            cache=self.analysis_cache,
            chat_ai_replies=self.settings.chat_ai_replies,
            ai_timeout_seconds=self.settings.ai_timeout_seconds,
        )

    def test_case_service(self, db: Session) -> TestCaseService:
        """Get test case service bound to a request session"""
        return TestCaseService(
            test_case_repository=self.test_case_repository(db),
            conversation_repository=self.conversation_repository(db),
            ai_service=self.ai_service(),
            min_count=self.settings.test_case_min_count,
            max_count=self.settings.test_case_max_count,
            ai_timeout_seconds=self.settings.ai_timeout_seconds,
        )


# Dependency providers for FastAPI
def get_container(request: Request) -> Container:
    return request.app.state.container


def get_database(container: Container = Depends(get_container)) -> Generator[Session, None, None]:
    """FastAPI dependency for a database session"""
    yield from container.database.session()


def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    """Caller identity injected by the upstream authentication layer"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_workflow_service(
    container: Container = Depends(get_container), db: Session = Depends(get_database)
) -> ConversationalWorkflowService:
    """FastAPI dependency for the conversational workflow service"""
    return container.workflow_service(db)


def get_test_case_service(
    container: Container = Depends(get_container), db: Session = Depends(get_database)
) -> TestCaseService:
    """FastAPI dependency for test case service"""
    return container.test_case_service(db)
