from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from app.models.schemas import (
    AnalysisCreate,
    AnalysisStatus,
    AnalysisSummit,
    ConversationalAnalysis,
    ConversationMessage,
    SummitData,
)


class IConversationRepository(ABC):
    """Interface for conversational analysis persistence"""

    @abstractmethod
    async def get_by_id(self, analysis_id: str) -> Optional[ConversationalAnalysis]:
        pass

    @abstractmethod
    async def create(self, data: AnalysisCreate) -> ConversationalAnalysis:
        pass

    @abstractmethod
    async def update(self, analysis_id: str, patch: Dict[str, Any]) -> ConversationalAnalysis:
        pass

    @abstractmethod
    async def append_message(self, analysis_id: str, message: ConversationMessage) -> None:
        pass

    @abstractmethod
    async def commit_turn(
        self,
        analysis_id: str,
        messages: List[ConversationMessage],
        patch: Optional[Dict[str, Any]] = None,
    ) -> ConversationalAnalysis:
        """Append messages and apply a patch in a single transaction"""
        pass

    @abstractmethod
    async def list_by_user(
        self, user_id: str, status: Optional[AnalysisStatus] = None
    ) -> List[ConversationalAnalysis]:
        pass

    @abstractmethod
    async def latest_completed_for_project(
        self, project_id: str, user_id: str
    ) -> Optional[ConversationalAnalysis]:
        pass

    @abstractmethod
    async def project_exists_for_user(self, project_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    async def get_summit(self, analysis_id: str) -> Optional[AnalysisSummit]:
        pass

    @abstractmethod
    async def upsert_summit(
        self,
        analysis_id: str,
        data: SummitData,
        messages: Optional[List[ConversationMessage]] = None,
    ) -> AnalysisSummit:
        """Create the summit or overwrite the fields set in ``data``, appending ``messages`` in the same transaction"""
        pass

    @abstractmethod
    async def update_summit(self, analysis_id: str, data: SummitData) -> Optional[AnalysisSummit]:
        """Update an existing summit; None when there is none"""
        pass
