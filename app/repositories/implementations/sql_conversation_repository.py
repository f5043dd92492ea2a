from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session, selectinload

from app.models.database import (
    AnalysisSummitModel,
    ConversationalAnalysisModel,
    ConversationMessageModel,
)
from app.models.schemas import (
    AnalysisCreate,
    AnalysisStatus,
    AnalysisSummit,
    Completeness,
    ConversationalAnalysis,
    ConversationMessage,
    SummitData,
)
from app.repositories.interfaces.conversation_repository import IConversationRepository

logger = structlog.get_logger()

_PATCHABLE_FIELDS = {
    "title",
    "description",
    "epic_content",
    "status",
    "current_phase",
    "completeness",
    "started_at",
    "completed_at",
    "reopened_at",
}


class SQLConversationRepository(IConversationRepository):
    """SQLAlchemy implementation of the conversation store"""

    def __init__(self, db: Session):
        self.db = db

    def _load(self, analysis_id: str) -> Optional[ConversationalAnalysisModel]:
        return (
            self.db.query(ConversationalAnalysisModel)
            .options(selectinload(ConversationalAnalysisModel.messages))
            .filter(ConversationalAnalysisModel.id == analysis_id)
            .first()
        )

    @staticmethod
    def _to_entity(row: ConversationalAnalysisModel) -> ConversationalAnalysis:
        return ConversationalAnalysis(
            id=row.id,
            title=row.title,
            description=row.description or "",
            epic_content=row.epic_content or "",
            project_id=row.project_id,
            user_id=row.user_id,
            status=row.status,
            current_phase=row.current_phase,
            completeness=Completeness.coerce(row.completeness),
            messages=[ConversationMessage.model_validate(m) for m in row.messages],
            started_at=row.started_at,
            completed_at=row.completed_at,
            reopened_at=row.reopened_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _apply_patch(self, row: ConversationalAnalysisModel, patch: Dict[str, Any]) -> None:
        for field, value in patch.items():
            if field not in _PATCHABLE_FIELDS:
                raise KeyError(f"Field '{field}' cannot be patched")
            if field == "completeness":
                value = Completeness.coerce(value).model_dump()
            setattr(row, field, value)

    @staticmethod
    def _message_row(analysis_id: str, message: ConversationMessage) -> ConversationMessageModel:
        return ConversationMessageModel(
            analysis_id=analysis_id,
            role=message.role,
            content=message.content,
            message_type=message.message_type,
        )

    async def get_by_id(self, analysis_id: str) -> Optional[ConversationalAnalysis]:
        row = self._load(analysis_id)
        return self._to_entity(row) if row else None

    async def create(self, data: AnalysisCreate) -> ConversationalAnalysis:
        row = ConversationalAnalysisModel(
            title=data.title,
            description=data.description,
            epic_content=data.epic_content,
            project_id=data.project_id,
            user_id=data.user_id,
            status=AnalysisStatus.DRAFT,
            completeness=Completeness().model_dump(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return self._to_entity(row)

    async def update(self, analysis_id: str, patch: Dict[str, Any]) -> ConversationalAnalysis:
        return await self.commit_turn(analysis_id, [], patch)

    async def append_message(self, analysis_id: str, message: ConversationMessage) -> None:
        await self.commit_turn(analysis_id, [message])

    async def commit_turn(
        self,
        analysis_id: str,
        messages: List[ConversationMessage],
        patch: Optional[Dict[str, Any]] = None,
    ) -> ConversationalAnalysis:
        row = self._load(analysis_id)
        if row is None:
            raise LookupError(f"Analysis {analysis_id} not found")
        try:
            for message in messages:
                self.db.add(self._message_row(analysis_id, message))
            if patch:
                self._apply_patch(row, patch)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error("Conversation turn rolled back", analysis_id=analysis_id, messages=len(messages))
            raise
        self.db.expire(row)
        return self._to_entity(self._load(analysis_id))

    async def list_by_user(
        self, user_id: str, status: Optional[AnalysisStatus] = None
    ) -> List[ConversationalAnalysis]:
        query = (
            self.db.query(ConversationalAnalysisModel)
            .options(selectinload(ConversationalAnalysisModel.messages))
            .filter(ConversationalAnalysisModel.user_id == user_id)
        )
        if status is not None:
            query = query.filter(ConversationalAnalysisModel.status == status)
        rows = query.order_by(ConversationalAnalysisModel.updated_at.desc()).all()
        return [self._to_entity(row) for row in rows]

    async def latest_completed_for_project(
        self, project_id: str, user_id: str
    ) -> Optional[ConversationalAnalysis]:
        row = (
            self.db.query(ConversationalAnalysisModel)
            .options(selectinload(ConversationalAnalysisModel.messages))
            .filter(
                ConversationalAnalysisModel.project_id == project_id,
                ConversationalAnalysisModel.user_id == user_id,
                ConversationalAnalysisModel.status == AnalysisStatus.COMPLETED,
            )
            .order_by(ConversationalAnalysisModel.created_at.desc())
            .first()
        )
        return self._to_entity(row) if row else None

    async def project_exists_for_user(self, project_id: str, user_id: str) -> bool:
        return (
            self.db.query(ConversationalAnalysisModel.id)
            .filter(
                ConversationalAnalysisModel.project_id == project_id,
                ConversationalAnalysisModel.user_id == user_id,
            )
            .first()
            is not None
        )

    def _summit_row(self, analysis_id: str) -> Optional[AnalysisSummitModel]:
        return (
            self.db.query(AnalysisSummitModel)
            .filter(AnalysisSummitModel.analysis_id == analysis_id)
            .first()
        )

    async def get_summit(self, analysis_id: str) -> Optional[AnalysisSummit]:
        row = self._summit_row(analysis_id)
        return AnalysisSummit.model_validate(row) if row else None

    async def upsert_summit(
        self,
        analysis_id: str,
        data: SummitData,
        messages: Optional[List[ConversationMessage]] = None,
    ) -> AnalysisSummit:
        messages = messages or []
        try:
            row = self._summit_row(analysis_id)
            if row is None:
                row = AnalysisSummitModel(analysis_id=analysis_id, completeness_score=0)
                self.db.add(row)
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(row, field, value)
            for message in messages:
                self.db.add(self._message_row(analysis_id, message))
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error("Summit upsert rolled back", analysis_id=analysis_id, messages=len(messages))
            raise
        self.db.refresh(row)
        return AnalysisSummit.model_validate(row)

    async def update_summit(self, analysis_id: str, data: SummitData) -> Optional[AnalysisSummit]:
        row = self._summit_row(analysis_id)
        if row is None:
            return None
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(row, field, value)
        self.db.commit()
        self.db.refresh(row)
        return AnalysisSummit.model_validate(row)
