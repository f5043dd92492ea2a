import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from app.models.schemas import (
    AnalysisPhase,
    AnalysisStatus,
    MessageRole,
    MessageType,
    TestCasePriority,
    TestCaseStatus,
)

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class ConversationalAnalysisModel(Base):
    __tablename__ = "conversational_analyses"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    epic_content = Column(Text, nullable=False, default="")
    project_id = Column(String(64), nullable=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    status = Column(Enum(AnalysisStatus), nullable=False, default=AnalysisStatus.DRAFT)
    current_phase = Column(Enum(AnalysisPhase), nullable=False, default=AnalysisPhase.INITIAL)
    # Older rows may hold a bare number here; readers go through Completeness.coerce
    completeness = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    reopened_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    messages = relationship(
        "ConversationMessageModel",
        back_populates="analysis",
        order_by="ConversationMessageModel.id",
        cascade="all, delete-orphan",
    )
    summit = relationship(
        "AnalysisSummitModel",
        back_populates="analysis",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ConversationalAnalysis(id={self.id}, title='{self.title}', status='{self.status}')>"


class ConversationMessageModel(Base):
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_id = Column(String(32), ForeignKey("conversational_analyses.id"), nullable=False, index=True)
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(Enum(MessageType), nullable=False, default=MessageType.ANSWER)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    analysis = relationship("ConversationalAnalysisModel", back_populates="messages")


class AnalysisSummitModel(Base):
    __tablename__ = "analysis_summits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_id = Column(
        String(32), ForeignKey("conversational_analyses.id"), nullable=False, unique=True, index=True
    )
    refined_requirements = Column(JSON, nullable=True)
    functional_aspects = Column(JSON, nullable=True)
    non_functional_aspects = Column(JSON, nullable=True)
    business_rules = Column(JSON, nullable=True)
    acceptance_criteria = Column(JSON, nullable=True)
    identified_risks = Column(JSON, nullable=True)
    suggested_test_cases = Column(JSON, nullable=True)
    summary_text = Column(Text, nullable=True)
    completeness_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    analysis = relationship("ConversationalAnalysisModel", back_populates="summit")


class TestCaseModel(Base):
    __tablename__ = "test_cases"

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(String(32), ForeignKey("conversational_analyses.id"), nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    steps = Column(JSON, nullable=False, default=list)
    expected_result = Column(Text, nullable=False, default="")
    priority = Column(Enum(TestCasePriority), default=TestCasePriority.MEDIUM)
    status = Column(Enum(TestCaseStatus), default=TestCaseStatus.PENDING)
    category = Column(String(64), nullable=False, default="Funcional")
    generated_by_ai = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<TestCase(id={self.id}, title='{self.title}', status='{self.status}')>"
