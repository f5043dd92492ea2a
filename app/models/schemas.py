import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AnalysisStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class AnalysisPhase(str, Enum):
    INITIAL = "INITIAL"
    FUNCTIONAL = "FUNCTIONAL"
    TECHNICAL = "TECHNICAL"
    VALIDATION = "VALIDATION"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = [
    AnalysisPhase.INITIAL,
    AnalysisPhase.FUNCTIONAL,
    AnalysisPhase.TECHNICAL,
    AnalysisPhase.VALIDATION,
]


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class MessageType(str, Enum):
    QUESTION = "QUESTION"
    ANSWER = "ANSWER"
    CLARIFICATION = "CLARIFICATION"
    ANALYSIS_RESULT = "ANALYSIS_RESULT"


class TestCasePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TestCaseStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"


class Completeness(BaseModel):
    """Structured completeness score.

    Persisted rows may hold either a bare number or an object with an
    ``overallScore``/``overall_score`` key; :meth:`coerce` reads both so
    internal code only ever sees this shape.
    """
    overall_score: int = Field(default=0, ge=0, le=100)
    functional_coverage: int = 0
    users_coverage: int = 0
    business_rules_coverage: int = 0
    detail_coverage: int = 0

    @classmethod
    def coerce(cls, value: Any) -> "Completeness":
        if value is None:
            return cls()
        if isinstance(value, Completeness):
            return value
        if isinstance(value, bool):
            raise TypeError("completeness cannot be a boolean")
        if isinstance(value, (int, float)):
            return cls(overall_score=_clamp_score(value))
        if isinstance(value, dict):
            overall = value.get("overall_score", value.get("overallScore", 0))
            return cls(
                overall_score=_clamp_score(overall or 0),
                functional_coverage=int(value.get("functional_coverage", value.get("functionalCoverage", 0)) or 0),
                users_coverage=int(value.get("users_coverage", value.get("usersCoverage", 0)) or 0),
                business_rules_coverage=int(
                    value.get("business_rules_coverage", value.get("businessRulesCoverage", 0)) or 0
                ),
                detail_coverage=int(value.get("detail_coverage", value.get("detailCoverage", 0)) or 0),
            )
        raise TypeError(f"Unsupported completeness value: {type(value).__name__}")


def _clamp_score(value: Any) -> int:
    return max(0, min(100, int(round(float(value)))))


class ConversationMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    role: MessageRole
    content: str
    message_type: MessageType = MessageType.ANSWER
    created_at: Optional[datetime] = None


class ConversationalAnalysis(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str = ""
    epic_content: str = ""
    project_id: Optional[str] = None
    user_id: str
    status: AnalysisStatus = AnalysisStatus.DRAFT
    current_phase: AnalysisPhase = AnalysisPhase.INITIAL
    completeness: Completeness = Field(default_factory=Completeness)
    messages: List[ConversationMessage] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnalysisCreate(BaseModel):
    title: str
    description: str = ""
    epic_content: str = ""
    project_id: Optional[str] = None
    user_id: str


class AnalysisSummit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    analysis_id: str
    # Either a plain/JSON-encoded string or a structured value, returned as stored
    refined_requirements: Any = None
    functional_aspects: Optional[List[str]] = None
    non_functional_aspects: Optional[List[str]] = None
    business_rules: Optional[List[str]] = None
    acceptance_criteria: Optional[List[str]] = None
    identified_risks: Optional[List[str]] = None
    suggested_test_cases: Optional[List[Any]] = None
    summary_text: Optional[str] = None
    completeness_score: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def parsed_requirements(self) -> Any:
        """Structured view of ``refined_requirements`` (JSON strings are decoded)."""
        value = self.refined_requirements
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                return value
        return value


class SummitData(BaseModel):
    """Writable summit fields; unset fields are left untouched on update."""
    refined_requirements: Any = None
    functional_aspects: Optional[List[str]] = None
    non_functional_aspects: Optional[List[str]] = None
    business_rules: Optional[List[str]] = None
    acceptance_criteria: Optional[List[str]] = None
    identified_risks: Optional[List[str]] = None
    suggested_test_cases: Optional[List[Any]] = None
    summary_text: Optional[str] = None
    completeness_score: Optional[int] = Field(default=None, ge=0, le=100)


class TestCaseBase(BaseModel):
    __test__ = False

    title: str = Field(..., description="Test case title")
    description: str = Field(..., description="What the case validates")
    steps: List[str] = Field(default_factory=list, description="Ordered test steps")
    expected_result: str = Field(default="", description="Overall expected result")
    priority: TestCasePriority = Field(default=TestCasePriority.MEDIUM)
    category: str = Field(default="Funcional")


class TestCaseCreate(TestCaseBase):
    __test__ = False

    analysis_id: str
    user_id: str
    status: TestCaseStatus = TestCaseStatus.PENDING
    generated_by_ai: bool = True


class TestCase(TestCaseBase):
    __test__ = False
    model_config = ConfigDict(from_attributes=True)

    id: int
    analysis_id: str
    user_id: str
    status: TestCaseStatus = TestCaseStatus.PENDING
    generated_by_ai: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TestCaseGenerationResult(BaseModel):
    __test__ = False

    success: bool
    test_cases: List[TestCase] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    generation_metadata: Dict[str, Any] = Field(default_factory=dict)


# --- Request / response models -------------------------------------------


class StartConversationRequest(BaseModel):
    title: str = Field(..., description="Project title")
    description: str = ""
    epic_content: str = ""
    project_id: Optional[str] = None


class ContentMessage(BaseModel):
    kind: Literal["content"] = "content"
    content: str


class InstructionMessage(BaseModel):
    """Legacy payload shape: an instruction plus an optionally edited requirement."""
    kind: Literal["instruction"] = "instruction"
    instruction: str
    requirement: Optional[str] = None


ChatPayload = Union[ContentMessage, InstructionMessage]


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    instruction: Optional[str] = None
    requirement: Optional[str] = None

    def to_payload(self) -> Optional[ChatPayload]:
        if self.content and self.content.strip():
            return ContentMessage(content=self.content)
        if self.instruction and self.instruction.strip():
            return InstructionMessage(instruction=self.instruction, requirement=self.requirement)
        return None


def normalize_chat_payload(payload: Optional[ChatPayload]) -> str:
    """Collapse any accepted payload shape into one message string."""
    if payload is None:
        return ""
    if isinstance(payload, ContentMessage):
        return payload.content
    text = payload.instruction
    if payload.requirement:
        text += f"\n\n---\nRequerimiento editado:\n{payload.requirement}"
    return text


class UpdateAnalysisRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    epic_content: Optional[str] = None


class ReopenRequest(BaseModel):
    reason: Optional[str] = None


class ReadinessResponse(BaseModel):
    ready: bool
    reason: str
    completeness: int
    missing_aspects: List[str] = Field(default_factory=list)


class ChatTurnResponse(BaseModel):
    ai_response: str
    phase: AnalysisPhase
    completeness: int
    readiness: ReadinessResponse
    completion_message: Optional[str] = None


class StartExistingResponse(BaseModel):
    analysis: ConversationalAnalysis
    already_started: bool


class GenerateTestCasesRequest(BaseModel):
    source: Literal["conversational", "analysis", "project"] = "conversational"
    id: str = Field(..., description="Analysis or project identifier")
