from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog

from app.core.cache import AnalysisCache
from app.core.errors import (
    AccessDeniedError,
    ErrorContext,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from app.core.locks import KeyedLock
from app.models.schemas import (
    AnalysisCreate,
    AnalysisPhase,
    AnalysisStatus,
    AnalysisSummit,
    ChatTurnResponse,
    Completeness,
    ConversationalAnalysis,
    ConversationMessage,
    MessageRole,
    MessageType,
    ReadinessResponse,
    StartExistingResponse,
    SummitData,
)
from app.repositories.interfaces.ai_service import CompletionOptions, IAIService
from app.repositories.interfaces.conversation_repository import IConversationRepository
from app.services.chat_intelligence import (
    FINAL_DOCUMENT_END,
    FINAL_DOCUMENT_START,
    ChatIntelligenceService,
    FinalDocument,
    Readiness,
)

logger = structlog.get_logger()


ALLOWED_TRANSITIONS = {
    AnalysisStatus.DRAFT: {AnalysisStatus.IN_PROGRESS, AnalysisStatus.COMPLETED, AnalysisStatus.ARCHIVED},
    AnalysisStatus.IN_PROGRESS: {AnalysisStatus.PAUSED, AnalysisStatus.COMPLETED, AnalysisStatus.ARCHIVED},
    AnalysisStatus.PAUSED: {AnalysisStatus.IN_PROGRESS, AnalysisStatus.COMPLETED, AnalysisStatus.ARCHIVED},
    AnalysisStatus.COMPLETED: {AnalysisStatus.IN_PROGRESS, AnalysisStatus.ARCHIVED},
    AnalysisStatus.ARCHIVED: set(),
}

CHAT_STATUSES = {AnalysisStatus.IN_PROGRESS, AnalysisStatus.PAUSED}

ANALYST_SYSTEM_PROMPT = (
    "Eres un Analista de Requerimientos y QA Senior con más de 20 años de experiencia en proyectos de "
    "software de distintos dominios (banca, SaaS, OTT, Salesforce, educación, etc.). Tu misión es ayudar "
    "al usuario a refinar una épica inicial hasta convertirla en un levantamiento de requisitos claro, "
    "completo y estructurado. Tono profesional, empático y claro; conciso en preguntas, estructurado en "
    "entregables."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _readiness_response(readiness: Readiness) -> ReadinessResponse:
    return ReadinessResponse(
        ready=readiness.ready,
        reason=readiness.reason,
        completeness=readiness.completeness,
        missing_aspects=readiness.missing_aspects,
    )


class ConversationalWorkflowService:
    """Lifecycle of one requirements conversation.

    Every mutating operation holds the analysis' lock for its whole
    read-modify-write and drops the cached snapshot afterwards. Routine chat
    turns are answered from templates; the AI gateway is only called for the
    final requirements document, or for chat replies when
    ``chat_ai_replies`` is enabled.
    """

    def __init__(
        self,
        repository: IConversationRepository,
        ai_service: IAIService,
        locks: KeyedLock,
        cache: Optional[AnalysisCache] = None,
        chat_ai_replies: bool = False,
        ai_timeout_seconds: float = 30.0,
    ):
        self.repository = repository
        self.ai_service = ai_service
        self.locks = locks
        self.cache = cache
        self.chat_ai_replies = chat_ai_replies
        self.ai_timeout_seconds = ai_timeout_seconds
        self.intelligence = ChatIntelligenceService

    # --- helpers -----------------------------------------------------------

    @staticmethod
    def _context(analysis_id: Optional[str], operation: str, phase: Optional[AnalysisPhase] = None) -> ErrorContext:
        return ErrorContext(
            analysis_id=analysis_id,
            operation=operation,
            phase=phase.value if phase else None,
        )

    async def _load_owned(self, analysis_id: str, user_id: str, operation: str) -> ConversationalAnalysis:
        analysis = await self.repository.get_by_id(analysis_id)
        if analysis is None:
            raise NotFoundError("Analysis", analysis_id, self._context(analysis_id, operation))
        self._check_owner(analysis, user_id, operation)
        return analysis

    def _check_owner(self, analysis: ConversationalAnalysis, user_id: str, operation: str) -> None:
        if analysis.user_id != user_id:
            logger.warning(
                "Ownership check failed",
                analysis_id=analysis.id,
                operation=operation,
                user_id=user_id,
            )
            raise AccessDeniedError("Analysis", analysis.id, self._context(analysis.id, operation))

    def _invalidate(self, analysis_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(analysis_id)

    async def _transition(
        self,
        analysis: ConversationalAnalysis,
        target: AnalysisStatus,
        operation: str,
        extra_patch: Optional[Dict[str, Any]] = None,
        messages: Optional[List[ConversationMessage]] = None,
    ) -> ConversationalAnalysis:
        if target not in ALLOWED_TRANSITIONS[analysis.status]:
            raise InvalidStateError(
                f"Cannot move analysis from {analysis.status.value} to {target.value}",
                current_status=analysis.status.value,
                context=self._context(analysis.id, operation, analysis.current_phase),
            )
        patch: Dict[str, Any] = {"status": target}
        patch.update(extra_patch or {})
        updated = await self.repository.commit_turn(analysis.id, messages or [], patch)
        self._invalidate(analysis.id)
        logger.info(
            "Analysis status changed",
            analysis_id=analysis.id,
            operation=operation,
            from_status=analysis.status.value,
            to_status=target.value,
        )
        return updated

    @staticmethod
    def _advance_phase(current: AnalysisPhase, detected: AnalysisPhase) -> AnalysisPhase:
        # Phases only move forward from heuristics; INITIAL never pulls one back
        return detected if detected.rank > current.rank else current

    @staticmethod
    def _accumulate(previous: Completeness, readiness: Readiness) -> Completeness:
        scored = readiness.breakdown
        merged = Completeness(
            functional_coverage=max(previous.functional_coverage, scored.functional_coverage),
            users_coverage=max(previous.users_coverage, scored.users_coverage),
            business_rules_coverage=max(previous.business_rules_coverage, scored.business_rules_coverage),
            detail_coverage=max(previous.detail_coverage, scored.detail_coverage),
        )
        total = (
            merged.functional_coverage
            + merged.users_coverage
            + merged.business_rules_coverage
            + merged.detail_coverage
        )
        merged.overall_score = min(100, max(previous.overall_score, total))
        return merged

    # --- conversation lifecycle -------------------------------------------

    async def start_conversation(
        self,
        user_id: str,
        title: str,
        description: str = "",
        epic_content: str = "",
        project_id: Optional[str] = None,
    ) -> ConversationalAnalysis:
        """Create an analysis, open it and greet the user with the welcome template."""
        if not user_id:
            raise ValidationError("A caller identity is required", "user_id", self._context(None, "start_conversation"))
        if not title or not title.strip():
            raise ValidationError("Title must not be empty", "title", self._context(None, "start_conversation"))

        analysis = await self.repository.create(
            AnalysisCreate(
                title=title.strip(),
                description=description or "",
                epic_content=epic_content or "",
                project_id=project_id,
                user_id=user_id,
            )
        )
        welcome = ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=self.intelligence.generate_welcome_message(analysis.title),
            message_type=MessageType.QUESTION,
        )
        async with self.locks.acquire(analysis.id):
            started = await self._transition(
                analysis,
                AnalysisStatus.IN_PROGRESS,
                "start_conversation",
                extra_patch={"started_at": _utcnow()},
                messages=[welcome],
            )
        logger.info("Conversation started", analysis_id=started.id, user_id=user_id, project_id=project_id)
        return started

    async def start_conversation_on_existing(self, analysis_id: str, user_id: str) -> StartExistingResponse:
        """Idempotent entry point for an analysis created elsewhere."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "start_conversation_on_existing")
            if analysis.messages:
                logger.info("Conversation already started", analysis_id=analysis_id)
                return StartExistingResponse(analysis=analysis, already_started=True)

            welcome = ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=self.intelligence.generate_welcome_message(analysis.title),
                message_type=MessageType.QUESTION,
            )
            patch = {"started_at": analysis.started_at or _utcnow()}
            if analysis.status == AnalysisStatus.IN_PROGRESS:
                started = await self.repository.commit_turn(analysis_id, [welcome], patch)
                self._invalidate(analysis_id)
            else:
                started = await self._transition(
                    analysis,
                    AnalysisStatus.IN_PROGRESS,
                    "start_conversation_on_existing",
                    extra_patch=patch,
                    messages=[welcome],
                )
        logger.info("Conversation started on existing analysis", analysis_id=analysis_id, user_id=user_id)
        return StartExistingResponse(analysis=started, already_started=False)

    async def process_user_message(self, analysis_id: str, user_id: str, content: str) -> ChatTurnResponse:
        """Record one user turn and answer it.

        Phase and completeness only ever move forward. In template mode the
        user message, the reply and the score patch land in one transaction.
        With AI replies the user message is committed first; if the provider
        fails the turn raises a retryable ``UpstreamError`` and no assistant
        message is stored (see :meth:`retry_pending_reply`).
        """
        text = (content or "").strip()
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "process_user_message")
            if not text:
                raise ValidationError(
                    "Message must not be empty", "content", self._context(analysis_id, "process_user_message")
                )
            if analysis.status not in CHAT_STATUSES:
                raise InvalidStateError(
                    f"Cannot send messages to an analysis in status {analysis.status.value}",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "process_user_message", analysis.current_phase),
                )

            insight = self.intelligence.analyze_user_input(text)
            user_message = ConversationMessage(role=MessageRole.USER, content=text, message_type=MessageType.ANSWER)
            history = list(analysis.messages) + [user_message]
            readiness = self.intelligence.is_project_ready_to_complete(history)
            phase = self._advance_phase(analysis.current_phase, insight.phase)
            completeness = self._accumulate(analysis.completeness, readiness)
            patch = {
                "current_phase": phase,
                "completeness": completeness,
                "status": AnalysisStatus.IN_PROGRESS,
            }

            if self.chat_ai_replies:
                await self.repository.commit_turn(analysis_id, [user_message], patch)
                self._invalidate(analysis_id)
                reply = await self._generate_ai_reply(analysis, history, "process_user_message")
                await self.repository.append_message(
                    analysis_id,
                    ConversationMessage(role=MessageRole.ASSISTANT, content=reply, message_type=MessageType.QUESTION),
                )
            else:
                reply = self.intelligence.generate_contextual_response(insight, text)
                assistant_message = ConversationMessage(
                    role=MessageRole.ASSISTANT, content=reply, message_type=MessageType.QUESTION
                )
                await self.repository.commit_turn(analysis_id, [user_message, assistant_message], patch)
            self._invalidate(analysis_id)

        logger.info(
            "User message processed",
            analysis_id=analysis_id,
            phase=phase.value,
            completeness=completeness.overall_score,
            topics=insight.topics,
            ready=readiness.ready,
        )
        return ChatTurnResponse(
            ai_response=reply,
            phase=phase,
            completeness=completeness.overall_score,
            readiness=_readiness_response(readiness),
            completion_message=(
                self.intelligence.generate_completion_message(analysis.title) if readiness.ready else None
            ),
        )

    async def retry_pending_reply(self, analysis_id: str, user_id: str) -> ChatTurnResponse:
        """Answer a trailing user message whose reply was never stored."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "retry_pending_reply")
            if analysis.status not in CHAT_STATUSES:
                raise InvalidStateError(
                    f"Cannot reply in status {analysis.status.value}",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "retry_pending_reply", analysis.current_phase),
                )
            if not analysis.messages or analysis.messages[-1].role != MessageRole.USER:
                raise InvalidStateError(
                    "There is no unanswered user message",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "retry_pending_reply", analysis.current_phase),
                )

            last_text = analysis.messages[-1].content
            insight = self.intelligence.analyze_user_input(last_text)
            if self.chat_ai_replies:
                reply = await self._generate_ai_reply(analysis, analysis.messages, "retry_pending_reply")
            else:
                reply = self.intelligence.generate_contextual_response(insight, last_text)
            await self.repository.append_message(
                analysis_id,
                ConversationMessage(role=MessageRole.ASSISTANT, content=reply, message_type=MessageType.QUESTION),
            )
            self._invalidate(analysis_id)

        readiness = self.intelligence.is_project_ready_to_complete(analysis.messages)
        logger.info("Pending reply generated", analysis_id=analysis_id)
        return ChatTurnResponse(
            ai_response=reply,
            phase=analysis.current_phase,
            completeness=analysis.completeness.overall_score,
            readiness=_readiness_response(readiness),
            completion_message=(
                self.intelligence.generate_completion_message(analysis.title) if readiness.ready else None
            ),
        )

    def is_ready_to_complete(self, messages: Iterable[Any]) -> Readiness:
        return self.intelligence.is_project_ready_to_complete(messages)

    async def get_readiness(self, analysis_id: str, user_id: str) -> Readiness:
        analysis = await self.get_project_status(analysis_id, user_id)
        return self.is_ready_to_complete(analysis.messages)

    async def complete_project(self, analysis_id: str, user_id: str) -> ConversationalAnalysis:
        """Mark the analysis COMPLETED; completing twice is a no-op."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "complete_project")
            if analysis.status == AnalysisStatus.COMPLETED:
                return analysis
            return await self._transition(
                analysis, AnalysisStatus.COMPLETED, "complete_project", extra_patch={"completed_at": _utcnow()}
            )

    async def get_project_status(self, analysis_id: str, user_id: str) -> ConversationalAnalysis:
        if self.cache is not None:
            cached = self.cache.get(analysis_id)
            if cached is not None:
                self._check_owner(cached, user_id, "get_project_status")
                return cached
        analysis = await self._load_owned(analysis_id, user_id, "get_project_status")
        if self.cache is not None:
            self.cache.put(analysis)
        return analysis

    async def list_user_analyses(
        self, user_id: str, status: Optional[AnalysisStatus] = None
    ) -> List[ConversationalAnalysis]:
        return await self.repository.list_by_user(user_id, status)

    async def pause_conversation(self, analysis_id: str, user_id: str) -> ConversationalAnalysis:
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "pause_conversation")
            if analysis.status == AnalysisStatus.PAUSED:
                return analysis
            return await self._transition(analysis, AnalysisStatus.PAUSED, "pause_conversation")

    async def resume_conversation(self, analysis_id: str, user_id: str) -> ConversationalAnalysis:
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "resume_conversation")
            if analysis.status == AnalysisStatus.IN_PROGRESS:
                return analysis
            if analysis.status != AnalysisStatus.PAUSED:
                raise InvalidStateError(
                    "Only paused analyses can be resumed",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "resume_conversation"),
                )
            return await self._transition(analysis, AnalysisStatus.IN_PROGRESS, "resume_conversation")

    async def reopen_analysis(
        self, analysis_id: str, user_id: str, reason: Optional[str] = None
    ) -> ConversationalAnalysis:
        """Put a COMPLETED analysis back in progress; the phase is kept."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "reopen_analysis")
            if analysis.status != AnalysisStatus.COMPLETED:
                raise InvalidStateError(
                    "Only completed analyses can be reopened",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "reopen_analysis"),
                )
            message = ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=self.intelligence.generate_reopen_message(reason),
                message_type=MessageType.CLARIFICATION,
            )
            return await self._transition(
                analysis,
                AnalysisStatus.IN_PROGRESS,
                "reopen_analysis",
                extra_patch={"reopened_at": _utcnow(), "completed_at": None},
                messages=[message],
            )

    async def archive_analysis(self, analysis_id: str, user_id: str) -> ConversationalAnalysis:
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "archive_analysis")
            if analysis.status == AnalysisStatus.ARCHIVED:
                return analysis
            return await self._transition(analysis, AnalysisStatus.ARCHIVED, "archive_analysis")

    async def update_analysis_details(
        self,
        analysis_id: str,
        user_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        epic_content: Optional[str] = None,
    ) -> ConversationalAnalysis:
        """Explicit edit of the problem statement fields."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "update_analysis_details")
            patch: Dict[str, Any] = {}
            if title is not None:
                if not title.strip():
                    raise ValidationError(
                        "Title must not be empty", "title", self._context(analysis_id, "update_analysis_details")
                    )
                patch["title"] = title.strip()
            if description is not None:
                patch["description"] = description
            if epic_content is not None:
                patch["epic_content"] = epic_content
            if analysis.status == AnalysisStatus.ARCHIVED:
                raise InvalidStateError(
                    "Archived analyses cannot be edited",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "update_analysis_details"),
                )
            if not patch:
                return analysis
            updated = await self.repository.update(analysis_id, patch)
            self._invalidate(analysis_id)
        logger.info("Analysis details updated", analysis_id=analysis_id, fields=sorted(patch))
        return updated

    # --- summit ------------------------------------------------------------

    async def get_summit(self, analysis_id: str, user_id: str) -> AnalysisSummit:
        await self._load_owned(analysis_id, user_id, "get_summit")
        summit = await self.repository.get_summit(analysis_id)
        if summit is None:
            raise NotFoundError("AnalysisSummit", analysis_id, self._context(analysis_id, "get_summit"))
        return summit

    async def save_summit(self, analysis_id: str, user_id: str, data: SummitData) -> AnalysisSummit:
        """Create the summit or overwrite the provided fields."""
        async with self.locks.acquire(analysis_id):
            await self._load_owned(analysis_id, user_id, "save_summit")
            summit = await self.repository.upsert_summit(analysis_id, data)
        logger.info("Analysis summit saved", analysis_id=analysis_id, fields=sorted(data.model_fields_set))
        return summit

    async def update_summit(self, analysis_id: str, user_id: str, data: SummitData) -> AnalysisSummit:
        async with self.locks.acquire(analysis_id):
            await self._load_owned(analysis_id, user_id, "update_summit")
            summit = await self.repository.update_summit(analysis_id, data)
        if summit is None:
            raise NotFoundError("AnalysisSummit", analysis_id, self._context(analysis_id, "update_summit"))
        logger.info("Analysis summit updated", analysis_id=analysis_id, fields=sorted(data.model_fields_set))
        return summit

    async def finalize_summit(self, analysis_id: str, user_id: str) -> AnalysisSummit:
        """Ask the AI for the final requirements document and store it as the summit."""
        async with self.locks.acquire(analysis_id):
            analysis = await self._load_owned(analysis_id, user_id, "finalize_summit")
            if analysis.status == AnalysisStatus.ARCHIVED:
                raise InvalidStateError(
                    "Archived analyses cannot be finalized",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "finalize_summit", analysis.current_phase),
                )
            if not any(m.role == MessageRole.USER for m in analysis.messages):
                raise InvalidStateError(
                    "The conversation has no user input to summarize",
                    current_status=analysis.status.value,
                    context=self._context(analysis_id, "finalize_summit", analysis.current_phase),
                )

            completion = await self.ai_service.complete(
                self._build_summit_prompt(analysis),
                CompletionOptions(
                    system_prompt=ANALYST_SYSTEM_PROMPT,
                    temperature=0.2,
                    timeout_seconds=self.ai_timeout_seconds,
                ),
            )
            logger.info(
                "Summit generation finished",
                analysis_id=analysis_id,
                success=completion.success,
                total_tokens=completion.usage.total_tokens,
            )
            if not completion.success:
                raise UpstreamError(
                    f"AI provider failed to generate the requirements document: {completion.error}",
                    retryable=completion.timed_out,
                    context=self._context(analysis_id, "finalize_summit", analysis.current_phase),
                )

            document = self.intelligence.extract_final_document(completion.text)
            summit = await self.repository.upsert_summit(
                analysis_id,
                self._summit_from_document(completion.text, document, analysis),
                [
                    ConversationMessage(
                        role=MessageRole.ASSISTANT,
                        content=completion.text,
                        message_type=MessageType.ANALYSIS_RESULT,
                    )
                ],
            )
            self._invalidate(analysis_id)
        return summit

    @staticmethod
    def _summit_from_document(
        text: str, document: Optional[FinalDocument], analysis: ConversationalAnalysis
    ) -> SummitData:
        score = analysis.completeness.overall_score
        if document is None:
            # Free text without the agreed markers: keep it as the plain summary
            return SummitData(refined_requirements=text.strip(), summary_text=text.strip(), completeness_score=score)
        return SummitData(
            refined_requirements=document.sections,
            functional_aspects=document.section("requisitos funcionales"),
            non_functional_aspects=document.section("requisitos no funcionales"),
            business_rules=document.section("reglas de negocio confirmadas", "reglas de negocio"),
            acceptance_criteria=document.section("criterios de aceptación", "validaciones clave"),
            identified_risks=document.section("riesgos identificados", "riesgos"),
            summary_text=document.raw,
            completeness_score=score,
        )

    # --- prompts -----------------------------------------------------------

    @staticmethod
    def _conversation_context(messages: Iterable[ConversationMessage]) -> str:
        return "\n\n".join(
            f"{'ANALISTA' if m.role == MessageRole.ASSISTANT else 'USUARIO'}: {m.content}" for m in messages
        )

    def _build_summit_prompt(self, analysis: ConversationalAnalysis) -> str:
        return f"""Con base en la conversación, genera el levantamiento de requisitos final usando OBLIGATORIAMENTE este formato:

{FINAL_DOCUMENT_START}
**Épica inicial:**
[Descripción de la épica]

**Roles del sistema:**
- [Lista de roles]

**Reglas de negocio confirmadas:**
- [Lista de reglas]

**Validaciones clave:**
- [Lista de validaciones]

**Requisitos funcionales:**
- [Lista de requisitos]

**Requisitos no funcionales:**
- [Lista de requisitos]

**Criterios de aceptación:**
- [Lista de criterios]

**Riesgos identificados:**
- [Lista de riesgos]

**Posibles siguientes pasos:**
- [Lista de pasos]
{FINAL_DOCUMENT_END}

### Contexto del Proyecto:
TÍTULO: {analysis.title}
DESCRIPCIÓN INICIAL: {analysis.description}
ÉPICA/HISTORIA: {analysis.epic_content}

### Conversación:
{self._conversation_context(analysis.messages)}

Responde solo con el documento."""

    def _build_chat_prompt(self, analysis: ConversationalAnalysis, history: Iterable[ConversationMessage]) -> str:
        return f"""Ya recibiste una épica inicial y has estado conversando con el usuario.
Formula la mayoría de preguntas necesarias en tus primeras 2-3 respuestas: roles, flujo principal,
restricciones de negocio, validaciones clave, integraciones externas, métricas de éxito.
No repitas preguntas ya hechas. Si el usuario indica que ya proporcionó toda la información,
genera el levantamiento de requisitos entre los marcadores {FINAL_DOCUMENT_START} y {FINAL_DOCUMENT_END}.

### Contexto del Proyecto:
TÍTULO: {analysis.title}
DESCRIPCIÓN INICIAL: {analysis.description}

### Conversación hasta ahora:
{self._conversation_context(history)}

Continúa la conversación de manera natural y profesional:"""

    async def _generate_ai_reply(
        self, analysis: ConversationalAnalysis, history: Iterable[ConversationMessage], operation: str
    ) -> str:
        completion = await self.ai_service.complete(
            self._build_chat_prompt(analysis, history),
            CompletionOptions(
                system_prompt=ANALYST_SYSTEM_PROMPT,
                temperature=0.7,
                max_tokens=1000,
                timeout_seconds=self.ai_timeout_seconds,
            ),
        )
        logger.info(
            "Chat reply generation finished",
            analysis_id=analysis.id,
            operation=operation,
            success=completion.success,
            total_tokens=completion.usage.total_tokens,
        )
        if not completion.success:
            raise UpstreamError(
                "AI provider failed to answer; the message was saved and the reply can be retried",
                retryable=True,
                context=self._context(analysis.id, operation, analysis.current_phase),
            )
        return completion.text
