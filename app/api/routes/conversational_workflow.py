from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from app.core.dependencies import get_current_user_id, get_workflow_service
from app.models.schemas import (
    AnalysisStatus,
    AnalysisSummit,
    ChatTurnResponse,
    ConversationalAnalysis,
    ReadinessResponse,
    ReopenRequest,
    SendMessageRequest,
    StartConversationRequest,
    StartExistingResponse,
    SummitData,
    UpdateAnalysisRequest,
    normalize_chat_payload,
)
from app.services.conversational_workflow_service import ConversationalWorkflowService

logger = structlog.get_logger()

router = APIRouter(prefix="/conversational-workflow", tags=["conversational-workflow"])


@router.post("", response_model=ConversationalAnalysis, status_code=status.HTTP_201_CREATED)
async def start_conversation(
    request: StartConversationRequest,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """Create an analysis and open the conversation with a welcome message"""
    return await service.start_conversation(
        user_id=user_id,
        title=request.title,
        description=request.description,
        epic_content=request.epic_content,
        project_id=request.project_id,
    )


@router.get("", response_model=List[ConversationalAnalysis])
async def list_analyses(
    status_filter: Optional[AnalysisStatus] = Query(default=None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """List the caller's analyses, newest first"""
    return await service.list_user_analyses(user_id, status_filter)


@router.post("/{analysis_id}/start", response_model=StartExistingResponse)
async def start_on_existing(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.start_conversation_on_existing(analysis_id, user_id)


@router.get("/{analysis_id}/status", response_model=ConversationalAnalysis)
async def get_status(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.get_project_status(analysis_id, user_id)


@router.post("/{analysis_id}/chat", response_model=ChatTurnResponse)
async def send_message(
    analysis_id: str,
    request: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """Send one user message; accepts ``{content}`` or ``{instruction, requirement}``"""
    content = normalize_chat_payload(request.to_payload())
    return await service.process_user_message(analysis_id, user_id, content)


@router.post("/{analysis_id}/retry", response_model=ChatTurnResponse)
async def retry_reply(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """Generate the reply for a user message left unanswered by a provider failure"""
    return await service.retry_pending_reply(analysis_id, user_id)


@router.get("/{analysis_id}/readiness", response_model=ReadinessResponse)
async def get_readiness(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    readiness = await service.get_readiness(analysis_id, user_id)
    return ReadinessResponse(
        ready=readiness.ready,
        reason=readiness.reason,
        completeness=readiness.completeness,
        missing_aspects=readiness.missing_aspects,
    )


@router.post("/{analysis_id}/complete", response_model=ConversationalAnalysis)
async def complete_analysis(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.complete_project(analysis_id, user_id)


@router.post("/{analysis_id}/pause", response_model=ConversationalAnalysis)
async def pause_analysis(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.pause_conversation(analysis_id, user_id)


@router.post("/{analysis_id}/resume", response_model=ConversationalAnalysis)
async def resume_analysis(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.resume_conversation(analysis_id, user_id)


@router.post("/{analysis_id}/reopen", response_model=ConversationalAnalysis)
async def reopen_analysis(
    analysis_id: str,
    request: Optional[ReopenRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.reopen_analysis(analysis_id, user_id, request.reason if request else None)


@router.post("/{analysis_id}/archive", response_model=ConversationalAnalysis)
async def archive_analysis(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.archive_analysis(analysis_id, user_id)


@router.patch("/{analysis_id}", response_model=ConversationalAnalysis)
async def update_analysis(
    analysis_id: str,
    request: UpdateAnalysisRequest,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.update_analysis_details(
        analysis_id,
        user_id,
        title=request.title,
        description=request.description,
        epic_content=request.epic_content,
    )


@router.get("/{analysis_id}/summit", response_model=AnalysisSummit)
async def get_summit(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.get_summit(analysis_id, user_id)


@router.post("/{analysis_id}/summit", response_model=AnalysisSummit)
async def save_summit(
    analysis_id: str,
    data: SummitData,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """Create the summit, or overwrite the fields sent"""
    return await service.save_summit(analysis_id, user_id, data)


@router.patch("/{analysis_id}/summit", response_model=AnalysisSummit)
async def update_summit(
    analysis_id: str,
    data: SummitData,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    return await service.update_summit(analysis_id, user_id, data)


@router.post("/{analysis_id}/summit/finalize", response_model=AnalysisSummit)
async def finalize_summit(
    analysis_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ConversationalWorkflowService = Depends(get_workflow_service),
):
    """Generate the final requirements document with the AI provider"""
    logger.info("Finalizing summit", analysis_id=analysis_id)
    return await service.finalize_summit(analysis_id, user_id)
