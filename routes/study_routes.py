"""
FastAPI routes for the Claude-backed capabilities.
Quiz generation, resource search, syllabus parsing, course chat and health.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from typing import List, Optional
from datetime import datetime, timezone
import json
import logging
import time

from models.request_models import (
    QuizGenerationRequest, ResourceSearchRequest, ChatRequest, SyllabusForm,
)
from models.course_models import ChatMessage
from routes.dependencies import get_claude_service, get_syllabus_service
from services.claude_service import ClaudeService, append_user_message
from services.syllabus_service import SyllabusService
from utils.exceptions import StudyMapError
from utils.file_storage import utc_now_iso

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["study"])


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data, default=str)}\n\n"


def _sse_error_event(exc: Exception) -> str:
    """Build a structured SSE error event from an exception."""
    if isinstance(exc, StudyMapError):
        error_code, status_code, message, context = exc.error_code, exc.status_code, exc.message, exc.context
    else:
        error_code, status_code, message, context = "INTERNAL_ERROR", 500, str(exc), None
    return _sse_event({
        "type": "error",
        "error": error_code,
        "message": message,
        "status_code": status_code,
        "context": context,
    })


@router.post("/quiz")
async def generate_quiz(request: QuizGenerationRequest, claude: ClaudeService = Depends(get_claude_service)):
    """
    Generate a multiple choice quiz for the selected topics.

    - difficulty: auto / intro / exam
    - length: 1-20 questions (fewer may come back, never zero)
    - questionType: mcq / short / mix
    """
    return await claude.generate_quiz(request)


@router.post("/resources/search")
async def search_resources(request: ResourceSearchRequest, claude: ClaudeService = Depends(get_claude_service)):
    """Search the web for learning or practice resources on one topic"""
    result = await claude.find_resources(
        course_title=request.course_title,
        topic_title=request.topic_title,
        resource_type=request.resource_type.value,
        topic_description=request.topic_description,
        max_results=request.max_results,
    )
    return {"success": True, **result}


@router.post("/syllabus/parse")
async def parse_syllabus(
    course_name: str = Form(..., alias="courseName", min_length=2),
    course_number: Optional[str] = Form(None, alias="courseNumber"),
    term: Optional[str] = Form(None),
    syllabus_text: Optional[str] = Form(None, alias="syllabusText"),
    deadline_summary: Optional[str] = Form(None, alias="deadlineSummary"),
    syllabi: Optional[List[UploadFile]] = File(None),
    syllabus_service: SyllabusService = Depends(get_syllabus_service),
):
    """
    Turn an uploaded syllabus into a draft study map.

    Multipart fields: courseName (required), courseNumber, term, syllabusText,
    deadlineSummary and one or more `syllabi` files (PDF or plain text).
    """
    form = SyllabusForm(
        course_name=course_name,
        course_number=course_number or None,
        term=term or None,
        syllabus_text=syllabus_text,
        deadline_summary=deadline_summary,
    )
    return await syllabus_service.parse(form, syllabi)


@router.post("/chat")
async def chat(request: ChatRequest, claude: ClaudeService = Depends(get_claude_service)):
    """
    Course-aware study assistant.
    With `stream: true` the reply is sent as SSE `chunk` events followed by a `done` event.
    """
    history = append_user_message(request.conversation_history, request.message, request.topic_context)
    conversation_id = request.conversation_id or f"conv-{int(time.time() * 1000)}"
    logger.info(f"Chat request for {request.course_id} (stream={request.stream}, history={len(history)})")

    if request.stream:
        async def event_generator():
            try:
                async for chunk in claude.chat_stream(history, request.context, request.topic_context):
                    yield _sse_event({"type": "chunk", "chunk": chunk})
                yield _sse_event({"type": "done", "conversationId": conversation_id})
            except Exception as e:
                logger.error(f"Chat stream error: {e}")
                yield _sse_error_event(e)

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    reply = await claude.chat(history, request.context, request.topic_context)
    message = ChatMessage(
        id=f"msg-{int(time.time() * 1000)}-assistant",
        role="assistant",
        content=reply["content"],
        timestamp=utc_now_iso(),
        metadata={"suggestedActions": reply["suggestedActions"]},
    )
    return {
        "conversationId": conversation_id,
        "message": message.model_dump(by_alias=True, exclude_none=True),
        "suggestedActions": reply["suggestedActions"],
    }


@router.get("/health")
async def health(claude: ClaudeService = Depends(get_claude_service)):
    """Always 200; a degraded Claude connection is reported in the body"""
    readiness = await claude.check_availability()
    last_checked = datetime.fromtimestamp(readiness["checkedAt"], tz=timezone.utc)
    return {
        "status": "ok",
        "timestamp": utc_now_iso(),
        "claudeEnabled": readiness["available"],
        "claudeConfigured": claude.configured,
        "claudeLastChecked": last_checked.isoformat().replace("+00:00", "Z"),
        "claudeError": readiness.get("error"),
    }
