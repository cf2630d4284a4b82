"""
FastAPI routes for the course store.
Study map persistence, topic replacement, quiz history, quiz results and resources.
"""

from fastapi import APIRouter, Depends
from typing import Any, Dict, List
import logging

from models.request_models import (
    SaveCourseRequest, ReplaceTopicsRequest, RecordQuizRequest, QuizResultRequest, AddResourceRequest,
)
from routes.dependencies import get_course_store
from utils.exceptions import NotFoundError
from utils.file_storage import CourseStore
from utils.progress import course_progress

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["courses"])


@router.get("/courses")
async def list_courses(store: CourseStore = Depends(get_course_store)) -> List[Dict[str, Any]]:
    """All stored courses in insertion order"""
    return await store.list()


@router.post("/courses", status_code=201)
async def save_course(request: SaveCourseRequest, store: CourseStore = Depends(get_course_store)):
    """
    Create a course from a fully formed study map, or overwrite the course with
    the same id (last write wins). Quiz history and results are kept on overwrite.
    """
    study_map = request.study_map.model_dump(by_alias=True, exclude_unset=True)
    return await store.save_course(study_map)


@router.get("/courses/{course_id}")
async def get_course(course_id: str, store: CourseStore = Depends(get_course_store)):
    return await store.get(course_id)


@router.delete("/courses/{course_id}")
async def delete_course(course_id: str, store: CourseStore = Depends(get_course_store)):
    deleted = await store.delete_course(course_id)
    if not deleted:
        raise NotFoundError("Course not found", context={"course_id": course_id})
    return {"success": True}


@router.patch("/courses/{course_id}/topics")
async def replace_topics(course_id: str, request: ReplaceTopicsRequest, store: CourseStore = Depends(get_course_store)):
    """Swap the course's topic list; every other field is untouched"""
    return await store.replace_topics(course_id, request.topics)


@router.get("/courses/{course_id}/progress")
async def get_progress(course_id: str, store: CourseStore = Depends(get_course_store)):
    """Completion derived from microtopic flags, per topic and subtopic"""
    record = await store.get(course_id)
    return {"courseId": course_id, **course_progress(record.get("topics", []))}


@router.post("/courses/{course_id}/quizzes")
async def record_quiz(course_id: str, request: RecordQuizRequest, store: CourseStore = Depends(get_course_store)):
    quiz = request.quiz.model_dump(by_alias=True, exclude_unset=True)
    return await store.record_quiz(course_id, quiz)


@router.post("/courses/{course_id}/quiz-results")
async def save_quiz_result(course_id: str, request: QuizResultRequest, store: CourseStore = Depends(get_course_store)):
    result = request.model_dump(by_alias=True, mode="json", exclude_unset=True)
    updated = await store.save_quiz_result(course_id, result)
    return {"success": True, "course": updated}


@router.delete("/courses/{course_id}/quiz-results/{result_id}")
async def delete_quiz_result(course_id: str, result_id: str, store: CourseStore = Depends(get_course_store)):
    updated = await store.delete_quiz_result(course_id, result_id)
    return {"success": True, "course": updated}


@router.post("/courses/{course_id}/resources")
async def add_resource(course_id: str, request: AddResourceRequest, store: CourseStore = Depends(get_course_store)):
    """Attach a resource to a topic, subtopic or microtopic"""
    resource = request.resource.model_dump(by_alias=True, exclude_none=True)
    _, stored = await store.add_resource(course_id, request.topic_id, resource)
    return {
        "success": True,
        "resource": stored,
        "message": "Resource added successfully"
    }
