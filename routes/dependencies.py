"""
FastAPI dependencies.
The store and the capability services are built once in main.py's lifespan and live on app.state.
"""

from fastapi import Request

from services.claude_service import ClaudeService
from services.syllabus_service import SyllabusService
from utils.file_storage import CourseStore


def get_course_store(request: Request) -> CourseStore:
    return request.app.state.course_store


def get_claude_service(request: Request) -> ClaudeService:
    return request.app.state.claude_service


def get_syllabus_service(request: Request) -> SyllabusService:
    return request.app.state.syllabus_service
