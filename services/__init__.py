from services.claude_service import ClaudeService
from services.syllabus_service import SyllabusService

__all__ = [
    'ClaudeService',
    'SyllabusService'
]
