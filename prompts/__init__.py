# Prompts module initialization

# StudyMap Prompts
from .study_map_prompts import (
    STUDY_MAP_SYSTEM_PROMPT,
    QUIZ_SYSTEM_PROMPT,
    RESOURCE_SEARCH_SYSTEM_PROMPT,
    RESOURCE_FOLLOW_UP_SYSTEM_PROMPT,
    RESOURCE_FOLLOW_UP_PROMPT,
    HEALTH_PROBE_SYSTEM_PROMPT,
    HEALTH_PROBE_PROMPT,
    build_course_info,
    build_study_map_pdf_prompt,
    build_study_map_text_prompt,
    build_quiz_prompt,
    build_resource_search_prompt,
    build_chat_system_prompt
)

__all__ = [
    'STUDY_MAP_SYSTEM_PROMPT',
    'QUIZ_SYSTEM_PROMPT',
    'RESOURCE_SEARCH_SYSTEM_PROMPT',
    'RESOURCE_FOLLOW_UP_SYSTEM_PROMPT',
    'RESOURCE_FOLLOW_UP_PROMPT',
    'HEALTH_PROBE_SYSTEM_PROMPT',
    'HEALTH_PROBE_PROMPT',
    'build_course_info',
    'build_study_map_pdf_prompt',
    'build_study_map_text_prompt',
    'build_quiz_prompt',
    'build_resource_search_prompt',
    'build_chat_system_prompt'
]
