"""
Request schemas for every external operation.

Validation is total and upfront: a payload either conforms completely or the
request is rejected with the first violation (see main.py handlers).
"""

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any

from models.course_models import (
    CamelModel, StudyMap, QuizResult, QuizTopicSelection, ChatMessage,
    ChatContext, TopicContext, Difficulty, QuestionType, ResourceType,
    ResourceKind, ResourceQuality,
)
from utils.model_config import DEFAULT_MAX_RESULTS

# Child list key for each level of the topic tree
_CHILD_KEYS = {"topic": "subTopics", "subtopic": "microTopics"}
_NEXT_LEVEL = {"topic": "subtopic", "subtopic": "microtopic"}


def check_unique_ids(items: List[Any], path: str, level: str = "item") -> None:
    """Every entry is an object whose id is a non-empty string unique within the list."""
    seen = set()
    for index, item in enumerate(items):
        where = f"{path}[{index}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where} must be an object")
        node_id = item.get("id")
        if not isinstance(node_id, str) or not node_id.strip():
            raise ValueError(f"{where}.id must be a non-empty string")
        if node_id in seen:
            raise ValueError(f"{where}.id '{node_id}' is duplicated within its {level} list")
        seen.add(node_id)


def check_topic_tree(items: List[Any], level: str = "topic", path: str = "topics") -> None:
    """
    Check ids across a topic tree: every node is an object with a non-empty
    string id that is unique among its siblings. Raises ValueError naming the
    first offending node.
    """
    check_unique_ids(items, path, level)
    child_key = _CHILD_KEYS.get(level)
    if child_key is None:
        return
    for index, item in enumerate(items):
        if child_key not in item:
            continue
        where = f"{path}[{index}]"
        children = item[child_key]
        if not isinstance(children, list):
            raise ValueError(f"{where}.{child_key} must be a list")
        check_topic_tree(children, _NEXT_LEVEL[level], f"{where}.{child_key}")


# Course store requests
class SaveCourseRequest(CamelModel):
    study_map: StudyMap

    @field_validator("study_map")
    @classmethod
    def validate_ids(cls, v: StudyMap) -> StudyMap:
        check_topic_tree(v.topics)
        check_unique_ids(v.assignments, "assignments", "assignment")
        check_unique_ids(v.exams, "exams", "exam")
        return v


class ReplaceTopicsRequest(CamelModel):
    topics: List[Dict[str, Any]]

    @field_validator("topics")
    @classmethod
    def validate_topic_ids(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        check_topic_tree(v)
        return v


class QuizRecord(CamelModel):
    """Quiz appended to a course's history. Questions are stored verbatim."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    quiz_id: str = Field(..., min_length=1)
    generated_at: str = Field(..., min_length=1)
    questions: List[Dict[str, Any]]

    @field_validator("questions")
    @classmethod
    def validate_question_ids(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        check_unique_ids(v, "questions", "question")
        return v


class RecordQuizRequest(CamelModel):
    quiz: QuizRecord


class QuizResultRequest(QuizResult):
    """Body of POST /courses/{id}/quiz-results (the result itself)."""


class NewResource(CamelModel):
    """Resource submitted for a topic; id and addedAt are filled in when absent."""
    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1)
    type: ResourceKind
    duration: Optional[str] = None
    thumbnail: Optional[str] = None
    ai_generated: Optional[bool] = None
    ai_search_query: Optional[str] = None
    ai_quality: Optional[ResourceQuality] = None
    added_at: Optional[str] = None


class AddResourceRequest(CamelModel):
    topic_id: str = Field(..., min_length=1)
    resource: NewResource


# Capability gateway requests
class QuizGenerationRequest(CamelModel):
    course_id: str = Field(..., min_length=1)
    topics: List[QuizTopicSelection] = Field(..., min_length=1)
    difficulty: Difficulty
    length: int = Field(..., ge=1, le=20, strict=True)
    question_type: QuestionType


class ResourceSearchRequest(CamelModel):
    course_title: str = Field(..., min_length=1)
    topic_title: str = Field(..., min_length=1)
    topic_description: Optional[str] = None
    resource_type: ResourceType
    max_results: int = Field(DEFAULT_MAX_RESULTS, ge=1, strict=True)

    @field_validator("max_results", mode="before")
    @classmethod
    def default_max_results(cls, v: Any) -> Any:
        return DEFAULT_MAX_RESULTS if v is None else v


class ChatRequest(CamelModel):
    course_id: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    message: str = Field(..., min_length=1)
    conversation_history: List[ChatMessage]
    context: ChatContext
    topic_context: Optional[TopicContext] = None
    stream: bool = False


class SyllabusForm(CamelModel):
    """Course metadata fields of the multipart syllabus upload."""
    course_name: str = Field(..., min_length=2)
    course_number: Optional[str] = None
    term: Optional[str] = None
    syllabus_text: Optional[str] = None
    deadline_summary: Optional[str] = None
