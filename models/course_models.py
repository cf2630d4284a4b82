"""
Pydantic models for the StudyMap domain.
Wire format is camelCase; Python attributes are snake_case via alias generation.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any, Literal
from enum import Enum


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Enums for type safety and validation
class DeadlineType(str, Enum):
    EXAM = "exam"
    ASSIGNMENT = "assignment"
    PROJECT = "project"
    MISC = "misc"


class Difficulty(str, Enum):
    AUTO = "auto"
    INTRO = "intro"
    EXAM = "exam"


class QuestionType(str, Enum):
    MCQ = "mcq"
    SHORT = "short"
    MIX = "mix"


class ResourceType(str, Enum):
    LEARN = "learn"
    PRACTICE = "practice"
    BOTH = "both"


class SearchQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"


ResourceKind = Literal["video", "article", "doc", "docs", "tutorial", "interactive"]
ResourceQuality = Literal["high", "medium", "low"]
TopicLevel = Literal["topic", "subtopic", "microtopic"]
ChatRole = Literal["user", "assistant", "system"]


# Study map entities
class CourseMetadata(CamelModel):
    """Course header. Unknown keys are kept so saves round-trip."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    created_at: str = Field(..., min_length=1)
    course_number: Optional[str] = None
    term: Optional[str] = None


class MicroTopic(CamelModel):
    id: str
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    exam_scope_ids: List[str] = Field(default_factory=list)
    project_ids: List[str] = Field(default_factory=list)
    completed: bool = False
    rationale: Optional[str] = None


class SubTopic(CamelModel):
    id: str
    title: str
    description: str = ""
    micro_topics: List[MicroTopic] = Field(default_factory=list)
    rationale: Optional[str] = None


class Topic(CamelModel):
    id: str
    title: str
    description: str = ""
    sub_topics: List[SubTopic] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    rationale: Optional[str] = None


class UpcomingItem(CamelModel):
    """Deadline / exam / assignment entry. relatedTopicIds are weak references."""
    id: str
    title: str
    description: Optional[str] = None
    due_date: str
    type: DeadlineType = DeadlineType.MISC
    related_topic_ids: List[str] = Field(default_factory=list)
    scope_text: Optional[str] = None


class ExamScope(CamelModel):
    id: str
    title: str
    description: str = ""
    date: Optional[str] = None
    related_topic_ids: List[str] = Field(default_factory=list)
    uncertainty: Optional[str] = None


class ResourceItem(CamelModel):
    """Resource stored under a topic id in a course's resource mapping."""
    id: str
    title: str
    url: str
    summary: str
    type: ResourceKind
    duration: Optional[str] = None
    thumbnail: Optional[str] = None
    ai_generated: Optional[bool] = None
    ai_search_query: Optional[str] = None
    ai_quality: Optional[ResourceQuality] = None
    added_at: Optional[str] = None


class StudyMap(CamelModel):
    """
    Full structured output for one course.
    Topics, deadlines, exams and resource items are opaque JSON objects:
    they are stored and replayed exactly as submitted.
    """
    course: CourseMetadata
    topics: List[Dict[str, Any]]
    assignments: List[Dict[str, Any]]
    resources: Dict[str, List[Dict[str, Any]]]
    exams: List[Dict[str, Any]]


# Quiz models
class QuizChoice(CamelModel):
    id: str
    label: str
    correct: bool


class QuizQuestion(CamelModel):
    """Individual quiz question"""
    id: str
    prompt: str
    type: QuestionType = QuestionType.MCQ
    choices: Optional[List[QuizChoice]] = None
    answer: Optional[str] = None
    explanation: str = ""
    related_micro_topic_ids: List[str] = Field(default_factory=list)
    topic_id: Optional[str] = None


class QuizMicroTopic(CamelModel):
    id: str
    title: str
    description: str
    exam_scope_ids: List[str]


class QuizTopicSelection(CamelModel):
    id: str
    title: str
    micro_topics: List[QuizMicroTopic]


class Quiz(CamelModel):
    """Generated quiz as returned by the capability gateway."""
    quiz_id: str
    generated_at: str
    questions: List[QuizQuestion]
    topics: Optional[List[QuizTopicSelection]] = None


class QuizResult(CamelModel):
    """Scored attempt at a quiz. Kept separately from the append-only quiz history."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    quiz_id: str = Field(..., min_length=1)
    completed_at: str = Field(..., min_length=1)
    score: float = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    difficulty: Difficulty
    topic_ids: List[str] = Field(default_factory=list)
    topic_titles: List[str] = Field(default_factory=list)
    weak_topic_ids: Optional[List[str]] = None


# Resource search models
class ResourceSearchResult(CamelModel):
    url: str
    title: str
    summary: str
    resource_type: str
    quality: ResourceQuality = "medium"
    content_type: str = "article"


class ResourceSearchOutcome(CamelModel):
    resources: List[ResourceSearchResult]
    search_quality: str
    message: Optional[str] = None


# Chat models (request/response shapes only, never persisted)
class TopicContext(CamelModel):
    topic_id: str
    topic_title: str
    level: TopicLevel


class ChatAction(CamelModel):
    type: str
    label: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ChatMessage(CamelModel):
    id: str
    role: ChatRole
    content: str
    timestamp: str
    topic_context: Optional[TopicContext] = None
    metadata: Optional[Dict[str, Any]] = None


class QuizHistorySummary(CamelModel):
    weak_topic_ids: List[str]
    recent_scores: List[float]


class ChatContext(CamelModel):
    course_id: str
    course_name: str
    topics: List[Topic]
    completed_micro_topic_ids: List[str]
    upcoming_deadlines: List[UpcomingItem]
    quiz_history: Optional[QuizHistorySummary] = None
    syllabus_text: Optional[str] = None


class ChatReply(CamelModel):
    content: str
    suggested_actions: List[ChatAction] = Field(default_factory=list)


# Readiness probe
class CapabilityHealth(CamelModel):
    available: bool
    checked_at: float  # epoch seconds
    error: Optional[str] = None
