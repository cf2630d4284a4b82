"""
Claude-backed capability gateway.
Study map generation, quiz generation, resource search, course chat and the readiness probe.
Each capability is a request/response call with no persisted side effects.
"""

import asyncio
import base64
import random
import time
import logging
import re
from typing import Dict, Any, Optional, List, AsyncIterator
from datetime import datetime, timezone

from pydantic import ValidationError

import clients.anthropic_client as anthropic_client
from clients.anthropic_client import NOT_CONFIGURED_MESSAGE
from models.course_models import (
    ChatContext, ChatMessage, TopicContext, Quiz, QuizQuestion, ResourceSearchOutcome,
)
from models.request_models import QuizGenerationRequest
from prompts.study_map_prompts import (
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
    build_chat_system_prompt,
)
from utils.exceptions import (
    CapabilityError, QuizGenerationError, SyllabusParseError, ResourceSearchError, ChatError,
)
from utils.json_repair import parse_model_json, find_balanced_object, clean_json_text, strip_code_fences
from utils.model_config import ModelConfig, Operation, HEALTH_TTL_SECONDS, MAX_SYLLABUS_CHARS, DEFAULT_MAX_RESULTS
from utils.file_storage import utc_now_iso

logger = logging.getLogger(__name__)

UNAVAILABLE_CHAT_REPLY = "I'm currently unavailable. Please configure the ANTHROPIC_API_KEY to enable the chatbot."

_FALLBACK_DISTRACTORS = [
    "Enforces amortized constant time via banking tokens.",
    "Guarantees logarithmic depth rotations regardless of inserts.",
    "Uses divide-and-conquer to shrink problem inputs geometrically.",
]

_CHOICE_LETTER = re.compile(r"^([A-D])\)\s*")

_RESOURCE_JSON_STARTS = ('{"resources"', '{ "resources"', '{\n  "resources"')


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def _assign_ids(nodes: List[Dict[str, Any]], prefix: str) -> List[Dict[str, Any]]:
    """Give every node a non-empty string id, unique among its siblings."""
    seen = set()
    assigned = []
    for index, node in enumerate(nodes, start=1):
        node_id = node.get("id")
        node_id = str(node_id).strip() if node_id is not None else ""
        if not node_id or node_id in seen:
            replacement = f"{prefix}-{index}"
            while replacement in seen:
                replacement += "-x"
            logger.warning(f"Generated node {node.get('title', '?')!r} had id {node.get('id')!r}, using {replacement}")
            node_id = replacement
        seen.add(node_id)
        assigned.append({**node, "id": node_id})
    return assigned


def normalize_topics(topics: Optional[List[Any]]) -> List[Dict[str, Any]]:
    """
    Fill defaults the study map relies on: string ids unique among siblings,
    tags, examScopeIds and a boolean completed flag.
    """
    normalized = []
    for topic in _assign_ids(_dict_items(topics), "topic"):
        sub_topics = []
        for sub in _assign_ids(_dict_items(topic.get("subTopics")), f"{topic['id']}-sub"):
            micro_topics = [
                {
                    **micro,
                    "tags": micro.get("tags") or [],
                    "examScopeIds": micro.get("examScopeIds") or [],
                    "completed": bool(micro.get("completed")),
                }
                for micro in _assign_ids(_dict_items(sub.get("microTopics")), f"{sub['id']}-micro")
            ]
            sub_topics.append({**sub, "microTopics": micro_topics})
        normalized.append({**topic, "tags": topic.get("tags") or [], "subTopics": sub_topics})
    return normalized


def build_rationale(parsed: Dict[str, Any], topics: List[Dict[str, Any]]) -> str:
    rationale = parsed.get("rationale")
    if isinstance(rationale, str) and rationale.strip():
        return rationale.strip()
    lines = [f"{t.get('title', t.get('id'))}: {t['rationale']}" for t in topics if t.get("rationale")]
    if lines:
        return "\n".join(lines)
    return f"Organised the syllabus into {len(topics)} topics in course order."


# Quiz helpers
def _fallback_choices(micro_title: str) -> List[Dict[str, Any]]:
    answers = [f"Focuses on {micro_title}.", *_FALLBACK_DISTRACTORS]
    correct = answers[0]
    random.shuffle(answers)
    return [
        {"id": f"choice-{idx}", "label": text, "correct": text == correct}
        for idx, text in enumerate(answers)
    ]


def fallback_questions(topics: List[Dict[str, Any]], length: int) -> List[Dict[str, Any]]:
    """Deterministic questions built from the selected microtopics, used when Claude is not configured."""
    pool = [
        (topic, micro)
        for topic in topics
        for micro in topic.get("microTopics", [])
    ]
    if not pool:
        return [{
            "id": "quiz-empty",
            "prompt": "Which concept from the recent syllabus upload would you like to review first?",
            "type": "mcq",
            "choices": [
                {"id": "choice-a", "label": "All topics seem clear", "correct": True},
                {"id": "choice-b", "label": "Need more context", "correct": False},
                {"id": "choice-c", "label": "Require additional examples", "correct": False},
                {"id": "choice-d", "label": "Looking for practice problems", "correct": False},
            ],
            "explanation": "Selecting at least one topic will unlock tailored quizzes.",
            "relatedMicroTopicIds": [],
            "topicId": topics[0]["id"] if topics else "unknown",
        }]

    questions = []
    for idx in range(length):
        topic, micro = pool[idx % len(pool)]
        questions.append({
            "id": f"quiz-mcq-{micro['id']}-{idx}",
            "prompt": f"Which statement best explains {micro['title']}?",
            "type": "mcq",
            "choices": _fallback_choices(micro["title"]),
            "explanation": f"The core idea of {micro['title']} ties directly to {micro['description']}.",
            "relatedMicroTopicIds": [micro["id"]],
            "topicId": topic["id"],
        })
    return questions


def _ensure_single_correct(question_id: str, choices: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    correct_indexes = [i for i, choice in enumerate(choices) if choice["correct"]]
    if len(correct_indexes) > 1:
        logger.warning(f"Question {question_id} has {len(correct_indexes)} correct answers, keeping only the first one")
        for i in correct_indexes[1:]:
            choices[i]["correct"] = False
    elif not correct_indexes:
        logger.warning(f"Question {question_id} has no correct answer, marking first choice as correct")
        choices[0]["correct"] = True
    return choices


def _choices_from_strings(raw_choices: List[Any], answer: Optional[str]) -> List[Dict[str, Any]]:
    choices = []
    for idx, text in enumerate(raw_choices):
        text = str(text)
        match = _CHOICE_LETTER.match(text)
        letter = match.group(1) if match else chr(65 + idx)
        label = _CHOICE_LETTER.sub("", text) if match else text
        choices.append({"id": f"choice-{letter.lower()}", "label": label, "correct": False})

    if answer:
        key = answer.strip()
        for choice in choices:
            if choice["id"] == f"choice-{key.lower()}" or choice["label"].lower() == key.lower():
                choice["correct"] = True
        # Fall back to matching the answer text inside a label
        if not any(c["correct"] for c in choices) and len(key) > 1:
            logger.warning(f"No choice matched answer '{key}', trying content match")
            for choice in choices:
                if key.lower() in choice["label"].lower():
                    choice["correct"] = True
    return choices


def normalize_question(raw: Dict[str, Any], index: int) -> Optional[Dict[str, Any]]:
    """
    Turn one model-produced question into the Quiz wire shape.
    Every question becomes an mcq with {id, label, correct} choices and exactly one correct choice.
    Returns None when the question has no prompt.
    """
    prompt = raw.get("prompt") or raw.get("question")
    if not prompt:
        logger.warning(f"Skipping question {index} without a prompt")
        return None

    question_id = str(raw.get("id") or f"question-{index}")
    answer = raw.get("answer")
    answer = str(answer) if answer is not None else None
    raw_choices = raw.get("choices") if isinstance(raw.get("choices"), list) else []

    if raw_choices and all(isinstance(c, dict) for c in raw_choices):
        choices = [
            {
                "id": str(c.get("id") or f"choice-{chr(97 + i)}"),
                "label": str(c.get("label") or c.get("text") or ""),
                "correct": bool(c.get("correct")),
            }
            for i, c in enumerate(raw_choices)
        ]
    elif raw_choices:
        choices = _choices_from_strings(raw_choices, answer)
    else:
        logger.error(f"Question {question_id} has no choices! Creating fallback MCQ choices.")
        choices = [
            {"id": "choice-a", "label": answer or "Unable to determine answer", "correct": True},
            {"id": "choice-b", "label": "This option is incorrect", "correct": False},
            {"id": "choice-c", "label": "This option is also incorrect", "correct": False},
            {"id": "choice-d", "label": "This option is not correct", "correct": False},
        ]

    related = raw.get("relatedMicroTopicIds")
    return {
        "id": question_id,
        "prompt": str(prompt),
        "type": "mcq",
        "choices": _ensure_single_correct(question_id, choices),
        "explanation": str(raw.get("explanation") or ""),
        "relatedMicroTopicIds": [str(r) for r in related] if isinstance(related, list) else [],
        "topicId": str(raw["topicId"]) if raw.get("topicId") is not None else None,
    }


# Resource helpers
def _poor_result(message: str) -> Dict[str, Any]:
    return {"resources": [], "searchQuality": "poor", "message": message}


def _first_text(raw: Dict[str, Any], *keys: str) -> Optional[str]:
    # First non-blank string among the given keys
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_resource_response(text: str, resource_type: str, max_results: int) -> Dict[str, Any]:
    """Extract {resources, searchQuality, message} from the curator's text. Unparseable output is a poor-quality empty result."""
    sanitized = strip_code_fences(text)

    start = -1
    for marker in _RESOURCE_JSON_STARTS:
        start = sanitized.find(marker)
        if start != -1:
            break
    if start == -1:
        start = sanitized.find("{")
    if start == -1:
        logger.error(f"No JSON object found in resource response: {sanitized[:1000]}")
        return _poor_result("Failed to find JSON in response")

    candidate = find_balanced_object(sanitized, start)
    if candidate is None:
        logger.error("Could not find closing brace for resource JSON")
        return _poor_result("Incomplete JSON response")

    try:
        parsed = parse_model_json(clean_json_text(candidate))
    except ValueError as e:
        logger.error(f"Failed to parse resource JSON: {e}")
        return _poor_result("Failed to parse search results")

    raw_resources = parsed.get("resources")
    if not isinstance(raw_resources, list):
        logger.error(f"Invalid resources array: {str(parsed)[:500]}")
        return _poor_result("No valid resources found")

    resources = []
    for r in raw_resources:
        if not isinstance(r, dict):
            continue
        url = _first_text(r, "url", "link", "href")
        title = _first_text(r, "title", "name")
        summary = _first_text(r, "summary", "description", "desc")
        if not (url and title and summary):
            logger.info(f"Skipping invalid resource: {str(r)[:100]}")
            continue
        quality = r.get("quality")
        resources.append({
            "url": url,
            "title": title,
            "summary": summary,
            "resourceType": _first_text(r, "resourceType") or resource_type,
            "quality": quality if quality in ("high", "medium", "low") else "medium",
            "contentType": _first_text(r, "contentType", "type") or "article",
        })
    resources = resources[:max_results]

    count = len(resources)
    default_message = f"Found {count} resource{'s' if count != 1 else ''}" if count else "No resources found"
    search_quality = _first_text(parsed, "searchQuality")
    if parsed.get("searchQuality") is not None and search_quality is None:
        logger.warning(f"Ignoring non-text searchQuality {parsed.get('searchQuality')!r}")
    return {
        "resources": resources,
        "searchQuality": search_quality or ("good" if count > 5 else "poor"),
        "message": _first_text(parsed, "message") or default_message,
    }


# Chat helpers
def _contains(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def detect_suggested_actions(content: str, user_message: str, context: ChatContext) -> List[Dict[str, Any]]:
    """Keyword-driven follow-up actions for a chat reply, one per action type."""
    reply = content.lower()
    asked = user_message.lower()
    weak_topic_ids = context.quiz_history.weak_topic_ids if context.quiz_history else []
    exams = [d for d in context.upcoming_deadlines if d.type.value == "exam"]
    actions: List[Dict[str, Any]] = []

    if _contains(reply, "quiz", "test yourself", "practice questions") or "quiz me" in asked:
        actions.append({"type": "generate_quiz", "label": "Generate Quiz", "payload": {}})

    if (_contains(asked, "study plan", "schedule", "plan for")
            or _contains(reply, "create a plan", "study schedule", "weekly plan")):
        actions.append({"type": "study_planner", "label": "View Study Plan", "payload": {"context": "generated_plan"}})

    if weak_topic_ids and (
        _contains(asked, "struggling", "weak", "difficult", "help with", "don't understand")
        or _contains(reply, "weak topic", "struggle")
    ):
        actions.append({
            "type": "weak_spot_coach",
            "label": "Practice Weak Topics",
            "payload": {"weakTopicIds": list(weak_topic_ids)},
        })

    if exams:
        actions.append({"type": "exam_prep", "label": "Exam Preparation Mode", "payload": {"examId": exams[0].id}})

    if (_contains(reply, "resource", "video", "article", "learning material", "practice problem")
            or _contains(asked, "find", "learn more")):
        actions.append({"type": "add_resource", "label": "Find Resources", "payload": {}})

    if _contains(asked, "due", "deadline", "when is", "upcoming"):
        actions.append({"type": "view_deadlines", "label": "View All Deadlines", "payload": {}})

    mentioned = [t for t in context.topics if t.title and t.title.lower() in reply]
    if 0 < len(mentioned) <= 3:
        for topic in mentioned:
            actions.append({"type": "navigate", "label": f"Go to {topic.title}", "payload": {"topicId": topic.id}})

    if _contains(asked, "relate", "connection", "relationship", "how does", "difference between"):
        asked_topics = [t for t in context.topics if t.title and t.title.lower() in asked]
        if len(asked_topics) >= 2:
            actions.append({
                "type": "concept_map",
                "label": "Explore Concept Connections",
                "payload": {"topicIds": [t.id for t in asked_topics]},
            })

    if _contains(asked, "progress", "how am i doing", "stuck", "struggling"):
        actions.append({"type": "view_progress", "label": "View Progress Dashboard", "payload": {}})

    # First action of each type wins, except navigate which is per topic
    unique: List[Dict[str, Any]] = []
    seen = set()
    for action in actions:
        key = (action["type"], action["payload"].get("topicId")) if action["type"] == "navigate" else action["type"]
        if key in seen:
            continue
        seen.add(key)
        unique.append(action)
    return unique


def append_user_message(history: List[ChatMessage], message: str, topic_context: Optional[TopicContext]) -> List[ChatMessage]:
    """Conversation history plus the incoming user message."""
    return [
        *history,
        ChatMessage(
            id=f"msg-{_now_ms()}",
            role="user",
            content=message,
            timestamp=utc_now_iso(),
            topic_context=topic_context,
        ),
    ]


class ClaudeService:
    """Gateway to the Claude-backed capabilities"""

    def __init__(self):
        self._health: Optional[Dict[str, Any]] = None
        self._health_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return anthropic_client.is_configured()

    # Readiness probe
    async def check_availability(self, force: bool = False) -> Dict[str, Any]:
        """Return {available, checkedAt (epoch seconds), error?}, cached for the health TTL."""
        now = time.time()
        if not self.configured:
            self._health = {"available": False, "checkedAt": now, "error": NOT_CONFIGURED_MESSAGE}
            return dict(self._health)

        async with self._health_lock:
            cached = self._health
            if not force and cached and cached.get("error") != NOT_CONFIGURED_MESSAGE \
                    and now - cached["checkedAt"] < HEALTH_TTL_SECONDS:
                return dict(cached)

            config = ModelConfig.get_config(Operation.HEALTH_PROBE)
            try:
                response = await anthropic_client.create_message(
                    Operation.HEALTH_PROBE.value,
                    config["timeout_seconds"],
                    model=config["model"],
                    max_tokens=config["max_tokens"],
                    temperature=config["temperature"],
                    system=HEALTH_PROBE_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": [{"type": "text", "text": HEALTH_PROBE_PROMPT}]}],
                )
                ok = anthropic_client.text_of(response).strip().upper().startswith("OK")
                self._health = {"available": True, "checkedAt": now} if ok else \
                    {"available": False, "checkedAt": now, "error": "Unexpected Claude response."}
            except CapabilityError as e:
                logger.warning(f"Claude readiness probe failed: {e.message}")
                self._health = {"available": False, "checkedAt": now, "error": e.message}
            return dict(self._health)

    # Study map generation
    async def generate_study_map(
        self,
        course: Dict[str, Any],
        syllabus_pdf: Optional[bytes] = None,
        syllabus_text: Optional[str] = None,
        deadline_summary: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Generate {topics, assignments, resources, exams, rationale} for a course.

        A PDF is sent as a base64 document block; plain text is truncated before
        prompting. Raises SyllabusParseError when Claude is unavailable, times out
        or returns output that cannot be parsed.
        """
        if not self.configured:
            raise SyllabusParseError("Claude client unavailable.", context={"reason": NOT_CONFIGURED_MESSAGE})

        course_info = build_course_info(
            course.get("name", ""), course.get("courseNumber"), course.get("term"), deadline_summary
        )
        if syllabus_pdf:
            content = [
                {
                    "type": "document",
                    "source": {
                        "type": "base64",
                        "media_type": "application/pdf",
                        "data": base64.b64encode(syllabus_pdf).decode("ascii"),
                    },
                },
                {"type": "text", "text": build_study_map_pdf_prompt(course_info)},
            ]
        elif syllabus_text and syllabus_text.strip():
            content = [{"type": "text", "text": build_study_map_text_prompt(course_info, syllabus_text[:MAX_SYLLABUS_CHARS])}]
        else:
            raise SyllabusParseError("No syllabus content provided")

        config = ModelConfig.get_config(Operation.STUDY_MAP)
        logger.info(f"Generating study map for {course.get('name')} ({'pdf' if syllabus_pdf else 'text'})")
        try:
            response = await anthropic_client.create_message(
                Operation.STUDY_MAP.value,
                config["timeout_seconds"],
                model=config["model"],
                max_tokens=config["max_tokens"],
                temperature=config["temperature"],
                system=STUDY_MAP_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
            )
        except CapabilityError as e:
            raise SyllabusParseError(e.message, context={**e.context, "cause": e.error_code})

        text = anthropic_client.text_of(response)
        if not text:
            raise SyllabusParseError("Claude response missing text payload.")

        truncated = getattr(response, "stop_reason", None) == "max_tokens"
        if truncated:
            logger.warning("Study map response was truncated due to max_tokens limit")
        try:
            parsed = parse_model_json(text, expect="object", truncated=truncated)
        except ValueError as e:
            raise SyllabusParseError(str(e))

        topics = normalize_topics(parsed.get("topics"))
        result = {
            "topics": topics,
            "assignments": _assign_ids(_dict_items(parsed.get("assignments")), "assignment"),
            "resources": parsed.get("resources") if isinstance(parsed.get("resources"), dict) else {},
            "exams": _assign_ids(_dict_items(parsed.get("exams")), "exam"),
            "rationale": build_rationale(parsed, topics),
        }
        logger.info(
            f"Study map parsed: {len(topics)} topics, {len(result['assignments'])} assignments, "
            f"{len(result['exams'])} exams"
        )
        return result

    # Quiz generation
    async def generate_quiz(self, request: QuizGenerationRequest) -> Dict[str, Any]:
        """Generate a quiz of at most `length` mcq questions. Zero questions is a failure."""
        topics = [topic.model_dump(by_alias=True) for topic in request.topics]
        logger.info(
            f"Generating quiz for {request.course_id}: {len(topics)} topics, "
            f"difficulty={request.difficulty.value}, length={request.length}"
        )

        if not self.configured:
            logger.info("No Claude client, returning fallback questions")
            questions = fallback_questions(topics, request.length)
            quiz_id = f"quiz-{_now_ms()}"
        else:
            config = ModelConfig.get_config(Operation.QUIZ)
            temperature = config["exam_temperature"] if request.difficulty.value == "exam" else config["temperature"]
            try:
                response = await anthropic_client.create_message(
                    Operation.QUIZ.value,
                    config["timeout_seconds"],
                    model=config["model"],
                    max_tokens=config["max_tokens"],
                    temperature=temperature,
                    system=QUIZ_SYSTEM_PROMPT,
                    messages=[{
                        "role": "user",
                        "content": [{
                            "type": "text",
                            "text": build_quiz_prompt(request.course_id, topics, request.difficulty.value, request.length),
                        }],
                    }],
                )
            except CapabilityError as e:
                raise QuizGenerationError(e.message, context={**e.context, "cause": e.error_code})

            text = anthropic_client.text_of(response)
            if not text:
                raise QuizGenerationError("Claude response missing text payload.")
            truncated = getattr(response, "stop_reason", None) == "max_tokens"
            if truncated:
                logger.warning("Quiz response was truncated due to max_tokens limit")
            try:
                parsed = parse_model_json(text, expect="array", truncated=truncated)
            except ValueError as e:
                raise QuizGenerationError(str(e))

            questions = [
                q for q in (normalize_question(raw, i) for i, raw in enumerate(parsed) if isinstance(raw, dict))
                if q is not None
            ]
            quiz_id = getattr(response, "id", None) or f"quiz-{_now_ms()}"

        questions = _assign_ids(questions[:request.length], "question")
        if not questions:
            raise QuizGenerationError("No quiz questions were generated")
        if len(questions) < request.length:
            logger.warning(f"Quiz has {len(questions)} of {request.length} requested questions")

        try:
            quiz = Quiz(
                quiz_id=str(quiz_id),
                generated_at=utc_now_iso(),
                questions=[QuizQuestion.model_validate(q) for q in questions],
                topics=request.topics,
            )
        except ValidationError as e:
            logger.error(f"Generated quiz failed validation: {e}")
            raise QuizGenerationError(
                "Claude returned malformed quiz questions",
                context={"details": str(e)},
            )
        logger.info(f"Quiz {quiz.quiz_id} generated with {len(quiz.questions)} questions")
        return quiz.model_dump(by_alias=True, mode="json", exclude_none=True)

    # Resource search
    async def find_resources(
        self,
        course_title: str,
        topic_title: str,
        resource_type: str,
        topic_description: Optional[str] = None,
        max_results: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Search the web for learning resources on one topic.
        Returns {resources, searchQuality, message}; raises ResourceSearchError when the call itself fails.
        """
        max_results = max_results or DEFAULT_MAX_RESULTS
        if not self.configured:
            raise ResourceSearchError("Failed to find resources: Claude client unavailable.",
                                      context={"reason": NOT_CONFIGURED_MESSAGE})

        query = build_resource_search_prompt(course_title, topic_title, resource_type, topic_description)
        config = ModelConfig.get_config(Operation.RESOURCE_SEARCH)
        deadline = time.monotonic() + config["timeout_seconds"]
        logger.info(f"Searching {resource_type} resources for '{topic_title}' in '{course_title}'")

        try:
            response = await anthropic_client.create_message(
                Operation.RESOURCE_SEARCH.value,
                config["timeout_seconds"],
                model=config["model"],
                max_tokens=config["max_tokens"],
                temperature=config["temperature"],
                system=RESOURCE_SEARCH_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": query + "\n\nIMPORTANT: Return ONLY the JSON object, no other text."}],
                tools=[{"type": "web_search_20250305", "name": "web_search", "max_uses": config["web_search_max_uses"]}],
            )
            text = anthropic_client.text_of(response)

            if getattr(response, "stop_reason", None) == "tool_use":
                logger.info("Claude requested tool use, making follow-up call")
                follow_up = await anthropic_client.create_message(
                    Operation.RESOURCE_SEARCH.value,
                    max(deadline - time.monotonic(), 0.001),
                    model=config["model"],
                    max_tokens=config["max_tokens"],
                    temperature=config["temperature"],
                    system=RESOURCE_FOLLOW_UP_SYSTEM_PROMPT,
                    messages=[
                        {"role": "user", "content": query},
                        {"role": "assistant", "content": response.content},
                        {"role": "user", "content": RESOURCE_FOLLOW_UP_PROMPT},
                    ],
                )
                text = anthropic_client.text_of(follow_up)
        except CapabilityError as e:
            raise ResourceSearchError(f"Failed to find resources: {e.message}", context={**e.context, "cause": e.error_code})

        result = parse_resource_response(text, resource_type, max_results)
        try:
            outcome = ResourceSearchOutcome.model_validate(result)
        except ValidationError as e:
            logger.error(f"Resource search result failed validation: {e}")
            outcome = ResourceSearchOutcome.model_validate(_poor_result("Failed to parse search results"))
        logger.info(f"Resources found: {len(outcome.resources)}, quality: {outcome.search_quality}")
        return outcome.model_dump(by_alias=True)

    # Chat
    def _chat_params(
        self,
        conversation_history: List[ChatMessage],
        context: ChatContext,
        topic_context: Optional[TopicContext]
    ) -> Dict[str, Any]:
        topics = [t.model_dump(by_alias=True) for t in context.topics]
        total_micro = sum(len(s.micro_topics) for t in context.topics for s in t.sub_topics)
        weak_ids = context.quiz_history.weak_topic_ids if context.quiz_history else []
        system = build_chat_system_prompt(
            course_name=context.course_name,
            topics=topics,
            completed_count=len(context.completed_micro_topic_ids),
            total_micro_topics=total_micro,
            weak_topic_titles=[t.title for t in context.topics if t.id in weak_ids],
            recent_scores=context.quiz_history.recent_scores if context.quiz_history else [],
            upcoming_deadlines=[d.model_dump(by_alias=True, mode="json") for d in context.upcoming_deadlines],
            topic_context=topic_context.model_dump(by_alias=True) if topic_context else None,
            syllabus_text=context.syllabus_text,
        )

        messages = [
            {"role": "user" if msg.role == "user" else "assistant", "content": msg.content}
            for msg in conversation_history
            if msg.content.strip()
        ]
        # Claude conversations start with a user turn
        while messages and messages[0]["role"] != "user":
            messages.pop(0)

        config = ModelConfig.get_config(Operation.CHAT)
        return {
            "model": config["model"],
            "max_tokens": config["max_tokens"],
            "temperature": config["temperature"],
            "system": system,
            "messages": messages,
        }

    async def chat(
        self,
        conversation_history: List[ChatMessage],
        context: ChatContext,
        topic_context: Optional[TopicContext] = None
    ) -> Dict[str, Any]:
        """Reply to the last user message. Returns {content, suggestedActions}."""
        logger.info(f"Chat for course {context.course_id}: {len(conversation_history)} messages")
        if not self.configured:
            return {"content": UNAVAILABLE_CHAT_REPLY, "suggestedActions": []}

        params = self._chat_params(conversation_history, context, topic_context)
        try:
            response = await anthropic_client.create_message(
                Operation.CHAT.value, ModelConfig.timeout_for(Operation.CHAT), **params
            )
        except CapabilityError as e:
            raise ChatError(e.message, context={**e.context, "cause": e.error_code})

        content = anthropic_client.text_of(response).strip()
        if not content:
            raise ChatError("Claude response missing text content.")

        user_message = next((m.content for m in reversed(conversation_history) if m.role == "user"), "")
        actions = detect_suggested_actions(content, user_message, context)
        logger.info(f"Chat reply: {len(content)} chars, {len(actions)} suggested actions")
        return {"content": content, "suggestedActions": actions}

    async def chat_stream(
        self,
        conversation_history: List[ChatMessage],
        context: ChatContext,
        topic_context: Optional[TopicContext] = None
    ) -> AsyncIterator[str]:
        """Stream reply text chunks."""
        if not self.configured:
            yield UNAVAILABLE_CHAT_REPLY
            return

        params = self._chat_params(conversation_history, context, topic_context)
        try:
            async for chunk in anthropic_client.stream_text(
                Operation.CHAT.value, ModelConfig.timeout_for(Operation.CHAT), **params
            ):
                yield chunk
        except CapabilityError as e:
            raise ChatError(e.message, context={**e.context, "cause": e.error_code})
        logger.info("Chat streaming complete")
