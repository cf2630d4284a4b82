"""
Derived progress for study maps.

Progress is never stored: it is recomputed from MicroTopic.completed every
time it is read. Works on the raw topic dicts kept by the course store.
"""

from typing import Any, Dict, Iterable, List


def _children(node: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = node.get(key)
    if not isinstance(value, list):
        return []
    return [child for child in value if isinstance(child, dict)]


def _summary(micro_topics: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    micro_topics = list(micro_topics)
    completed = sum(1 for micro in micro_topics if micro.get("completed") is True)
    total = len(micro_topics)
    percent = round(completed / total * 100) if total else 0
    return {"completed": completed, "total": total, "percent": percent}


def flatten_micro_topics(topics: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        micro
        for topic in topics
        for sub in _children(topic, "subTopics")
        for micro in _children(sub, "microTopics")
    ]


def subtopic_progress(subtopic: Dict[str, Any]) -> Dict[str, int]:
    return _summary(_children(subtopic, "microTopics"))


def topic_progress(topic: Dict[str, Any]) -> Dict[str, int]:
    return _summary(flatten_micro_topics([topic]))


def course_progress(topics: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Progress for a whole course, broken down by topic and subtopic."""
    breakdown = []
    for topic in topics:
        breakdown.append({
            "topicId": topic.get("id"),
            **topic_progress(topic),
            "subTopics": [
                {"subTopicId": sub.get("id"), **subtopic_progress(sub)}
                for sub in _children(topic, "subTopics")
            ],
        })
    return {**_summary(flatten_micro_topics(topics)), "topics": breakdown}
