"""
Storage utilities for StudyMap courses.
JSON-file backed (or memory only) store of course records keyed by course id.
"""

import asyncio
import copy
import json
import os
import random
import time
import weakref
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone
import logging

from utils.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent.parent
DATA_FILE_NAME = "studymap.json"

STUDY_MAP_FIELDS = ("course", "topics", "assignments", "resources", "exams")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_resource_id() -> str:
    """Generate id for a resource added without one"""
    return f"resource-{int(time.time() * 1000)}-{random.randint(0, 99999):05d}"


def read_json_file(filepath: Path) -> Optional[Dict[str, Any]]:
    """Read JSON file, return None if not found or invalid"""
    try:
        if not filepath.exists():
            return None
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {filepath}: {e}")
        return None
    except OSError as e:
        logger.error(f"Error reading {filepath}: {e}")
        return None


def write_json_file(filepath: Path, data: Dict[str, Any]) -> bool:
    """Write data to JSON file atomically"""
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        temp_file = filepath.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)
        temp_file.replace(filepath)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error writing {filepath}: {e}")
        return False


def collect_topic_ids(topics: List[Dict[str, Any]]) -> set:
    """Ids of every topic, subtopic and microtopic in a topic tree."""
    ids = set()
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        ids.add(topic.get("id"))
        for sub in topic.get("subTopics") or []:
            if not isinstance(sub, dict):
                continue
            ids.add(sub.get("id"))
            for micro in sub.get("microTopics") or []:
                if isinstance(micro, dict):
                    ids.add(micro.get("id"))
    ids.discard(None)
    return ids


class CourseStore:
    """
    Keyed storage of course records.

    A record is the flattened study map plus its history:
    {course, topics, assignments, resources, exams, quizHistory, quizResults, lastUpdated}.

    Writes to one course id are serialized by a per-course lock; distinct ids
    proceed concurrently. Each mutation builds a new record, persists the whole
    collection and puts the previous record back if persisting fails.
    Stored records are never mutated in place, so a shallow copy of the
    collection is a consistent snapshot.
    """

    def __init__(self, data_file: Optional[Path] = None):
        # None keeps everything in memory
        self.data_file = data_file
        self._courses: Dict[str, Dict[str, Any]] = {}
        # Entries drop out once no coroutine holds the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._persist_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def from_env(cls) -> "CourseStore":
        backend = os.getenv("STUDYMAP_STORAGE", "file").strip().lower()
        if backend == "memory":
            logger.info("Course store: in-memory backend")
            return cls()
        if backend != "file":
            raise StorageError(
                f"Unknown STUDYMAP_STORAGE backend '{backend}'. Available: file, memory",
                error_code="INVALID_STORAGE_BACKEND",
            )
        data_dir = Path(os.getenv("STUDYMAP_DATA_DIR", str(BASE_DIR / "storage")))
        store = cls(data_dir / DATA_FILE_NAME)
        store.load()
        return store

    @property
    def persistent(self) -> bool:
        return self.data_file is not None

    def load(self) -> None:
        """Load the persisted document. A missing file is an empty store."""
        if not self.persistent or not self.data_file.exists():
            logger.info(f"Course store starting empty ({self.data_file or 'memory'})")
            return

        document = read_json_file(self.data_file)
        if document is None or not isinstance(document.get("courses"), dict):
            raise StorageError(
                f"Could not read course data from {self.data_file}",
                error_code="STORAGE_CORRUPT",
                context={"path": str(self.data_file)},
            )

        courses = document["courses"]
        order = [cid for cid in document.get("courseOrder", []) if cid in courses]
        order += [cid for cid in courses if cid not in order]
        self._courses = {cid: courses[cid] for cid in order}
        logger.info(f"Loaded {len(self._courses)} courses from {self.data_file}")

    async def close(self) -> None:
        # Wait for any in-flight write before shutting down
        async with self._persist_lock:
            self._closed = True
        logger.info("Course store closed")

    def _lock_for(self, course_id: str) -> asyncio.Lock:
        lock = self._locks.get(course_id)
        if lock is None:
            lock = self._locks[course_id] = asyncio.Lock()
        return lock

    def _require(self, course_id: str) -> Dict[str, Any]:
        record = self._courses.get(course_id)
        if record is None:
            raise NotFoundError(f"Course {course_id} not found", context={"course_id": course_id})
        return record

    def _restore(self, course_id: str, previous: Optional[Dict[str, Any]], index: Optional[int]) -> None:
        if previous is None:
            self._courses.pop(course_id, None)
            return
        if course_id in self._courses:
            self._courses[course_id] = previous
            return
        items = list(self._courses.items())
        items.insert(index if index is not None else len(items), (course_id, previous))
        self._courses = dict(items)

    async def _persist(self) -> None:
        if not self.persistent:
            return
        if self._closed:
            raise StorageError("Course store is closed", error_code="STORAGE_CLOSED")
        async with self._persist_lock:
            document = {"courses": dict(self._courses), "courseOrder": list(self._courses)}
            written = await asyncio.to_thread(write_json_file, self.data_file, document)
        if not written:
            raise StorageError(f"Failed to persist courses to {self.data_file}")

    async def _commit(self, course_id: str, record: Optional[Dict[str, Any]]) -> None:
        """Apply a new record (None deletes), persist, and roll back on failure."""
        previous = self._courses.get(course_id)
        index = list(self._courses).index(course_id) if previous is not None else None
        if record is None:
            self._courses.pop(course_id, None)
        else:
            self._courses[course_id] = record
        try:
            await self._persist()
        except StorageError:
            self._restore(course_id, previous, index)
            logger.error(f"Rolled back change to course {course_id}")
            raise

    async def list(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._courses.values()]

    async def get(self, course_id: str) -> Dict[str, Any]:
        return copy.deepcopy(self._require(course_id))

    async def save_course(self, study_map: Dict[str, Any]) -> Dict[str, Any]:
        """Create or fully overwrite a course. Quiz history and results survive an overwrite."""
        course_id = study_map["course"]["id"]
        async with self._lock_for(course_id):
            existing = self._courses.get(course_id) or {}
            record = {field: copy.deepcopy(study_map[field]) for field in STUDY_MAP_FIELDS}
            record["quizHistory"] = copy.deepcopy(existing.get("quizHistory", []))
            record["quizResults"] = copy.deepcopy(existing.get("quizResults", []))
            record["lastUpdated"] = utc_now_iso()

            dangling = set(record["resources"]) - collect_topic_ids(record["topics"])
            if dangling:
                logger.warning(f"Course {course_id}: resources keyed by unknown topic ids {sorted(dangling)}")

            await self._commit(course_id, record)
            logger.info(f"{'Overwrote' if existing else 'Created'} course {course_id} ({len(record['topics'])} topics)")
            return copy.deepcopy(record)

    async def replace_topics(self, course_id: str, topics: List[Dict[str, Any]]) -> Dict[str, Any]:
        async with self._lock_for(course_id):
            record = copy.deepcopy(self._require(course_id))
            record["topics"] = copy.deepcopy(topics)
            record["lastUpdated"] = utc_now_iso()
            await self._commit(course_id, record)
            logger.info(f"Replaced topics of course {course_id} ({len(topics)} topics)")
            return copy.deepcopy(record)

    async def record_quiz(self, course_id: str, quiz: Dict[str, Any]) -> Dict[str, Any]:
        """Append a quiz to the course's history."""
        async with self._lock_for(course_id):
            record = copy.deepcopy(self._require(course_id))
            record.setdefault("quizHistory", []).append(copy.deepcopy(quiz))
            record["lastUpdated"] = utc_now_iso()
            await self._commit(course_id, record)
            logger.info(f"Recorded quiz {quiz.get('quizId')} for course {course_id} "
                        f"(history: {len(record['quizHistory'])})")
            return copy.deepcopy(record)

    async def save_quiz_result(self, course_id: str, result: Dict[str, Any]) -> Dict[str, Any]:
        """Store a quiz result, newest first. A result with the same id is replaced."""
        async with self._lock_for(course_id):
            record = copy.deepcopy(self._require(course_id))
            results = [r for r in record.get("quizResults", []) if r.get("id") != result["id"]]
            record["quizResults"] = [copy.deepcopy(result)] + results
            record["lastUpdated"] = utc_now_iso()
            await self._commit(course_id, record)
            logger.info(f"Saved quiz result {result['id']} for course {course_id}")
            return copy.deepcopy(record)

    async def delete_quiz_result(self, course_id: str, result_id: str) -> Dict[str, Any]:
        async with self._lock_for(course_id):
            record = copy.deepcopy(self._require(course_id))
            results = record.get("quizResults", [])
            remaining = [r for r in results if r.get("id") != result_id]
            if len(remaining) == len(results):
                raise NotFoundError(
                    f"Quiz result {result_id} not found",
                    error_code="QUIZ_RESULT_NOT_FOUND",
                    context={"course_id": course_id, "result_id": result_id},
                )
            record["quizResults"] = remaining
            record["lastUpdated"] = utc_now_iso()
            await self._commit(course_id, record)
            logger.info(f"Deleted quiz result {result_id} from course {course_id}")
            return copy.deepcopy(record)

    async def add_resource(
        self,
        course_id: str,
        topic_id: str,
        resource: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Append a resource under a topic, subtopic or microtopic id.
        Returns (updated record, stored resource).
        """
        async with self._lock_for(course_id):
            record = copy.deepcopy(self._require(course_id))
            if topic_id not in collect_topic_ids(record.get("topics", [])):
                raise NotFoundError(
                    f"Topic {topic_id} not found in course {course_id}",
                    error_code="TOPIC_NOT_FOUND",
                    context={"course_id": course_id, "topic_id": topic_id},
                )

            stored = copy.deepcopy(resource)
            if not stored.get("id"):
                stored["id"] = generate_resource_id()
            if not stored.get("addedAt"):
                stored["addedAt"] = utc_now_iso()

            record.setdefault("resources", {}).setdefault(topic_id, []).append(stored)
            record["lastUpdated"] = utc_now_iso()
            await self._commit(course_id, record)
            logger.info(f"Added resource {stored['id']} to {topic_id} in course {course_id}")
            return copy.deepcopy(record), copy.deepcopy(stored)

    async def delete_course(self, course_id: str) -> bool:
        async with self._lock_for(course_id):
            if course_id not in self._courses:
                return False
            await self._commit(course_id, None)
            logger.info(f"Deleted course {course_id}")
            return True
