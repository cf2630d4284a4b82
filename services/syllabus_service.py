"""
Syllabus upload processing.
Extracts PDF text with PyPDF2, asks Claude for a study map, and merges the
generated assignments with dated lines found directly in the syllabus.
"""

import io
import re
import time
import logging
from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime, timezone

import PyPDF2
from fastapi import UploadFile

from models.request_models import SyllabusForm
from services.claude_service import ClaudeService
from utils.exceptions import SyllabusParseError
from utils.file_storage import utc_now_iso

logger = logging.getLogger(__name__)

MONTH_PATTERN = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?"
    r"|Sept?(?:ember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
NATURAL_DATE = re.compile(r"\b" + MONTH_PATTERN + r"\.?\s+(\d{1,2})(?:,?\s*(\d{4}))?\b", re.IGNORECASE)
SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
TERM_YEAR = re.compile(r"(20\d{2})")

NO_DATES_WARNING = "No explicit dates detected inside the syllabus."


def extract_pdf_text(content: bytes, filename: str = "upload.pdf") -> str:
    """Extract text from every page; unreadable files yield an empty string."""
    try:
        pdf_reader = PyPDF2.PdfReader(io.BytesIO(content))
        pages = [page.extract_text() or "" for page in pdf_reader.pages]
    except Exception as e:
        logger.warning(f"Failed to parse pdf {filename}: {e}")
        return ""
    return "\n".join(pages).strip()


def derive_year_from_term(term: Optional[str]) -> int:
    if term:
        match = TERM_YEAR.search(term)
        if match:
            return int(match.group(1))
    return datetime.now(timezone.utc).year


def detect_type(line: str) -> str:
    normalized = line.lower()
    if "exam" in normalized or "midterm" in normalized:
        return "exam"
    if "project" in normalized or "capstone" in normalized:
        return "project"
    if "assignment" in normalized or "hw" in normalized:
        return "assignment"
    return "misc"


def detect_topic_ids(line: str, topics: List[Dict[str, Any]]) -> List[str]:
    """Ids of topics whose title shares a significant word with the line."""
    normalized = line.lower()
    hits = []
    for topic in topics:
        if not isinstance(topic, dict) or not topic.get("id"):
            continue
        words = [w for w in re.findall(r"[a-z0-9]+", str(topic.get("title", "")).lower()) if len(w) > 3]
        if words and any(word in normalized for word in words):
            hits.append(str(topic["id"]))
    return hits


def _parse_natural(match: re.Match, fallback_year: int) -> Optional[datetime]:
    month = match.group(1)[:3].title()
    year = int(match.group(3)) if match.group(3) else fallback_year
    try:
        return datetime.strptime(f"{month} {int(match.group(2))} {year}", "%b %d %Y")
    except ValueError:
        return None


def _parse_slash(match: re.Match, fallback_year: int) -> Optional[datetime]:
    month, day, year = match.group(1), match.group(2), match.group(3)
    if year is None:
        year_value = fallback_year
    else:
        year_value = int(year) + 2000 if len(year) == 2 else int(year)
    try:
        return datetime(year_value, int(month), int(day))
    except ValueError:
        return None


def find_date(line: str, fallback_year: int) -> Optional[Tuple[str, datetime]]:
    """First date mentioned on a line, as (matched text, date)."""
    match = NATURAL_DATE.search(line)
    if match:
        parsed = _parse_natural(match, fallback_year)
    else:
        match = SLASH_DATE.search(line)
        if not match:
            return None
        parsed = _parse_slash(match, fallback_year)
    return (match.group(0), parsed) if parsed else None


def extract_deadlines(text: str, fallback_year: int, topics: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Turn every dated syllabus line into a deadline item."""
    lines = [line.strip() for line in re.split(r"\r?\n", text) if line.strip()]
    deadlines = []
    for idx, line in enumerate(lines):
        found = find_date(line, fallback_year)
        if not found:
            continue
        raw, date = found
        title = line.replace(raw, "").strip(" -:,\t") or "Unnamed deadline"
        deadlines.append({
            "id": f"deadline-{idx}",
            "title": title,
            "description": line,
            "dueDate": date.strftime("%Y-%m-%dT00:00:00.000Z"),
            "type": detect_type(line),
            "relatedTopicIds": detect_topic_ids(line, topics or []),
            "scopeText": line,
        })
    return deadlines


def _due_sort_key(item: Dict[str, Any]) -> Tuple[int, str]:
    due = str(item.get("dueDate") or "")
    try:
        parsed = datetime.fromisoformat(due.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return 0, parsed.isoformat()
    except ValueError:
        # Undated items sort last
        return 1, due


def merge_deadlines(existing: List[Dict[str, Any]], extra: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Union by lower-cased title (existing entries win), sorted by due date."""
    merged: Dict[str, Dict[str, Any]] = {}
    for item in [*existing, *extra]:
        key = str(item.get("title", "")).lower()
        if key not in merged:
            merged[key] = item
    return sorted(merged.values(), key=_due_sort_key)


def _is_pdf(upload: UploadFile, content: bytes) -> bool:
    filename = (upload.filename or "").lower()
    return filename.endswith(".pdf") or upload.content_type == "application/pdf" or content.startswith(b"%PDF")


class SyllabusService:
    """Turns a syllabus upload into a draft study map"""

    def __init__(self, claude_service: ClaudeService):
        self.claude = claude_service

    async def parse(self, form: SyllabusForm, files: Optional[List[UploadFile]] = None) -> Dict[str, Any]:
        """
        Returns {studyMap, topics, deadlines, rationale, message, warnings}.
        Raises SyllabusParseError when nothing was uploaded or generation fails.
        """
        warnings: List[str] = []
        pdfs: List[bytes] = []
        texts: List[str] = []

        for upload in files or []:
            content = await upload.read()
            if not content:
                continue
            if _is_pdf(upload, content):
                pdfs.append(content)
                texts.append(extract_pdf_text(content, upload.filename or "upload.pdf"))
            else:
                texts.append(content.decode("utf-8", errors="ignore"))

        if form.syllabus_text and form.syllabus_text.strip():
            texts.append(form.syllabus_text.strip())
        syllabus_text = "\n".join(t for t in texts if t).strip()

        if not pdfs and not syllabus_text:
            raise SyllabusParseError("No syllabus provided. Please upload a syllabus PDF.")

        logger.info(f"Parsing syllabus for {form.course_name}: {len(pdfs)} pdf(s), {len(syllabus_text)} chars of text")
        if len(pdfs) > 1:
            warnings.append(f"Only the first of {len(pdfs)} PDFs was analysed; dates were read from all of them.")

        course = {
            "id": f"course-{int(time.time() * 1000)}",
            "name": form.course_name,
            "courseNumber": form.course_number,
            "term": form.term,
            "createdAt": utc_now_iso(),
        }
        course = {k: v for k, v in course.items() if v is not None}

        generated = await self.claude.generate_study_map(
            course,
            syllabus_pdf=pdfs[0] if pdfs else None,
            syllabus_text=None if pdfs else syllabus_text,
            deadline_summary=form.deadline_summary,
        )

        detected = extract_deadlines(syllabus_text, derive_year_from_term(form.term), generated["topics"])
        if not detected:
            warnings.append(NO_DATES_WARNING)
        deadlines = merge_deadlines(generated["assignments"], detected)
        logger.info(f"Merged {len(generated['assignments'])} generated and {len(detected)} detected deadlines into {len(deadlines)}")

        study_map = {
            "course": course,
            "topics": generated["topics"],
            "assignments": deadlines,
            "resources": generated["resources"],
            "exams": generated["exams"],
        }
        return {
            "studyMap": study_map,
            "topics": generated["topics"],
            "deadlines": deadlines,
            "rationale": generated["rationale"],
            "message": "Draft study map generated",
            "warnings": warnings,
        }
