"""Extract artifacts, edit directives and clarification questions from assistant text.

Assistant content may embed three tag families:

    <sanbao-doc type="CODE" title="Script">...</sanbao-doc>
    <sanbao-edit>{"target": "...", "replacements": [...]}</sanbao-edit>
    <sanbao-clarify>[{"id": "q1", "question": "..."}]</sanbao-clarify>

and inline citations such as `[ст. 15 ГК РК](article://gk_rk/15)`.

Every extractor degrades to "nothing found, text unchanged" on malformed
payloads instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, NamedTuple

from pydantic import ValidationError

from .config import DEFAULT_ARTIFACT_TITLE, LEGAL_REF_SCHEMES
from .models import (
    Artifact,
    ArtifactEdit,
    ArtifactType,
    ClarifyQuestion,
    LegalReference,
)

logger = logging.getLogger(__name__)

ARTIFACT_PATTERN = re.compile(
    r'<sanbao-doc\s+(?:type="([^"]*?)"\s+title="([^"]*?)"|title="([^"]*?)"\s+type="([^"]*?)")\s*>'
    r"(.*?)</sanbao-doc>",
    re.DOTALL,
)
EDIT_PATTERN = re.compile(r"<sanbao-edit>(.*?)</sanbao-edit>", re.DOTALL)
CLARIFY_PATTERN = re.compile(r"<sanbao-clarify>(.*?)</sanbao-clarify>", re.DOTALL)

LEGAL_REF_PATTERN = re.compile(
    r"\[([^\]\n]+)\]\((" + "|".join(map(re.escape, LEGAL_REF_SCHEMES)) + r")://([^/\s)]+)/([^\s)]+)\)"
)


class ArtifactExtraction(NamedTuple):
    artifacts: list[Artifact]
    clean_content: str


class EditExtraction(NamedTuple):
    edits: list[ArtifactEdit]
    clean_content: str


class ClarifyExtraction(NamedTuple):
    questions: list[ClarifyQuestion]
    clean_content: str


def detect_language(artifact_type: ArtifactType, body: str) -> str | None:
    """Guess a code artifact's language from content markers."""
    if artifact_type != ArtifactType.CODE:
        return None

    text = body.strip().lower()
    if "<!doctype html" in text or "<html" in text:
        return "html"
    if "import react" in text or 'from "react"' in text or "from 'react'" in text:
        return "jsx"
    if "def " in text or "import " in text or "print(" in text:
        return "python"
    return "javascript"


def extract_artifacts(text: str) -> ArtifactExtraction:
    artifacts: list[Artifact] = []

    for index, match in enumerate(ARTIFACT_PATTERN.finditer(text)):
        type_str = match.group(1) if match.group(1) is not None else match.group(4)
        title = match.group(2) if match.group(2) is not None else match.group(3)
        artifact_type = ArtifactType.parse(type_str)
        body = match.group(5).strip()

        artifacts.append(
            Artifact(
                id=f"artifact_{index}",
                type=artifact_type,
                title=title.strip() or DEFAULT_ARTIFACT_TITLE,
                content=body,
                language=detect_language(artifact_type, body),
            )
        )

    if not artifacts:
        return ArtifactExtraction([], text)

    return ArtifactExtraction(artifacts, ARTIFACT_PATTERN.sub("", text).strip())


def _parse_edit_payload(payload: str) -> list[ArtifactEdit] | None:
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, ValueError):
        return None

    items: list[Any] = data if isinstance(data, list) else [data]
    try:
        return [ArtifactEdit.model_validate(item) for item in items]
    except ValidationError:
        return None


def extract_edits(text: str) -> EditExtraction:
    """Pull edit directives out of `<sanbao-edit>` blocks.

    A block whose payload does not parse is left in the text verbatim; valid
    blocks are removed.
    """
    edits: list[ArtifactEdit] = []
    malformed = 0

    def _replace(match: re.Match) -> str:
        nonlocal malformed
        parsed = _parse_edit_payload(match.group(1).strip())
        if parsed is None:
            malformed += 1
            return match.group(0)
        edits.extend(parsed)
        return ""

    stripped = EDIT_PATTERN.sub(_replace, text)
    if malformed:
        logger.debug("Skipped %d malformed edit block(s)", malformed)

    if stripped == text:
        return EditExtraction(edits, text)
    return EditExtraction(edits, stripped.strip())


def extract_clarify_questions(text: str) -> ClarifyExtraction:
    match = CLARIFY_PATTERN.search(text)
    if match is None:
        return ClarifyExtraction([], text)

    try:
        data = json.loads(match.group(1).strip())
        if not isinstance(data, list):
            raise ValueError("clarify payload is not a JSON array")
        questions = [ClarifyQuestion.model_validate(item) for item in data]
    except (ValueError, ValidationError):
        logger.debug("Malformed clarify block, leaving content unchanged")
        return ClarifyExtraction([], text)

    clean = (text[: match.start()] + text[match.end() :]).strip()
    return ClarifyExtraction(questions, clean)


def strip_tags(text: str) -> str:
    """Remove all three tag families, e.g. for previews."""
    for pattern in (ARTIFACT_PATTERN, EDIT_PATTERN, CLARIFY_PATTERN):
        text = pattern.sub("", text)
    return text.strip()


def has_legal_references(text: str) -> bool:
    return LEGAL_REF_PATTERN.search(strip_tags(text)) is not None


def extract_legal_references(text: str) -> list[LegalReference]:
    """Citations outside tag spans, in order of appearance."""
    return [
        LegalReference(
            label=match.group(1).strip(),
            scheme=match.group(2),
            code=match.group(3),
            article=match.group(4),
        )
        for match in LEGAL_REF_PATTERN.finditer(strip_tags(text))
    ]
