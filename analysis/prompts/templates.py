"""프롬프트 템플릿/빌더.

LLM에게 단일 JSON 객체 출력을 요청하는 시스템/유저 메시지를 생성한다.
기사 본문은 max_body_chars를 초과하지 않도록 잘라낸다.
"""

from __future__ import annotations

from typing import List

from analysis.models.domain import CATEGORIES


JSON_SCHEMA_SNIPPET = (
    "{"
    '"title": string, '
    '"clean_title": string (short display headline), '
    '"summary_en": string (100-150 words, English), '
    '"summary_hi": string (100-150 words, Hindi in Devanagari), '
    f'"category": one of {list(CATEGORIES)}, '
    '"location_text": string (most precise place mentioned), '
    '"priority_score": integer 1-5, '
    '"keywords": array<string> (3-7 items), '
    '"incident_date": string (ISO-8601, empty if unknown)'
    "}"
)

SYSTEM_PROMPT = (
    "Role: you are the normalization engine of a regional news radar for "
    "Almora, Uttarakhand, India.\n"
    "Output: a single JSON object ONLY (no markdown, no code fences, no prose). "
    f"Schema: {JSON_SCHEMA_SNIPPET}.\n\n"
    "Rules:\n"
    "1) Stick strictly to the article text; never invent facts.\n"
    "2) Be factual and neutral.\n"
    "3) location_text: the most precise location in the Almora region.\n"
    f"4) category: exactly one of {', '.join(CATEGORIES)}.\n"
    "5) priority_score: 1=low, 2=moderate, 3=important, 4=urgent, 5=critical.\n"
    "6) Lead with the key facts: time, place, impact.\n"
    "7) Both summaries must be 100-150 words.\n"
)


def build_normalization_messages(title: str, body: str, source_link: str, *, max_body_chars: int = 6000) -> List[dict]:
    """System message carries the fixed template; user message carries the article."""
    excerpt = body.strip()[:max_body_chars]
    user = "\n".join(
        [
            f"Title: {title.strip()}",
            f"Content: {excerpt}",
            f"Source: {source_link}",
        ]
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
