# via/domain/services/intent_svc.py

from __future__ import annotations
from typing import Any, Iterable, List, Literal, Optional
import json
import logging
import re
from time import monotonic as _now

from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator

from via.core.config import Settings
from via.domain.errors import ClarifyError
from via.domain.models.offer import IntentSpec
from via.domain.services.constants import (
    CATEGORY_SNEAKERS,
    CATEGORY_OUTDOOR,
    CATEGORY_CYCLING,
    CATEGORY_PET,
    CATEGORY_OTHER,
    MAX_REQUIRED_TERMS,
    MAX_PREFERRED_TERMS,
    MAX_EXCLUDED_TERMS,
    MAX_TERM_LEN,
    MAX_QUERY_LEN,
)
from via.domain.services.prompts import (
    PLAN_CATEGORIES,
    clarifier_system_prompt,
    default_question,
    question_for_missing_field,
)

logger = logging.getLogger(__name__)

CLARIFY_MAX_TOKENS = 450

# =============================================================================
#                               TEXT CLEANING
# =============================================================================

def trim_str(x: Any, max_len: int = 400) -> str:
    return str(x if x is not None else "").strip()[:max_len]


def clean_query(raw: str) -> str:
    """Merchant search string: no currency symbols or punctuation, 80 chars max."""
    s = re.sub(r"[£$€]", "", raw or "")
    s = re.sub(r"[^a-zA-Z0-9\s-]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s[:MAX_QUERY_LEN].strip()


def clean_terms(values: Any, max_items: int = 10, max_len: int = MAX_TERM_LEN) -> List[str]:
    """Lowercase, [a-z0-9 -] only, deduplicated, order kept, capped."""
    out: List[str] = []
    seen = set()
    items = values if isinstance(values, (list, tuple)) else []
    for raw in items:
        t = str(raw if raw is not None else "").lower()
        t = re.sub(r"[^a-z0-9\s-]", " ", t)
        t = re.sub(r"\s+", " ", t).strip()[:max_len].strip()
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
        if len(out) >= max_items:
            break
    return out

# =============================================================================
#                               KEYWORD INTENT
# =============================================================================

_CATEGORY_KEYWORDS = [
    (CATEGORY_SNEAKERS, ["sneaker", "trainers", "running shoe", "air max", "dunk", "jordans", "nike", "adidas", "new balance", "asics"]),
    (CATEGORY_OUTDOOR, ["hike", "hiking", "trail", "waterproof", "gore", "camp", "camping", "tent", "backpack", "rucksack", "outdoor", "jacket", "boots"]),
    (CATEGORY_CYCLING, ["cycle", "cycling", "bike", "bicycle", "mtb", "road bike", "jersey", "bib", "helmet", "cleats", "shimano", "sram"]),
    (CATEGORY_PET, ["pet", "dog", "cat", "kitten", "puppy", "leash", "collar", "litter", "kibble", "treats", "groom", "toy"]),
]

KEY_ITEM_WORDS = [
    "helmet", "sneakers", "trainer", "shoe", "jacket", "boots",
    "leash", "collar", "treats", "kibble", "litter", "toy",
]

_MAX_PRICE_RE = re.compile(
    r"\b(?:under|below|less than|up to|max(?:imum)?|no more than)\s*[£$€]?\s*(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)

def classify_intent(request_text: str) -> str:
    """First category whose keywords appear in the text, else 'other'."""
    t = (request_text or "").lower()
    for category, needles in _CATEGORY_KEYWORDS:
        if any(n in t for n in needles):
            return category
    return CATEGORY_OTHER


def extract_key_item_word(request_text: str) -> Optional[str]:
    t = (request_text or "").lower()
    for k in KEY_ITEM_WORDS:
        if k in t:
            return k
    return None


def parse_max_price(request_text: str) -> Optional[float]:
    m = _MAX_PRICE_RE.search(request_text or "")
    return float(m.group(1)) if m else None

# =============================================================================
#                               INTENT PLAN (LLM OUTPUT)
# =============================================================================

PlanCategory = Literal["SNEAKERS", "OUTDOORS", "CYCLING", "PET_SUPPLIES", "NOT_SPECIFIED"]

PLAN_TO_CATEGORY = {
    "SNEAKERS": CATEGORY_SNEAKERS,
    "OUTDOORS": CATEGORY_OUTDOOR,
    "CYCLING": CATEGORY_CYCLING,
    "PET_SUPPLIES": CATEGORY_PET,
}


class IntentPlan(BaseModel):
    """
    Retrieval plan produced by the clarifier. Validators coerce whatever
    the model returned into the bounded, cleaned shape.
    """
    category: PlanCategory = "NOT_SPECIFIED"
    core_item: str = "Not specified"
    required_terms: List[str] = []
    preferred_terms: List[str] = []
    excluded_terms: List[str] = []
    search_query: str = ""
    broadcast_intent: str = ""
    missing_fields: List[str] = []
    next_question: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v):
        c = str(v or "").upper().strip()
        return c if c in PLAN_CATEGORIES else "NOT_SPECIFIED"

    @field_validator("core_item", mode="before")
    @classmethod
    def _core_item(cls, v):
        return trim_str(v, 120) or "Not specified"

    @field_validator("required_terms", "preferred_terms", mode="before")
    @classmethod
    def _six_terms(cls, v):
        return clean_terms(v, MAX_REQUIRED_TERMS)

    @field_validator("excluded_terms", mode="before")
    @classmethod
    def _ten_terms(cls, v):
        return clean_terms(v, MAX_EXCLUDED_TERMS)

    @field_validator("missing_fields", mode="before")
    @classmethod
    def _two_fields(cls, v):
        return clean_terms(v, 2)

    @field_validator("search_query", "broadcast_intent", mode="before")
    @classmethod
    def _text(cls, v):
        return trim_str(v, 160)

    @field_validator("next_question", mode="before")
    @classmethod
    def _question(cls, v):
        s = trim_str(v, 220)
        return s or None

    def model_post_init(self, __context: Any) -> None:
        # Fill query/summary from the core item when the model left them blank
        if not self.search_query:
            self.search_query = trim_str(self.core_item, 80)
        if not self.broadcast_intent:
            self.broadcast_intent = trim_str(self.core_item, 120)


class ClarifyTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = ""


class ClarifyResult(BaseModel):
    next_action: Literal["ASK_ONE_QUESTION", "BROADCAST_NOW"]
    question_count_server: int = Field(..., ge=0)
    intent_plan: IntentPlan


_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)

def _strip_fences(s: str) -> str:
    """Remove ``` or ```json fences the LLM might add."""
    return _CODE_FENCE_RE.sub("", s).strip()


def extract_json_object(text: str) -> Optional[dict]:
    """Outermost {...} in the text, parsed; None if absent or invalid."""
    raw = _strip_fences(text or "")
    start, end = raw.find("{"), raw.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(raw[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_intent_plan(content: str) -> IntentPlan:
    """Lenient: unparseable output degrades to an empty NOT_SPECIFIED plan."""
    parsed = extract_json_object(content) or {}
    try:
        return IntentPlan.model_validate(parsed)
    except ValidationError as e:
        logger.warning("intent plan validation failed, using empty plan: %s", e)
        return IntentPlan()

# =============================================================================
#                               LLM CALL
# =============================================================================

async def _call_llm(messages: List[dict], *, settings: Settings) -> str:
    client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    t0 = _now()
    resp = await client.chat.completions.create(
        model=settings.OPENAI_MODEL,
        messages=messages,
        max_tokens=CLARIFY_MAX_TOKENS,
        temperature=0.2,
        timeout=settings.openai_timeout_s,
    )
    dt = _now() - t0
    u = getattr(resp, "usage", None)
    logger.info(
        "LLM clarify model=%s duration=%.3fs tokens=%s",
        getattr(resp, "model", settings.OPENAI_MODEL), dt, getattr(u, "total_tokens", None),
    )
    return resp.choices[0].message.content or ""


def question_count(history: Iterable[ClarifyTurn]) -> int:
    return sum(1 for t in history if t.role == "assistant")


async def clarify_intent(
    user_text: str,
    history: List[ClarifyTurn],
    *,
    settings: Settings,
) -> ClarifyResult:
    """
    Ask the LLM for an intent plan, then apply the server question policy:
    first turn asks exactly one question, later turns broadcast.
    """
    asked = question_count(history)
    messages = [
        {"role": "system", "content": clarifier_system_prompt()},
        *({"role": t.role, "content": trim_str(t.content, 600)} for t in history),
        {"role": "user", "content": trim_str(user_text, 600)},
    ]

    try:
        content = await _call_llm(messages, settings=settings)
    except Exception as e:
        logger.error("LLM clarify failed: %s", e)
        raise ClarifyError(f"OpenAI request error: {e}") from e

    plan = parse_intent_plan(content)

    next_action = "BROADCAST_NOW"
    next_question: Optional[str] = None
    if asked == 0 and asked < settings.clarify_max_questions:
        next_action = "ASK_ONE_QUESTION"
        if plan.category == "NOT_SPECIFIED":
            next_question = default_question(plan.category)
        elif plan.missing_fields:
            next_question = question_for_missing_field(plan.missing_fields[0], plan.category)
        elif plan.next_question:
            next_question = plan.next_question
        else:
            next_question = default_question(plan.category)

    plan = plan.model_copy(update={"next_question": next_question})
    logger.info("clarify done asked=%s action=%s category=%s", asked, next_action, plan.category)
    return ClarifyResult(next_action=next_action, question_count_server=asked, intent_plan=plan)

# =============================================================================
#                               INTENT SPEC
# =============================================================================

def build_intent_spec(request_text: str, plan: Optional[IntentPlan] = None) -> IntentSpec:
    """
    Filtering contract for one request. Without a plan (or with an empty
    one) this is the keyword-only case: the key item word becomes the single
    required term and preferred/excluded stay empty.
    """
    category = PLAN_TO_CATEGORY.get(plan.category) if plan else None
    if category is None:
        classified = classify_intent(request_text)
        category = None if classified == CATEGORY_OTHER else classified

    required = clean_terms(plan.required_terms, MAX_REQUIRED_TERMS) if plan else []
    preferred = clean_terms(plan.preferred_terms, MAX_PREFERRED_TERMS) if plan else []
    excluded = clean_terms(plan.excluded_terms, MAX_EXCLUDED_TERMS) if plan else []
    if not required:
        key = extract_key_item_word(request_text)
        required = [key] if key else []

    query = clean_query(plan.search_query) if plan and plan.search_query else ""
    core_item = plan.core_item if plan and plan.core_item != "Not specified" else (required[0] if required else "")

    return IntentSpec(
        category=category,
        core_item=core_item,
        required_terms=required,
        preferred_terms=preferred,
        excluded_terms=excluded,
        search_query=query or clean_query(request_text),
        broadcast_intent=(plan.broadcast_intent if plan else "") or trim_str(request_text, 160),
        max_price=parse_max_price(request_text),
    )
