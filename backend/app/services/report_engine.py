"""
Report Engine — AI-written narrative reports over a stored ProjectSummary.

Outputs:
  - Project overview narrative (text or bullet points)
  - Per-category cost-driver analysis
  - Recommendation / custom-prompt variants
  - "highlight" check: does the summary contain extreme cost outliers? (bool)
  - Project assistant answers to free-form questions
  - Streamed overview narrative (chunked text for server-sent events)

Prompts embed the summary's ``projectCosts`` section as JSON. The engine has no
opinion on where reports are stored; callers persist the returned text.
"""
import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from app import config
from app.services.llm_client import LLMClient, get_system_prompt

logger = logging.getLogger("locoman-report")

REPORT_KINDS = ("overview", "category")
RESPONSE_TYPES = ("text", "bullet", "highlight")
ANALYSIS_MODES = ("overview", "recommendation", "category", "custom")
LANGUAGES = ("de", "en")

_TRUE_RE = re.compile(r"^true$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Payload selection
# ---------------------------------------------------------------------------

def summary_payload(summary: Dict[str, Any], kind: str, category_id: Optional[str] = None) -> Dict[str, Any]:
    """
    The slice of a stored summary document a report is written from.

    overview → the whole ``projectCosts`` section
    category → project total plus the single requested category
    Raises KeyError for an unknown category.
    """
    project_costs = summary.get("projectCosts") or {}
    if kind == "overview":
        return project_costs
    categories = [
        c for c in project_costs.get("categories", [])
        if c.get("categoryId") == category_id
    ]
    if not categories:
        raise KeyError(f"Category '{category_id}' not in summary")
    return {
        "totalProjectCost": project_costs.get("totalProjectCost", 0.0),
        "categories": categories,
    }


def report_field_path(kind: str, category_id: Optional[str] = None) -> str:
    """Where a report lives inside the project's ``report`` document."""
    return "projectOverview" if kind == "overview" else f"categories.{category_id}"


def stored_report(report: Dict[str, Any], kind: str, category_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if kind == "overview":
        return report.get("projectOverview")
    return (report.get("categories") or {}).get(category_id)


# ---------------------------------------------------------------------------
# Prompt builder
# ---------------------------------------------------------------------------

def build_prompt(
    summary_data: Dict[str, Any],
    response_type: str = "text",
    word_range: Tuple[int, int] = config.REPORT_WORD_RANGE,
    mode: str = "overview",
    custom_prompt: Optional[str] = None,
    language: str = config.REPORT_DEFAULT_LANGUAGE,
) -> str:
    """Assemble the report prompt; empty instruction pieces are dropped."""
    def L(de: str, en: str) -> str:
        return de if language == "de" else en

    mode_lines = {
        "overview": L(
            "Erstellen Sie eine verständliche, professionelle Übersicht der Projektkosten.",
            "Provide a concise, professional overview of the project costs.",
        ),
        "recommendation": L(
            "Geben Sie konkrete Empfehlungen für Kostensenkungen und nächste Schritte.",
            "Provide actionable recommendations for cost reduction and next steps.",
        ),
        "category": L(
            "Analysieren Sie detailliert die Kostentreiber NUR innerhalb der bereitgestellten Kategorie.",
            "Analyse in detail the cost drivers ONLY within the provided category.",
        ),
        "custom": "",
    }

    highlight = response_type == "highlight"
    is_bullet = response_type == "bullet"
    lo, hi = word_range

    parts: List[str] = [
        get_system_prompt("report_analyst", language),
        mode_lines.get(mode, ""),
        "" if highlight else L(
            f"Ausgabeformat: {'Bullet Points' if is_bullet else 'Fließtext'}.",
            f"Output format: {'bullet points' if is_bullet else 'continuous text'}.",
        ),
        "" if highlight else L(f"Länge: {lo}-{hi} Wörter.", f"Length: {lo}-{hi} words."),
        L(
            "Verwenden Sie immer deutsches Zahlenformat (Punkt als Tausendertrennzeichen, "
            "Komma für Dezimalstellen) mit vorangestelltem €-Symbol, z. B. €12.000,01.",
            "Always use German number formatting ('.' thousands separator, ',' decimal) "
            "with € prefix, e.g. €12.000,01.",
        ),
        L(
            "Gibt es extreme Kostenausreißer? Antworten Sie NUR mit TRUE oder FALSE.",
            "Are there extreme cost outliers? Respond ONLY with TRUE or FALSE.",
        ) if highlight else "",
        custom_prompt or "",
        L("Hier ist die Projektzusammenfassung (JSON):", "Here is the project summary (JSON):"),
        json.dumps(summary_data, indent=2, ensure_ascii=False),
        "" if highlight else L(
            "Antworten Sie ausschließlich mit dem Bericht, ohne zusätzliche Formatierung.",
            "Respond only with the report, no extra formatting.",
        ),
    ]
    return "\n\n".join(p for p in parts if p)


def parse_highlight(text: str) -> bool:
    return bool(_TRUE_RE.match(text.strip()))


# ---------------------------------------------------------------------------
# In-flight cache
# ---------------------------------------------------------------------------

class ReportCache:
    """
    Deduplicates concurrent report generations per (project_id, key).

    Contract:
      - an entry lives only while its generation is running; it is evicted
        when the generation finishes, successfully or not
      - ``invalidate(project_id)`` drops every running entry of a project so
        later callers start a fresh generation (called when the summary is
        regenerated); callers already awaiting an old entry still get its result
    Persisted reports are the durable cache; this object never stores text.
    """

    def __init__(self) -> None:
        self._in_flight: Dict[Tuple[str, str], "asyncio.Future[Any]"] = {}

    def in_flight(self, project_id: str) -> List[str]:
        return [key for (pid, key) in self._in_flight if pid == project_id]

    def invalidate(self, project_id: str) -> int:
        stale = [k for k in self._in_flight if k[0] == project_id]
        for k in stale:
            del self._in_flight[k]
        if stale:
            logger.debug(f"Dropped {len(stale)} in-flight report(s)", extra={"project_id": project_id})
        return len(stale)

    def _evict(self, key: Tuple[str, str], task: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def get_or_create(
        self,
        project_id: str,
        key: str,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Join the running generation for ``key`` or start one with ``factory``."""
        cache_key = (project_id, key)
        task = self._in_flight.get(cache_key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[cache_key] = task
            task.add_done_callback(lambda t, k=cache_key: self._evict(k, t))
        return await asyncio.shield(task)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ReportEngine:

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or LLMClient()

    async def generate(
        self,
        summary: Dict[str, Any],
        kind: str = "overview",
        category_id: Optional[str] = None,
        response_type: str = "text",
        word_range: Tuple[int, int] = config.REPORT_WORD_RANGE,
        language: str = config.REPORT_DEFAULT_LANGUAGE,
        mode: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> Union[str, bool]:
        """
        Write one report for a stored summary document.

        Returns the report text, or a bool for ``response_type="highlight"``.
        Raises KeyError for an unknown category, RuntimeError when every LLM fails.
        """
        payload = summary_payload(summary, kind, category_id)
        prompt = build_prompt(
            payload,
            response_type=response_type,
            word_range=word_range,
            mode=mode or kind,
            custom_prompt=custom_prompt,
            language=language,
        )
        text = (await self.llm.chat([{"role": "user", "content": prompt}])).strip()
        if response_type == "highlight":
            return parse_highlight(text)
        return text

    def stream_overview(
        self,
        summary: Dict[str, Any],
        language: str = config.REPORT_DEFAULT_LANGUAGE,
        word_range: Tuple[int, int] = config.REPORT_WORD_RANGE,
    ) -> AsyncIterator[str]:
        prompt = build_prompt(
            summary_payload(summary, "overview"),
            word_range=word_range,
            language=language,
        )
        return self.llm.stream([{"role": "user", "content": prompt}])

    async def answer_question(
        self,
        summary: Dict[str, Any],
        question: str,
        language: str = config.REPORT_DEFAULT_LANGUAGE,
    ) -> str:
        """Project assistant: answer ``question`` using the full summary as context."""
        context = json.dumps(summary, ensure_ascii=False)
        if language == "de":
            user = (
                f"Aufgabenstellung: {question}\n\n"
                f"Sofern nötig, können Sie die folgende Kostenzusammenfassung für detaillierte "
                f"Informationen verwenden: {context}"
            )
        else:
            user = (
                f"Task: {question}\n\n"
                f"If needed, use the following cost summary for detailed information: {context}"
            )
        messages = [
            {"role": "system", "content": get_system_prompt("project_assistant", language)},
            {"role": "user", "content": user},
        ]
        return (await self.llm.chat(messages)).strip()
