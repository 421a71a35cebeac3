"""
conftest.py — Shared pytest fixtures for the Locoman cost dashboard test suite.

No database or network is touched. Engine tests are pure unit tests; API
tests run the FastAPI app through TestClient with the project store and the
LLM replaced by in-memory fakes via ``app.dependency_overrides``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

# Test process settings: no database, no rate limiting, plain-text logs
os.environ["DATABASE_URL"] = ""
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ.setdefault("LOG_FORMAT", "text")


# ---------------------------------------------------------------------------
# Catalog fixtures (Scenarios A–D)
# ---------------------------------------------------------------------------

@pytest.fixture
def employees():
    """e1 earns €5000/month, e2 €3000/month."""
    return [
        {"id": "e1", "jobtitel": "Disponent", "monthlySalaryEuro": 5000},
        {"id": "e2", "jobtitel": "Fahrer", "monthlySalaryEuro": 3000},
    ]


@pytest.fixture
def resources():
    return [
        {"id": "r1", "costObjectName": "Transport Management System", "costPerMonthEuro": 4000},
        {"id": "r2", "costObjectName": "Handscanner", "costPerMonthEuro": 180},
    ]


@pytest.fixture
def fixed_cost_objects():
    return [
        {"id": "f1", "costObjectName": "Miete", "costPerMonthEuro": 1000},
        {"id": "f2", "costObjectName": "Internet/Telefon", "costPerMonthEuro": 500},
    ]


@pytest.fixture
def step_a():
    """Scenario A step: 5 min × 30 occurrences = 150 min, employee e1."""
    return {
        "id": "s1",
        "name": "Transportbedarf überprüfen",
        "person": "e1",
        "costDriver": "Anzahl der Transportanfragen",
        "costDriverValue": 30,
        "stepDuration": 5,
        "additionalResources": [],
    }


@pytest.fixture
def step_b():
    """Scenario B step: 10 min × 25 occurrences = 250 min, employee e1."""
    return {
        "id": "s2",
        "name": "Angebot vorbereiten",
        "person": ["e1"],
        "costDriver": "Anzahl Transportbedarfe",
        "costDriverValue": 25,
        "stepDuration": 10,
        "additionalResources": [],
    }


@pytest.fixture
def single_category_tree():
    """Legacy (untagged) tree with one category holding s1 and s2."""
    return [
        {
            "id": "c1",
            "label": "Beauftragung",
            "color": "#2563eb",
            "children": [
                {"id": "s1", "name": "Transportbedarf überprüfen"},
                {"id": "s2", "name": "Angebot vorbereiten"},
            ],
        }
    ]


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeLLM:
    """
    Stand-in for LLMClient.

    ``reply`` is returned from chat(); ``chunks`` are yielded by stream().
    With ``fail=True`` every call raises RuntimeError like the real client
    does when primary and fallback models both fail.
    """

    def __init__(self, reply: str = "Die Projektkosten sind ausgewogen.", chunks=None, fail: bool = False):
        self.reply = reply
        self.chunks = list(chunks or ["Die Gesamtkosten ", "betragen ", "€20.120,00."])
        self.fail = fail
        self.calls: List[list] = []

    async def chat(self, messages: list, temperature: float = 0.3, max_tokens: int = 2048) -> str:
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("All LLM providers failed. Last error: simulated outage")
        return self.reply

    def stream(self, messages: list, **kwargs):
        self.calls.append(messages)

        async def _gen():
            if self.fail:
                raise RuntimeError("All LLM providers failed. Last error: simulated outage")
            for chunk in self.chunks:
                yield chunk

        return _gen()


class FakeStore:
    """In-memory ProjectStore with the same async interface and document shapes."""

    def __init__(self):
        from app.services.project_store import CATALOG_KINDS
        self.projects: Dict[str, Dict[str, Any]] = {}
        self.catalogs: Dict[str, Dict[str, Dict[str, Any]]] = {k: {} for k in CATALOG_KINDS}
        self._clock = 0
        self._next_id = 0

    def _now(self) -> str:
        # Strictly increasing timestamps so regenerated summaries always differ
        self._clock += 1
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        return (base + timedelta(seconds=self._clock)).isoformat()

    # Projects

    async def list_projects(self) -> List[Dict[str, Any]]:
        return [dict(p) for p in self.projects.values()]

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        p = self.projects.get(project_id)
        return dict(p) if p else None

    async def create_project(self, title: str, description: str, data_tree: list) -> Dict[str, Any]:
        self._next_id += 1
        now = self._now()
        project = {
            "id": f"project-{self._next_id}",
            "title": title,
            "description": description,
            "dataTree": list(data_tree),
            "fixedCosts": {"employees": [], "fixedCosts": [], "resources": []},
            "summary": None,
            "summaryUpdatedAt": None,
            "report": {},
            "createdAt": now,
            "updatedAt": now,
        }
        self.projects[project["id"]] = project
        return dict(project)

    async def delete_project(self, project_id: str) -> bool:
        return self.projects.pop(project_id, None) is not None

    async def save_tree(self, project_id: str, data_tree: list) -> Optional[Dict[str, Any]]:
        if project_id not in self.projects:
            return None
        self.projects[project_id]["dataTree"] = list(data_tree)
        return dict(self.projects[project_id])

    async def save_fixed_bucket(self, project_id: str, bucket: Dict[str, List[str]]) -> Optional[Dict[str, Any]]:
        if project_id not in self.projects:
            return None
        self.projects[project_id]["fixedCosts"] = {k: list(v) for k, v in bucket.items()}
        return dict(self.projects[project_id])

    async def save_summary(self, project_id: str, summary: Dict[str, Any]) -> Optional[str]:
        if project_id not in self.projects:
            return None
        now = self._now()
        self.projects[project_id]["summary"] = summary
        self.projects[project_id]["summaryUpdatedAt"] = now
        return now

    async def save_report_entry(self, project_id: str, field_path: str, entry: Dict[str, Any]) -> bool:
        from app.services.project_store import set_report_entry
        if project_id not in self.projects:
            return False
        project = self.projects[project_id]
        project["report"] = set_report_entry(project["report"], field_path, entry)
        return True

    # Catalogs

    async def list_catalog(self, kind: str) -> List[Dict[str, Any]]:
        return [{**data, "id": item_id} for item_id, data in self.catalogs[kind].items()]

    async def get_catalog_item(self, kind: str, item_id: str) -> Optional[Dict[str, Any]]:
        data = self.catalogs[kind].get(item_id)
        return {**data, "id": item_id} if data is not None else None

    async def put_catalog_item(self, kind: str, item_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.catalogs[kind][item_id] = {k: v for k, v in data.items() if k != "id"}
        return {**self.catalogs[kind][item_id], "id": item_id}

    async def delete_catalog_item(self, kind: str, item_id: str) -> bool:
        return self.catalogs[kind].pop(item_id, None) is not None

    async def load_catalogs(self) -> Dict[str, List[Dict[str, Any]]]:
        return {kind: await self.list_catalog(kind) for kind in self.catalogs}


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def client(fake_store, fake_llm):
    """
    TestClient over the real app with store, report engine and report cache
    overridden. Lifespan is not entered, so init_db() never runs.
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api.deps import get_report_cache, get_report_engine, get_store
    from app.services.perf_monitor import tracker
    from app.services.report_engine import ReportCache, ReportEngine

    cache = ReportCache()
    app.dependency_overrides[get_store] = lambda: fake_store
    app.dependency_overrides[get_report_engine] = lambda: ReportEngine(llm=fake_llm)
    app.dependency_overrides[get_report_cache] = lambda: cache
    tracker.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        tracker.reset()
