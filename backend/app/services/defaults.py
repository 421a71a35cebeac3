"""
Default logistics process data.

Seeds for a new workspace: the standard six-phase transport process tree,
a starter step catalog and typical monthly employee, resource and
fixed-cost figures for a small haulage company (EUR/month).
"""
import copy
from typing import Any, Dict, List

# Category colors cycle through this palette when none is given
CATEGORY_PALETTE: List[str] = [
    "#2563eb",
    "#16a34a",
    "#f59e0b",
    "#dc2626",
    "#7c3aed",
    "#0891b2",
]


_DEFAULT_TREE: List[Dict[str, Any]] = [
    {
        "kind": "category", "id": "default-cat-1", "label": "Beauftragung", "color": "#2563eb",
        "children": [
            {"kind": "step", "id": "step-1", "name": "Transportbedarf überprüfen"},
            {"kind": "step", "id": "step-2", "name": "Angebot vorbereiten und übermitteln"},
            {"kind": "step", "id": "step-3", "name": "Transportbedarf erfassen"},
        ],
    },
    {
        "kind": "category", "id": "default-cat-2", "label": "Disposition", "color": "#16a34a",
        "children": [
            {"kind": "step", "id": "step-4", "name": "Verfügbarkeit von Personal und Fuhrpark überprüfen"},
            {"kind": "step", "id": "step-5", "name": "Touren planen"},
        ],
    },
    {"kind": "category", "id": "default-cat-3", "label": "Beladung", "color": "#f59e0b", "children": []},
    {"kind": "category", "id": "default-cat-4", "label": "Transport", "color": "#dc2626", "children": []},
    {"kind": "category", "id": "default-cat-5", "label": "Entladung", "color": "#7c3aed", "children": []},
    {"kind": "category", "id": "default-cat-6", "label": "Abrechnung", "color": "#0891b2", "children": []},
]

_DEFAULT_STEPS: List[Dict[str, Any]] = [
    {
        "id": "step-1",
        "name": "Transportbedarf überprüfen",
        "person": "employee-1",
        "costDriver": "Anzahl der Transportanfragen",
        "costDriverValue": 30,
        "stepDuration": 5,
        "additionalResources": ["resource-1"],
    },
    {
        "id": "step-2",
        "name": "Angebot vorbereiten und übermitteln",
        "person": "employee-1",
        "costDriver": "Anzahl Transportbedarfe",
        "costDriverValue": 25,
        "stepDuration": 10,
        "additionalResources": ["resource-1"],
    },
]

_DEFAULT_EMPLOYEES: List[Dict[str, Any]] = [
    {"id": "employee-1", "jobtitel": "Vertriebsmitarbeiter", "monthlySalaryEuro": 5000},
    {"id": "employee-2", "jobtitel": "Disponent", "monthlySalaryEuro": 4500},
    {"id": "employee-3", "jobtitel": "Verwaltung", "monthlySalaryEuro": 5000},
    {"id": "employee-4", "jobtitel": "Fahrer", "monthlySalaryEuro": 3900},
]

_DEFAULT_FIXED_COSTS: List[Dict[str, Any]] = [
    {"id": "fixedcost-1", "costObjectName": "Miete/Abschreibungen", "costPerMonthEuro": 14000},
    {"id": "fixedcost-2", "costObjectName": "Zinsaufwendungen", "costPerMonthEuro": 833},
    {"id": "fixedcost-3", "costObjectName": "Geschäftsführer", "costPerMonthEuro": 11000},
    {"id": "fixedcost-4", "costObjectName": "Human Resources", "costPerMonthEuro": 6250},
    {"id": "fixedcost-5", "costObjectName": "Gebäudenebenkosten", "costPerMonthEuro": 416},
    {"id": "fixedcost-6", "costObjectName": "Internet/Telefon", "costPerMonthEuro": 3000},
]

_DEFAULT_RESOURCES: List[Dict[str, Any]] = [
    {"id": "resource-1", "costObjectName": "Kommunikationssystem", "costPerMonthEuro": 1120},
    {"id": "resource-2", "costObjectName": "Order Management System", "costPerMonthEuro": 1300},
    {"id": "resource-3", "costObjectName": "Tachograph", "costPerMonthEuro": 700},
    {"id": "resource-4", "costObjectName": "LKW (inkl. Tankkosten)", "costPerMonthEuro": 75000},
    {"id": "resource-5", "costObjectName": "Drucker (inkl. Druckkosten)", "costPerMonthEuro": 120},
    {"id": "resource-6", "costObjectName": "Sicherungswerkzeug", "costPerMonthEuro": 400},
    {"id": "resource-7", "costObjectName": "Handscanner", "costPerMonthEuro": 180},
    {"id": "resource-8", "costObjectName": "Abrechnungssystem", "costPerMonthEuro": 500},
    {"id": "resource-9", "costObjectName": "Transport Management System", "costPerMonthEuro": 4000},
    {"id": "resource-10", "costObjectName": "Firmenhandy", "costPerMonthEuro": 640},
    {"id": "resource-11", "costObjectName": "Flurförderfahrzeug", "costPerMonthEuro": 200},
]


# Catalog kind (URL segment) -> seed documents
DEFAULT_CATALOGS: Dict[str, List[Dict[str, Any]]] = {
    "steps": _DEFAULT_STEPS,
    "employees": _DEFAULT_EMPLOYEES,
    "resources": _DEFAULT_RESOURCES,
    "fixed-costs": _DEFAULT_FIXED_COSTS,
}


def default_tree() -> List[Dict[str, Any]]:
    """Fresh copy of the default process tree (safe to mutate)."""
    return copy.deepcopy(_DEFAULT_TREE)


def default_catalog(kind: str) -> List[Dict[str, Any]]:
    """Fresh copy of the seed documents for one catalog kind."""
    return copy.deepcopy(DEFAULT_CATALOGS.get(kind, []))


def palette_color(index: int) -> str:
    return CATEGORY_PALETTE[index % len(CATEGORY_PALETTE)]
