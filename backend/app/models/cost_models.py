"""
Cost model schemas — catalog documents, the project category tree and the
computed ProjectSummary.

Catalog documents come straight out of the document store, so every numeric
field is coerced leniently: missing → 0, unparseable → 0 (with a warning).
The tree is a tagged union of StepRef | CategoryNode keyed on ``kind``;
legacy documents without ``kind`` are tagged on the way in (a child carrying
``name`` is a step reference, anything else is a nested category).

Output models serialise with camelCase aliases (``model_dump(by_alias=True)``)
so the persisted summary keeps the shape the dashboard and report prompts read.
"""
import logging
import math
from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger("locoman-engine")


# ---------------------------------------------------------------------------
# Lenient field coercion
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> float:
    """Return ``value`` as a finite float; anything unusable becomes 0.0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        logger.warning(f"Boolean {value!r} where a number was expected — using 0")
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            logger.warning(f"Integer with {len(str(value))} digits is out of float range, using 0")
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            logger.warning(f"Non-numeric value {value!r} — using 0")
            return 0.0
    else:
        logger.warning(f"Unsupported numeric type {type(value).__name__} — using 0")
        return 0.0
    if not math.isfinite(number):
        logger.warning(f"Non-finite value {value!r} — using 0")
        return 0.0
    return number


def coerce_id_list(value: Any) -> List[str]:
    """Accept a single id, a list of ids or nothing; drop blanks and duplicates."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        raw = list(value)
    else:
        raw = [value]
    ids: List[str] = []
    for item in raw:
        if item is None:
            continue
        text = str(item).strip()
        if text and text not in ids:
            ids.append(text)
    return ids


def coerce_id(value: Any) -> Any:
    """Numeric ids become text so catalog and tree ids compare equal."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def coerce_text(value: Any) -> str:
    return "" if value is None else str(value)


Number = Annotated[float, BeforeValidator(coerce_number)]
IdList = Annotated[List[str], BeforeValidator(coerce_id_list)]
DocId = Annotated[str, BeforeValidator(coerce_id)]
Text = Annotated[str, BeforeValidator(coerce_text)]


class _Document(BaseModel):
    """Base for store documents: camelCase keys accepted, unknown keys ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: DocId


# ---------------------------------------------------------------------------
# Catalog documents
# ---------------------------------------------------------------------------

class StepDoc(_Document):
    """One unit of logistics work, owned by the step catalog."""
    name: Text = ""
    person: IdList = Field(default_factory=list)
    cost_driver: Text = Field("", alias="costDriver")
    cost_driver_value: Number = Field(0.0, alias="costDriverValue")
    step_duration: Number = Field(0.0, alias="stepDuration")
    additional_resources: IdList = Field(default_factory=list, alias="additionalResources")

    @property
    def minutes(self) -> float:
        """Minutes per costing period: duration per occurrence × occurrences.

        A product beyond float range counts as 0, like any other unusable input.
        """
        minutes = self.step_duration * self.cost_driver_value
        if not math.isfinite(minutes):
            logger.warning(f"Step {self.id}: minutes overflow "
                           f"({self.step_duration!r} × {self.cost_driver_value!r}), using 0")
            return 0.0
        return minutes


class EmployeeDoc(_Document):
    jobtitel: str = ""
    monthly_salary_euro: Number = Field(0.0, alias="monthlySalaryEuro")


class ResourceDoc(_Document):
    cost_object_name: str = Field("", alias="costObjectName")
    cost_per_month_euro: Number = Field(0.0, alias="costPerMonthEuro")


class FixedCostObjectDoc(_Document):
    cost_object_name: str = Field("", alias="costObjectName")
    cost_per_month_euro: Number = Field(0.0, alias="costPerMonthEuro")


class FixedCostBucket(BaseModel):
    """Per-project selection of catalog ids. Only ``fixed_costs`` feeds the engine."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    employees: IdList = Field(default_factory=list)
    fixed_costs: IdList = Field(default_factory=list, alias="fixedCosts")
    resources: IdList = Field(default_factory=list)


BUCKET_KINDS = ("employees", "fixedCosts", "resources")


# ---------------------------------------------------------------------------
# Category tree (tagged union)
# ---------------------------------------------------------------------------

def tag_legacy_node(node: Any) -> Any:
    """Add the ``kind`` discriminant to an untagged tree child."""
    if isinstance(node, dict) and "kind" not in node:
        return {**node, "kind": "step" if "name" in node else "category"}
    return node


class StepRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["step"] = "step"
    id: DocId
    name: Text = ""


class CategoryNode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["category"] = "category"
    id: DocId
    label: Text = ""
    color: str = ""
    children: List["TreeNode"] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _tag_children(cls, data):
        if isinstance(data, dict):
            children = data.get("children")
            if children is None:
                data = {**data, "children": []}
            elif isinstance(children, list):
                data = {**data, "children": [tag_legacy_node(ch) for ch in children]}
            if data.get("color") is None:
                data = {**data, "color": ""}
        return data


TreeNode = Annotated[Union[StepRef, CategoryNode], Field(discriminator="kind")]

CategoryNode.model_rebuild()


# ---------------------------------------------------------------------------
# ProjectSummary (engine output)
# ---------------------------------------------------------------------------

class _SummaryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepCostBreakdown(_SummaryModel):
    step_id: str
    step_name: str
    minutes: float
    employee_ids: List[str]
    employee_cost: float
    resource_ids: List[str]
    resource_cost: float
    fixed_cost: float = 0.0
    step_cost: float = 0.0


class ProjectCategorySummary(_SummaryModel):
    category_id: str
    category_label: str
    category_color: str
    total_category_cost: float
    steps: List[StepCostBreakdown]


class ProjectCosts(_SummaryModel):
    total_project_cost: float
    categories: List[ProjectCategorySummary]


class CostObjectSummary(_SummaryModel):
    id: str
    name: str
    monthly_cost_euro: float


class FixedCostsSection(_SummaryModel):
    total_fixed_cost: float
    objects: List[CostObjectSummary]


class EmployeeStepCost(_SummaryModel):
    step_id: str
    minutes: float
    cost: float


class EmployeeAllocation(_SummaryModel):
    employee_id: str
    jobtitel: str
    total_minutes: float
    per_minute_cost: float
    total_cost: float
    steps: List[EmployeeStepCost]


class EmployeesSection(_SummaryModel):
    total_employee_cost: float
    entries: List[EmployeeAllocation] = Field(alias="list")


class ResourcesSection(_SummaryModel):
    total_resource_cost: float
    objects: List[CostObjectSummary]


class ProjectSummary(_SummaryModel):
    project_costs: ProjectCosts
    fixed_costs: FixedCostsSection
    employees: EmployeesSection
    resources: ResourcesSection

    def to_document(self) -> dict:
        """JSON-ready dict in the persisted camelCase shape."""
        return self.model_dump(by_alias=True, mode="json")
