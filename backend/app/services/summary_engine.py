"""
Summary Engine — proportional cost allocation for a logistics project.

Covers:
  - Project scoping: only steps reachable from the category tree are costed
  - Per-minute rates for employees and shared resources (monthly cost / minutes used)
  - Direct step cost (employee + resource minutes × rate)
  - Fixed-cost proration by each step's share of direct cost
  - Recursive category aggregation and the employee / resource sections

The engine is a pure function of its inputs: no I/O, no module state.
Inputs may be pydantic documents or plain dicts straight from the store;
dicts are validated here. Structural violations (tree or catalog not a list,
a node that is not a mapping) raise TypeError. Data-quality problems
(unknown ids, missing or non-numeric fields) never raise; they cost 0.

All monetary values are EUR per month.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app import config
from app.models.cost_models import (
    CategoryNode,
    CostObjectSummary,
    EmployeeAllocation,
    EmployeeDoc,
    EmployeeStepCost,
    EmployeesSection,
    FixedCostBucket,
    FixedCostObjectDoc,
    FixedCostsSection,
    ProjectCategorySummary,
    ProjectCosts,
    ProjectSummary,
    ResourceDoc,
    ResourcesSection,
    StepCostBreakdown,
    StepDoc,
    StepRef,
)
from app.services.perf_monitor import timed

logger = logging.getLogger("locoman-engine")

_DocT = TypeVar("_DocT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------

def parse_tree(tree: Any) -> List[CategoryNode]:
    """Validate a category forest. Accepts CategoryNode instances or raw dicts."""
    if not isinstance(tree, (list, tuple)):
        raise TypeError(f"tree must be a list of categories, got {type(tree).__name__}")
    categories: List[CategoryNode] = []
    for index, node in enumerate(tree):
        if isinstance(node, CategoryNode):
            categories.append(node)
        elif isinstance(node, Mapping):
            try:
                categories.append(CategoryNode.model_validate(dict(node)))
            except ValidationError as e:
                raise TypeError(f"tree[{index}] is not a valid category: {e}") from e
        else:
            raise TypeError(f"tree[{index}] must be a category mapping, got {type(node).__name__}")
    return categories


def _validate_catalog(items: Any, model: Type[_DocT], label: str) -> List[_DocT]:
    if not isinstance(items, (list, tuple)):
        raise TypeError(f"{label} must be a list, got {type(items).__name__}")
    docs: List[_DocT] = []
    for index, item in enumerate(items):
        if isinstance(item, model):
            docs.append(item)
        elif isinstance(item, Mapping):
            try:
                docs.append(model.model_validate(dict(item)))
            except ValidationError as e:
                raise TypeError(f"{label}[{index}] is not a valid {model.__name__}: {e}") from e
        else:
            raise TypeError(f"{label}[{index}] must be a mapping, got {type(item).__name__}")
    return docs


def _validate_bucket(bucket: Any) -> FixedCostBucket:
    if bucket is None:
        return FixedCostBucket()
    if isinstance(bucket, FixedCostBucket):
        return bucket
    if isinstance(bucket, Mapping):
        return FixedCostBucket.model_validate(dict(bucket))
    raise TypeError(f"fixed_bucket must be a mapping, got {type(bucket).__name__}")


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------

def collect_category_step_ids(category: CategoryNode) -> List[str]:
    """Step ids under ``category`` at any depth, in tree order."""
    ids: List[str] = []
    for child in category.children:
        if isinstance(child, StepRef):
            ids.append(child.id)
        else:
            ids.extend(collect_category_step_ids(child))
    return ids


def collect_step_ids(categories: Iterable[CategoryNode]) -> Set[str]:
    """Every step id referenced anywhere in the forest."""
    ids: Set[str] = set()
    for category in categories:
        ids.update(collect_category_step_ids(category))
    return ids


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

def per_minute_rate(monthly_cost: float, minutes: float) -> float:
    """Monthly cost spread over the minutes actually used; 0 when unused."""
    if minutes == 0:
        return 0.0
    return monthly_cost / minutes


def _accumulate_minutes(steps: Sequence[StepDoc]):
    employee_minutes: Dict[str, float] = {}
    resource_minutes: Dict[str, float] = {}
    for step in steps:
        minutes = step.minutes
        for emp_id in step.person:
            employee_minutes[emp_id] = employee_minutes.get(emp_id, 0.0) + minutes
        for res_id in step.additional_resources:
            resource_minutes[res_id] = resource_minutes.get(res_id, 0.0) + minutes
    return employee_minutes, resource_minutes


# ---------------------------------------------------------------------------
# Main generator
# ---------------------------------------------------------------------------

@timed
def generate_project_summary(
    tree: Any,
    steps: Any,
    employees: Any,
    resources: Any,
    fixed_bucket: Any,
    fixed_cost_objects: Any,
) -> ProjectSummary:
    """
    Compute a fully reconciled cost summary for one project.

    Parameters
    ----------
    tree               : list of CategoryNode (or dicts, legacy untagged allowed)
    steps              : step catalog — may contain steps outside this project
    employees          : employee catalog
    resources          : resource catalog
    fixed_bucket       : FixedCostBucket (or dict / None); only ``fixed_costs`` is used
    fixed_cost_objects : fixed-cost catalog

    Returns
    -------
    ProjectSummary where
        totalProjectCost == Σ stepCost == Σ (employeeCost + resourceCost + fixedCost)
    and Σ fixedCost == totalFixedCost whenever any direct cost exists.
    """
    categories = parse_tree(tree)
    step_docs = _validate_catalog(steps, StepDoc, "steps")
    employee_docs = _validate_catalog(employees, EmployeeDoc, "employees")
    resource_docs = _validate_catalog(resources, ResourceDoc, "resources")
    fixed_docs = _validate_catalog(fixed_cost_objects, FixedCostObjectDoc, "fixed_cost_objects")
    bucket = _validate_bucket(fixed_bucket)

    # 1. Filter the catalog to project scope (first catalog entry wins on duplicate ids)
    project_step_ids = collect_step_ids(categories)
    project_steps: List[StepDoc] = []
    seen: Set[str] = set()
    for step in step_docs:
        if step.id in project_step_ids and step.id not in seen:
            seen.add(step.id)
            project_steps.append(step)
    orphans = project_step_ids - seen
    if orphans:
        logger.debug(f"{len(orphans)} tree step reference(s) not in catalog — excluded")

    employee_map = {e.id: e for e in employee_docs}
    resource_map = {r.id: r for r in resource_docs}

    # 2. Minutes per employee and per resource
    employee_minutes, resource_minutes = _accumulate_minutes(project_steps)

    # 3. Per-minute rates
    employee_rate: Dict[str, float] = {}
    for emp_id, mins in employee_minutes.items():
        emp = employee_map.get(emp_id)
        employee_rate[emp_id] = per_minute_rate(emp.monthly_salary_euro if emp else 0.0, mins)

    resource_rate: Dict[str, float] = {}
    for res_id, mins in resource_minutes.items():
        res = resource_map.get(res_id)
        resource_rate[res_id] = per_minute_rate(res.cost_per_month_euro if res else 0.0, mins)

    # 4. Fixed-cost pool, in bucket order
    fixed_map: Dict[str, FixedCostObjectDoc] = {}
    for obj in fixed_docs:
        fixed_map.setdefault(obj.id, obj)
    fixed_objects = [fixed_map[fid] for fid in bucket.fixed_costs if fid in fixed_map]
    total_fixed_cost = sum(o.cost_per_month_euro for o in fixed_objects)

    # 5. Direct cost per step
    breakdown: Dict[str, StepCostBreakdown] = {}
    base_project_cost = 0.0
    for step in project_steps:
        minutes = step.minutes
        employee_cost = sum(minutes * employee_rate.get(e, 0.0) for e in step.person)
        resource_cost = sum(minutes * resource_rate.get(r, 0.0) for r in step.additional_resources)
        base_project_cost += employee_cost + resource_cost
        breakdown[step.id] = StepCostBreakdown(
            step_id=step.id,
            step_name=step.name,
            minutes=minutes,
            employee_ids=list(step.person),
            employee_cost=employee_cost,
            resource_ids=list(step.additional_resources),
            resource_cost=resource_cost,
        )

    # 6. Fixed-cost proration by share of direct cost
    denominator = base_project_cost or 1.0
    for sb in breakdown.values():
        direct = sb.employee_cost + sb.resource_cost
        sb.fixed_cost = direct / denominator * total_fixed_cost
        sb.step_cost = direct + sb.fixed_cost

    # 7. Category aggregation
    category_summaries = [_summarise_category(cat, breakdown) for cat in categories]
    total_project_cost = sum(c.total_category_cost for c in category_summaries)

    # 8. Employee section
    employee_entries: List[EmployeeAllocation] = []
    for emp_id, mins in employee_minutes.items():
        if mins == 0:
            continue
        rate = employee_rate[emp_id]
        emp = employee_map.get(emp_id)
        employee_entries.append(EmployeeAllocation(
            employee_id=emp_id,
            jobtitel=emp.jobtitel if emp else "",
            total_minutes=mins,
            per_minute_cost=rate,
            total_cost=rate * mins,
            steps=[
                EmployeeStepCost(step_id=sb.step_id, minutes=sb.minutes, cost=sb.minutes * rate)
                for sb in breakdown.values()
                if emp_id in sb.employee_ids
            ],
        ))

    # 9. Resource section: every resource referenced by a project step
    resource_objects = []
    for res_id in resource_minutes:
        res = resource_map.get(res_id)
        resource_objects.append(CostObjectSummary(
            id=res_id,
            name=res.cost_object_name if res else "",
            monthly_cost_euro=res.cost_per_month_euro if res else 0.0,
        ))

    logger.debug(
        f"Summary: {len(project_steps)} steps, {len(category_summaries)} categories, "
        f"direct {base_project_cost:.2f} + fixed {total_fixed_cost:.2f} EUR"
    )

    return ProjectSummary(
        project_costs=ProjectCosts(
            total_project_cost=total_project_cost,
            categories=category_summaries,
        ),
        fixed_costs=FixedCostsSection(
            total_fixed_cost=total_fixed_cost,
            objects=[
                CostObjectSummary(id=o.id, name=o.cost_object_name, monthly_cost_euro=o.cost_per_month_euro)
                for o in fixed_objects
            ],
        ),
        employees=EmployeesSection(
            total_employee_cost=sum(e.total_cost for e in employee_entries),
            entries=employee_entries,
        ),
        resources=ResourcesSection(
            total_resource_cost=sum(o.monthly_cost_euro for o in resource_objects),
            objects=resource_objects,
        ),
    )


def _summarise_category(
    category: CategoryNode, breakdown: Dict[str, StepCostBreakdown]
) -> ProjectCategorySummary:
    steps = [breakdown[sid] for sid in collect_category_step_ids(category) if sid in breakdown]
    return ProjectCategorySummary(
        category_id=category.id,
        category_label=category.label,
        category_color=category.color,
        total_category_cost=sum(s.step_cost for s in steps),
        steps=steps,
    )


# ---------------------------------------------------------------------------
# Reconciliation check
# ---------------------------------------------------------------------------

def check_reconciliation(summary: ProjectSummary, tolerance: Optional[float] = None) -> List[str]:
    """
    Verify the summary's totals agree with its step breakdown.

    Returns a list of human-readable violations; empty when reconciled.
    Steps listed under more than one category are counted once.
    """
    if tolerance is None:
        tolerance = config.RECONCILIATION_TOLERANCE

    problems: List[str] = []
    unique_steps: Dict[str, StepCostBreakdown] = {}
    category_total = 0.0
    for cat in summary.project_costs.categories:
        cat_sum = sum(s.step_cost for s in cat.steps)
        if abs(cat_sum - cat.total_category_cost) > tolerance:
            problems.append(
                f"category {cat.category_id}: total {cat.total_category_cost} != Σ stepCost {cat_sum}"
            )
        category_total += cat.total_category_cost
        for s in cat.steps:
            unique_steps.setdefault(s.step_id, s)

    total = summary.project_costs.total_project_cost
    if abs(category_total - total) > tolerance:
        problems.append(f"totalProjectCost {total} != Σ categories {category_total}")

    for s in unique_steps.values():
        parts = s.employee_cost + s.resource_cost + s.fixed_cost
        if abs(parts - s.step_cost) > tolerance:
            problems.append(f"step {s.step_id}: stepCost {s.step_cost} != components {parts}")

    direct = sum(s.employee_cost + s.resource_cost for s in unique_steps.values())
    fixed_sum = sum(s.fixed_cost for s in unique_steps.values())
    pool = summary.fixed_costs.total_fixed_cost
    if direct > 0 and abs(fixed_sum - pool) > tolerance:
        problems.append(f"Σ fixedCost {fixed_sum} != totalFixedCost {pool}")

    return problems
