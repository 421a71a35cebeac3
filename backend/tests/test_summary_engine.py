"""
test_summary_engine.py — Unit tests for the proportional cost allocation engine.

Tests cover:
  - Scenarios A–D (single step, shared employee, fixed-cost pool, empty tree)
  - Reconciliation and fixed-cost conservation
  - Zero-minute and missing-catalog cases (no division by zero, cost 0)
  - Orphan tree references and steps outside the project
  - Bucket employees / resources lists not affecting computation
  - Legacy (untagged) vs tagged trees, nested categories
  - Lenient numeric coercion, boundary TypeErrors
  - Employee and resource sections

All tests are pure unit tests; no database or external services required.
"""

import copy
import json
import logging
import math

import pytest

from app.models.cost_models import CategoryNode, ProjectSummary
from app.services.summary_engine import (
    check_reconciliation,
    collect_category_step_ids,
    collect_step_ids,
    generate_project_summary,
    parse_tree,
    per_minute_rate,
)


def _run(tree, steps, employees, resources=None, bucket=None, fixed=None) -> ProjectSummary:
    return generate_project_summary(tree, steps, employees, resources or [], bucket or {}, fixed or [])


def _steps_by_id(summary: ProjectSummary):
    return {s.step_id: s for c in summary.project_costs.categories for s in c.steps}


def _numbers(node):
    """Every numeric leaf of a summary document."""
    if isinstance(node, dict):
        for value in node.values():
            yield from _numbers(value)
    elif isinstance(node, list):
        for value in node:
            yield from _numbers(value)
    elif isinstance(node, (int, float)) and not isinstance(node, bool):
        yield node


# ===========================================================================
# Scenarios
# ===========================================================================

class TestScenarios:

    def test_scenario_a_single_step(self, employees, step_a):
        """150 min against a €5000 salary: the step carries the full salary."""
        tree = [{"id": "c1", "label": "Beauftragung", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a], employees)

        step = _steps_by_id(summary)["s1"]
        assert step.minutes == 150
        assert step.employee_cost == pytest.approx(5000)
        assert step.resource_cost == 0
        assert step.fixed_cost == 0
        assert step.step_cost == pytest.approx(5000)
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

        emp = summary.employees.entries[0]
        assert emp.employee_id == "e1"
        assert emp.per_minute_cost == pytest.approx(5000 / 150)

    def test_scenario_b_shared_employee(self, employees, step_a, step_b, single_category_tree):
        """Two steps share e1: 400 min → €12.5/min, split 1875 / 3125."""
        summary = _run(single_category_tree, [step_a, step_b], employees)

        steps = _steps_by_id(summary)
        assert steps["s1"].employee_cost == pytest.approx(1875)
        assert steps["s2"].employee_cost == pytest.approx(3125)
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

        emp = summary.employees.entries[0]
        assert emp.total_minutes == 400
        assert emp.per_minute_cost == pytest.approx(12.5)
        assert emp.total_cost == pytest.approx(5000)
        assert [s.step_id for s in emp.steps] == ["s1", "s2"]
        assert [s.cost for s in emp.steps] == [pytest.approx(1875), pytest.approx(3125)]

    def test_scenario_c_fixed_cost_pool(self, employees, step_a, step_b, single_category_tree, fixed_cost_objects):
        """A €1000 pool is prorated by share of direct cost (1875 / 3125 of 5000)."""
        summary = _run(
            single_category_tree, [step_a, step_b], employees,
            bucket={"fixedCosts": ["f1"]}, fixed=fixed_cost_objects,
        )

        steps = _steps_by_id(summary)
        assert steps["s1"].fixed_cost == pytest.approx(375)
        assert steps["s2"].fixed_cost == pytest.approx(625)
        assert steps["s1"].fixed_cost + steps["s2"].fixed_cost == pytest.approx(1000)
        assert summary.fixed_costs.total_fixed_cost == 1000
        assert summary.project_costs.total_project_cost == pytest.approx(6000)

    def test_scenario_d_empty_tree(self, employees, step_a, fixed_cost_objects):
        """Empty tree: no categories, total 0, fixed pool still reported but unallocated."""
        summary = _run([], [step_a], employees, bucket={"fixedCosts": ["f1", "f2"]}, fixed=fixed_cost_objects)

        assert summary.project_costs.categories == []
        assert summary.project_costs.total_project_cost == 0
        assert summary.fixed_costs.total_fixed_cost == 1500
        assert [o.id for o in summary.fixed_costs.objects] == ["f1", "f2"]
        assert summary.employees.entries == []
        assert check_reconciliation(summary) == []


# ===========================================================================
# Invariants
# ===========================================================================

class TestInvariants:

    def test_reconciliation_holds_with_resources_and_fixed_costs(
        self, employees, resources, fixed_cost_objects, step_a, step_b, single_category_tree
    ):
        a = {**step_a, "person": ["e1", "e2"], "additionalResources": ["r1"]}
        b = {**step_b, "additionalResources": ["r1", "r2"]}
        summary = _run(
            single_category_tree, [a, b], employees, resources,
            bucket={"fixedCosts": ["f1", "f2"]}, fixed=fixed_cost_objects,
        )

        assert check_reconciliation(summary) == []
        steps = list(_steps_by_id(summary).values())
        direct = sum(s.employee_cost + s.resource_cost for s in steps)
        fixed = sum(s.fixed_cost for s in steps)
        assert fixed == pytest.approx(1500)
        assert summary.project_costs.total_project_cost == pytest.approx(direct + fixed)

    def test_zero_minutes_yields_zero_rate(self, employees):
        """A step with no duration must not divide by zero; its employee drops out of the list."""
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s0", "name": "Idle"}]}]
        step = {"id": "s0", "name": "Idle", "person": "e1", "costDriverValue": 10, "stepDuration": 0}
        summary = _run(tree, [step], employees)

        assert _steps_by_id(summary)["s0"].step_cost == 0
        assert summary.project_costs.total_project_cost == 0
        assert summary.employees.entries == []
        assert summary.employees.total_employee_cost == 0

    def test_resource_on_zero_minute_steps_costs_nothing(self, resources):
        """A resource used only by idle steps gets rate 0 rather than a division by zero."""
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s0", "name": "Idle"}]}]
        step = {"id": "s0", "name": "Idle", "additionalResources": ["r1"], "costDriverValue": 10, "stepDuration": 0}
        summary = _run(tree, [step], [], resources)

        assert _steps_by_id(summary)["s0"].resource_cost == 0
        assert summary.project_costs.total_project_cost == 0
        assert all(math.isfinite(n) for n in _numbers(summary.to_document()))

    def test_per_minute_rate(self):
        assert per_minute_rate(5000, 400) == 12.5
        assert per_minute_rate(5000, 0) == 0.0

    def test_fixed_pool_without_direct_cost_is_not_allocated(self, fixed_cost_objects):
        """Steps with no direct cost: denominator falls back to 1, every fixedCost is 0."""
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S"}]}]
        step = {"id": "s1", "name": "S", "stepDuration": 5, "costDriverValue": 2}
        summary = _run(tree, [step], [], bucket={"fixedCosts": ["f1"]}, fixed=fixed_cost_objects)

        assert _steps_by_id(summary)["s1"].fixed_cost == 0
        assert summary.project_costs.total_project_cost == 0
        assert summary.fixed_costs.total_fixed_cost == 1000

    def test_idempotent(self, employees, resources, fixed_cost_objects, step_a, step_b, single_category_tree):
        args = (
            single_category_tree, [step_a, step_b], employees, resources,
            {"fixedCosts": ["f1"]}, fixed_cost_objects,
        )
        snapshot = copy.deepcopy(args)
        first = generate_project_summary(*args).to_document()
        second = generate_project_summary(*args).to_document()
        assert first == second
        assert args == snapshot


# ===========================================================================
# Project scoping
# ===========================================================================

class TestScoping:

    def test_orphan_tree_reference_is_excluded(self, employees, step_a):
        tree = [{
            "id": "c1", "label": "L",
            "children": [{"id": "s1", "name": "S1"}, {"id": "ghost", "name": "Deleted step"}],
        }]
        summary = _run(tree, [step_a], employees)

        assert [s.step_id for s in summary.project_costs.categories[0].steps] == ["s1"]
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

    def test_steps_outside_the_tree_do_not_dilute_rates(self, employees, step_a, step_b):
        """s2 is in the catalog but not the tree: e1's 150 in-project minutes carry the whole salary."""
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a, step_b], employees)

        assert set(_steps_by_id(summary)) == {"s1"}
        assert summary.employees.entries[0].total_minutes == 150
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

    def test_unknown_employee_costs_zero(self, step_a):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a], employees=[])

        assert _steps_by_id(summary)["s1"].employee_cost == 0
        entry = summary.employees.entries[0]
        assert entry.jobtitel == ""
        assert entry.per_minute_cost == 0

    def test_first_duplicate_catalog_step_wins(self, employees, step_a):
        duplicate = {**step_a, "stepDuration": 50}
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a, duplicate], employees)

        assert _steps_by_id(summary)["s1"].minutes == 150

    def test_bucket_employee_and_resource_lists_are_ignored(
        self, employees, resources, step_a, step_b, single_category_tree
    ):
        """Only bucket.fixedCosts feeds the engine; the other two lists never scope participation."""
        a = {**step_a, "additionalResources": ["r1"]}
        steps = [a, step_b]
        plain = _run(single_category_tree, steps, employees, resources, bucket={})
        scoped = _run(
            single_category_tree, steps, employees, resources,
            bucket={"employees": ["e2"], "resources": ["r2"]},
        )
        assert plain.to_document() == scoped.to_document()

    def test_unknown_fixed_cost_ids_are_dropped(self, employees, step_a, fixed_cost_objects):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a], employees, bucket={"fixedCosts": ["nope", "f2"]}, fixed=fixed_cost_objects)

        assert [o.id for o in summary.fixed_costs.objects] == ["f2"]
        assert summary.fixed_costs.total_fixed_cost == 500


# ===========================================================================
# Tree handling
# ===========================================================================

class TestTree:

    def test_legacy_and_tagged_trees_agree(self, employees, step_a, step_b, single_category_tree):
        tagged = [{
            "kind": "category", "id": "c1", "label": "Beauftragung", "color": "#2563eb",
            "children": [
                {"kind": "step", "id": "s1", "name": "Transportbedarf überprüfen"},
                {"kind": "step", "id": "s2", "name": "Angebot vorbereiten"},
            ],
        }]
        legacy = _run(single_category_tree, [step_a, step_b], employees)
        modern = _run(tagged, [step_a, step_b], employees)
        assert legacy.to_document() == modern.to_document()

    def test_nested_category_rolls_up(self, employees, step_a, step_b):
        tree = [{
            "id": "parent", "label": "Transport",
            "children": [
                {"id": "s1", "name": "S1"},
                {"id": "child", "label": "Beladung", "children": [{"id": "s2", "name": "S2"}]},
            ],
        }]
        summary = _run(tree, [step_a, step_b], employees)

        parent = summary.project_costs.categories[0]
        assert [s.step_id for s in parent.steps] == ["s1", "s2"]
        assert parent.total_category_cost == pytest.approx(5000)
        assert parent.category_color == ""

    def test_collect_step_ids(self):
        tree = parse_tree([{
            "id": "a", "label": "A",
            "children": [
                {"id": "s1", "name": "S1"},
                {"id": "b", "label": "B", "children": [{"id": "s2", "name": "S2"}]},
            ],
        }])
        assert collect_category_step_ids(tree[0]) == ["s1", "s2"]
        assert collect_step_ids(tree) == {"s1", "s2"}

    def test_accepts_model_instances(self, employees, step_a):
        tree = [CategoryNode.model_validate({"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]})]
        summary = _run(tree, [step_a], employees)
        assert summary.project_costs.total_project_cost == pytest.approx(5000)


# ===========================================================================
# Coercion and boundary errors
# ===========================================================================

class TestInputHandling:

    def test_numeric_strings_are_parsed(self, employees, step_a):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        step = {**step_a, "stepDuration": "5", "costDriverValue": "30"}
        salaries = [{**employees[0], "monthlySalaryEuro": "5000,00"}]
        summary = _run(tree, [step], salaries)
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

    def test_non_numeric_value_coerces_to_zero_with_warning(self, employees, step_a, caplog):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        step = {**step_a, "costDriverValue": "dreißig"}
        with caplog.at_level(logging.WARNING, logger="locoman-engine"):
            summary = _run(tree, [step], employees)

        assert _steps_by_id(summary)["s1"].minutes == 0
        assert summary.project_costs.total_project_cost == 0
        assert any("dreißig" in r.getMessage() for r in caplog.records)

    def test_missing_fields_default_to_zero(self, employees):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [{"id": "s1"}], employees)
        step = _steps_by_id(summary)["s1"]
        assert step.minutes == 0
        assert step.employee_ids == []

    def test_null_step_name_and_category_label_are_costed(self, employees, step_a):
        tree = [{"id": "c1", "label": None, "children": [{"id": "s1", "name": None}]}]
        summary = _run(tree, [step_a], employees)

        category = summary.project_costs.categories[0]
        assert category.category_label == ""
        assert category.total_category_cost == pytest.approx(5000)

    def test_numeric_tree_id_matches_numeric_catalog_id(self, employees, step_a):
        tree = [{"id": 1, "label": "L", "children": [{"id": 7, "name": "S1"}]}]
        step = {**step_a, "id": 7}
        summary = _run(tree, [step], employees)

        assert "7" in _steps_by_id(summary)
        assert summary.project_costs.categories[0].category_id == "1"
        assert summary.project_costs.total_project_cost == pytest.approx(5000)

    def test_integer_beyond_float_range_coerces_to_zero(self, employees, step_a, caplog):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        step = json.loads(json.dumps(step_a)[:-1] + ', "costDriverValue": 1' + "0" * 400 + "}")
        with caplog.at_level(logging.WARNING, logger="locoman-engine"):
            summary = _run(tree, [step], employees)

        assert _steps_by_id(summary)["s1"].minutes == 0
        assert summary.project_costs.total_project_cost == 0
        assert any("out of float range" in r.getMessage() for r in caplog.records)

    def test_minutes_overflow_coerces_to_zero(self, employees, step_a, caplog):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        step = {**step_a, "stepDuration": 1e200, "costDriverValue": 1e200}
        with caplog.at_level(logging.WARNING, logger="locoman-engine"):
            summary = _run(tree, [step], employees, bucket={"fixedCosts": []})

        assert _steps_by_id(summary)["s1"].minutes == 0
        assert all(math.isfinite(n) for n in _numbers(summary.to_document()))
        assert any("minutes overflow" in r.getMessage() for r in caplog.records)

    @pytest.mark.parametrize("bad_tree", ["not a list", {"id": "c1"}, [1, 2]])
    def test_malformed_tree_raises_type_error(self, bad_tree, employees):
        with pytest.raises(TypeError):
            _run(bad_tree, [], employees)

    def test_catalog_not_a_list_raises_type_error(self, employees):
        with pytest.raises(TypeError):
            generate_project_summary([], {"s1": {}}, employees, [], {}, [])


# ===========================================================================
# Output sections
# ===========================================================================

class TestSections:

    def test_resource_section_lists_each_referenced_resource_once(
        self, employees, resources, step_a, step_b, single_category_tree
    ):
        a = {**step_a, "additionalResources": ["r1", "r2"]}
        b = {**step_b, "additionalResources": ["r1", "missing"]}
        summary = _run(single_category_tree, [a, b], employees, resources)

        section = summary.resources
        assert [o.id for o in section.objects] == ["r1", "r2", "missing"]
        assert section.total_resource_cost == 4180
        # r1 is used for 400 min in total → €10/min
        assert _steps_by_id(summary)["s2"].resource_cost == pytest.approx(2500)

    def test_document_uses_camel_case_keys(self, employees, step_a):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        doc = _run(tree, [step_a], employees).to_document()

        assert set(doc) == {"projectCosts", "fixedCosts", "employees", "resources"}
        step = doc["projectCosts"]["categories"][0]["steps"][0]
        assert set(step) == {
            "stepId", "stepName", "minutes", "employeeIds", "employeeCost",
            "resourceIds", "resourceCost", "fixedCost", "stepCost",
        }
        assert doc["employees"]["list"][0]["employeeId"] == "e1"

    def test_reconciliation_reports_tampered_totals(self, employees, step_a):
        tree = [{"id": "c1", "label": "L", "children": [{"id": "s1", "name": "S1"}]}]
        summary = _run(tree, [step_a], employees)
        summary.project_costs.total_project_cost += 1

        problems = check_reconciliation(summary)
        assert len(problems) == 1
        assert "totalProjectCost" in problems[0]
