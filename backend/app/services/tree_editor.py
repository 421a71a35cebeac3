"""
Category tree editing — pure functions over a parsed project tree.

Every function takes the current forest and returns a new one; the input is
never mutated. Unknown category ids raise KeyError with a descriptive message.
"""
import uuid
from typing import List, Optional, Tuple

from app.models.cost_models import CategoryNode, StepRef
from app.services.defaults import palette_color


def _find(categories: List[CategoryNode], category_id: str) -> Optional[CategoryNode]:
    for cat in categories:
        if cat.id == category_id:
            return cat
        nested = _find([ch for ch in cat.children if isinstance(ch, CategoryNode)], category_id)
        if nested is not None:
            return nested
    return None


def _copy(tree: List[CategoryNode]) -> List[CategoryNode]:
    return [cat.model_copy(deep=True) for cat in tree]


def add_category(
    tree: List[CategoryNode],
    label: str,
    color: Optional[str] = None,
    parent_id: Optional[str] = None,
) -> Tuple[List[CategoryNode], CategoryNode]:
    """Append a category at the top level, or under ``parent_id`` when given."""
    new_tree = _copy(tree)
    category = CategoryNode(
        id=str(uuid.uuid4()),
        label=label,
        color=color or palette_color(len(new_tree)),
    )
    if parent_id is None:
        new_tree.append(category)
    else:
        parent = _find(new_tree, parent_id)
        if parent is None:
            raise KeyError(f"Unknown category '{parent_id}'")
        parent.children.append(category)
    return new_tree, category


def remove_category(tree: List[CategoryNode], category_id: str) -> List[CategoryNode]:
    """Drop a category (top-level or nested) together with everything under it."""
    if _find(tree, category_id) is None:
        raise KeyError(f"Unknown category '{category_id}'")

    def _prune(nodes):
        kept = []
        for node in nodes:
            if isinstance(node, CategoryNode):
                if node.id == category_id:
                    continue
                node.children = _prune(node.children)
            kept.append(node)
        return kept

    return _prune(_copy(tree))


def add_step(tree: List[CategoryNode], category_id: str, step_id: str, name: str) -> List[CategoryNode]:
    """Reference a catalog step from a category. Re-adding the same step is a no-op."""
    new_tree = _copy(tree)
    category = _find(new_tree, category_id)
    if category is None:
        raise KeyError(f"Unknown category '{category_id}'")
    if not any(isinstance(ch, StepRef) and ch.id == step_id for ch in category.children):
        category.children.append(StepRef(id=step_id, name=name))
    return new_tree


def remove_step(tree: List[CategoryNode], category_id: str, step_id: str) -> List[CategoryNode]:
    """Remove a step reference from one category; nested categories are kept."""
    new_tree = _copy(tree)
    category = _find(new_tree, category_id)
    if category is None:
        raise KeyError(f"Unknown category '{category_id}'")
    category.children = [
        ch for ch in category.children
        if not (isinstance(ch, StepRef) and ch.id == step_id)
    ]
    return new_tree


def tree_to_document(tree: List[CategoryNode]) -> list:
    """JSON-ready list for persistence (tagged form)."""
    return [cat.model_dump(mode="json") for cat in tree]
