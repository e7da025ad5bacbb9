"""Drag-and-drop reordering of the build-task board."""
from typing import Any, Dict, Iterable, List, Tuple


def plan_reorder(tasks: Iterable[Dict[str, Any]], dragged_id: str, target_id: str) -> List[Tuple[str, int]]:
    """Compute the order writes for dropping ``dragged_id`` onto ``target_id``.

    Moving up (dragged order > target order) shifts every task with
    ``target <= order < dragged`` down the board by +1; moving down shifts
    every task with ``dragged < order <= target`` by -1. The dragged task
    takes the target's order as the last write.

    Returns an empty plan when either id is unknown or both are the same task.
    """
    tasks = list(tasks)
    by_id = {t["id"]: t for t in tasks}
    if dragged_id == target_id or dragged_id not in by_id or target_id not in by_id:
        return []

    dragged_order = by_id[dragged_id].get("order") or 0
    target_order = by_id[target_id].get("order") or 0

    plan = []
    for task in tasks:
        if task["id"] == dragged_id:
            continue
        order = task.get("order") or 0
        if dragged_order > target_order and target_order <= order < dragged_order:
            plan.append((task["id"], order + 1))
        elif dragged_order < target_order and dragged_order < order <= target_order:
            plan.append((task["id"], order - 1))

    plan.append((dragged_id, target_order))
    return plan


def apply_plan(tasks: Iterable[Dict[str, Any]], plan: List[Tuple[str, int]]) -> List[Dict[str, Any]]:
    """Return copies of ``tasks`` with the planned orders applied, sorted by order"""
    new_orders = dict(plan)
    updated = [{**t, "order": new_orders.get(t["id"], t.get("order") or 0)} for t in tasks]
    return sorted(updated, key=lambda t: t["order"])
