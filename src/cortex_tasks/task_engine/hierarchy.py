"""Parent/child graph helpers: levels, ancestor walks, cycle checks, subtrees.

Every walk keeps a visited set, so a parent graph that is already corrupt
(hand-edited ``task.json`` forming a loop) never hangs a read.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Callable, Iterable, Optional

from .model import Task, TaskHierarchy

TaskLookup = Callable[[str], Optional[Task]]


def compute_level(task: Task, lookup: TaskLookup) -> int:
    """Distance from *task* to its root, stopping at missing or repeated nodes."""
    level = 0
    visited: set[str] = {task.id}
    parent_id = task.parent_id
    while parent_id and parent_id not in visited:
        visited.add(parent_id)
        parent = lookup(parent_id)
        if parent is None:
            break
        level += 1
        parent_id = parent.parent_id
    return level


def ancestors(task: Task, lookup: TaskLookup) -> list[Task]:
    """Parent chain of *task*, root first."""
    chain: list[Task] = []
    visited: set[str] = {task.id}
    parent_id = task.parent_id
    while parent_id and parent_id not in visited:
        visited.add(parent_id)
        parent = lookup(parent_id)
        if parent is None:
            break
        chain.append(parent)
        parent_id = parent.parent_id
    chain.reverse()
    return chain


def would_create_cycle(task_id: str, new_parent_id: str, lookup: TaskLookup) -> bool:
    """Return True if re-parenting *task_id* under *new_parent_id* makes a loop.

    Walks the candidate parent's ancestor chain; meeting *task_id* on the way
    means the task would become its own ancestor.
    """
    visited: set[str] = set()
    current: Optional[str] = new_parent_id
    while current and current not in visited:
        if current == task_id:
            return True
        visited.add(current)
        node = lookup(current)
        current = node.parent_id if node else None
    return False


def children_index(tasks: Iterable[Task]) -> dict[Optional[str], list[Task]]:
    index: dict[Optional[str], list[Task]] = defaultdict(list)
    for task in tasks:
        index[task.parent_id].append(task)
    return index


def descendants(task_id: str, tasks: Iterable[Task]) -> list[Task]:
    """All tasks below *task_id*, breadth first."""
    index = children_index(tasks)
    out: list[Task] = []
    visited: set[str] = {task_id}
    queue: deque[str] = deque([task_id])
    while queue:
        current = queue.popleft()
        for child in index.get(current, []):
            if child.id in visited:
                continue
            visited.add(child.id)
            out.append(child)
            queue.append(child.id)
    return out


def post_order_ids(task_id: str, tasks: Iterable[Task]) -> list[str]:
    """Ids of the subtree rooted at *task_id*, every child before its parent."""
    index = children_index(tasks)
    order: list[str] = []
    visited: set[str] = set()
    stack: list[tuple[str, bool]] = [(task_id, False)]
    while stack:
        node_id, expanded = stack.pop()
        if expanded:
            order.append(node_id)
            continue
        if node_id in visited:
            continue
        visited.add(node_id)
        stack.append((node_id, True))
        for child in reversed(index.get(node_id, [])):
            if child.id not in visited:
                stack.append((child.id, False))
    return order


def build_hierarchy(tasks: Iterable[Task], parent_id: Optional[str] = None) -> list[TaskHierarchy]:
    """Nest *tasks* into trees starting at the children of *parent_id*."""
    index = children_index(tasks)
    visited: set[str] = set()

    def build(node_parent: Optional[str]) -> list[TaskHierarchy]:
        nodes: list[TaskHierarchy] = []
        for task in index.get(node_parent, []):
            if task.id in visited:
                continue
            visited.add(task.id)
            nodes.append(TaskHierarchy(task=task, children=build(task.id), depth=task.level))
        return nodes

    return build(parent_id)
