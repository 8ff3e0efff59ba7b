"""Supervisory node hierarchy snapshot.

Nodes live in an arena keyed by id with explicit parent ids. Requisition
groups tie facilities to a node: a node supervises the member facilities
of its own group and, transitively, of every group below it.

Nothing prevents a cycle in the parent chain when nodes are written, so
both walks keep a visited set and raise HierarchyCycleError instead of
looping forever.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from app.middleware.exceptions import HierarchyCycleError


@dataclass(frozen=True)
class NodeRecord:
    id: str
    code: str
    parent_id: str | None = None
    facility_id: str | None = None


@dataclass(frozen=True)
class GroupRecord:
    """A requisition group: member facilities plus the programs it supports."""
    id: str
    node_id: str
    member_ids: frozenset[str] = frozenset()
    program_ids: frozenset[str] = field(default=frozenset())

    def supports(self, program_id: str | None) -> bool:
        # No program list means the group takes every program
        if program_id is None or not self.program_ids:
            return True
        return program_id in self.program_ids


class SupervisoryHierarchy:
    def __init__(
        self,
        nodes: Iterable[NodeRecord] = (),
        groups: Iterable[GroupRecord] = (),
    ):
        self._nodes: dict[str, NodeRecord] = {n.id: n for n in nodes}

        self._children: dict[str, list[str]] = defaultdict(list)
        for node in self._nodes.values():
            if node.parent_id is not None:
                self._children[node.parent_id].append(node.id)

        self._group_by_node: dict[str, GroupRecord] = {}
        self._groups_by_facility: dict[str, list[GroupRecord]] = defaultdict(list)
        for group in groups:
            self._group_by_node[group.node_id] = group
            for facility_id in group.member_ids:
                self._groups_by_facility[facility_id].append(group)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> NodeRecord | None:
        return self._nodes.get(node_id)

    def ancestors(self, node_id: str) -> list[str]:
        """The node itself followed by its parents up to the root."""
        path: list[str] = []
        seen: set[str] = set()
        current: str | None = node_id
        while current is not None:
            if current in seen:
                raise HierarchyCycleError(path + [current])
            seen.add(current)
            path.append(current)
            node = self._nodes.get(current)
            current = node.parent_id if node else None
        return path

    def descendants(self, node_id: str) -> list[str]:
        """The node itself and every node below it, depth first."""
        result: list[str] = []
        seen: set[str] = set()
        stack = [(node_id, [node_id])]
        while stack:
            current, path = stack.pop()
            if current in seen:
                raise HierarchyCycleError(path)
            seen.add(current)
            result.append(current)
            for child in self._children.get(current, ()):
                stack.append((child, path + [child]))
        return result

    def supervising_nodes(self, facility_id: str, program_id: str | None) -> list[str]:
        """Nodes whose own requisition group holds the facility for the program."""
        return [
            g.node_id
            for g in self._groups_by_facility.get(facility_id, ())
            if g.supports(program_id)
        ]

    def supervises(self, node_id: str, facility_id: str, program_id: str | None) -> bool:
        """Walk up from every group holding the facility until `node_id` shows up."""
        for start in self.supervising_nodes(facility_id, program_id):
            if node_id in self.ancestors(start):
                return True
        return False

    def supervised_facilities(self, node_id: str, program_id: str | None) -> frozenset[str]:
        """Member facilities of the groups at and below the node."""
        facilities: set[str] = set()
        for current in self.descendants(node_id):
            group = self._group_by_node.get(current)
            if group is not None and group.supports(program_id):
                facilities |= group.member_ids
        return frozenset(facilities)

    def find_cycles(self) -> list[list[str]]:
        """Every distinct cycle in the parent chain, for diagnostics."""
        cycles: list[list[str]] = []
        reported: set[frozenset[str]] = set()
        for node_id in self._nodes:
            try:
                self.ancestors(node_id)
            except HierarchyCycleError as exc:
                loop_start = exc.node_ids.index(exc.node_ids[-1])
                loop = exc.node_ids[loop_start:]
                key = frozenset(loop)
                if key not in reported:
                    reported.add(key)
                    cycles.append(loop)
        return cycles
