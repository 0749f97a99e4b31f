import logging
from typing import Dict, Iterable, List, Optional, Tuple

from stackgraph.lib.errors import (
    CyclicDependencyError,
    DuplicateLogicalIdError,
    UnknownReferenceError,
)
from stackgraph.lib.models import ResourceNode

logger = logging.getLogger("stackgraph.graph")

# DFS marking
UNVISITED, IN_PROGRESS, DONE = 0, 1, 2


class DependencyGraph:
    """
    Adjacency structure over the resources of one stack

    An edge (A, B) means B depends on A: A must be created before B.
    Neighbour lists are ordered by insertion index so every traversal is
    independent of property iteration order.
    """

    def __init__(
        self,
        nodes: List[ResourceNode],
        dependencies: Dict[str, Tuple[str, ...]],
        stack_name: Optional[str] = None
    ) -> None:
        self.stack_name = stack_name
        self.nodes = {node.logical_id: node for node in nodes}
        self.order = {node.logical_id: index for index, node in enumerate(nodes)}
        self.dependencies = dependencies

        dependents = {logical_id: [] for logical_id in self.nodes}
        for logical_id, targets in dependencies.items():
            for target in targets:
                dependents[target].append(logical_id)
        self.dependents = {
            logical_id: tuple(sorted(items, key=self.order.__getitem__))
            for logical_id, items in dependents.items()
        }

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self.nodes

    def node(self, logical_id: str) -> ResourceNode:
        return self.nodes[logical_id]

    def edges(self) -> List[Tuple[str, str]]:
        """All (dependency, dependent) pairs in insertion order"""
        return [
            (target, logical_id)
            for logical_id in self.nodes
            for target in self.dependencies[logical_id]
        ]


def build(nodes: Iterable[ResourceNode], stack_name: Optional[str] = None) -> DependencyGraph:
    """
    Build the dependency graph of a stack

    Dependencies inferred from references in the property bag and the
    explicit depends-on hints are merged once per node before the cycle
    check.

    Args:
        nodes: Resources in declaration order
        stack_name: Owning stack, used to reject foreign references

    Returns:
        Acyclic dependency graph

    Raises:
        DuplicateLogicalIdError: If two nodes share a logical id
        UnknownReferenceError: If a dependency targets an undeclared node
        CyclicDependencyError: If the dependencies form a cycle
    """
    nodes = list(nodes)
    order = {}
    for index, node in enumerate(nodes):
        if node.logical_id in order:
            raise DuplicateLogicalIdError(node.logical_id, stack_name or "")
        order[node.logical_id] = index

    dependencies = {}
    for node in nodes:
        for ref in node.references():
            if stack_name and ref.stack_name and ref.stack_name != stack_name:
                raise UnknownReferenceError(
                    ref.target_id,
                    scope=stack_name,
                    detail=f"referenced from {node.logical_id} but owned by stack {ref.stack_name}"
                )

        merged = node.dependency_ids()
        for target in merged:
            if target not in order:
                raise UnknownReferenceError(
                    target,
                    scope=stack_name,
                    detail=f"referenced from {node.logical_id}"
                )
        dependencies[node.logical_id] = tuple(sorted(merged, key=order.__getitem__))

    graph = DependencyGraph(nodes, dependencies, stack_name=stack_name)

    cycle = find_cycle(graph)
    if cycle:
        raise CyclicDependencyError(cycle)

    logger.debug({
        "message": "Dependency graph built",
        "stack": stack_name,
        "nodes": len(graph),
        "edges": len(graph.edges())
    })

    return graph


def find_cycle(graph: DependencyGraph) -> Optional[List[str]]:
    """
    Depth-first search with three-colour marking

    Returns:
        The first cycle found, as a dependency chain whose first node is
        repeated at the end, or None when the graph is acyclic
    """
    color = {logical_id: UNVISITED for logical_id in graph.nodes}

    for root in graph.nodes:
        if color[root] != UNVISITED:
            continue

        color[root] = IN_PROGRESS
        path = [root]
        stack = [(root, iter(graph.dependencies[root]))]

        while stack:
            current, targets = stack[-1]
            for target in targets:
                if color[target] == IN_PROGRESS:
                    # Back-edge
                    return path[path.index(target):] + [target]
                if color[target] == UNVISITED:
                    color[target] = IN_PROGRESS
                    path.append(target)
                    stack.append((target, iter(graph.dependencies[target])))
                    break
            else:
                color[current] = DONE
                path.pop()
                stack.pop()

    return None
