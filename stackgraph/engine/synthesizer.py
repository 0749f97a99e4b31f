import heapq
import logging
from typing import Any, Dict, Iterable, List, Optional

from stackgraph.engine.graph_builder import DependencyGraph
from stackgraph.engine.resolver import ReferenceResolver
from stackgraph.lib.errors import SynthesisStalledError
from stackgraph.lib.models import (
    DeferredToken,
    ManifestEntry,
    OutputEntry,
    StackOutput,
    SynthesizedManifest,
    iter_tokens,
)

logger = logging.getLogger("stackgraph.synthesizer")


def synthesize(
    graph: DependencyGraph,
    resolver: ReferenceResolver,
    outputs: Optional[Iterable[StackOutput]] = None,
    imports: Optional[List[str]] = None
) -> SynthesizedManifest:
    """
    Order a dependency graph and emit the stack manifest

    Ready nodes are emitted lowest insertion index first. Emitting a node
    resolves, in the pending property bags of its dependents, every token
    that was waiting on it.

    Args:
        graph: Acyclic dependency graph of the stack
        resolver: Resolver bound to the same stack
        outputs: Outputs declared by the stack
        imports: Names of stacks the manifest imports from

    Returns:
        The synthesized manifest

    Raises:
        SynthesisStalledError: If emission cannot make progress
    """
    pending = {
        logical_id: resolver.resolve_value(node.properties)
        for logical_id, node in graph.nodes.items()
    }
    remaining = {
        logical_id: len(targets)
        for logical_id, targets in graph.dependencies.items()
    }

    ready = [(graph.order[logical_id], logical_id) for logical_id, count in remaining.items() if count == 0]
    heapq.heapify(ready)

    resources = []
    while ready:
        _, logical_id = heapq.heappop(ready)
        properties = pending.pop(logical_id)

        if _has_deferred(properties):
            raise SynthesisStalledError(
                [logical_id] + sorted(pending, key=graph.order.__getitem__),
                detail=f"{logical_id} still waits on an unsynthesized resource"
            )

        node = graph.node(logical_id)
        resources.append(ManifestEntry(
            logical_id=logical_id,
            kind=node.kind,
            properties=properties,
            depends_on=list(graph.dependencies[logical_id])
        ))
        resolver.mark_synthesized(logical_id)

        for dependent in graph.dependents[logical_id]:
            pending[dependent] = resolver.resolve_value(pending[dependent])
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, (graph.order[dependent], dependent))

    if pending:
        raise SynthesisStalledError(sorted(pending, key=graph.order.__getitem__))

    manifest = SynthesizedManifest(
        stack_name=graph.stack_name or resolver.stack_name,
        resources=resources,
        outputs=_resolve_outputs(resolver, outputs or []),
        imports=list(imports or [])
    )

    logger.debug({
        "message": "Manifest emitted",
        "stack": manifest.stack_name,
        "resources": len(resources),
        "outputs": len(manifest.outputs)
    })

    return manifest


def _resolve_outputs(resolver: ReferenceResolver, outputs: Iterable[StackOutput]) -> Dict[str, OutputEntry]:
    resolved = {}
    for output in outputs:
        value = resolver.resolve_value(output.value)
        if _has_deferred(value):
            raise SynthesisStalledError([output.name], detail="output references an unsynthesized resource")

        resolved[output.name] = OutputEntry(
            value=value,
            description=output.description,
            export_name=output.export_name,
            resolved=resolver.is_materialized(output.value)
        )
    return resolved


def _has_deferred(value: Any) -> bool:
    return any(isinstance(token, DeferredToken) for token in iter_tokens(value))
