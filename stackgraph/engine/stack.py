import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from stackgraph.engine import graph_builder, synthesizer
from stackgraph.engine.resolver import ReferenceResolver
from stackgraph.lib.errors import (
    DuplicateLogicalIdError,
    StackSealedError,
    UnknownReferenceError,
)
from stackgraph.lib.models import (
    ResourceNode,
    StackOutput,
    StackState,
    SynthesizedManifest,
)
from stackgraph.lib.utils import synthesis_step

logger = logging.getLogger("stackgraph.stack")

NodeOrId = Union[ResourceNode, str]


class Stack:
    """
    Named, isolated collection of resource declarations and outputs

    A stack accepts declarations while BUILDING. Synthesis seals it for
    good: it moves through SYNTHESIZING to SYNTHESIZED (or FAILED), and to
    EXPORTED once the composition root publishes its outputs.
    """

    def __init__(
        self,
        scope=None,
        name: str = "Stack",
        region: Optional[str] = None,
        description: Optional[str] = None
    ) -> None:
        self.name = name
        self.region = region
        self.description = description
        self.state = StackState.BUILDING
        self.manifest: Optional[SynthesizedManifest] = None

        self._scope = scope
        self._nodes: Dict[str, ResourceNode] = {}
        self._outputs: Dict[str, StackOutput] = {}

        if scope is not None:
            scope.add_stack(self)

    @property
    def stack_name(self) -> str:
        return self.name

    @property
    def bridge(self):
        return getattr(self._scope, "bridge", None)

    @property
    def nodes(self) -> List[ResourceNode]:
        return list(self._nodes.values())

    @property
    def outputs(self) -> List[StackOutput]:
        return list(self._outputs.values())

    def get(self, logical_id: str) -> ResourceNode:
        try:
            return self._nodes[logical_id]
        except KeyError:
            raise UnknownReferenceError(logical_id, scope=self.name) from None

    def declare(
        self,
        kind: str,
        properties: Optional[Dict[str, Any]] = None,
        logical_id: Optional[str] = None,
        depends_on: Optional[Iterable[NodeOrId]] = None
    ) -> ResourceNode:
        """
        Declare a resource in this stack

        Args:
            kind: Resource type, e.g. "AWS::EC2::VPC"
            properties: Property bag; values may embed references, joins
                and imports
            logical_id: Explicit logical id; generated from the kind when
                omitted
            depends_on: Resources that must exist before this one

        Returns:
            The declared resource node

        Raises:
            StackSealedError: If synthesis has started
            DuplicateLogicalIdError: If the logical id is taken
            UnresolvedExportError: If an imported export is not published yet
        """
        self._ensure_building()

        if logical_id is None:
            logical_id = self._next_logical_id(kind)
        elif logical_id in self._nodes:
            raise DuplicateLogicalIdError(logical_id, self.name)

        node = ResourceNode(
            logical_id=logical_id,
            kind=kind,
            properties=properties or {},
            explicit_depends_on=[self._logical_id_of(item) for item in depends_on or []],
            stack_name=self.name,
            insertion_index=len(self._nodes)
        )

        for ref in node.references():
            if ref.stack_name is not None and ref.stack_name != self.name:
                raise UnknownReferenceError(
                    ref.target_id,
                    scope=self.name,
                    detail=f"resource belongs to stack {ref.stack_name}; import it through the bridge"
                )

        for handle in node.export_handles():
            if self.bridge is None:
                raise UnknownReferenceError(
                    f"{handle.source_stack}:{handle.output_name}",
                    scope=self.name,
                    detail="stack has no export bridge"
                )
            self.bridge.require(handle)

        self._nodes[logical_id] = node
        return node

    def add_dependency(self, dependent: NodeOrId, dependency: NodeOrId) -> None:
        """Require `dependency` to be created before `dependent`"""
        self._ensure_building()

        node = self.get(self._logical_id_of(dependent))
        target = self._logical_id_of(dependency)
        if target not in node.explicit_depends_on:
            node.explicit_depends_on.append(target)

    def output(
        self,
        name: str,
        value: Any,
        description: Optional[str] = None,
        export_name: Optional[str] = None
    ) -> StackOutput:
        """Publish a named value; it may embed references to this stack's resources"""
        self._ensure_building()

        if name in self._outputs:
            raise ValueError(f"Output {name} already declared in stack {self.name}")

        output = StackOutput(
            name=name,
            value=value,
            description=description,
            export_name=export_name
        )
        self._outputs[name] = output
        return output

    def imports(self) -> List[str]:
        """Stacks whose exports this stack consumes, in first-use order"""
        sources = []
        for node in self._nodes.values():
            for handle in node.export_handles():
                if handle.source_stack not in sources:
                    sources.append(handle.source_stack)
        return sources

    @synthesis_step
    def synthesize(self, materialized: Optional[Dict[str, Dict[str, Any]]] = None) -> SynthesizedManifest:
        """
        Build the dependency graph and emit this stack's manifest

        Synthesis is all-or-nothing: on failure the stack ends FAILED and no
        manifest is kept.

        Args:
            materialized: Attribute values already reported for this stack,
                keyed by logical id

        Returns:
            The synthesized manifest
        """
        self._ensure_building()
        self.state = StackState.SYNTHESIZING

        try:
            graph = graph_builder.build(self.nodes, stack_name=self.name)
            resolver = ReferenceResolver(
                self.name,
                graph.nodes,
                materialized=materialized,
                bridge=self.bridge
            )
            manifest = synthesizer.synthesize(
                graph,
                resolver,
                outputs=self.outputs,
                imports=self.imports()
            )
        except Exception:
            self.state = StackState.FAILED
            raise

        self.manifest = manifest
        self.state = StackState.SYNTHESIZED
        return manifest

    def mark_exported(self) -> None:
        if self.state != StackState.SYNTHESIZED:
            raise StackSealedError(self.name, self.state.value)
        self.state = StackState.EXPORTED

    def _ensure_building(self) -> None:
        if self.state != StackState.BUILDING:
            raise StackSealedError(self.name, self.state.value)

    def _next_logical_id(self, kind: str) -> str:
        base = re.sub(r"[^A-Za-z0-9]", "", kind.split("::")[-1]) or "Resource"
        candidate = base
        suffix = 1
        while candidate in self._nodes:
            suffix += 1
            candidate = f"{base}{suffix}"
        return candidate

    def _logical_id_of(self, item: NodeOrId) -> str:
        if isinstance(item, ResourceNode):
            if item.stack_name is not None and item.stack_name != self.name:
                raise UnknownReferenceError(
                    item.logical_id,
                    scope=self.name,
                    detail=f"resource belongs to stack {item.stack_name}"
                )
            return item.logical_id
        return item

    def __repr__(self) -> str:
        return f"<Stack {self.name} [{self.state.value}] {len(self._nodes)} resources>"
