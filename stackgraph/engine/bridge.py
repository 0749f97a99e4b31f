import logging
from typing import Any, Dict, List, Tuple

from stackgraph.lib.errors import UnknownReferenceError, UnresolvedExportError
from stackgraph.lib.models import (
    CrossStackExport,
    DeferredToken,
    ExportHandle,
    StackState,
)

logger = logging.getLogger("stackgraph.bridge")


class OutputBridge:
    """
    Export table through which one stack's outputs reach another stack

    The table is append-only: a producer publishes its outputs once, after
    synthesis, and consumers only read. Handles can be created for any
    declared output, but consuming one before its producer is published
    fails.
    """

    def __init__(self) -> None:
        self._stacks = {}
        self._exports: Dict[Tuple[str, str], CrossStackExport] = {}
        self._published = set()

    def register(self, stack) -> None:
        if stack.name in self._stacks:
            raise ValueError(f"Stack {stack.name} already registered")
        self._stacks[stack.name] = stack

    @property
    def exports(self) -> List[CrossStackExport]:
        return list(self._exports.values())

    def export(self, stack_name: str, output_name: str) -> ExportHandle:
        """
        Create a handle on a stack output

        Args:
            stack_name: Producer stack
            output_name: Output declared by the producer

        Returns:
            Handle to embed in a consumer's properties

        Raises:
            UnknownReferenceError: If the stack or output is not declared
        """
        stack = self._stacks.get(stack_name)
        if stack is None:
            raise UnknownReferenceError(f"{stack_name}:{output_name}", detail="unknown stack")
        if output_name not in {output.name for output in stack.outputs}:
            raise UnknownReferenceError(f"{stack_name}:{output_name}", detail="unknown output")

        return ExportHandle(source_stack=stack_name, output_name=output_name)

    def is_available(self, handle: ExportHandle) -> bool:
        return (handle.source_stack, handle.output_name) in self._exports

    def is_published(self, stack_name: str) -> bool:
        return stack_name in self._published

    def require(self, handle: ExportHandle) -> CrossStackExport:
        """
        Look up a published export

        A producer synthesized outside the composition root is published on
        first use.

        Raises:
            UnresolvedExportError: If the producer has not been synthesized
            UnknownReferenceError: If no such stack or output exists
        """
        key = (handle.source_stack, handle.output_name)
        entry = self._exports.get(key)
        if entry is not None:
            return entry

        stack = self._stacks.get(handle.source_stack)
        if stack is None:
            raise UnknownReferenceError(
                f"{handle.source_stack}:{handle.output_name}",
                detail="unknown stack"
            )
        if stack.state not in (StackState.SYNTHESIZED, StackState.EXPORTED):
            raise UnresolvedExportError(handle.source_stack, handle.output_name)

        if not self.is_published(stack.name):
            self.publish(stack)
            entry = self._exports.get(key)
            if entry is not None:
                return entry

        raise UnknownReferenceError(
            f"{handle.source_stack}:{handle.output_name}",
            detail="unknown output"
        )

    def import_value(self, handle: ExportHandle) -> Any:
        """The exported literal, or a DeferredToken when it is late-bound"""
        return self.require(handle).value

    def publish(self, stack) -> List[CrossStackExport]:
        """
        Append a synthesized stack's outputs to the export table

        Args:
            stack: Stack in SYNTHESIZED state

        Returns:
            The entries added
        """
        if stack.manifest is None:
            raise UnresolvedExportError(stack.name, "*")
        if stack.name in self._published:
            raise ValueError(f"Outputs of stack {stack.name} already published")
        self._published.add(stack.name)

        published = []
        for name, output in stack.manifest.outputs.items():
            if output.resolved:
                value = output.value
            else:
                value = DeferredToken(source=ExportHandle(source_stack=stack.name, output_name=name))

            entry = CrossStackExport(source_stack=stack.name, output_name=name, value=value)
            self._exports[(stack.name, name)] = entry
            published.append(entry)

        if published:
            stack.mark_exported()

        logger.info({
            "message": "Outputs published",
            "stack": stack.name,
            "exports": [entry.output_name for entry in published],
            "deferred": [entry.output_name for entry in published if not entry.is_resolved]
        })

        return published
