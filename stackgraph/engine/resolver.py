import json
import logging
from typing import Any, Dict, Iterable, Optional

from stackgraph.lib.errors import UnknownReferenceError
from stackgraph.lib.models import (
    DeferredToken,
    ExportHandle,
    Join,
    Reference,
    iter_tokens,
    transform_value,
)

logger = logging.getLogger("stackgraph.resolver")


class ReferenceResolver:
    """
    Turns references between resources of one stack into values

    A reference whose target has not been synthesized yet resolves to a
    DeferredToken. Once the target is marked synthesized the same reference
    resolves to the attribute value reported in the materialized state, or
    to a late-binding marker string when the value is only known after apply.
    Imports are delegated to the cross-stack bridge.
    """

    def __init__(
        self,
        stack_name: str,
        logical_ids: Iterable[str],
        materialized: Optional[Dict[str, Dict[str, Any]]] = None,
        bridge=None
    ) -> None:
        self.stack_name = stack_name
        self._known = set(logical_ids)
        self._materialized = materialized or {}
        self._bridge = bridge
        self._synthesized = set()

    def mark_synthesized(self, logical_id: str) -> None:
        self._synthesized.add(logical_id)

    def is_synthesized(self, logical_id: str) -> bool:
        return logical_id in self._synthesized

    def check(self, ref: Reference) -> None:
        """
        Ensure a reference targets a resource of this stack

        Raises:
            UnknownReferenceError: If the target is unknown or owned by
                another stack
        """
        if ref.stack_name is not None and ref.stack_name != self.stack_name:
            raise UnknownReferenceError(
                ref.target_id,
                scope=self.stack_name,
                detail=f"resource belongs to stack {ref.stack_name}; import it through the bridge"
            )
        if ref.target_id not in self._known:
            raise UnknownReferenceError(ref.target_id, scope=self.stack_name)

    def resolve_reference(self, ref: Reference) -> Any:
        """
        Resolve a reference to another resource of this stack

        Args:
            ref: Reference to resolve

        Returns:
            The materialized value, a late-binding marker string, or a
            DeferredToken when the target is not synthesized yet
        """
        self.check(ref)

        if ref.target_id not in self._synthesized:
            return DeferredToken(source=ref)

        attributes = self._materialized.get(ref.target_id, {})
        if ref.attribute in attributes:
            return attributes[ref.attribute]

        return ref.marker()

    def resolve_import(self, handle: ExportHandle) -> Any:
        """
        Resolve an import through the bridge

        Returns:
            The exported literal, or the import marker when the producer's
            value is itself late-bound
        """
        if self._bridge is None:
            raise UnknownReferenceError(
                f"{handle.source_stack}:{handle.output_name}",
                scope=self.stack_name,
                detail="no export bridge available"
            )

        value = self._bridge.import_value(handle)
        if isinstance(value, DeferredToken):
            return handle.marker()
        return value

    def resolve_value(self, value: Any) -> Any:
        """
        Resolve every token in a property value as far as currently possible

        Tokens whose target is still pending stay as DeferredTokens; joins are
        flattened to a string once none of their parts is deferred.
        """
        return transform_value(value, self._resolve_token, self._render_join)

    def is_materialized(self, value: Any) -> bool:
        """True when every token in the value resolves to a reported value"""
        for token in iter_tokens(value):
            if isinstance(token, DeferredToken):
                token = token.source
            if isinstance(token, ExportHandle):
                if isinstance(self._bridge.import_value(token), DeferredToken):
                    return False
            elif token.attribute not in self._materialized.get(token.target_id, {}):
                return False
        return True

    def _resolve_token(self, token: Any) -> Any:
        if isinstance(token, DeferredToken):
            token = token.source
        if isinstance(token, ExportHandle):
            return self.resolve_import(token)
        return self.resolve_reference(token)

    def _render_join(self, join: Join) -> Any:
        if next(iter_tokens(join.parts), None) is not None:
            return join
        return join.delimiter.join(render_part(part) for part in join.parts)


def render_part(part: Any) -> str:
    """Text of one join part; booleans, null and containers render as JSON"""
    if isinstance(part, str):
        return part
    if part is None or isinstance(part, (bool, dict, list)):
        return json.dumps(part, sort_keys=True)
    return str(part)
