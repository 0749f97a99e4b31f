from typing import List, Optional


class SynthesisError(Exception):
    """Base class for structural faults in a declared resource graph"""


class UnknownReferenceError(SynthesisError):
    """A reference points at a resource or export that is not in scope"""

    def __init__(self, target: str, scope: Optional[str] = None, detail: Optional[str] = None):
        self.target = target
        self.scope = scope
        message = f"Unknown reference target: {target}"
        if scope:
            message += f" (in {scope})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class DuplicateLogicalIdError(SynthesisError):
    """A logical id was declared twice in the same stack"""

    def __init__(self, logical_id: str, stack_name: str):
        self.logical_id = logical_id
        self.stack_name = stack_name
        super().__init__(f"Logical id {logical_id} already declared in stack {stack_name}")


class CyclicDependencyError(SynthesisError):
    """The dependency graph of a stack contains a cycle"""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__("Cyclic dependency: " + " -> ".join(self.cycle))


class SynthesisStalledError(SynthesisError):
    """Topological emission could not make progress"""

    def __init__(self, remaining: List[str], detail: Optional[str] = None):
        self.remaining = list(remaining)
        message = "Synthesis stalled with unresolved resources: " + ", ".join(self.remaining)
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class StackSealedError(SynthesisError):
    """A stack was mutated or re-synthesized after synthesis began"""

    def __init__(self, stack_name: str, state: str):
        self.stack_name = stack_name
        self.state = state
        super().__init__(f"Stack {stack_name} is sealed (state: {state})")


class UnresolvedExportError(SynthesisError):
    """A cross-stack export was consumed before its source stack was synthesized"""

    def __init__(self, source_stack: str, output_name: str):
        self.source_stack = source_stack
        self.output_name = output_name
        super().__init__(
            f"Export {source_stack}:{output_name} is not available; "
            f"synthesize {source_stack} before building its consumers"
        )
