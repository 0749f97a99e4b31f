"""
stackgraph - declarative resource graphs synthesized into ordered manifests
"""

__version__ = "0.1.0"

from stackgraph.engine.bridge import OutputBridge
from stackgraph.engine.composition import App
from stackgraph.engine.stack import Stack
from stackgraph.lib.errors import (
    CyclicDependencyError,
    DuplicateLogicalIdError,
    StackSealedError,
    SynthesisError,
    SynthesisStalledError,
    UnknownReferenceError,
    UnresolvedExportError,
)
from stackgraph.lib.models import (
    DeferredToken,
    ExportHandle,
    Join,
    Literal,
    MaterializedState,
    Reference,
    ResourceNode,
    StackState,
    SynthesizedManifest,
)

__all__ = [
    "__version__",
    "App",
    "OutputBridge",
    "Stack",
    "CyclicDependencyError",
    "DuplicateLogicalIdError",
    "StackSealedError",
    "SynthesisError",
    "SynthesisStalledError",
    "UnknownReferenceError",
    "UnresolvedExportError",
    "DeferredToken",
    "ExportHandle",
    "Join",
    "Literal",
    "MaterializedState",
    "Reference",
    "ResourceNode",
    "StackState",
    "SynthesizedManifest",
]
