import concurrent.futures
import logging
import os
from typing import Dict, List, Optional

from stackgraph.config import MANIFEST_SUFFIX, SYNTH_CONCURRENCY
from stackgraph.engine.bridge import OutputBridge
from stackgraph.lib.models import MaterializedState, StackState, SynthesizedManifest
from stackgraph.lib.utils import write_json

logger = logging.getLogger("stackgraph.app")


class App:
    """
    Composition root: owns the stacks, the export bridge and the state
    reported by previous applies

    A consumer stack may only be constructed after its producers went
    through `synthesize`, so the stacks still BUILDING when `synth` runs
    never depend on each other.
    """

    def __init__(
        self,
        materialized: Optional[MaterializedState] = None,
        max_workers: int = SYNTH_CONCURRENCY
    ) -> None:
        self.bridge = OutputBridge()
        self.materialized = materialized or MaterializedState()
        self.max_workers = max(1, max_workers)
        self._stacks = {}

    @property
    def stacks(self) -> List:
        return list(self._stacks.values())

    def add_stack(self, stack) -> None:
        if stack.name in self._stacks:
            raise ValueError(f"Stack {stack.name} already exists")
        self.bridge.register(stack)
        self._stacks[stack.name] = stack

    def stack(self, name: str):
        return self._stacks[name]

    def synthesize(self, stack) -> SynthesizedManifest:
        """
        Synthesize one stack and publish its outputs

        Args:
            stack: Stack registered with this app

        Returns:
            The stack's manifest
        """
        manifest = stack.synthesize(self.materialized.for_stack(stack.name))
        self.bridge.publish(stack)
        return manifest

    def synth(self) -> Dict[str, SynthesizedManifest]:
        """
        Synthesize every stack still being built, then publish their outputs

        Stacks that synthesized are published even when another stack
        failed; the first failure in registration order is raised afterwards.

        Returns:
            Manifests of all stacks, in registration order
        """
        pending = [stack for stack in self._stacks.values() if stack.state == StackState.BUILDING]
        failures = []

        if len(pending) > 1 and self.max_workers > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(stack.synthesize, self.materialized.for_stack(stack.name))
                    for stack in pending
                ]
                for future in futures:
                    error = future.exception()
                    if error is not None:
                        failures.append(error)
        else:
            for stack in pending:
                try:
                    stack.synthesize(self.materialized.for_stack(stack.name))
                except Exception as e:
                    failures.append(e)

        # Also covers stacks synthesized directly through Stack.synthesize
        for stack in self._stacks.values():
            if stack.state == StackState.SYNTHESIZED and not self.bridge.is_published(stack.name):
                self.bridge.publish(stack)

        if failures:
            raise failures[0]

        logger.info({
            "message": "App synthesized",
            "stacks": [stack.name for stack in self._stacks.values()]
        })

        return self.manifests()

    def manifests(self) -> Dict[str, SynthesizedManifest]:
        return {
            name: stack.manifest
            for name, stack in self._stacks.items()
            if stack.manifest is not None
        }

    def write(self, output_dir: str) -> List[str]:
        """
        Write one canonical JSON manifest per synthesized stack

        Returns:
            Paths written
        """
        paths = []
        for name, manifest in self.manifests().items():
            path = os.path.join(output_dir, f"{name}{MANIFEST_SUFFIX}")
            paths.append(write_json(path, manifest.to_dict()))
        return paths
