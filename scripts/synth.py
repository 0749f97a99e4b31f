#!/usr/bin/env python3
"""
Synthesize the database and service stacks into JSON manifests
"""

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from stackgraph import MaterializedState, SynthesisError
from stackgraph.config import SYNTH_CONCURRENCY, SYNTH_OUTPUT_DIR, SYNTH_STATE_FILE
from infrastructure.app import create_app
from infrastructure.config import load_config

logger = logging.getLogger("stackgraph.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synthesize infrastructure manifests")
    parser.add_argument("--env-file", help="Optional .env file with deployment settings")
    parser.add_argument("--state", default=SYNTH_STATE_FILE,
                        help="JSON file with attribute values reported by a previous apply")
    parser.add_argument("--output", default=SYNTH_OUTPUT_DIR, help="Directory for manifest files")
    parser.add_argument("--concurrency", type=int, default=SYNTH_CONCURRENCY,
                        help="Number of independent stacks synthesized at once")
    parser.add_argument("--stdout", action="store_true", help="Print manifests instead of writing files")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    try:
        config = load_config(args.env_file)
    except ValidationError as e:
        logger.error({"message": "Invalid deployment configuration", "error": str(e)})
        return 2

    try:
        state = MaterializedState.from_file(args.state) if args.state else None
    except (OSError, ValueError) as e:
        logger.error({
            "message": "Invalid materialized state",
            "state_file": args.state,
            "error": str(e)
        })
        return 2

    try:
        app = create_app(config, materialized=state, max_workers=args.concurrency)
        manifests = app.synth()
    except SynthesisError as e:
        logger.error({
            "message": "Synthesis failed",
            "error_type": type(e).__name__,
            "error": str(e)
        })
        return 1

    if args.stdout:
        for manifest in manifests.values():
            print(manifest.to_json())
        return 0

    for path in app.write(args.output):
        print(f"Wrote {path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
