import os

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Synthesis output
SYNTH_OUTPUT_DIR = os.environ.get("SYNTH_OUTPUT_DIR", "synth.out")
MANIFEST_SUFFIX = ".manifest.json"

# Number of independent stacks synthesized at once
SYNTH_CONCURRENCY = int(os.environ.get("SYNTH_CONCURRENCY", "4"))

# Attribute values reported by the applier after a previous apply
SYNTH_STATE_FILE = os.environ.get("SYNTH_STATE_FILE")
