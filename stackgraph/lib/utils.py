import json
import logging
import os
import time
import traceback
from functools import wraps
from typing import Any, Callable, Dict

from pythonjsonlogger.json import JsonFormatter

from stackgraph.config import LOG_LEVEL

# Configure logging
logger = logging.getLogger("stackgraph")
logHandler = logging.StreamHandler()
formatter = JsonFormatter(
    fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logHandler.setFormatter(formatter)
logger.addHandler(logHandler)
logger.setLevel(LOG_LEVEL)


def synthesis_step(func: Callable) -> Callable:
    """
    Decorator for stack synthesis methods to add logging, error reporting
    and timing

    The wrapped callable must take the stack as its first argument.

    Args:
        func: Method performing one synthesis step

    Returns:
        Wrapped method
    """
    @wraps(func)
    def wrapper(stack, *args, **kwargs):
        stack_name = getattr(stack, "name", type(stack).__name__)
        start_time = time.time()

        logger.info({
            "message": "Synthesis started",
            "stack": stack_name,
            "step": func.__name__
        })

        try:
            result = func(stack, *args, **kwargs)

            execution_time = (time.time() - start_time) * 1000
            logger.info({
                "message": "Synthesis completed",
                "stack": stack_name,
                "step": func.__name__,
                "execution_time_ms": execution_time
            })

            return result

        except Exception as e:
            execution_time = (time.time() - start_time) * 1000
            logger.error({
                "message": "Synthesis failed",
                "stack": stack_name,
                "step": func.__name__,
                "error_type": type(e).__name__,
                "error": str(e),
                "traceback": traceback.format_exc(),
                "execution_time_ms": execution_time
            })
            raise

    return wrapper


def write_json(path: str, data: Dict[str, Any]) -> str:
    """
    Write a document as canonical JSON, creating parent directories

    Args:
        path: Destination file path
        data: JSON-serializable document

    Returns:
        The path written
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
        f.write("\n")

    return path
