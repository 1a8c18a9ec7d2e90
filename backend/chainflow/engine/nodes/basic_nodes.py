"""
Control and utility nodes: condition, delay, log and merge.

All four raise on bad configuration; none of them talks to an external system.
"""

import json
import time
from typing import Any, Dict

from simpleeval import EvalWithCompoundTypes

from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import NodeHandler, require
from chainflow.utils.time_utils import utc_now

_SAFE_FUNCTIONS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "round": round,
}


def evaluate_expression(expression: str, input_data: Any) -> Any:
    """
    Evaluate ``expression`` in a sandbox where ``input`` is the node input.

    Dictionary keys are reachable both as ``input['price']`` and
    ``input.price``. Lower-case ``true``, ``false`` and ``null`` are accepted
    alongside the Python spellings.
    """
    names = {
        "input": input_data,
        "true": True,
        "false": False,
        "null": None,
        "none": None,
        "True": True,
        "False": False,
        "None": None,
    }
    evaluator = EvalWithCompoundTypes(names=names, functions=_SAFE_FUNCTIONS)
    return evaluator.eval(expression)


class ConditionNodeHandler(NodeHandler):
    """
    Evaluate a boolean expression against the input.

    Config: ``{expression}``. Output: ``{passed, expression}`` merged with the
    input keys when the input is a mapping. Evaluation errors abort the run.
    """

    type = "condition"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        expression = require(node_data, "expression")
        context.logger.info(f"condition: evaluating {expression!r}")
        try:
            passed = bool(evaluate_expression(expression, input_data))
        except Exception as e:
            context.logger.warning(f"condition: evaluation failed: {e}")
            raise ConfigurationError(f"Condition evaluation failed: {e}") from e

        context.logger.info(f"condition: result = {passed}")
        result: Dict[str, Any] = {}
        if isinstance(input_data, dict):
            result.update(input_data)
        result.update({"passed": passed, "expression": expression})
        return result


class DelayNodeHandler(NodeHandler):
    """Sleep for ``seconds`` (default 1) and pass the input through."""

    type = "delay"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        seconds = node_data.get("seconds", 1)
        try:
            seconds = float(seconds)
        except (TypeError, ValueError):
            raise ConfigurationError(f"seconds must be a number, got {seconds!r}")
        if seconds < 0:
            raise ConfigurationError("seconds must not be negative")

        context.logger.info(f"delay: waiting {seconds} seconds")
        started = time.monotonic()
        time.sleep(seconds)
        actual = round(time.monotonic() - started, 2)
        context.logger.info(f"delay: complete (waited {actual:.2f}s)")
        return {
            "delayed": True,
            "requestedSeconds": seconds,
            "actualSeconds": actual,
            "input": input_data,
        }


class LogNodeHandler(NodeHandler):
    type = "log"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        message = node_data.get("message") or "Log"
        context.logger.info(f"log: {message}")
        context.logger.info(
            f"log: input data:\n{json.dumps(input_data, indent=2, default=str)}"
        )
        return {
            "logged": True,
            "message": message,
            "input": input_data,
            "timestamp": utc_now().isoformat(),
        }


class MergeNodeHandler(NodeHandler):
    """
    Combine outputs of earlier nodes of the same run.

    Config: ``{sources: [nodeId, ...]}``; without sources every output
    produced so far is merged, in execution order. Mapping outputs are
    flattened into the result (later sources win on key clashes); the raw
    outputs stay available under ``_bySource``.
    """

    type = "merge"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        sources = node_data.get("sources")
        if sources is None:
            by_source = dict(context.node_outputs)
        else:
            if not isinstance(sources, list):
                raise ConfigurationError("sources must be a list of node ids")
            missing = [source for source in sources if source not in context.node_outputs]
            if missing:
                context.logger.warning(f"merge: no output yet for {', '.join(missing)}")
            by_source = {
                source: context.node_outputs[source]
                for source in sources
                if source in context.node_outputs
            }

        flattened: Dict[str, Any] = {}
        for output in by_source.values():
            if isinstance(output, dict):
                flattened.update(output)

        context.logger.info(f"merge: combined {len(by_source)} source(s)")
        return {
            **flattened,
            "_metadata": {
                "merged": True,
                "sources": list(by_source),
                "timestamp": utc_now().isoformat(),
            },
            "_bySource": by_source,
        }
