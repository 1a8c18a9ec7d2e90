"""
Node handler contract.

A handler returns a JSON-serialisable output on success. It either reports a
business failure inside that output (soft failure, the pipeline continues) or
raises (hard failure, the run is aborted). Each handler documents which policy
it follows.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict

from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError

_TEMPLATE = re.compile(r"\{\{input\.(\w+(?:\.\w+)*)\}\}")


class NodeHandler(ABC):
    """Base class of every node type."""

    type: str = ""

    @abstractmethod
    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        """
        Run the node.

        Args:
            node_data: The node's ``data`` configuration.
            input_data: Output of the previous node, or the run input for the first node.
            context: Run-scoped collaborators.

        Returns:
            The node output handed to the next node.
        """

    def __repr__(self):
        return f"<{type(self).__name__}(type='{self.type}')>"


def require(node_data: Dict[str, Any], field: str) -> Any:
    """Return a required configuration value or raise a configuration error."""
    value = node_data.get(field)
    if value is None or value == "":
        raise ConfigurationError(f"{field} is required")
    return value


def render_template(template: str, input_data: Any) -> str:
    """
    Replace ``{{input.a.b}}`` placeholders with values from ``input_data``.

    Unresolvable placeholders are left untouched.
    """
    if not template or not isinstance(input_data, dict):
        return template

    def _substitute(match: re.Match) -> str:
        value: Any = input_data
        for key in match.group(1).split("."):
            if not isinstance(value, dict) or key not in value:
                return match.group(0)
            value = value[key]
        return str(value)

    return _TEMPLATE.sub(_substitute, template)
