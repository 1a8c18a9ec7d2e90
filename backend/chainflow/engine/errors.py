"""
Error taxonomy for flow execution.

Configuration and data-consistency errors are never retried: redelivering the
job cannot fix bad input or a missing row. Anything else that escapes the
executor is treated as transient and left to the work queue's retry policy.
"""


class ChainflowError(Exception):
    """Base class for all errors raised by the execution subsystem."""

    retryable = True


class ConfigurationError(ChainflowError):
    """A node or flow is configured in a way that can never succeed."""

    retryable = False


class UnknownNodeTypeError(ConfigurationError):
    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"Unknown node type: {node_type}")


class CredentialAccessError(ConfigurationError):
    """The (id, user, active) triple did not match a stored credential."""

    def __init__(self, message: str = "Credential not found or access denied"):
        super().__init__(message)


class DataConsistencyError(ChainflowError):
    """A row the execution depends on is missing."""

    retryable = False


class RunNotFoundError(DataConsistencyError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


class FlowNotFoundError(DataConsistencyError):
    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Flow not found: {flow_id}")


class RunStateError(ChainflowError):
    """A status transition was rejected by the run lifecycle rules."""

    retryable = False


class FlowValidationError(ChainflowError):
    """A trigger or API request was rejected before any run was created."""

    retryable = False


def is_retryable(error: BaseException) -> bool:
    """Return whether the work queue should redeliver after ``error``."""
    return getattr(error, "retryable", True)
