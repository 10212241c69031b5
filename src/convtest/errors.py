"""Exception hierarchy for discovery, execution and the host adapter."""


class ConvtestError(Exception):
    """Base class for all convtest errors."""

    pass


class RegistrationError(ConvtestError):
    """Raised when a container registers groups or tests incorrectly."""

    pass


class EntryPointError(ConvtestError):
    """Raised when a container has no entry point, or more than one."""

    pass


class AdapterError(ConvtestError):
    """Raised for protocol-level failures that are not test outcomes."""

    pass


class ContainerReferenceError(AdapterError):
    """Raised when a container reference cannot be resolved at all."""

    pass


class ResultSinkError(AdapterError):
    """Raised when the result sink fails to accept a result."""

    pass
