from __future__ import annotations


class TitanError(RuntimeError):
    """Base class for every fatal condition; the CLI maps these to exit code 1."""


class ConfigurationError(TitanError):
    pass


class ConnectivityError(TitanError):
    pass


class InitiationError(TitanError):
    pass


class MalformedResponse(TitanError):
    pass


class ScanTimeoutError(TitanError, TimeoutError):
    pass


class StreamTerminatedError(TitanError):
    pass


class RenderError(TitanError):
    pass


class StateTransitionError(TitanError):
    pass
