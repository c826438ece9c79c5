class L0GradError(Exception):
    """Base class for the errors raised by l0grad."""


class ConfigurationError(L0GradError, ValueError):
    """The configuration file is malformed or holds out of range values."""


class InputError(L0GradError, OSError):
    """The input image is missing or cannot be decoded."""


class FactorizationError(L0GradError):
    """The exact factorization of the linear system failed."""

    def __init__(self, message, iteration=None, channel=None, beta=None):
        super().__init__(message)
        self.iteration = iteration
        self.channel = channel
        self.beta = beta
