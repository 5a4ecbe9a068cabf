class ConfigurationError(ValueError):
    """Invalid hyperparameter, shape or serialized network description."""


class UnsupportedOperation(NotImplementedError):
    """Operation not defined for the given layer kind."""
