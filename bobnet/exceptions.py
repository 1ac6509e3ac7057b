"""
exceptions.py
~~~~~~~~~~~~~

Exception classes raised by the network engine and its file format.
"""


class NetworkError(Exception):
    """Base exception for all bobnet errors."""
    pass


class ConfigurationError(NetworkError):
    """Raised when a network is built from invalid arguments.

    This exception is raised when:
    - Fewer than two layer sizes are given
    - The layer names do not match the layer sizes in length
    - The activation names are neither one nor one per layer
    - A layer size is not a positive integer
    """
    pass


class UnknownActivationError(ConfigurationError):
    """Raised when an activation name is not in the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown activation function: '{name}'")


class FormatError(NetworkError):
    """Raised when a .bnn file or path is malformed.

    This exception is raised when:
    - The path does not end in .bnn
    - The file holds fewer than four header lines
    - A layer size, learning rate or weight token cannot be parsed
    - A weight line is missing or holds the wrong number of weights
    """
    pass


class InputSizeError(NetworkError, IndexError):
    """Raised when a vector does not match the size of the layer it feeds."""

    def __init__(self, what: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what} has {actual} values, expected {expected}"
        )
