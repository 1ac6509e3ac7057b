"""
activations.py
~~~~~~~~~~~~~~

The activation catalog: a read-only mapping from activation name to an
elementwise transform and its derivative.

Every derivative takes the *activated* outputs ``y`` of a layer and returns
``dy/dx`` written in terms of ``y``. The backward pass only ever sees a
layer's outputs, so this is the form it needs.
"""

from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, NamedTuple, Optional

import numpy as np

from bobnet.exceptions import UnknownActivationError

Transform = Callable[[np.ndarray], np.ndarray]

LEAKY_RELU_SLOPE = 0.01


class Activation(NamedTuple):
    """An activation function and its derivative, keyed by name."""

    name: str
    activate: Transform
    derivative: Transform


def sigmoid(z: np.ndarray) -> np.ndarray:
    """sigma(z) = 1 / (1 + exp(-z))"""
    # Clip z to prevent overflow in exp
    z = np.clip(z, -500, 500)
    return 1.0 / (1.0 + np.exp(-z))


def sigmoid_derivative(y: np.ndarray) -> np.ndarray:
    return y * (1.0 - y)


def tanh(z: np.ndarray) -> np.ndarray:
    return np.tanh(z)


def tanh_derivative(y: np.ndarray) -> np.ndarray:
    return 1.0 - y ** 2


def relu(z: np.ndarray) -> np.ndarray:
    return np.maximum(0.0, z)


def relu_derivative(y: np.ndarray) -> np.ndarray:
    return (y > 0).astype(float)


def leaky_relu(z: np.ndarray) -> np.ndarray:
    return np.where(z > 0, z, LEAKY_RELU_SLOPE * z)


def leaky_relu_derivative(y: np.ndarray) -> np.ndarray:
    return np.where(y > 0, 1.0, LEAKY_RELU_SLOPE)


def linear(z: np.ndarray) -> np.ndarray:
    return np.array(z, dtype=float)


def linear_derivative(y: np.ndarray) -> np.ndarray:
    return np.ones_like(y, dtype=float)


def softplus(z: np.ndarray) -> np.ndarray:
    """log(1 + exp(z)), computed without overflow."""
    return np.logaddexp(0.0, z)


def softplus_derivative(y: np.ndarray) -> np.ndarray:
    # sigma(x) with x = log(exp(y) - 1)
    return -np.expm1(-y)


def _build(activations: Iterable[Activation]) -> Mapping[str, Activation]:
    return MappingProxyType({a.name: a for a in activations})


CATALOG = _build([
    Activation('sigmoid', sigmoid, sigmoid_derivative),
    Activation('tanh', tanh, tanh_derivative),
    Activation('relu', relu, relu_derivative),
    Activation('leaky_relu', leaky_relu, leaky_relu_derivative),
    Activation('linear', linear, linear_derivative),
    Activation('identity', linear, linear_derivative),
    Activation('softplus', softplus, softplus_derivative),
])


def extend_catalog(
    *activations: Activation,
    base: Optional[Mapping[str, Activation]] = None
) -> Mapping[str, Activation]:
    """
    Build a new read-only catalog from ``base`` plus extra activations.

    Entries in ``activations`` replace base entries of the same name.
    The base catalog is left untouched.

    Args:
        activations: Activation records to add
        base: Catalog to start from (defaults to the built-in catalog)

    Returns:
        Mapping of activation name to Activation
    """
    merged = dict(CATALOG if base is None else base)
    merged.update((a.name, a) for a in activations)
    return MappingProxyType(merged)


def get_activation(
    name: str,
    catalog: Optional[Mapping[str, Activation]] = None
) -> Activation:
    """
    Resolve an activation by name.

    Raises:
        UnknownActivationError: If the name is not in the catalog
    """
    catalog = CATALOG if catalog is None else catalog
    try:
        return catalog[name]
    except KeyError:
        raise UnknownActivationError(name) from None


def available_activations(
    catalog: Optional[Mapping[str, Activation]] = None
) -> List[str]:
    """Return the sorted activation names of a catalog."""
    return sorted(CATALOG if catalog is None else catalog)
