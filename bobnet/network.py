"""
network.py
~~~~~~~~~~

A feed-forward multi-layer perceptron trained one sample at a time with
backpropagation.

Every layer except the output layer carries a bias neuron whose output is
fixed at 1.0. The bias is stored as the last slot of the layer's state
vectors and as the last row of its weight matrix, so the weighted sum into
the next layer is a single ``output @ weights``.

Layers never reference each other; the network resolves neighbours by
position in its ``layers`` list.
"""

import logging
from typing import (
    Any, Callable, Iterable, List, Mapping, NamedTuple, Optional, Sequence,
    Tuple, Union
)

import numpy as np

from bobnet.activations import Activation, get_activation
from bobnet.exceptions import ConfigurationError, InputSizeError

# Configure module logger
logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]
Dataset = Union[Mapping[Any, Vector], Iterable[Tuple[Vector, Vector]]]


class Neuron(NamedTuple):
    """Snapshot of a single neuron's state."""

    input: float
    output: float
    error: float
    activation_name: str


class Layer:
    """
    A group of neurons sharing one activation function, plus the weights
    feeding the next layer.

    Non-output layers hold ``neuron_count + 1`` state slots (the last is the
    bias) and a ``(neuron_count + 1) x next_neuron_count`` weight matrix.
    The output layer holds exactly ``neuron_count`` slots and no weights.
    """

    def __init__(
        self,
        name: str,
        neuron_count: int,
        activation: Activation,
        next_neuron_count: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            name: Layer name, written to and read from .bnn files
            neuron_count: Number of neurons, bias excluded
            activation: Activation shared by all neurons of the layer
            next_neuron_count: Neuron count of the following layer, or None
                for the output layer
            rng: Generator used to draw the initial weights
        """
        self.name = name
        self.neuron_count = neuron_count
        self.activation = activation

        width = neuron_count if next_neuron_count is None else neuron_count + 1
        self.input = np.zeros(width)
        self.output = np.zeros(width)
        self.error = np.zeros(width)

        self.weights: Optional[np.ndarray] = None
        if next_neuron_count is not None:
            self.output[-1] = 1.0
            if rng is None:
                rng = np.random.default_rng()
            self.weights = rng.uniform(
                -1.0, 1.0, size=(neuron_count + 1, next_neuron_count)
            )

    @property
    def activation_name(self) -> str:
        return self.activation.name

    @property
    def has_bias(self) -> bool:
        return self.weights is not None

    @property
    def neurons(self) -> List[Neuron]:
        """Per-neuron view of the layer's state, bias neuron last."""
        return [
            Neuron(float(i), float(o), float(e), self.activation.name)
            for i, o, e in zip(self.input, self.output, self.error)
        ]

    def activate(self) -> None:
        """Apply the activation to every non-bias neuron's input."""
        n = self.neuron_count
        self.output[:n] = self.activation.activate(self.input[:n])

    def __repr__(self) -> str:
        return (
            f"Layer(name={self.name!r}, neuron_count={self.neuron_count}, "
            f"activation={self.activation.name!r})"
        )


class Network:
    """
    A multi-layer perceptron with a global learning rate.

    Example:
        >>> net = Network(0.5, [2, 4, 1], ['in', 'hidden', 'out'], 'tanh',
        ...               seed=1)
        >>> net.forward_propagate([0.0, 1.0]).shape
        (1,)
    """

    def __init__(
        self,
        learning_rate: float,
        sizes: Sequence[int],
        names: Sequence[str],
        activations: Union[str, Sequence[str]],
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        catalog: Optional[Mapping[str, Activation]] = None
    ):
        """
        Build the layers and draw initial weights uniformly from [-1, 1).

        Args:
            learning_rate: Step size of every weight update
            sizes: Neuron count per layer, input layer first
            names: One name per layer
            activations: A single activation name for all layers, or one
                name per layer
            rng: Generator for weight initialization
            seed: Seed for a fresh generator when ``rng`` is not given
            catalog: Activation catalog to resolve names against

        Raises:
            ConfigurationError: If the sizes, names and activations do not
                describe a valid network
            UnknownActivationError: If an activation name is not in the
                catalog
        """
        sizes = list(sizes)
        names = list(names)
        if isinstance(activations, str):
            activations = [activations]
        activations = list(activations)

        if len(sizes) < 2:
            raise ConfigurationError(
                f"A network needs at least 2 layers, got {len(sizes)}"
            )
        if len(names) != len(sizes):
            raise ConfigurationError(
                f"Got {len(names)} layer names for {len(sizes)} layers"
            )
        if len(activations) == 1:
            activations = activations * len(sizes)
        elif len(activations) != len(sizes):
            raise ConfigurationError(
                f"Got {len(activations)} activation functions for "
                f"{len(sizes)} layers; give one per layer or a single one "
                f"for all layers"
            )
        for size in sizes:
            if (isinstance(size, bool)
                    or not isinstance(size, (int, np.integer))
                    or size < 1):
                raise ConfigurationError(
                    f"Layer sizes must be positive integers, got {size!r}"
                )

        resolved = [get_activation(name, catalog) for name in activations]

        if rng is None:
            rng = np.random.default_rng(seed)

        self.learning_rate = float(learning_rate)
        self.layers: List[Layer] = []
        for i, (size, name, activation) in enumerate(
                zip(sizes, names, resolved)):
            next_size = int(sizes[i + 1]) if i + 1 < len(sizes) else None
            self.layers.append(
                Layer(name, int(size), activation, next_size, rng)
            )

        logger.debug(
            f"Built network {self.sizes} with activations "
            f"{self.activation_names}, learning rate {self.learning_rate}"
        )

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def sizes(self) -> List[int]:
        return [layer.neuron_count for layer in self.layers]

    @property
    def names(self) -> List[str]:
        return [layer.name for layer in self.layers]

    @property
    def activation_names(self) -> List[str]:
        return [layer.activation_name for layer in self.layers]

    @property
    def weights(self) -> List[np.ndarray]:
        """Weight matrices of every non-output layer, input layer first."""
        return [layer.weights for layer in self.layers[:-1]]

    @property
    def input_layer(self) -> Layer:
        return self.layers[0]

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    def is_first(self, index: int) -> bool:
        return index == 0

    def is_last(self, index: int) -> bool:
        return index == len(self.layers) - 1

    def previous_layer(self, index: int) -> Optional[Layer]:
        if index <= 0 or index >= len(self.layers):
            return None
        return self.layers[index - 1]

    def next_layer(self, index: int) -> Optional[Layer]:
        if index < 0 or index >= len(self.layers) - 1:
            return None
        return self.layers[index + 1]

    def layer(self, name: str) -> Optional[Layer]:
        """Return the first layer with the given name, or None."""
        for layer in self.layers:
            if layer.name == name:
                return layer
        return None

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    @staticmethod
    def _as_vector(values: Vector, size: int, what: str) -> np.ndarray:
        vector = np.asarray(values, dtype=float).reshape(-1)
        if vector.size != size:
            raise InputSizeError(what, size, vector.size)
        return vector

    def forward_propagate(self, inputs: Vector) -> np.ndarray:
        """
        Push an input vector through the network.

        Args:
            inputs: One value per input neuron

        Returns:
            numpy.ndarray: Activated outputs of the output layer

        Raises:
            InputSizeError: If the input length does not match the input
                layer
        """
        first = self.input_layer
        first.input[:first.neuron_count] = self._as_vector(
            inputs, first.neuron_count, 'Input vector'
        )

        for layer, following in zip(self.layers, self.layers[1:]):
            layer.activate()
            following.input[:following.neuron_count] = (
                layer.output @ layer.weights
            )

        self.output_layer.activate()
        return self.output_layer.output.copy()

    def back_propagate(
        self,
        index: Optional[int] = None,
        expected: Optional[Vector] = None
    ) -> None:
        """
        Propagate errors backwards from layer ``index`` and update the
        weights feeding it, then recurse into the previous layer.

        The first call targets the output layer and passes the expected
        vector; the error there is the raw residual ``expected - output``.
        Each step scales the layer's error by the activation derivative,
        pushes it through the previous layer's weights to get that layer's
        error, and moves the weights by
        ``learning_rate * previous_output * scaled_error``.

        Args:
            index: Layer to propagate from (defaults to the output layer)
            expected: Target outputs, given only for the output layer
        """
        if index is None:
            index = len(self.layers) - 1
        layer = self.layers[index]
        n = layer.neuron_count

        if expected is not None:
            target = self._as_vector(expected, n, 'Expected vector')
            layer.error[:n] = target - layer.output[:n]

        previous = self.previous_layer(index)
        if previous is None:
            return

        delta = layer.error[:n] * layer.activation.derivative(layer.output[:n])

        # Bias row included; nothing upstream reads it
        previous.error[:] = previous.weights @ delta
        previous.weights += self.learning_rate * np.outer(
            previous.output, delta
        )

        self.back_propagate(index - 1)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _as_samples(
        self,
        dataset: Dataset
    ) -> List[Tuple[np.ndarray, np.ndarray]]:
        pairs = dataset.items() if isinstance(dataset, Mapping) else dataset
        return [
            (
                self._as_vector(x, self.input_layer.neuron_count,
                                'Input vector'),
                self._as_vector(y, self.output_layer.neuron_count,
                                'Expected vector')
            )
            for x, y in pairs
        ]

    def train(
        self,
        epochs: int,
        shuffle: bool,
        dataset: Dataset,
        on_epoch_end: Optional[Callable[[int], None]] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ) -> int:
        """
        Train with online gradient descent.

        Each epoch runs one forward and one backward pass per sample. With
        ``shuffle`` set, each step instead draws a sample uniformly at random
        (with replacement), keeping the number of steps per epoch equal to
        the dataset size.

        Training stops at the first forward pass that yields NaN. The
        divergence is logged and the weights are left as they are.

        Args:
            epochs: Number of epochs to run
            shuffle: Draw samples at random instead of in order
            dataset: Mapping of input vector to expected vector, or an
                iterable of (input, expected) pairs
            on_epoch_end: Called with the epoch index after every completed
                epoch
            rng: Generator used for shuffled draws
            seed: Seed for a fresh generator when ``rng`` is not given

        Returns:
            int: Number of completed epochs. On divergence this is the index
            of the epoch that diverged.

        Raises:
            ValueError: If epochs is negative
            InputSizeError: If a sample does not fit the network
        """
        if epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {epochs}")

        samples = self._as_samples(dataset)
        if shuffle and rng is None:
            rng = np.random.default_rng(seed)

        for epoch in range(epochs):
            for step in range(len(samples)):
                if shuffle:
                    inputs, expected = samples[rng.integers(len(samples))]
                else:
                    inputs, expected = samples[step]

                result = self.forward_propagate(inputs)
                if np.isnan(result).any():
                    logger.error(
                        f"Training diverged: output is NaN at epoch {epoch}, "
                        f"step {step}. Stopping."
                    )
                    return epoch

                self.back_propagate(len(self.layers) - 1, expected)

            logger.debug(f"Epoch {epoch + 1}/{epochs} complete")
            if on_epoch_end is not None:
                on_epoch_end(epoch)

        return epochs

    def evaluate(self, dataset: Dataset) -> float:
        """
        Sum of squared output errors over a dataset.

        Returns:
            float: Total squared error (0.0 for an empty dataset)
        """
        total = 0.0
        for inputs, expected in self._as_samples(dataset):
            residual = expected - self.forward_propagate(inputs)
            total += float(np.sum(residual ** 2))
        return total

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        file_path: str,
        catalog: Optional[Mapping[str, Activation]] = None
    ) -> 'Network':
        """Import a network from a .bnn file."""
        from bobnet.bnn_format import import_network
        return import_network(file_path, catalog=catalog)

    def export(self, file_path: str) -> None:
        """Export the network to a .bnn file."""
        from bobnet.bnn_format import export_network
        export_network(self, file_path)

    def __repr__(self) -> str:
        return (
            f"Network(learning_rate={self.learning_rate}, "
            f"sizes={self.sizes}, names={self.names}, "
            f"activations={self.activation_names})"
        )
