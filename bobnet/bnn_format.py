"""
bnn_format.py
~~~~~~~~~~~~~

Reading and writing networks in the .bnn text format.

Layout, one item per line::

    learning rate
    n0;n1;...;nk            neuron counts, bias excluded
    name0;name1;...;namek
    act0;act1;...;actk      or a single activation for every layer
    w w w ... w             one line per non-output layer

Each weight line lists the layer's ``(n_i + 1) x n_{i+1}`` matrix row by row,
every row followed by a single space. Floats are written with ``repr`` so a
network survives an export/import cycle bit for bit.
"""

import os
import logging
from typing import List, Mapping, Optional, Union

import numpy as np

from bobnet.activations import Activation
from bobnet.exceptions import FormatError
from bobnet.network import Network

# Configure module logger
logger = logging.getLogger(__name__)

FILE_EXTENSION = '.bnn'
HEADER_LINES = 4

PathLike = Union[str, 'os.PathLike[str]']


def _check_path(file_path: PathLike) -> str:
    path = os.fspath(file_path)
    if not path.endswith(FILE_EXTENSION):
        raise FormatError(
            f"File format must be {FILE_EXTENSION}, got '{path}'"
        )
    return path


def _format_float(value: float) -> str:
    return repr(float(value))


def dumps(network: Network) -> str:
    """
    Serialize a network to .bnn text.

    Args:
        network: Network to serialize

    Returns:
        str: The .bnn document, newline terminated
    """
    lines: List[str] = [
        _format_float(network.learning_rate),
        ';'.join(str(size) for size in network.sizes),
        ';'.join(network.names),
        ';'.join(network.activation_names),
    ]
    for weights in network.weights:
        lines.append(''.join(
            ' '.join(_format_float(w) for w in row) + ' '
            for row in weights
        ))
    return '\n'.join(lines) + '\n'


def loads(
    text: str,
    catalog: Optional[Mapping[str, Activation]] = None
) -> Network:
    """
    Rebuild a network from .bnn text.

    Args:
        text: The .bnn document
        catalog: Activation catalog to resolve names against

    Returns:
        Network: The restored network

    Raises:
        FormatError: If the header or weights cannot be parsed
        ConfigurationError: If the header describes an invalid network
    """
    lines = text.splitlines()
    if len(lines) < HEADER_LINES:
        raise FormatError(
            f"Meta data was not provided: expected at least {HEADER_LINES} "
            f"lines, got {len(lines)}"
        )

    try:
        learning_rate = float(lines[0])
    except ValueError:
        raise FormatError(
            f"Learning rate is not a number: '{lines[0]}'"
        ) from None

    sizes = []
    for token in lines[1].split(';'):
        try:
            sizes.append(int(token))
        except ValueError:
            raise FormatError(
                f"Meta data was wrongly formatted: layer size '{token}' "
                f"is not an integer"
            ) from None

    names = lines[2].split(';')
    activations = lines[3].split(';')
    network = Network(learning_rate, sizes, names, activations,
                      catalog=catalog)

    for p, layer in enumerate(network.layers[:-1]):
        line_number = HEADER_LINES + p
        if line_number >= len(lines):
            raise FormatError(f"Missing weights for layer '{layer.name}'")

        tokens = lines[line_number].split()
        rows, cols = layer.weights.shape
        if len(tokens) != rows * cols:
            raise FormatError(
                f"Layer '{layer.name}' needs {rows * cols} weights, "
                f"line {line_number} holds {len(tokens)}"
            )
        try:
            values = [float(token) for token in tokens]
        except ValueError as e:
            raise FormatError(
                f"Bad weight on line {line_number}: {e}"
            ) from None
        layer.weights[:] = np.array(values).reshape(rows, cols)

    return network


def import_network(
    file_path: PathLike,
    catalog: Optional[Mapping[str, Activation]] = None
) -> Network:
    """
    Read a network from a .bnn file.

    Args:
        file_path: Path ending in .bnn
        catalog: Activation catalog to resolve names against

    Returns:
        Network: The restored network

    Raises:
        FormatError: If the path or the file contents are malformed
        OSError: If the file cannot be read

    Example:
        >>> net = import_network("xor.bnn")
        >>> net.sizes
        [2, 4, 1]
    """
    path = _check_path(file_path)
    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()

    network = loads(text, catalog=catalog)
    logger.info(f"Imported network {network.sizes} from '{path}'")
    return network


def export_network(network: Network, file_path: PathLike) -> None:
    """
    Write a network to a .bnn file, replacing any existing file.

    Raises:
        FormatError: If the path does not end in .bnn
        OSError: If the file cannot be written
    """
    path = _check_path(file_path)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(dumps(network))
    logger.info(f"Exported network {network.sizes} to '{path}'")
