"""
bobnet
~~~~~~

A small feed-forward neural network engine.
Contains the network implementation, the activation catalog, the .bnn
file format and a SQLite model store.
"""

__version__ = "1.0.0"

from bobnet.activations import Activation, extend_catalog, get_activation
from bobnet.exceptions import (
    ConfigurationError,
    FormatError,
    InputSizeError,
    NetworkError,
    UnknownActivationError
)
from bobnet.network import Layer, Network, Neuron
from bobnet.bnn_format import export_network, import_network
