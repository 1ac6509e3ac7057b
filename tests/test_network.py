"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for network construction, propagation and training.
"""

import logging

import numpy as np
import pytest

from bobnet.activations import sigmoid
from bobnet.exceptions import (
    ConfigurationError,
    InputSizeError,
    UnknownActivationError
)
from bobnet.network import Network


XOR = {
    (0.0, 0.0): (0.0,),
    (0.0, 1.0): (1.0,),
    (1.0, 0.0): (1.0,),
    (1.0, 1.0): (0.0,),
}


@pytest.fixture
def simple_network():
    """Create a small 3-layer network with fixed weights."""
    return Network(0.1, [3, 4, 2], ['in', 'hidden', 'out'], 'sigmoid', seed=7)


@pytest.mark.unit
class TestConstruction:
    """Test layer layout and argument validation."""

    def test_layer_shapes(self):
        """Every non-output layer owns a (n + 1) x next weight matrix."""
        sizes = [3, 5, 2, 4]
        net = Network(0.5, sizes, ['a', 'b', 'c', 'd'], 'tanh', seed=0)

        assert len(net.layers) == len(sizes)
        assert net.sizes == sizes
        for layer, following in zip(net.layers, net.layers[1:]):
            assert layer.weights.shape == (
                layer.neuron_count + 1, following.neuron_count
            )
        assert net.output_layer.weights is None

    def test_state_vectors_include_bias_except_output(self, simple_network):
        """Non-output layers carry one extra bias slot."""
        assert len(simple_network.layers[0].neurons) == 4
        assert len(simple_network.layers[1].neurons) == 5
        assert len(simple_network.layers[2].neurons) == 2
        assert simple_network.layers[0].output[-1] == 1.0

    def test_weights_in_range(self):
        """Initial weights are drawn from [-1, 1)."""
        net = Network(0.5, [20, 30, 10], ['a', 'b', 'c'], 'relu', seed=3)
        for weights in net.weights:
            assert np.all(weights >= -1.0)
            assert np.all(weights < 1.0)

    def test_same_seed_same_weights(self):
        """Seeded construction is reproducible."""
        a = Network(0.5, [2, 3, 1], ['a', 'b', 'c'], 'tanh', seed=42)
        b = Network(0.5, [2, 3, 1], ['a', 'b', 'c'], 'tanh', seed=42)
        for wa, wb in zip(a.weights, b.weights):
            assert np.array_equal(wa, wb)

    def test_explicit_generator(self):
        """An explicit generator is used instead of a fresh one."""
        a = Network(0.5, [2, 3, 1], ['a', 'b', 'c'], 'tanh',
                    rng=np.random.default_rng(5))
        b = Network(0.5, [2, 3, 1], ['a', 'b', 'c'], 'tanh', seed=5)
        for wa, wb in zip(a.weights, b.weights):
            assert np.array_equal(wa, wb)

    def test_per_layer_activations(self):
        """One activation per layer is applied layer by layer."""
        net = Network(0.5, [2, 3, 1], ['a', 'b', 'c'],
                      ['linear', 'tanh', 'sigmoid'])
        assert net.activation_names == ['linear', 'tanh', 'sigmoid']
        assert net.layers[1].neurons[0].activation_name == 'tanh'

    def test_single_activation_in_list(self):
        """A one-element activation list applies to every layer."""
        net = Network(0.5, [2, 3, 1], ['a', 'b', 'c'], ['relu'])
        assert net.activation_names == ['relu', 'relu', 'relu']

    def test_too_few_layers(self):
        with pytest.raises(ConfigurationError):
            Network(0.5, [2], ['a'], 'tanh')

    def test_names_length_mismatch(self):
        with pytest.raises(ConfigurationError):
            Network(0.5, [2, 3, 1], ['a', 'b'], 'tanh')

    def test_activation_count_mismatch(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Network(0.5, [2, 3, 1], ['a', 'b', 'c'], ['tanh', 'relu'])
        assert "activation" in str(exc_info.value)

    @pytest.mark.parametrize("bad_size", [0, -2, 1.5, True])
    def test_invalid_layer_size(self, bad_size):
        with pytest.raises(ConfigurationError):
            Network(0.5, [2, bad_size, 1], ['a', 'b', 'c'], 'tanh')

    def test_unknown_activation(self):
        with pytest.raises(UnknownActivationError) as exc_info:
            Network(0.5, [2, 3, 1], ['a', 'b', 'c'], 'swish')
        assert exc_info.value.name == 'swish'
        assert isinstance(exc_info.value, ConfigurationError)

    def test_layer_navigation(self, simple_network):
        """Neighbours are resolved by position."""
        assert simple_network.previous_layer(0) is None
        assert simple_network.previous_layer(1) is simple_network.layers[0]
        assert simple_network.next_layer(1) is simple_network.layers[2]
        assert simple_network.next_layer(2) is None
        assert simple_network.is_first(0) and simple_network.is_last(2)
        assert simple_network.layer('hidden') is simple_network.layers[1]
        assert simple_network.layer('missing') is None


@pytest.mark.unit
class TestForwardPropagation:
    """Test the forward pass."""

    def test_output_shape(self, simple_network):
        output = simple_network.forward_propagate([0.1, 0.2, 0.3])
        assert output.shape == (2,)

    def test_deterministic(self, simple_network):
        """Identical state and input give identical output."""
        first = simple_network.forward_propagate([0.5, -0.5, 1.0])
        second = simple_network.forward_propagate([0.5, -0.5, 1.0])
        assert np.array_equal(first, second)

    def test_bias_output_stays_one(self, simple_network):
        simple_network.forward_propagate([5.0, 5.0, 5.0])
        for layer in simple_network.layers[:-1]:
            assert layer.neurons[-1].output == 1.0

    def test_matches_manual_computation(self, simple_network):
        """Output equals activate(input) pushed through each weight matrix."""
        x = np.array([0.3, -0.7, 0.9])

        values = x
        for layer in simple_network.layers[:-1]:
            activated = np.append(sigmoid(values), 1.0)
            values = np.array([
                sum(activated[i] * layer.weights[i][j]
                    for i in range(len(activated)))
                for j in range(layer.weights.shape[1])
            ])
        expected = sigmoid(values)

        assert np.allclose(simple_network.forward_propagate(x), expected)

    def test_hand_built_linear_network(self):
        """A 1-1 linear network computes w * x + b."""
        net = Network(0.5, [1, 1], ['in', 'out'], 'linear')
        net.layers[0].weights[:] = [[2.0], [0.5]]
        assert net.forward_propagate([3.0])[0] == pytest.approx(6.5)

    def test_wrong_input_size(self, simple_network):
        with pytest.raises(InputSizeError) as exc_info:
            simple_network.forward_propagate([1.0, 2.0])
        assert isinstance(exc_info.value, IndexError)
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2


@pytest.mark.unit
class TestBackPropagation:
    """Test error propagation and weight updates."""

    def test_linear_single_step(self):
        """With linear units the update is the plain delta rule."""
        net = Network(0.1, [1, 1], ['in', 'out'], 'linear')
        net.layers[0].weights[:] = [[2.0], [0.5]]

        net.forward_propagate([3.0])
        net.back_propagate(1, [10.0])

        # residual = 10 - 6.5
        assert net.layers[1].error[0] == pytest.approx(3.5)
        assert net.layers[0].error[0] == pytest.approx(2.0 * 3.5)
        assert net.layers[0].weights[0][0] == pytest.approx(2.0 + 0.1 * 3.0 * 3.5)
        assert net.layers[0].weights[1][0] == pytest.approx(0.5 + 0.1 * 1.0 * 3.5)

    def test_bias_error_uses_bias_row(self):
        """The bias neuron's error is its weight row times the scaled error."""
        net = Network(0.1, [1, 1], ['in', 'out'], 'linear')
        net.layers[0].weights[:] = [[2.0], [0.5]]

        net.forward_propagate([3.0])
        net.back_propagate(expected=[10.0])

        assert net.layers[0].neurons[-1].error == pytest.approx(0.5 * 3.5)

    def test_matches_neuron_loop(self):
        """The update equals the per-neuron double loop, layer by layer."""
        net = Network(0.3, [2, 2, 1], ['in', 'hidden', 'out'], 'sigmoid',
                      seed=11)
        before = [w.copy() for w in net.weights]
        x, target = [1.0, 0.0], [1.0]

        net.forward_propagate(x)
        outputs = [layer.output.copy() for layer in net.layers]
        net.back_propagate(2, target)

        def d(y):
            return y * (1 - y)

        errors = {2: [target[0] - outputs[2][0]]}
        expected_weights = [w.copy() for w in before]
        for index in (2, 1):
            n = net.sizes[index]
            prev = index - 1
            prev_errors = []
            for i in range(before[prev].shape[0]):
                prev_errors.append(sum(
                    errors[index][j] * before[prev][i][j] * d(outputs[index][j])
                    for j in range(n)
                ))
            for i in range(before[prev].shape[0]):
                for j in range(n):
                    expected_weights[prev][i][j] += (
                        0.3 * outputs[prev][i] * errors[index][j]
                        * d(outputs[index][j])
                    )
            errors[prev] = prev_errors

        for actual, expected in zip(net.weights, expected_weights):
            assert np.allclose(actual, expected)
        assert np.allclose(net.layers[0].error, errors[0])
        assert np.allclose(net.layers[1].error, errors[1])

    def test_wrong_expected_size(self, simple_network):
        simple_network.forward_propagate([0.1, 0.2, 0.3])
        with pytest.raises(InputSizeError):
            simple_network.back_propagate(expected=[1.0])


@pytest.mark.unit
class TestTraining:
    """Test the training loop."""

    def test_error_decreases_on_single_pair(self):
        net = Network(0.1, [2, 3, 1], ['in', 'hidden', 'out'], 'tanh', seed=2)
        dataset = {(0.5, -0.5): (0.25,)}

        before = net.evaluate(dataset)
        net.train(200, False, dataset)
        after = net.evaluate(dataset)

        assert after < before

    def test_learns_xor(self):
        """A small tanh network fits the XOR truth table."""
        # XOR has poor local minima for some initial weights
        for seed in (1, 2, 3, 4, 5):
            net = Network(0.2, [2, 4, 1], ['in', 'hidden', 'out'],
                          ['linear', 'tanh', 'tanh'], seed=seed)
            net.train(5000, False, XOR)
            outputs = {x: net.forward_propagate(x)[0] for x in XOR}
            if all(abs(outputs[x] - y[0]) < 0.1 for x, y in XOR.items()):
                break

        for x, y in XOR.items():
            assert abs(outputs[x] - y[0]) < 0.1, f"XOR{x} -> {outputs[x]}"

    def test_learns_xor_two_hidden_units(self):
        """A 2-2-1 sigmoid network at learning rate 0.5 fits XOR."""
        net = Network(0.5, [2, 2, 1], ['in', 'hidden', 'out'], 'sigmoid',
                      seed=0)
        net.train(30000, False, XOR)

        for x, y in XOR.items():
            output = net.forward_propagate(x)[0]
            assert abs(output - y[0]) < 0.1, f"XOR{x} -> {output}"

    def test_returns_completed_epochs(self, simple_network):
        dataset = [([0.1, 0.2, 0.3], [1.0, 0.0])]
        assert simple_network.train(3, False, dataset) == 3

    def test_epoch_callback(self, simple_network):
        seen = []
        simple_network.train(4, False, {(0.1, 0.2, 0.3): (1.0, 0.0)},
                             on_epoch_end=seen.append)
        assert seen == [0, 1, 2, 3]

    def test_shuffle_reproducible(self):
        """Seeded shuffled training gives identical weights."""
        a = Network(0.2, [2, 4, 1], ['a', 'b', 'c'], 'tanh', seed=9)
        b = Network(0.2, [2, 4, 1], ['a', 'b', 'c'], 'tanh', seed=9)

        a.train(20, True, XOR, seed=123)
        b.train(20, True, XOR, seed=123)

        for wa, wb in zip(a.weights, b.weights):
            assert np.array_equal(wa, wb)

    def test_shuffle_draws_dataset_size_steps(self, monkeypatch):
        """Each shuffled epoch runs as many steps as there are samples."""
        net = Network(0.2, [2, 4, 1], ['a', 'b', 'c'], 'tanh', seed=9)
        calls = []
        original = net.forward_propagate

        def counting(inputs):
            calls.append(tuple(inputs))
            return original(inputs)

        monkeypatch.setattr(net, 'forward_propagate', counting)
        net.train(3, True, XOR, seed=1)

        assert len(calls) == 3 * len(XOR)
        assert set(calls) <= set(XOR)

    def test_divergence_at_start(self, simple_network, caplog):
        """A NaN output stops training before any epoch completes."""
        simple_network.layers[0].weights[0][0] = np.nan
        seen = []

        with caplog.at_level(logging.ERROR, logger='bobnet.network'):
            completed = simple_network.train(
                10, False, {(0.1, 0.2, 0.3): (1.0, 0.0)},
                on_epoch_end=seen.append
            )

        assert completed == 0
        assert seen == []
        assert "epoch 0" in caplog.text

    def test_divergence_mid_training(self, simple_network, caplog):
        """The reported epoch is the one that diverged, and no more run."""
        seen = []

        def poison(epoch):
            seen.append(epoch)
            if epoch == 2:
                simple_network.layers[1].weights[:] = np.nan

        with caplog.at_level(logging.ERROR, logger='bobnet.network'):
            completed = simple_network.train(
                10, False, {(0.1, 0.2, 0.3): (1.0, 0.0)}, on_epoch_end=poison
            )

        assert completed == 3
        assert seen == [0, 1, 2]
        assert "epoch 3" in caplog.text
        assert np.isnan(simple_network.layers[1].weights).all()

    def test_negative_epochs(self, simple_network):
        with pytest.raises(ValueError):
            simple_network.train(-1, False, {})

    def test_sample_size_checked(self, simple_network):
        with pytest.raises(InputSizeError):
            simple_network.train(1, False, {(0.1, 0.2): (1.0, 0.0)})

    def test_evaluate_empty(self, simple_network):
        assert simple_network.evaluate([]) == 0.0
