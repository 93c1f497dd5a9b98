"""
Small feed-forward network for binary intention classification.

A plain numpy implementation: ReLU hidden layers with inverted dropout, a
single sigmoid output, binary cross-entropy loss and the Adam optimizer.
Weights serialize to nested lists so a trained network can be stored as JSON.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

EPSILON = 1e-7


def sigmoid(z):
    z = np.clip(z, -500.0, 500.0)
    return 1.0 / (1.0 + np.exp(-z))


def binary_cross_entropy(y_true, y_pred):
    """
    Mean binary cross-entropy.

    Args:
        y_true (numpy.ndarray): Labels (0/1), shape (n,)
        y_pred (numpy.ndarray): Predicted probabilities, shape (n,)

    Returns:
        float: Loss
    """
    y_pred = np.clip(y_pred, EPSILON, 1.0 - EPSILON)
    return float(-np.mean(y_true * np.log(y_pred) + (1.0 - y_true) * np.log(1.0 - y_pred)))


class AdamOptimizer:
    """
    Adam optimizer over a list of parameter arrays, updated in place.
    """

    def __init__(self, learning_rate=0.001, beta1=0.9, beta2=0.999, epsilon=1e-7):
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.t = 0
        self.m = None
        self.v = None

    def step(self, params, grads):
        """
        Apply one update.

        Args:
            params (list): Parameter arrays (modified in place)
            grads (list): Gradients matching params
        """
        if self.m is None:
            self.m = [np.zeros_like(p) for p in params]
            self.v = [np.zeros_like(p) for p in params]

        self.t += 1
        lr_t = (self.learning_rate * np.sqrt(1.0 - self.beta2 ** self.t) /
                (1.0 - self.beta1 ** self.t))

        for p, g, m, v in zip(params, grads, self.m, self.v):
            m *= self.beta1
            m += (1.0 - self.beta1) * g
            v *= self.beta2
            v += (1.0 - self.beta2) * g * g
            p -= lr_t * m / (np.sqrt(v) + self.epsilon)


class IntentionNetwork:
    """
    Dense network: inputs -> hidden ReLU layers (with dropout) -> sigmoid output.
    """

    def __init__(self, input_dim, hidden_units=(64, 32, 16), dropout_rates=None, seed=None):
        """
        Initialize the network with He-initialised weights.

        Args:
            input_dim (int): Length of the input feature vector
            hidden_units (tuple): Units per hidden layer
            dropout_rates (tuple, optional): Dropout after each hidden layer (0 = none)
            seed (int, optional): Seed for weight init, dropout and shuffling
        """
        self.input_dim = int(input_dim)
        self.hidden_units = tuple(int(u) for u in hidden_units)
        if dropout_rates is None:
            dropout_rates = (0.0,) * len(self.hidden_units)
        if len(dropout_rates) != len(self.hidden_units):
            raise ValueError("dropout_rates must match hidden_units")
        self.dropout_rates = tuple(float(r) for r in dropout_rates)

        self.rng = np.random.default_rng(seed)

        self.weights = []
        self.biases = []
        fan_in = self.input_dim
        for units in self.hidden_units + (1,):
            scale = np.sqrt(2.0 / fan_in)
            self.weights.append(self.rng.normal(0.0, scale, size=(fan_in, units)))
            self.biases.append(np.zeros(units))
            fan_in = units

    @property
    def parameters(self):
        return self.weights + self.biases

    def _forward(self, X, training):
        activations = [X]
        masks = []
        a = X
        for W, b, rate in zip(self.weights[:-1], self.biases[:-1], self.dropout_rates):
            a = np.maximum(0.0, a @ W + b)
            if training and rate > 0:
                mask = (self.rng.random(a.shape) >= rate) / (1.0 - rate)
                a = a * mask
            else:
                mask = None
            masks.append(mask)
            activations.append(a)

        out = sigmoid(a @ self.weights[-1] + self.biases[-1]).ravel()
        return out, activations, masks

    def predict_proba(self, X):
        """
        Predict the probability of the positive class.

        Args:
            X (numpy.ndarray): Inputs of shape (n, input_dim) or (input_dim,)

        Returns:
            numpy.ndarray: Probabilities of shape (n,)
        """
        X = np.atleast_2d(np.asarray(X, dtype=float))
        out, _, _ = self._forward(X, training=False)
        return out

    def train_batch(self, X, y, optimizer):
        """
        One gradient step on a batch.

        Returns:
            float: Batch loss before the update
        """
        out, activations, masks = self._forward(X, training=True)
        loss = binary_cross_entropy(y, out)

        n = X.shape[0]
        # d(BCE)/d(logit) for a sigmoid output
        delta = ((out - y) / n).reshape(-1, 1)

        grads_w = [None] * len(self.weights)
        grads_b = [None] * len(self.biases)

        for layer in range(len(self.weights) - 1, -1, -1):
            a_prev = activations[layer]
            grads_w[layer] = a_prev.T @ delta
            grads_b[layer] = delta.sum(axis=0)
            if layer == 0:
                break
            delta = delta @ self.weights[layer].T
            mask = masks[layer - 1]
            if mask is not None:
                delta = delta * mask
            delta = delta * (a_prev > 0)

        optimizer.step(self.parameters, grads_w + grads_b)
        return loss

    def train_epoch(self, X, y, batch_size, optimizer):
        """
        One pass over shuffled data in mini-batches.

        Returns:
            float: Sample-weighted mean batch loss
        """
        n = X.shape[0]
        indices = self.rng.permutation(n)
        total = 0.0
        for start in range(0, n, batch_size):
            batch = indices[start:start + batch_size]
            total += self.train_batch(X[batch], y[batch], optimizer) * len(batch)
        return total / n

    def to_dict(self):
        return {
            'input_dim': self.input_dim,
            'hidden_units': list(self.hidden_units),
            'dropout_rates': list(self.dropout_rates),
            'weights': [W.tolist() for W in self.weights],
            'biases': [b.tolist() for b in self.biases],
        }

    @classmethod
    def from_dict(cls, data):
        """
        Rebuild a network from to_dict() output.

        The stored arrays are checked against the declared architecture before
        anything is allocated, so the declared sizes alone never drive memory use.

        Raises:
            ValueError: If the layer shapes are inconsistent or values are not finite
            KeyError: If a field is missing
        """
        input_dim = int(data['input_dim'])
        hidden_units = tuple(int(u) for u in data['hidden_units'])
        weights = [np.asarray(W, dtype=float) for W in data['weights']]
        biases = [np.asarray(b, dtype=float) for b in data['biases']]

        sizes = (input_dim,) + hidden_units + (1,)
        if len(weights) != len(sizes) - 1 or len(biases) != len(sizes) - 1:
            raise ValueError("Layer count does not match the declared architecture")
        for fan_in, units, W, b in zip(sizes[:-1], sizes[1:], weights, biases):
            if W.shape != (fan_in, units) or b.shape != (units,):
                raise ValueError(f"Parameter shapes {W.shape}/{b.shape} != "
                                 f"expected {(fan_in, units)}/{(units,)}")
            if not (np.all(np.isfinite(W)) and np.all(np.isfinite(b))):
                raise ValueError("Parameters contain non-finite values")

        net = cls(input_dim, hidden_units, data.get('dropout_rates'))
        net.weights = weights
        net.biases = biases
        return net
