"""
Class balancing strategies applied to encoded training data before fitting.

A strategy receives the feature matrix and labels and returns a (possibly
larger) matrix and label vector. The training loop only depends on the
balance() signature, so strategies can be swapped freely.
"""

import logging

import numpy as np

from motion_intent.config import TrainingConfig

logger = logging.getLogger(__name__)


class BalancingStrategy:
    """Base class of class balancing strategies."""

    def balance(self, X, y, rng):
        """
        Args:
            X (numpy.ndarray): Encoded features, shape (n, d)
            y (numpy.ndarray): Labels (0/1), shape (n,)
            rng (numpy.random.Generator): Random source

        Returns:
            tuple: (X_balanced, y_balanced)
        """
        raise NotImplementedError


class NoBalancing(BalancingStrategy):
    """Leaves the data unchanged."""

    def balance(self, X, y, rng):
        return X, y


class JitterOversampler(BalancingStrategy):
    """
    Oversamples the minority class with multiplicative noise.

    Every minority sample gets min(max_copies, floor(majority / minority))
    copies; each copy scales the jittered columns by a factor drawn uniformly
    from [1 - jitter, 1 + jitter].
    """

    # velocity_x, velocity_y, acceleration, jitter, magnitude in the encoded vector
    DEFAULT_COLUMNS = (0, 1, 2, 3, 9)

    def __init__(self, max_copies=None, jitter=None, columns=None):
        self.max_copies = max_copies if max_copies is not None else TrainingConfig.AUGMENT_MAX_COPIES
        self.jitter = jitter if jitter is not None else TrainingConfig.AUGMENT_JITTER
        self.columns = tuple(columns) if columns is not None else self.DEFAULT_COLUMNS

    def copies_per_sample(self, n_majority, n_minority):
        if n_minority == 0:
            return 0
        return min(self.max_copies, n_majority // n_minority)

    def balance(self, X, y, rng):
        n_pos = int(np.sum(y == 1))
        n_neg = int(np.sum(y == 0))
        if n_pos == n_neg or n_pos == 0 or n_neg == 0:
            return X, y

        minority_label = 1 if n_pos < n_neg else 0
        copies = self.copies_per_sample(max(n_pos, n_neg), min(n_pos, n_neg))
        if copies == 0:
            return X, y

        minority = X[y == minority_label]
        synthetic = np.repeat(minority, copies, axis=0)
        cols = list(self.columns)
        factors = rng.uniform(1.0 - self.jitter, 1.0 + self.jitter,
                              size=(synthetic.shape[0], len(cols)))
        synthetic[:, cols] *= factors

        X_out = np.vstack([X, synthetic])
        y_out = np.concatenate([y, np.full(synthetic.shape[0], minority_label, dtype=y.dtype)])

        logger.info(f"Augmented dataset: {len(y_out)} samples (original: {len(y)}, "
                    f"{copies} copies per minority sample)")
        return X_out, y_out
