import typing as t

import numpy as np

from .exceptions import ConfigurationError

ProgressHook = t.Callable[[int, int], None]
ErrorGradient = t.Callable[[np.ndarray, np.ndarray], np.ndarray]


class BackpropagationSession:
    """SGD with Momentum, applied sample by sample over a dataset sweep.

    The step of every weight at sample position ``i`` is

        delta_i = learning_rate * dE/dw_i + momentum * delta_{i-1}

    where ``delta_{-1} = 0``: the history restarts with every sweep, and
    only the deltas of the current and previous positions are retained.

    ``error_gradient(output, target)`` receives numpy arrays holding the
    activated outputs of the last layer and the matching target values,
    and must return dE/do for each output neuron. The optional hooks
    ``on_sample_start`` and ``on_sample_end`` are called with
    ``(sample_index, dataset_size)`` right before and right after each
    sample is processed.
    """

    def __init__(
        self,
        dataset,
        learning_rate: float,
        error_gradient: ErrorGradient,
        momentum: float = 0.0,
        on_sample_start: t.Optional[ProgressHook] = None,
        on_sample_end: t.Optional[ProgressHook] = None,
    ):
        self.dataset = dataset
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.error_gradient = error_gradient
        self.on_sample_start = on_sample_start
        self.on_sample_end = on_sample_end

        self.layers = tuple()
        self.position = None  # type: t.Optional[int]
        self.target = None  # type: t.Optional[np.ndarray]
        self._deltas = {}  # type: t.Dict[int, t.Dict[t.Tuple[int, str], np.ndarray]]
        self._clear_sample_cache()

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float):
        if not 0.0 < float(value) < 1.0:
            raise ConfigurationError(
                f"The learning rate must be in ]0, 1[, got {value}."
            )

        self._learning_rate = float(value)

    @property
    def momentum(self) -> float:
        return self._momentum

    @momentum.setter
    def momentum(self, value: float):
        if not 0.0 <= float(value) < 1.0:
            raise ConfigurationError(f"The momentum must be in [0, 1[, got {value}.")

        self._momentum = float(value)

    @property
    def error_gradient(self) -> ErrorGradient:
        return self._error_gradient

    @error_gradient.setter
    def error_gradient(self, func: ErrorGradient):
        if not callable(func):
            raise ConfigurationError("The error gradient must be callable.")

        self._error_gradient = func

    def _clear_sample_cache(self):
        self.forward_cache = {}  # type: t.Dict[int, t.Any]
        self.dE_dz = {}  # type: t.Dict[int, np.ndarray]
        self.contributions = {}  # type: t.Dict[int, np.ndarray]
        self.staged = {}  # type: t.Dict[int, t.Tuple[np.ndarray, np.ndarray]]

    def begin_sweep(self, layers):
        self.layers = tuple(layers)
        self.position = None
        self.target = None
        self._deltas = {}
        self._clear_sample_cache()

    def begin_sample(self, position: int):
        size = len(self.dataset)

        if not 0 <= int(position) < size:
            raise IndexError(f"Training position {position} out of range [0, {size}).")

        position = int(position)

        self._clear_sample_cache()
        self._deltas.pop(position - 2, None)
        self._deltas[position] = {}
        self.position = position
        self.target = None

    def notify_start(self):
        if self.on_sample_start is not None:
            self.on_sample_start(self.position, len(self.dataset))

    def notify_end(self):
        if self.on_sample_end is not None:
            self.on_sample_end(self.position, len(self.dataset))

    def next_layer(self, layer):
        ind = layer.index + 1
        return self.layers[ind] if ind < len(self.layers) else None

    def previous_output(self, layer) -> np.ndarray:
        return self.forward_cache[layer.index - 1].output.values

    def output_error(self, layer) -> np.ndarray:
        output = self.forward_cache[layer.index].output.values
        grads = np.asarray(self.error_gradient(output, self.target), dtype=float)

        try:
            return np.broadcast_to(grads, output.shape).copy()

        except ValueError as err:
            raise ConfigurationError(
                f"The error gradient returned shape {grads.shape}, "
                f"expected {output.shape}."
            ) from err

    def delta(self, position: int, layer_index: int, kind: str) -> t.Optional[np.ndarray]:
        """Step recorded for the 'weights' or 'biases' of a layer at a position."""
        step = self._deltas.get(position, {}).get((layer_index, kind))
        return None if step is None else np.copy(step)

    def momentum_step(self, layer, kind: str, values: np.ndarray, grads: np.ndarray):
        assert kind in {"weights", "biases"}

        cur_steps = self.learning_rate * np.asarray(grads, dtype=float)

        prev_steps = self._deltas.get(self.position - 1, {}).get((layer.index, kind))

        if prev_steps is not None and self.momentum > 0.0:
            cur_steps = cur_steps + self.momentum * prev_steps

        self._deltas[self.position][(layer.index, kind)] = cur_steps

        return values - cur_steps

    def stage(self, layer, weights: np.ndarray, biases: np.ndarray):
        assert weights.shape == (layer.num_weights,)
        assert biases.shape == (layer.num_biases,)
        self.staged[layer.index] = (weights, biases)

    def commit(self):
        """Apply every staged update at once, after the full backward pass."""
        for ind, (weights, biases) in self.staged.items():
            self.layers[ind].commit(weights, biases)

        self.staged = {}

    def __repr__(self):
        return (
            f"BackpropagationSession(learning_rate={self.learning_rate}, "
            f"momentum={self.momentum}, samples={len(self.dataset)})"
        )
