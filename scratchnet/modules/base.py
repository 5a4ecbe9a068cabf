import typing as t
import xml.etree.ElementTree as ET

import numpy as np

from . import _utils
from . import activation as act
from ..exceptions import ConfigurationError
from ..exceptions import UnsupportedOperation

Shape = t.Tuple[int, int, int]


def to_neuron_index(shape: Shape, x: int, y: int, z: int) -> int:
    width, height, _ = shape
    return x + width * (y + height * z)


def from_neuron_index(shape: Shape, ind: int) -> Shape:
    width, height, _ = shape
    z, rem = divmod(ind, width * height)
    y, x = divmod(rem, width)
    return x, y, z


class Tensor:
    """Immutable flat buffer tagged with a (width, height, depth) shape.

    Element (x, y, z) lives at linear index ``x + width * (y + height * z)``,
    so ``as_array()`` views the buffer as a (depth, height, width) array.
    """

    def __init__(self, values, width: int, height: int = 1, depth: int = 1):
        assert _utils.all_positive((int(width), int(height), int(depth)))

        values = np.array(values, dtype=float).ravel()

        if values.size != int(width) * int(height) * int(depth):
            raise ConfigurationError(
                f"Tensor of shape {(width, height, depth)} needs "
                f"{int(width) * int(height) * int(depth)} values, got {values.size}."
            )

        values.flags.writeable = False

        self.values = values
        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)

    @classmethod
    def from_nested(cls, values) -> "Tensor":
        """Build from a 3-D literal indexed as ``values[x][y][z]``."""
        values = np.asarray(values, dtype=float)

        if values.ndim != 3:
            raise ConfigurationError(
                f"Expected a 3-dimensional literal, got {values.ndim} dimensions."
            )

        width, height, depth = values.shape
        return cls(np.transpose(values, (2, 1, 0)), width, height, depth)

    @classmethod
    def from_array(cls, values) -> "Tensor":
        """Build from an array laid out as (depth, height, width)."""
        values = np.asarray(values, dtype=float)

        if values.ndim != 3:
            raise ConfigurationError(
                f"Expected a (depth, height, width) array, got shape {values.shape}."
            )

        depth, height, width = values.shape
        return cls(values, width, height, depth)

    @property
    def shape(self) -> Shape:
        return self.width, self.height, self.depth

    @property
    def size(self) -> int:
        return self.values.size

    def to_index(self, x: int, y: int, z: int) -> int:
        return to_neuron_index(self.shape, x, y, z)

    def from_index(self, ind: int) -> Shape:
        return from_neuron_index(self.shape, ind)

    def __getitem__(self, key):
        if isinstance(key, tuple):
            key = self.to_index(*key)

        return float(self.values[key])

    def __len__(self):
        return self.values.size

    def __iter__(self):
        return iter(self.values.tolist())

    def __array__(self, dtype=None, copy=None):
        return np.array(self.values, dtype=dtype)

    def copy_data(self) -> np.ndarray:
        return np.copy(self.values)

    def as_array(self) -> np.ndarray:
        return self.values.reshape(self.depth, self.height, self.width)

    def __eq__(self, other):
        if not isinstance(other, Tensor):
            return NotImplemented

        return self.shape == other.shape and np.array_equal(self.values, other.values)

    __hash__ = None

    def __repr__(self):
        return f"Tensor of shape {self.shape}"


def _check_previous(previous: t.Optional["BaseLayer"]):
    if not isinstance(previous, BaseLayer):
        raise ConfigurationError(
            "Every layer but the input layer must be built on a previous layer."
        )


class ForwardResult(t.NamedTuple):
    output: Tensor
    raw_output: np.ndarray
    aux: t.Optional[np.ndarray] = None


class BaseLayer:
    """Node of a linear chain of layers.

    A layer only remembers the shape of the layer it was built on top of.
    Once placed in a ``Network`` it receives its position ``index``; the
    neighbours are then reached through the layer sequence of the training
    session, by position.
    """

    def __init__(
        self,
        width: int,
        height: int,
        depth: int,
        previous: t.Optional["BaseLayer"] = None,
    ):
        assert _utils.all_positive((int(width), int(height), int(depth)))

        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)

        self.previous_shape = previous.shape if previous is not None else None
        self.index = None  # type: t.Optional[int]

        self._weights = np.empty(0, dtype=float)
        self._biases = np.empty(0, dtype=float)

    @property
    def shape(self) -> Shape:
        return self.width, self.height, self.depth

    @property
    def neurons(self) -> int:
        return self.width * self.height * self.depth

    @property
    def input_shape(self) -> Shape:
        return self.previous_shape

    @property
    def previous_neurons(self) -> int:
        width, height, depth = self.previous_shape
        return width * height * depth

    def to_index(self, x: int, y: int, z: int) -> int:
        return to_neuron_index(self.shape, x, y, z)

    def from_index(self, ind: int) -> Shape:
        return from_neuron_index(self.shape, ind)

    def _check_input(self, X: Tensor):
        if not isinstance(X, Tensor):
            raise TypeError(f"Expected a Tensor, got {type(X).__name__}.")

        if X.shape != self.input_shape:
            raise ConfigurationError(
                f"{type(self).__name__} expects inputs of shape "
                f"{self.input_shape}, got {X.shape}."
            )

    def forward(self, X: Tensor) -> ForwardResult:
        raise NotImplementedError

    def __call__(self, X: Tensor) -> Tensor:
        return self.forward(X).output

    def backward(self, session):
        raise NotImplementedError

    def _calc_error_contributions(self, session) -> np.ndarray:
        raise NotImplementedError

    def error_contributions(self, session) -> np.ndarray:
        """dE/do of every previous-layer neuron, as seen through this layer."""
        cached = session.contributions.get(self.index)

        if cached is None:
            cached = self._calc_error_contributions(session)
            session.contributions[self.index] = cached

        return cached

    def error_contribution(self, session, from_index: int) -> float:
        contributions = self.error_contributions(session)

        if not 0 <= int(from_index) < contributions.size:
            raise IndexError(
                f"Neuron index {from_index} out of range [0, {contributions.size})."
            )

        return float(contributions[int(from_index)])

    def _output_error(self, session) -> np.ndarray:
        next_layer = session.next_layer(self)

        if next_layer is None:
            return session.output_error(self)

        return next_layer.error_contributions(session)

    @property
    def num_weights(self) -> int:
        return self._weights.size

    @property
    def num_biases(self) -> int:
        return self._biases.size

    @property
    def weights(self) -> np.ndarray:
        return np.copy(self._weights)

    @property
    def biases(self) -> np.ndarray:
        return np.copy(self._biases)

    @staticmethod
    def _check_param_index(ind: int, size: int, name: str):
        if not 0 <= int(ind) < size:
            raise IndexError(f"{name} index {ind} out of range [0, {size}).")

    def get_weight(self, ind: int) -> float:
        self._check_param_index(ind, self.num_weights, "Weight")
        return float(self._weights[int(ind)])

    def get_bias(self, ind: int) -> float:
        self._check_param_index(ind, self.num_biases, "Bias")
        return float(self._biases[int(ind)])

    def set_weight(self, ind: int, value: float):
        self._check_param_index(ind, self.num_weights, "Weight")
        self._weights[int(ind)] = float(value)

    def set_bias(self, ind: int, value: float):
        self._check_param_index(ind, self.num_biases, "Bias")
        self._biases[int(ind)] = float(value)

    @staticmethod
    def _restored(values, expected: int, name: str) -> np.ndarray:
        values = np.array(values, dtype=float).ravel()

        if values.size != expected:
            raise ConfigurationError(
                f"Expected {expected} {name}, got {values.size}."
            )

        return values

    def set_weights(self, values):
        self._weights = self._restored(values, self.num_weights, "weights")

    def set_biases(self, values):
        self._biases = self._restored(values, self.num_biases, "biases")

    def commit(self, weights: np.ndarray, biases: np.ndarray):
        self._weights = weights
        self._biases = biases

    def _init_dims(self) -> t.Tuple[int, int]:
        return self.previous_neurons, self.neurons

    def init_weights(
        self,
        mode: str = "uniform",
        std: t.Union[str, float] = "xavier",
        random_state: t.Optional[t.Union[int, np.random.RandomState]] = None,
    ):
        if self.num_weights:
            self._weights = _utils.sample_weights(
                self.num_weights,
                self._init_dims(),
                mode=mode,
                std=std,
                random_state=random_state,
            )

        return self

    def _attributes(self) -> t.Dict[str, t.Any]:
        raise NotImplementedError

    def to_element(self) -> ET.Element:
        root = ET.Element(
            type(self).__name__, {k: str(v) for k, v in self._attributes().items()}
        )

        activation = getattr(self, "activation", None)

        if activation is not None:
            root.append(activation.to_element())

        if self.num_weights or self.num_biases:
            ET.SubElement(root, "Weights").text = _utils.array_to_text(self._weights)
            ET.SubElement(root, "Biases").text = _utils.array_to_text(self._biases)

        return root

    def _restore_params(self, root: ET.Element):
        self.set_weights(_utils.text_to_array(root.findtext("Weights")))
        self.set_biases(_utils.text_to_array(root.findtext("Biases")))

    @classmethod
    def from_element(cls, root: ET.Element, previous: t.Optional["BaseLayer"]):
        raise NotImplementedError

    def __repr__(self):
        strs = [f"{type(self).__name__} of shape {self.shape}"]

        if self.num_weights or self.num_biases:
            strs.append(
                f"with {self.num_weights} weights and {self.num_biases} biases"
            )

        return " ".join(strs)


class InputLayer(BaseLayer):
    def __init__(self, width: int, height: int = 1, depth: int = 1):
        super(InputLayer, self).__init__(width, height, depth)

    @property
    def input_shape(self) -> Shape:
        return self.shape

    def forward(self, X):
        self._check_input(X)
        out = X.copy_data()
        return ForwardResult(Tensor(out, *self.shape), out)

    def backward(self, session):
        pass

    def _calc_error_contributions(self, session):
        raise UnsupportedOperation("The input layer has no previous layer.")

    def error_contributions(self, session):
        return self._calc_error_contributions(session)

    def _attributes(self):
        return {"Width": self.width, "Height": self.height, "Depth": self.depth}

    @classmethod
    def from_element(cls, root, previous=None):
        return cls(
            _utils.int_attr(root, "Width"),
            _utils.int_attr(root, "Height"),
            _utils.int_attr(root, "Depth"),
        )


class FullyConnectedLayer(BaseLayer):
    def __init__(
        self,
        neurons: int,
        previous: BaseLayer,
        activation: t.Optional[act.ActivationFunction] = None,
    ):
        assert int(neurons) > 0
        _check_previous(previous)

        super(FullyConnectedLayer, self).__init__(int(neurons), 1, 1, previous)

        self.activation = activation if activation is not None else act.none()

        # Weight of (from, to) lives at 'to + from * neurons'.
        self._weights = np.zeros(self.neurons * self.previous_neurons, dtype=float)
        self._biases = np.zeros(self.neurons, dtype=float)

    @property
    def weight_matrix(self) -> np.ndarray:
        return self._weights.reshape(self.previous_neurons, self.neurons)

    def forward(self, X):
        self._check_input(X)

        raw = self._biases + X.values @ self.weight_matrix
        out = self.activation.activate(raw)

        return ForwardResult(Tensor(out, *self.shape), raw)

    def backward(self, session):
        raw = session.forward_cache[self.index].raw_output

        do_dz = self.activation.derivative(raw)
        dE_do = self._output_error(session)
        dE_dz = dE_do * do_dz

        # dz/dw_ij is the output of the connected previous-layer neuron
        prev_out = session.previous_output(self)
        dE_dw = np.outer(prev_out, dE_dz).ravel()

        session.dE_dz[self.index] = dE_dz
        session.stage(
            self,
            weights=session.momentum_step(self, "weights", self._weights, dE_dw),
            biases=session.momentum_step(self, "biases", self._biases, dE_dz),
        )

    def _calc_error_contributions(self, session):
        return self.weight_matrix @ session.dE_dz[self.index]

    def _attributes(self):
        return {"Neurons": self.neurons}

    @classmethod
    def from_element(cls, root, previous):
        layer = cls(
            _utils.int_attr(root, "Neurons"),
            previous,
            act.ActivationFunction.from_element(root.find("ActivationFunction")),
        )
        layer._restore_params(root)
        return layer
