import copy
import typing as t
import xml.etree.ElementTree as ET

import numpy as np
import tqdm.auto

from . import _utils
from . import base
from . import filter as filt
from ..exceptions import ConfigurationError
from ..losses import mean_absolute_error

_LAYER_KINDS = {
    cls.__name__: cls
    for cls in (
        base.InputLayer,
        base.FullyConnectedLayer,
        filt.ConvolutionalLayer,
        filt.MaxPoolingLayer,
    )
}


def layer_from_element(root: ET.Element, previous: t.Optional[base.BaseLayer]):
    if root.tag not in _LAYER_KINDS:
        raise ConfigurationError(f"Unknown layer kind: {root.tag}.")

    return _LAYER_KINDS[root.tag].from_element(root, previous)


class Network:
    """Linear chain of layers headed by exactly one input layer."""

    def __init__(self, layers: t.Sequence[base.BaseLayer]):
        layers = tuple(layers)

        if not layers or not isinstance(layers[0], base.InputLayer):
            raise ConfigurationError(
                "The first layer of a network must be an input layer."
            )

        for i, layer in enumerate(layers):
            if type(layer) not in _LAYER_KINDS.values():
                raise ConfigurationError(f"Unknown layer kind: {type(layer).__name__}.")

            if layer.index is not None:
                raise ConfigurationError(f"Layer {i} already belongs to a network.")

            if i and layer.previous_shape != layers[i - 1].shape:
                raise ConfigurationError(
                    f"Layer {i} ({type(layer).__name__}) was built on a layer of "
                    f"shape {layer.previous_shape}, but follows a layer of shape "
                    f"{layers[i - 1].shape}."
                )

        for i, layer in enumerate(layers):
            layer.index = i

        self.layers = layers

    @property
    def input_layer(self) -> base.InputLayer:
        return self.layers[0]

    @property
    def output_layer(self) -> base.BaseLayer:
        return self.layers[-1]

    def _as_tensor(self, X) -> base.Tensor:
        if isinstance(X, base.Tensor):
            return X

        return base.Tensor(X, *self.input_layer.shape)

    def feed_forward(self, X) -> base.Tensor:
        out = self._as_tensor(X)

        for layer in self.layers:
            out = layer.forward(out).output

        return out

    __call__ = feed_forward

    def _check_dataset(self, dataset):
        if dataset.input_shape != self.input_layer.shape:
            raise ConfigurationError(
                f"Dataset inputs have shape {dataset.input_shape}, the input "
                f"layer expects {self.input_layer.shape}."
            )

        if dataset.target_shape != self.output_layer.shape:
            raise ConfigurationError(
                f"Dataset targets have shape {dataset.target_shape}, the output "
                f"layer produces {self.output_layer.shape}."
            )

    def _train_sample(self, session, position: int):
        session.begin_sample(position)

        out = session.dataset.input(position)
        session.target = session.dataset.target(position).values

        for layer in self.layers:
            result = layer.forward(out)
            session.forward_cache[layer.index] = result
            out = result.output

        for layer in reversed(self.layers):
            layer.backward(session)

        # Nothing is written to the layers before every gradient is known.
        session.commit()

    def train(self, session):
        """Run one backpropagation sweep over every sample of the session."""
        self._check_dataset(session.dataset)

        session.begin_sweep(self.layers)

        for position in range(len(session.dataset)):
            session.position = position
            session.notify_start()
            self._train_sample(session, position)
            session.notify_end()

        return self

    def evaluate(self, dataset, metric=mean_absolute_error) -> float:
        self._check_dataset(dataset)

        outputs, targets = [], []

        for X, y in dataset:
            outputs.append(self.feed_forward(X).values)
            targets.append(y.values)

        return metric(np.vstack(outputs), np.vstack(targets))

    def fit(
        self,
        session,
        epochs: int,
        verbose: int = 0,
        metric: t.Optional[t.Callable[[np.ndarray, np.ndarray], float]] = None,
    ) -> t.List[float]:
        """Run ``epochs`` sweeps; return the metric after each one (if any)."""
        assert int(epochs) >= 0

        if metric is None and verbose > 1:
            metric = mean_absolute_error

        history = []  # type: t.List[float]

        sweeps = range(1, 1 + int(epochs))

        if verbose > 0:
            sweeps = tqdm.auto.tqdm(sweeps)

        for epoch in sweeps:
            self.train(session)

            if metric is None:
                continue

            error = self.evaluate(session.dataset, metric)
            history.append(error)

            if verbose > 1:
                print(f"Sweep {epoch}: error {error:.6f}")

        return history

    def init_weights(
        self,
        mode: str = "uniform",
        std: t.Union[str, float] = "xavier",
        random_state: t.Optional[int] = None,
    ):
        rng = np.random.RandomState(random_state)

        for layer in self.layers:
            layer.init_weights(mode=mode, std=std, random_state=rng)

        return self

    def copy(self) -> "Network":
        return copy.deepcopy(self)

    def to_xml(self) -> str:
        root = ET.Element("NeuralNetwork", {"Layers": str(len(self.layers))})

        for i, layer in enumerate(self.layers):
            node = layer.to_element()
            node.set("Index", str(i))
            root.append(node)

        return ET.tostring(root, encoding="unicode")

    @classmethod
    def from_xml(cls, text: str) -> "Network":
        try:
            root = ET.fromstring(text)

        except ET.ParseError as err:
            raise ConfigurationError(f"Malformed network description: {err}.") from err

        layer_count = _utils.int_attr(root, "Layers")
        nodes = [None] * layer_count  # type: t.List[t.Optional[ET.Element]]

        for node in root:
            ind = _utils.int_attr(node, "Index")

            if not 0 <= ind < layer_count or nodes[ind] is not None:
                raise ConfigurationError(f"Invalid or repeated layer index {ind}.")

            nodes[ind] = node

        if any(node is None for node in nodes):
            raise ConfigurationError(
                f"Expected {layer_count} layers, got {len(root)} layer nodes."
            )

        layers = []  # type: t.List[base.BaseLayer]

        for node in nodes:
            layers.append(layer_from_element(node, layers[-1] if layers else None))

        return cls(layers)

    def __getitem__(self, i):
        return self.layers[i]

    def __len__(self):
        return len(self.layers)

    def __iter__(self):
        return iter(self.layers)

    def __repr__(self):
        strs = [f"Network with {len(self)} layers:"]

        for i, layer in enumerate(self.layers):
            strs.append(f" | {i}. {str(layer)}")

        return "\n".join(strs)
