import enum
import typing as t
import warnings
import xml.etree.ElementTree as ET

import numpy as np
import scipy.special

from ..exceptions import ConfigurationError


class ActivationKind(enum.Enum):
    NONE = "None"
    SIGMOID = "Sigmoid"
    RELU = "ReLU"
    TANH = "TanH"
    LEAKY_RELU = "LeakyReLU"
    SOFTPLUS = "SoftPlus"
    SOFTMAX = "SoftMax"


# Serialized parameter names used by each kind, in serialization order.
_KIND_PARAMS = {
    ActivationKind.NONE: (),
    ActivationKind.SIGMOID: ("steepness",),
    ActivationKind.RELU: ("zeroIsPositive",),
    ActivationKind.TANH: ("steepness",),
    ActivationKind.LEAKY_RELU: ("leakynessFactor", "zeroIsPositive"),
    ActivationKind.SOFTPLUS: ("steepness",),
    ActivationKind.SOFTMAX: ("steepness",),
}

_PARAM_ATTRS = {
    "steepness": "steepness",
    "zeroIsPositive": "zero_is_positive",
    "leakynessFactor": "leakyness_factor",
}


def _off_mask(X, zero_is_positive: bool):
    if zero_is_positive:
        return X < 0.0

    return X <= 0.0


def _f_none(X, act):
    return np.array(X, dtype=float, copy=True)


def _df_none(X, act):
    return np.ones_like(X, dtype=float)


def _f_sigmoid(X, act):
    return scipy.special.expit(act.steepness * X)


def _df_sigmoid(X, act):
    out = _f_sigmoid(X, act)
    return out * (1.0 - out)


def _f_relu(X, act):
    out = np.array(X, dtype=float, copy=True)
    out[_off_mask(out, act.zero_is_positive)] = 0.0
    return out


def _df_relu(X, act):
    return (~_off_mask(np.asarray(X), act.zero_is_positive)).astype(float)


def _f_tanh(X, act):
    return np.tanh(act.steepness * X)


def _df_tanh(X, act):
    return 1.0 - np.square(_f_tanh(X, act))


def _f_leaky_relu(X, act):
    out = np.array(X, dtype=float, copy=True)
    off = _off_mask(out, act.zero_is_positive)
    out[off] *= act.leakyness_factor
    return out


def _df_leaky_relu(X, act):
    off = _off_mask(np.asarray(X), act.zero_is_positive)
    return np.where(off, act.leakyness_factor, 1.0)


def _f_softplus(X, act):
    return np.logaddexp(0.0, act.steepness * X)


def _df_softplus(X, act):
    # s - s / (1 + e^{sx}) == s * sigmoid(sx)
    return act.steepness * scipy.special.expit(act.steepness * X)


def _f_softmax(X, act):
    # NOTE: steepness is carried for serialization only; it is never applied.
    return scipy.special.softmax(X)


def _df_softmax(X, act):
    out = _f_softmax(X, act)
    return out * (1.0 - out)


_ACTIVATION_FUNCS = {
    ActivationKind.NONE: (_f_none, _df_none),
    ActivationKind.SIGMOID: (_f_sigmoid, _df_sigmoid),
    ActivationKind.RELU: (_f_relu, _df_relu),
    ActivationKind.TANH: (_f_tanh, _df_tanh),
    ActivationKind.LEAKY_RELU: (_f_leaky_relu, _df_leaky_relu),
    ActivationKind.SOFTPLUS: (_f_softplus, _df_softplus),
    ActivationKind.SOFTMAX: (_f_softmax, _df_softmax),
}


class ActivationFunction:
    """Activation function of a layer and its derivative.

    Both are evaluated over the full raw output vector of a layer, since
    SoftMax normalises every neuron by its siblings. The scalar forms
    ``function(value, raw_values)`` and ``gradient(value, raw_values)``
    evaluate a single neuron given the raw outputs of its whole layer.
    """

    def __init__(
        self,
        kind: t.Union[ActivationKind, str],
        steepness: float = 1.0,
        zero_is_positive: bool = False,
        leakyness_factor: float = 0.01,
    ):
        try:
            self.kind = ActivationKind(kind)

        except ValueError as err:
            raise ConfigurationError(f"Unknown activation function: {kind}.") from err

        self.steepness = float(steepness)
        self.zero_is_positive = bool(zero_is_positive)
        self.leakyness_factor = float(leakyness_factor)

        self._func, self._deriv = _ACTIVATION_FUNCS[self.kind]

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def params(self) -> t.Dict[str, t.Union[float, bool]]:
        return {
            param: getattr(self, _PARAM_ATTRS[param])
            for param in _KIND_PARAMS[self.kind]
        }

    def activate(self, raw_values) -> np.ndarray:
        return self._func(np.asarray(raw_values, dtype=float), self)

    def derivative(self, raw_values) -> np.ndarray:
        return self._deriv(np.asarray(raw_values, dtype=float), self)

    def _scalar(self, func, value: float, raw_values) -> float:
        if self.kind is ActivationKind.SOFTMAX:
            if raw_values is None:
                raise ConfigurationError(
                    "SoftMax needs the raw outputs of the whole layer."
                )

            raw_values = np.asarray(raw_values, dtype=float)
            shift = float(np.max(raw_values))
            out = np.exp(value - shift) / np.sum(np.exp(raw_values - shift))

            if func is self._deriv:
                out = out * (1.0 - out)

            return float(out)

        return float(func(np.asarray([value], dtype=float), self)[0])

    def function(self, value: float, raw_values=None) -> float:
        return self._scalar(self._func, value, raw_values)

    def gradient(self, value: float, raw_values=None) -> float:
        return self._scalar(self._deriv, value, raw_values)

    __call__ = activate

    def to_element(self) -> ET.Element:
        root = ET.Element("ActivationFunction", {"Name": self.name})
        custom_data = ET.SubElement(root, "CustomData")

        for param, value in self.params.items():
            ET.SubElement(
                custom_data,
                param,
                {
                    "Type": "bool" if isinstance(value, bool) else "float",
                    "Value": str(value) if isinstance(value, bool) else repr(value),
                },
            )

        return root

    @classmethod
    def from_element(cls, root: ET.Element) -> "ActivationFunction":
        if root is None or root.tag != "ActivationFunction":
            raise ConfigurationError("Missing 'ActivationFunction' node.")

        kind = root.get("Name")
        kwargs = {}

        custom_data = root.find("CustomData")

        for node in custom_data if custom_data is not None else ():
            if node.tag not in _PARAM_ATTRS:
                warnings.warn(
                    f"Unused activation parameter: {node.tag}.", UserWarning
                )
                continue

            raw = node.get("Value", "")

            try:
                if node.get("Type") == "bool":
                    if raw not in {"True", "False"}:
                        raise ValueError(raw)

                    value = raw == "True"

                else:
                    value = float(raw)

            except ValueError as err:
                raise ConfigurationError(
                    f"Malformed value for activation parameter '{node.tag}': {raw!r}."
                ) from err

            kwargs[_PARAM_ATTRS[node.tag]] = value

        return cls(kind, **kwargs)

    def __eq__(self, other):
        if not isinstance(other, ActivationFunction):
            return NotImplemented

        return self.kind is other.kind and self.params == other.params

    def __hash__(self):
        return hash((self.kind, tuple(self.params.items())))

    def __repr__(self):
        params = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params})"


def none() -> ActivationFunction:
    return ActivationFunction(ActivationKind.NONE)


def sigmoid(steepness: float = 1.0) -> ActivationFunction:
    return ActivationFunction(ActivationKind.SIGMOID, steepness=steepness)


def relu(zero_is_positive: bool = False) -> ActivationFunction:
    return ActivationFunction(ActivationKind.RELU, zero_is_positive=zero_is_positive)


def tanh(steepness: float = 1.0) -> ActivationFunction:
    return ActivationFunction(ActivationKind.TANH, steepness=steepness)


def leaky_relu(
    leakyness_factor: float = 0.01, zero_is_positive: bool = False
) -> ActivationFunction:
    return ActivationFunction(
        ActivationKind.LEAKY_RELU,
        leakyness_factor=leakyness_factor,
        zero_is_positive=zero_is_positive,
    )


def softplus(steepness: float = 1.0) -> ActivationFunction:
    return ActivationFunction(ActivationKind.SOFTPLUS, steepness=steepness)


def softmax(steepness: float = 1.0) -> ActivationFunction:
    if float(steepness) != 1.0:
        warnings.warn(
            "SoftMax steepness is stored but not applied during evaluation.",
            UserWarning,
        )

    return ActivationFunction(ActivationKind.SOFTMAX, steepness=steepness)
