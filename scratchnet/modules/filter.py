import typing as t

import numpy as np

from . import _utils
from . import activation as act
from . import base
from .base import _check_previous


class _BaseMovingFilter(base.BaseLayer):
    """Layer sliding a square window over the spatial plane of its input."""

    def __init__(
        self,
        depth: int,
        kernel_size: int,
        stride: int,
        previous: base.BaseLayer,
        padding: int = 0,
    ):
        assert int(kernel_size) > 0
        assert int(stride) > 0
        assert int(padding) >= 0
        _check_previous(previous)

        self.kernel_size = int(kernel_size)
        self.stride = int(stride)
        self.padding = int(padding)

        prev_width, prev_height, _ = previous.shape

        super(_BaseMovingFilter, self).__init__(
            width=_utils.calc_out_spatial_dim(
                prev_width, self.kernel_size, self.stride, self.padding
            ),
            height=_utils.calc_out_spatial_dim(
                prev_height, self.kernel_size, self.stride, self.padding
            ),
            depth=depth,
            previous=previous,
        )

    def _windows(self) -> t.Iterator[t.Tuple[int, int, slice, slice]]:
        """Yield (out_y, out_x, rows, cols) of every receptive field."""
        k, s = self.kernel_size, self.stride

        for r in range(self.height):
            h_start = r * s
            for c in range(self.width):
                w_start = c * s
                yield r, c, slice(h_start, h_start + k), slice(w_start, w_start + k)

    def _previous_array(self, values) -> np.ndarray:
        prev_width, prev_height, prev_depth = self.previous_shape
        X = np.asarray(values, dtype=float).reshape(prev_depth, prev_height, prev_width)

        if self.padding:
            p = self.padding
            X = np.pad(X, pad_width=((0, 0), (p, p), (p, p)), mode="constant")

        return X

    def crop_padding(self, X: np.ndarray) -> np.ndarray:
        if not self.padding:
            return X

        p = self.padding
        return X[:, p : X.shape[1] - p, p : X.shape[2] - p]


class ConvolutionalLayer(_BaseMovingFilter):
    def __init__(
        self,
        filter_count: int,
        filter_size: int,
        stride: int,
        zero_padding: int,
        previous: base.BaseLayer,
        activation: t.Optional[act.ActivationFunction] = None,
    ):
        assert int(filter_count) > 0

        super(ConvolutionalLayer, self).__init__(
            depth=int(filter_count),
            kernel_size=filter_size,
            stride=stride,
            previous=previous,
            padding=zero_padding,
        )

        self.activation = activation if activation is not None else act.none()

        # Weight (fx, fy, fz, f) lives at 'fx + k * (fy + k * (fz + prev_depth * f))'
        self._weights = np.zeros(
            self.filter_count * self.previous_shape[2] * self.filter_size ** 2,
            dtype=float,
        )
        self._biases = np.zeros(self.filter_count, dtype=float)

    @property
    def filter_count(self) -> int:
        return self.depth

    @property
    def filter_size(self) -> int:
        return self.kernel_size

    @property
    def zero_padding(self) -> int:
        return self.padding

    @property
    def kernels(self) -> np.ndarray:
        """Weights viewed as (filter, prev_depth, filter_y, filter_x)."""
        k = self.filter_size
        return self._weights.reshape(self.filter_count, self.previous_shape[2], k, k)

    def to_weight_index(self, fx: int, fy: int, fz: int, f: int) -> int:
        k = self.filter_size
        return fx + k * (fy + k * (fz + self.previous_shape[2] * f))

    def get_filter_weight(self, fx: int, fy: int, fz: int, f: int) -> float:
        k = self.filter_size

        if not (
            0 <= fx < k
            and 0 <= fy < k
            and 0 <= fz < self.previous_shape[2]
            and 0 <= f < self.filter_count
        ):
            raise IndexError(f"Filter coordinate {(fx, fy, fz, f)} out of range.")

        return self.get_weight(self.to_weight_index(fx, fy, fz, f))

    def _init_dims(self):
        k2 = self.filter_size ** 2
        return k2 * self.previous_shape[2], k2 * self.filter_count

    def forward(self, X):
        self._check_input(X)

        X = self._previous_array(X.values)
        W = self.kernels

        raw = np.empty((self.filter_count, self.height, self.width), dtype=float)

        for r, c, rows, cols in self._windows():
            raw[:, r, c] = np.tensordot(W, X[:, rows, cols], axes=3)

        raw += self._biases[:, None, None]
        raw = raw.ravel()

        out = self.activation.activate(raw)

        return base.ForwardResult(base.Tensor(out, *self.shape), raw)

    def backward(self, session):
        raw = session.forward_cache[self.index].raw_output

        dE_dz = self._output_error(session) * self.activation.derivative(raw)
        dout = dE_dz.reshape(self.filter_count, self.height, self.width)

        X = self._previous_array(session.previous_output(self))
        dW = np.zeros_like(self.kernels)

        for r, c, rows, cols in self._windows():
            dW += dout[:, r, c, None, None, None] * X[None, :, rows, cols]

        # dz/db = 1 for every output position of the filter
        db = np.sum(dout, axis=(1, 2))

        session.dE_dz[self.index] = dE_dz
        session.stage(
            self,
            weights=session.momentum_step(self, "weights", self._weights, dW.ravel()),
            biases=session.momentum_step(self, "biases", self._biases, db),
        )

    def _calc_error_contributions(self, session):
        dout = session.dE_dz[self.index].reshape(
            self.filter_count, self.height, self.width
        )
        W = self.kernels

        prev_width, prev_height, prev_depth = self.previous_shape
        p = self.padding

        dX = np.zeros((prev_depth, prev_height + 2 * p, prev_width + 2 * p), dtype=float)

        for r, c, rows, cols in self._windows():
            dX[:, rows, cols] += np.tensordot(dout[:, r, c], W, axes=1)

        return self.crop_padding(dX).ravel()

    def _attributes(self):
        return {
            "FilterCount": self.filter_count,
            "FilterSize": self.filter_size,
            "Stride": self.stride,
            "ZeroPadding": self.zero_padding,
        }

    @classmethod
    def from_element(cls, root, previous):
        layer = cls(
            _utils.int_attr(root, "FilterCount"),
            _utils.int_attr(root, "FilterSize"),
            _utils.int_attr(root, "Stride"),
            _utils.int_attr(root, "ZeroPadding"),
            previous,
            act.ActivationFunction.from_element(root.find("ActivationFunction")),
        )
        layer._restore_params(root)
        return layer


class MaxPoolingLayer(_BaseMovingFilter):
    def __init__(self, filter_size: int, stride: int, previous: base.BaseLayer):
        _check_previous(previous)

        super(MaxPoolingLayer, self).__init__(
            depth=previous.shape[2],
            kernel_size=filter_size,
            stride=stride,
            previous=previous,
        )

    @property
    def filter_size(self) -> int:
        return self.kernel_size

    def forward(self, X):
        self._check_input(X)

        X = self._previous_array(X.values)
        prev_width, prev_height, prev_depth = self.previous_shape
        k = self.kernel_size

        out = np.empty((prev_depth, self.height, self.width), dtype=float)
        max_indices = np.empty((prev_depth, self.height, self.width), dtype=int)
        depth_inds = np.arange(prev_depth)

        for r, c, rows, cols in self._windows():
            window = X[:, rows, cols].reshape(prev_depth, -1)
            arg = np.argmax(window, axis=1)

            out[:, r, c] = window[depth_inds, arg]

            # linear index of the winning neuron in the previous layer
            wy = rows.start + arg // k
            wx = cols.start + arg % k
            max_indices[:, r, c] = wx + prev_width * (wy + prev_height * depth_inds)

        out = out.ravel()

        return base.ForwardResult(base.Tensor(out, *self.shape), out, max_indices.ravel())

    def backward(self, session):
        # Identity activation: dE/dz == dE/do
        session.dE_dz[self.index] = np.asarray(self._output_error(session), dtype=float)

    def _calc_error_contributions(self, session):
        max_indices = session.forward_cache[self.index].aux

        dX = np.zeros(self.previous_neurons, dtype=float)
        np.add.at(dX, max_indices, session.dE_dz[self.index])

        return dX

    def _attributes(self):
        return {"FilterSize": self.filter_size, "Stride": self.stride}

    @classmethod
    def from_element(cls, root, previous):
        return cls(
            _utils.int_attr(root, "FilterSize"),
            _utils.int_attr(root, "Stride"),
            previous,
        )
