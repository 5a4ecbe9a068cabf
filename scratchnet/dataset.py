import typing as t

import numpy as np

from .exceptions import ConfigurationError
from .modules.base import Shape
from .modules.base import Tensor


class Dataset:
    """Indexed collection of (input, target) tensor pairs of fixed shapes."""

    input_shape = None  # type: Shape
    target_shape = None  # type: Shape

    def __len__(self) -> int:
        raise NotImplementedError

    def _load_input(self, ind: int) -> Tensor:
        raise NotImplementedError

    def _load_target(self, ind: int) -> Tensor:
        raise NotImplementedError

    def _check_position(self, ind: int) -> int:
        if not 0 <= int(ind) < len(self):
            raise IndexError(f"Dataset position {ind} out of range [0, {len(self)}).")

        return int(ind)

    def input(self, ind: int) -> Tensor:
        return self._load_input(self._check_position(ind))

    def target(self, ind: int) -> Tensor:
        return self._load_target(self._check_position(ind))

    def __getitem__(self, ind: int) -> t.Tuple[Tensor, Tensor]:
        return self.input(ind), self.target(ind)

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def __repr__(self):
        return (
            f"{type(self).__name__} with {len(self)} samples "
            f"(input shape {self.input_shape}, target shape {self.target_shape})"
        )


class PreloadedDataset(Dataset):
    def __init__(self, inputs: t.Sequence[Tensor], targets: t.Sequence[Tensor]):
        inputs = tuple(inputs)
        targets = tuple(targets)

        if len(inputs) != len(targets):
            raise ConfigurationError(
                f"Got {len(inputs)} inputs but {len(targets)} targets."
            )

        if not inputs:
            raise ConfigurationError("A preloaded dataset needs at least one sample.")

        self.input_shape = inputs[0].shape
        self.target_shape = targets[0].shape

        for i, (X, y) in enumerate(zip(inputs, targets)):
            if X.shape != self.input_shape:
                raise ConfigurationError(
                    f"Input {i} has shape {X.shape}, expected {self.input_shape}."
                )

            if y.shape != self.target_shape:
                raise ConfigurationError(
                    f"Target {i} has shape {y.shape}, expected {self.target_shape}."
                )

        self.inputs = inputs
        self.targets = targets

    @classmethod
    def from_arrays(
        cls,
        X,
        y,
        input_shape: t.Optional[Shape] = None,
        target_shape: t.Optional[Shape] = None,
    ) -> "PreloadedDataset":
        """Build from 2-D arrays holding one flattened sample per row.

        Without explicit shapes, each row becomes a (features, 1, 1) tensor.
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)

        X = X.reshape(X.shape[0], -1)
        y = y.reshape(y.shape[0], -1)

        input_shape = input_shape or (X.shape[1], 1, 1)
        target_shape = target_shape or (y.shape[1], 1, 1)

        return cls(
            [Tensor(row, *input_shape) for row in X],
            [Tensor(row, *target_shape) for row in y],
        )

    def __len__(self):
        return len(self.inputs)

    def _load_input(self, ind):
        return self.inputs[ind]

    def _load_target(self, ind):
        return self.targets[ind]


class OnDemandDataset(Dataset):
    """Dataset whose samples are produced by loader callables on every access.

    Every loaded tensor is checked against the declared shapes.
    """

    def __init__(
        self,
        load_input: t.Callable[[int], Tensor],
        load_target: t.Callable[[int], Tensor],
        size: int,
        input_shape: Shape,
        target_shape: Shape,
    ):
        if not callable(load_input) or not callable(load_target):
            raise ConfigurationError("Both data loaders must be callable.")

        if int(size) < 1:
            raise ConfigurationError("An on-demand dataset needs at least one sample.")

        self.load_input = load_input
        self.load_target = load_target
        self.size = int(size)
        self.input_shape = tuple(int(s) for s in input_shape)
        self.target_shape = tuple(int(s) for s in target_shape)

    def __len__(self):
        return self.size

    @staticmethod
    def _validated(data: Tensor, shape: Shape, name: str) -> Tensor:
        if not isinstance(data, Tensor):
            raise ConfigurationError(
                f"Loaded {name} data must be a Tensor, got {type(data).__name__}."
            )

        if data.shape != shape:
            raise ConfigurationError(
                f"Loaded {name} data has shape {data.shape}, expected {shape}."
            )

        return data

    def _load_input(self, ind):
        return self._validated(self.load_input(ind), self.input_shape, "input")

    def _load_target(self, ind):
        return self._validated(self.load_target(ind), self.target_shape, "target")
