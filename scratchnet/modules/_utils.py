import typing as t

import numpy as np

from ..exceptions import ConfigurationError


def all_positive(vals):
    a = not isinstance(vals, int) or vals > 0
    b = not hasattr(vals, "__len__") or all(map(lambda x: x > 0, vals))
    return a and b


def calc_out_spatial_dim(
    input_dim: int, kernel_size: int, stride: int, padding: int = 0
) -> int:
    span = int(input_dim) - int(kernel_size) + 2 * int(padding)

    if span < 0:
        raise ConfigurationError(
            f"Filter size {kernel_size} does not fit an input of size "
            f"{input_dim} with zero padding {padding}."
        )

    if span % int(stride):
        raise ConfigurationError(
            f"Filter size {kernel_size} and stride {stride} do not tile an "
            f"input of size {input_dim} (zero padding {padding}) exactly."
        )

    return 1 + span // int(stride)


def weight_init_param_he(dist: str, dim_in: int, *args):
    assert dist in {"normal", "uniform"}

    if dist == "normal":
        return np.sqrt(2.0 / dim_in)

    return np.sqrt(6.0 / dim_in)


def weight_init_param_xavier(dist: str, dim_in: int, *args):
    assert dist in {"normal", "uniform"}

    if dist == "normal":
        return np.sqrt(1.0 / (3.0 * dim_in))

    return np.sqrt(1.0 / dim_in)


def weight_init_param_xavier_norm(dist: str, dim_in: int, dim_out: int, *args):
    assert dist in {"normal", "uniform"}

    if dist == "normal":
        return np.sqrt(2.0 / (dim_in + dim_out))

    return np.sqrt(6.0 / (dim_in + dim_out))


# NOTE: either 'normal' and 'uniform' distributions are initialized
# to have the very same variance.
_WEIGHT_INIT_PARAM = {
    "he": weight_init_param_he,
    "xavier": weight_init_param_xavier,
    "xavier_norm": weight_init_param_xavier_norm,
}

# Known rules of thumb:
# 'he': suitable for ReLU activations
# 'xavier': suitable for Tanh and Sigmoid activations


def get_weight_init_dist_params(
    std: t.Union[str, float],
    dist: str,
    dims: t.Tuple[int, int],
) -> float:
    """Return the standard deviation ('normal') or bound ('uniform')."""
    assert dist in {"normal", "uniform"}

    if not isinstance(std, str):
        assert float(std) > 0.0
        return float(std)

    if std not in _WEIGHT_INIT_PARAM:
        raise ConfigurationError(f"Unknown weight initialization: {std}.")

    dim_in, dim_out = dims

    return float(_WEIGHT_INIT_PARAM[std](dist, max(1, dim_in), max(1, dim_out)))


def sample_weights(
    size: int,
    dims: t.Tuple[int, int],
    mode: str = "uniform",
    std: t.Union[str, float] = "xavier",
    random_state: t.Optional[t.Union[int, np.random.RandomState]] = None,
) -> np.ndarray:
    if mode not in {"normal", "uniform"}:
        raise ConfigurationError(f"Unknown weight distribution: {mode}.")

    if isinstance(random_state, np.random.RandomState):
        rng = random_state

    else:
        rng = np.random.RandomState(random_state)

    param = get_weight_init_dist_params(std, mode, dims)

    if mode == "normal":
        return rng.normal(0.0, param, size)

    return rng.uniform(-param, param, size)


def array_to_text(values) -> str:
    # repr() of a python float round-trips exactly
    return ",".join(repr(float(v)) for v in np.asarray(values, dtype=float).ravel())


def text_to_array(text: t.Optional[str]) -> np.ndarray:
    text = (text or "").strip()

    if not text:
        return np.empty(0, dtype=float)

    try:
        return np.array([float(tok) for tok in text.split(",")], dtype=float)

    except ValueError as err:
        raise ConfigurationError(f"Malformed numeric array: {err}.") from err


def int_attr(node, name: str) -> int:
    raw = node.get(name)

    try:
        return int(raw)

    except (TypeError, ValueError) as err:
        raise ConfigurationError(
            f"Node '{node.tag}' has a missing or malformed '{name}' attribute: {raw!r}."
        ) from err
