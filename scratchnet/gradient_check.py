"""Perform gradient checking to debug analytical gradients."""
import typing as t

import numpy as np

from .dataset import PreloadedDataset
from .losses import MSELoss
from .modules.base import Tensor
from .optimizers import BackpropagationSession

TypeVectorizedFunc = t.Callable[[np.ndarray], float]


def numerical_grad(
    func: TypeVectorizedFunc, inst: t.Union[np.ndarray, float], delta: float = 1.0e-5
) -> np.ndarray:
    r"""Approximate the gradient of ``func`` evaluated on ``inst``.

    The strategy used is the centered formula:

        \frac{df(x)}{dx} = \frac{f(x + h) - f(x - h)}{2h}

    This centered formula has a order of magnitude higher O(h^2) of
    precision than the traditional finite difference approximation
    O(h).
    """
    inst = np.array(inst, dtype=np.float64).ravel()

    grad = np.zeros(inst.size, dtype=np.float64)
    inst_mod_a = np.copy(inst)
    inst_mod_b = np.copy(inst)

    _d_delta = np.float64(2.0 * delta)

    for dim_ind in np.arange(inst.size):
        inst_mod_a[dim_ind] += delta
        inst_mod_b[dim_ind] -= delta
        grad[dim_ind] = (func(inst_mod_a) - func(inst_mod_b)) / _d_delta
        inst_mod_a[dim_ind] -= delta
        inst_mod_b[dim_ind] += delta

    return grad


def relative_error(val_ana_grad: np.ndarray, val_num_grad: np.ndarray) -> float:
    """Maximum element-wise relative error between two gradient estimates."""
    abs_diff = np.abs(val_num_grad - val_ana_grad)

    if abs_diff.size == 0:
        return 0.0

    max_el_wise = np.maximum(np.abs(val_num_grad), np.abs(val_ana_grad))

    _non_zero_inds = np.logical_and(abs_diff > 1e-9, max_el_wise > 1e-8)
    abs_diff[_non_zero_inds] /= max_el_wise[_non_zero_inds]

    return float(np.max(abs_diff))


def analytic_grads(network, X: Tensor, y: Tensor, learning_rate: float = 0.5):
    """Gradients of 0.5 * sum((o - t)^2) from a single backpropagation step.

    The step runs on a copy of ``network``; with momentum 0 the recorded
    delta of every parameter is ``learning_rate * gradient``.
    """
    model = network.copy()
    session = BackpropagationSession(
        PreloadedDataset([X], [y]),
        learning_rate=learning_rate,
        error_gradient=MSELoss().gradient,
    )
    model.train(session)

    grads = {}

    for layer in model:
        if not (layer.num_weights or layer.num_biases):
            continue

        grads[layer.index] = (
            session.delta(0, layer.index, "weights") / learning_rate,
            session.delta(0, layer.index, "biases") / learning_rate,
        )

    return grads


def numerical_grads(network, X: Tensor, y: Tensor, delta: float = 1.0e-5):
    model = network.copy()
    criterion = MSELoss()

    def total_error():
        loss, _ = criterion(y.values, model.feed_forward(X).values)
        return loss

    def error_by_weights(layer):
        def func(values):
            layer.set_weights(values)
            return total_error()

        return func

    def error_by_biases(layer):
        def func(values):
            layer.set_biases(values)
            return total_error()

        return func

    grads = {}

    for layer in model:
        if not (layer.num_weights or layer.num_biases):
            continue

        weights, biases = layer.weights, layer.biases

        dW = numerical_grad(error_by_weights(layer), weights, delta)
        layer.set_weights(weights)

        db = numerical_grad(error_by_biases(layer), biases, delta)
        layer.set_biases(biases)

        grads[layer.index] = (dW, db)

    return grads


def check_layer_gradients(
    network,
    X: Tensor,
    y: Tensor,
    delta: float = 1.0e-5,
    verbose: int = 0,
) -> t.Dict[int, float]:
    """Check if the backpropagated gradients match the numerical ones.

    Returns, for every layer holding parameters, the maximum relative
    error over its weights and biases.
    """
    ana = analytic_grads(network, X, y)
    num = numerical_grads(network, X, y, delta=delta)

    errors = {}

    for ind, (dW_ana, db_ana) in ana.items():
        dW_num, db_num = num[ind]
        errors[ind] = max(relative_error(dW_ana, dW_num), relative_error(db_ana, db_num))

        if verbose:
            print(
                f"Layer {ind} ({type(network[ind]).__name__}): "
                f"max relative error {errors[ind]:.3e}"
            )

    return errors
