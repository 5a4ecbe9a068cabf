import numpy as np


class _BaseLoss:
    def __init__(self, average: bool = False):
        self.average = bool(average)


class _BasePairedLoss(_BaseLoss):
    def __call__(self, y, y_preds):
        raise NotImplementedError

    def gradient(self, output, target):
        """dE/do of each output neuron; usable as a session error gradient."""
        _, grads = self(target, output)
        return grads


class MSELoss(_BasePairedLoss):
    def __call__(self, y, y_preds):
        y_preds = np.asarray(y_preds, dtype=float)
        y = np.asarray(y, dtype=float).reshape(y_preds.shape)

        diff = y_preds - y

        mse = 0.5 * float(np.sum(diff * diff))
        grads = diff

        if self.average:
            mse /= y.size
            grads /= y.size

        return mse, grads


def mean_absolute_error(outputs, targets) -> float:
    outputs = np.asarray(outputs, dtype=float)
    targets = np.asarray(targets, dtype=float).reshape(outputs.shape)
    return float(np.mean(np.abs(outputs - targets)))
