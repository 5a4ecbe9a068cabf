from . import activation
from .activation import ActivationFunction
from .activation import ActivationKind
from .base import BaseLayer
from .base import ForwardResult
from .base import Tensor
from .base import InputLayer
from .base import FullyConnectedLayer
from .filter import ConvolutionalLayer
from .filter import MaxPoolingLayer
from .compose import Network
