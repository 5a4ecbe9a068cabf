from . import modules
from . import losses
from . import gradient_check
from .modules import activation
from .modules import ActivationFunction
from .modules import ActivationKind
from .modules import Tensor
from .modules import InputLayer
from .modules import FullyConnectedLayer
from .modules import ConvolutionalLayer
from .modules import MaxPoolingLayer
from .modules import Network
from .dataset import Dataset
from .dataset import PreloadedDataset
from .dataset import OnDemandDataset
from .optimizers import BackpropagationSession
from .exceptions import ConfigurationError
from .exceptions import UnsupportedOperation

__version__ = "0.1.0"
