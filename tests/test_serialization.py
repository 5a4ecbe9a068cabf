import unittest
import xml.etree.ElementTree as ET

import numpy as np

from scratchnet import ConfigurationError
from scratchnet import ConvolutionalLayer
from scratchnet import FullyConnectedLayer
from scratchnet import InputLayer
from scratchnet import MaxPoolingLayer
from scratchnet import Network
from scratchnet import Tensor
from scratchnet import activation


def _build_network():
    inp = InputLayer(6, 6, 2)
    conv = ConvolutionalLayer(3, 3, 1, 1, inp, activation.tanh(0.8))
    pool = MaxPoolingLayer(2, 2, conv)
    hidden = FullyConnectedLayer(4, pool, activation.leaky_relu(0.05, True))
    out = FullyConnectedLayer(2, hidden, activation.softmax())

    net = Network([inp, conv, pool, hidden, out]).init_weights(random_state=3)
    rng = np.random.RandomState(4)

    for layer in net:
        layer.set_biases(rng.uniform(-0.5, 0.5, layer.num_biases))

    return net


class TestXMLRoundTrip(unittest.TestCase):
    def setUp(self):
        self.net = _build_network()
        self.X = Tensor(np.random.RandomState(5).rand(72), 6, 6, 2)

    def test_same_outputs(self):
        restored = Network.from_xml(self.net.to_xml())

        self.assertEqual(
            [type(layer) for layer in restored], [type(layer) for layer in self.net]
        )
        self.assertEqual(restored.feed_forward(self.X), self.net.feed_forward(self.X))

        for layer_a, layer_b in zip(self.net, restored):
            self.assertEqual(layer_a.shape, layer_b.shape)
            np.testing.assert_array_equal(layer_a.weights, layer_b.weights)
            np.testing.assert_array_equal(layer_a.biases, layer_b.biases)
            self.assertEqual(
                getattr(layer_a, "activation", None), getattr(layer_b, "activation", None)
            )

    def test_document_layout(self):
        root = ET.fromstring(self.net.to_xml())

        self.assertEqual(root.tag, "NeuralNetwork")
        self.assertEqual(root.get("Layers"), "5")
        self.assertEqual(
            [node.tag for node in root],
            [
                "InputLayer",
                "ConvolutionalLayer",
                "MaxPoolingLayer",
                "FullyConnectedLayer",
                "FullyConnectedLayer",
            ],
        )
        self.assertEqual([node.get("Index") for node in root], list("01234"))

        conv = root[1]
        self.assertEqual(conv.get("FilterCount"), "3")
        self.assertEqual(conv.get("ZeroPadding"), "1")
        self.assertEqual(conv.find("ActivationFunction").get("Name"), "TanH")
        self.assertEqual(len(conv.findtext("Weights").split(",")), 54)

        self.assertIsNone(root[0].find("Weights"))
        self.assertIsNone(root[2].find("Weights"))

    def test_child_order_follows_index(self):
        root = ET.fromstring(self.net.to_xml())
        nodes = list(root)

        for node in nodes:
            root.remove(node)

        for node in reversed(nodes):
            root.append(node)

        restored = Network.from_xml(ET.tostring(root, encoding="unicode"))
        self.assertEqual(restored.feed_forward(self.X), self.net.feed_forward(self.X))

    def test_restored_network_is_independent(self):
        restored = Network.from_xml(self.net.to_xml())
        restored[3].set_weight(0, 100.0)
        self.assertNotEqual(self.net[3].get_weight(0), 100.0)


class TestMalformedXML(unittest.TestCase):
    def setUp(self):
        self.text = _build_network().to_xml()

    def test_not_xml(self):
        with self.assertRaises(ConfigurationError):
            Network.from_xml("<NeuralNetwork Layers='1'>")

    def test_layer_count_mismatch(self):
        root = ET.fromstring(self.text)
        root.set("Layers", "6")

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

        root.set("Layers", "4")

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

    def test_repeated_index(self):
        root = ET.fromstring(self.text)
        root[4].set("Index", "3")

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

    def test_unknown_layer_kind(self):
        root = ET.fromstring(self.text)
        root[2].tag = "AveragePoolingLayer"

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

    def test_wrong_weight_count(self):
        root = ET.fromstring(self.text)
        weights = root[3].find("Weights")
        weights.text = weights.text.rsplit(",", 1)[0]

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

    def test_malformed_attribute(self):
        root = ET.fromstring(self.text)
        root[1].set("Stride", "two")

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))

    def test_missing_activation(self):
        root = ET.fromstring(self.text)
        root[4].remove(root[4].find("ActivationFunction"))

        with self.assertRaises(ConfigurationError):
            Network.from_xml(ET.tostring(root, encoding="unicode"))


if __name__ == "__main__":
    unittest.main()
