import math
import unittest
import xml.etree.ElementTree as ET

import numpy as np

from scratchnet import ActivationFunction
from scratchnet import ActivationKind
from scratchnet import ConfigurationError
from scratchnet import activation


class TestActivationFormulas(unittest.TestCase):
    def test_none(self):
        func = activation.none()
        self.assertEqual(func.function(-3.5), -3.5)
        self.assertEqual(func.gradient(-3.5), 1.0)

    def test_sigmoid(self):
        func = activation.sigmoid(2.0)
        expected = 1.0 / (1.0 + math.exp(-1.0))

        self.assertAlmostEqual(func.function(0.5), expected)
        self.assertAlmostEqual(func.gradient(0.5), expected * (1.0 - expected))

    def test_tanh(self):
        func = activation.tanh(0.5)
        expected = math.tanh(1.0)

        self.assertAlmostEqual(func.function(2.0), expected)
        self.assertAlmostEqual(func.gradient(2.0), 1.0 - expected ** 2)

    def test_softplus(self):
        func = activation.softplus(2.0)

        self.assertAlmostEqual(func.function(1.0), math.log(1.0 + math.exp(2.0)))
        self.assertAlmostEqual(
            func.gradient(1.0), 2.0 - 2.0 / (1.0 + math.exp(2.0))
        )

    def test_relu_zero_handling(self):
        func = activation.relu(zero_is_positive=False)
        self.assertEqual(func.function(2.0), 2.0)
        self.assertEqual(func.function(-1.0), 0.0)
        self.assertEqual(func.function(0.0), 0.0)
        self.assertEqual(func.gradient(0.0), 0.0)
        self.assertEqual(func.gradient(3.0), 1.0)

        func = activation.relu(zero_is_positive=True)
        self.assertEqual(func.function(0.0), 0.0)
        self.assertEqual(func.gradient(0.0), 1.0)
        self.assertEqual(func.gradient(-1e-9), 0.0)

    def test_leaky_relu(self):
        func = activation.leaky_relu(0.1, zero_is_positive=False)
        self.assertAlmostEqual(func.function(-2.0), -0.2)
        self.assertEqual(func.function(4.0), 4.0)
        self.assertAlmostEqual(func.gradient(-2.0), 0.1)
        self.assertAlmostEqual(func.gradient(0.0), 0.1)

        func = activation.leaky_relu(0.1, zero_is_positive=True)
        self.assertEqual(func.gradient(0.0), 1.0)

    def test_softmax_uses_siblings(self):
        raw = np.array([1.0, 2.0, 3.0])
        func = activation.softmax()

        out = func.activate(raw)
        norm = math.exp(1.0) + math.exp(2.0) + math.exp(3.0)

        self.assertAlmostEqual(float(np.sum(out)), 1.0)
        self.assertAlmostEqual(func.function(2.0, raw), math.exp(2.0) / norm)

        p = math.exp(3.0) / norm
        self.assertAlmostEqual(func.gradient(3.0, raw), p * (1.0 - p))
        np.testing.assert_allclose(func.derivative(raw), out * (1.0 - out))

    def test_softmax_steepness_is_not_applied(self):
        raw = np.array([0.5, -1.0, 2.0])

        with self.assertWarns(UserWarning):
            steep = activation.softmax(3.0)

        np.testing.assert_allclose(steep.activate(raw), activation.softmax().activate(raw))
        self.assertEqual(steep.steepness, 3.0)

    def test_steepness_not_in_derivative(self):
        raw = np.array([-1.5, 0.0, 0.8])

        for s in (0.5, 2.0):
            func = activation.sigmoid(s)
            out = func.activate(raw)
            np.testing.assert_allclose(func.derivative(raw), out * (1.0 - out))

            func = activation.tanh(s)
            out = func.activate(raw)
            np.testing.assert_allclose(func.derivative(raw), 1.0 - out ** 2)

    def test_softmax_scalar_needs_siblings(self):
        with self.assertRaises(ConfigurationError):
            activation.softmax().function(0.3)

        with self.assertRaises(ConfigurationError):
            activation.softmax().gradient(0.3)

    def test_vector_matches_scalar_form(self):
        raw = np.linspace(-2.0, 2.0, 9)

        for func in (
            activation.none(),
            activation.sigmoid(1.5),
            activation.tanh(0.7),
            activation.relu(),
            activation.leaky_relu(0.2),
            activation.softplus(0.5),
        ):
            out = func.activate(raw)
            grad = func.derivative(raw)

            for i, value in enumerate(raw):
                self.assertAlmostEqual(out[i], func.function(value), msg=repr(func))
                self.assertAlmostEqual(grad[i], func.gradient(value), msg=repr(func))

    def test_activate_does_not_mutate_input(self):
        raw = np.array([-1.0, 0.0, 1.0])
        activation.relu().activate(raw)
        activation.leaky_relu().activate(raw)
        np.testing.assert_array_equal(raw, [-1.0, 0.0, 1.0])


class TestActivationDescription(unittest.TestCase):
    def test_params_by_kind(self):
        self.assertEqual(activation.none().params, {})
        self.assertEqual(activation.sigmoid(2.0).params, {"steepness": 2.0})
        self.assertEqual(activation.relu(True).params, {"zeroIsPositive": True})
        self.assertEqual(
            activation.leaky_relu(0.3).params,
            {"leakynessFactor": 0.3, "zeroIsPositive": False},
        )

    def test_element_round_trip(self):
        funcs = [
            activation.none(),
            activation.sigmoid(2.5),
            activation.relu(True),
            activation.tanh(0.25),
            activation.leaky_relu(0.05, True),
            activation.softplus(1.5),
            activation.softmax(),
        ]

        for func in funcs:
            text = ET.tostring(func.to_element(), encoding="unicode")
            restored = ActivationFunction.from_element(ET.fromstring(text))
            self.assertEqual(restored, func)

    def test_element_layout(self):
        root = activation.leaky_relu(0.05, True).to_element()

        self.assertEqual(root.tag, "ActivationFunction")
        self.assertEqual(root.get("Name"), "LeakyReLU")

        factor = root.find("CustomData/leakynessFactor")
        self.assertEqual(factor.get("Type"), "float")
        self.assertEqual(float(factor.get("Value")), 0.05)

        flag = root.find("CustomData/zeroIsPositive")
        self.assertEqual(flag.get("Type"), "bool")
        self.assertEqual(flag.get("Value"), "True")

    def test_unknown_kind(self):
        with self.assertRaises(ConfigurationError):
            ActivationFunction("Swish")

        node = ET.fromstring('<ActivationFunction Name="Swish"><CustomData /></ActivationFunction>')

        with self.assertRaises(ConfigurationError):
            ActivationFunction.from_element(node)

    def test_malformed_param(self):
        node = ET.fromstring(
            '<ActivationFunction Name="Sigmoid"><CustomData>'
            '<steepness Type="float" Value="steep" />'
            "</CustomData></ActivationFunction>"
        )

        with self.assertRaises(ConfigurationError):
            ActivationFunction.from_element(node)

    def test_unknown_param_warns(self):
        node = ET.fromstring(
            '<ActivationFunction Name="TanH"><CustomData>'
            '<steepness Type="float" Value="2.0" />'
            '<slope Type="float" Value="1.0" />'
            "</CustomData></ActivationFunction>"
        )

        with self.assertWarns(UserWarning):
            func = ActivationFunction.from_element(node)

        self.assertEqual(func, activation.tanh(2.0))

    def test_kind_by_name(self):
        self.assertIs(ActivationFunction("TanH").kind, ActivationKind.TANH)


if __name__ == "__main__":
    unittest.main()
