"""Unit tests for navfilter.models.system_model."""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from navfilter.estimators.state import State
from navfilter.models.system_model import (
    AccelerometerModel,
    BiasModel,
    GyroModel,
    SystemInput,
)


class TestSystemInput(unittest.TestCase):

    def test_defaults(self) -> None:
        system_input = SystemInput()
        assert_allclose(system_input.rate, np.zeros(3))
        assert_allclose(system_input.acceleration, np.zeros(3))
        self.assertIsNone(system_input.t)

    def test_lists_converted(self) -> None:
        system_input = SystemInput(rate=[0.0, 0.0, 0.1], acceleration=[0, 0, 9.8], t=1.5)
        self.assertEqual(system_input.rate.dtype, np.float64)
        self.assertEqual(system_input.acceleration[2], 9.8)

    def test_invalid_shape(self) -> None:
        with self.assertRaises(ValueError):
            SystemInput(rate=[0.0, 0.1])
        with self.assertRaises(ValueError):
            SystemInput(acceleration=np.zeros((3, 1)))


class TestBiasModel(unittest.TestCase):

    def test_unfiltered_returns_configured_bias(self) -> None:
        model = BiasModel('gyro', bias_x=0.1, bias_z=-0.2)
        state = State()
        self.assertTrue(model.init(None, state))
        self.assertEqual(state.dimension, 10)
        assert_allclose(model.get_bias(state), [0.1, 0.0, -0.2])
        self.assertFalse(model.is_estimated(state))

    def test_filtered_adds_block(self) -> None:
        model = BiasModel('gyro', filtered=True, prior_stddev=0.1, bias_y=0.3)
        state = State()
        model.init(None, state)
        self.assertEqual(model.block_name, 'gyro_bias')
        self.assertEqual(state.dimension, 13)
        self.assertTrue(model.is_estimated(state))
        assert_allclose(model.get_bias(state), [0.0, 0.3, 0.0])
        assert_allclose(np.diag(state.P)[10:], 0.01)

        state.get_block_value('gyro_bias')[:] = [1.0, 2.0, 3.0]
        assert_allclose(model.get_bias(state), [1.0, 2.0, 3.0])

    def test_noise(self) -> None:
        model = BiasModel('accelerometer', filtered=True, drift=0.5)
        state = State()
        model.init(None, state)
        Q = np.zeros((state.dimension, state.dimension))
        model.get_system_noise(Q, state)
        assert_allclose(np.diag(Q)[10:], 0.25)
        assert_allclose(np.diag(Q)[:10], 0.0)

    def test_named_defaults(self) -> None:
        gyro = GyroModel(stddev=0.5)
        accelerometer = AccelerometerModel()
        self.assertEqual(gyro.name, 'gyro')
        self.assertEqual(gyro.parameters['stddev'], 0.5)
        self.assertAlmostEqual(gyro.parameters['drift'], np.deg2rad(0.01))
        self.assertEqual(accelerometer.name, 'accelerometer')
        self.assertEqual(accelerometer.parameters['stddev'], 1e-2)


if __name__ == "__main__":
    unittest.main()
