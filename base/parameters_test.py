"""Tests for theta_inversion.base.parameters."""

import dataclasses

from absl.testing import absltest
from absl.testing import flagsaver
from absl.testing import parameterized
import numpy as np
from theta_inversion.base import errors
from theta_inversion.base import parameters


class SolverConfigTest(parameterized.TestCase):

  def testDefaultConfig(self):
    """Checks the default tolerances and bounds."""
    config = parameters.SolverConfig()

    self.assertEqual(1e-6, config.rtol)
    self.assertEqual(1e-3, config.atol)
    self.assertEqual(50, config.max_iter)
    self.assertEqual(173.0, config.t_min)
    self.assertEqual(323.0, config.t_max)
    self.assertEqual(65536, config.chunk_size)
    self.assertEqual(parameters.default_parallelism(), config.parallelism)
    self.assertGreaterEqual(config.parallelism, 1)
    config.validate()

  @parameterized.named_parameters(
      ('ZeroLowerBound', dict(t_min=0.0)),
      ('NegativeLowerBound', dict(t_min=-5.0)),
      ('EqualBounds', dict(t_min=300.0, t_max=300.0)),
      ('InvertedBounds', dict(t_min=320.0, t_max=180.0)),
      ('InfiniteUpperBound', dict(t_max=np.inf)),
      ('NanLowerBound', dict(t_min=np.nan)),
      ('NegativeRtol', dict(rtol=-1e-6)),
      ('NegativeAtol', dict(atol=-1e-3)),
      ('NanRtol', dict(rtol=np.nan)),
      ('ZeroMaxIter', dict(max_iter=0)),
      ('ZeroParallelism', dict(parallelism=0)),
      ('ZeroChunkSize', dict(chunk_size=0)),
  )
  def testValidateRaisesConfigurationError(self, changes):
    """Checks malformed configs are rejected."""
    config = parameters.SolverConfig(**changes)

    with self.assertRaises(errors.ConfigurationError):
      config.validate()

  def testConfigurationErrorIsAValueError(self):
    """Checks callers catching ValueError also catch config errors."""
    with self.assertRaises(ValueError):
      parameters.SolverConfig(max_iter=-1).validate()

  def testZeroTolerancesAreValid(self):
    """Checks zero tolerances are accepted."""
    parameters.SolverConfig(rtol=0.0, atol=0.0).validate()

  def testConfigIsImmutable(self):
    """Checks a config can not be changed once constructed."""
    config = parameters.SolverConfig()

    with self.assertRaises(dataclasses.FrozenInstanceError):
      config.rtol = 1e-3  # pytype: disable=annotation-type-mismatch

  def testReplaceCreatesModifiedCopy(self):
    """Checks configs for resubmission are derived without mutation."""
    config = parameters.SolverConfig(parallelism=2)

    widened = config.replace(t_min=150.0, t_max=350.0)

    self.assertEqual(150.0, widened.t_min)
    self.assertEqual(350.0, widened.t_max)
    self.assertEqual(2, widened.parallelism)
    self.assertEqual(173.0, config.t_min)
    self.assertEqual(323.0, config.t_max)


class ConfigFromFlagsTest(absltest.TestCase):

  def testConfigFromFlagsUsesDefaults(self):
    """Checks the flag defaults give the default config."""
    config = parameters.config_from_flags()

    self.assertEqual(parameters.SolverConfig(), config)

  @flagsaver.flagsaver(
      theta_inversion_rtol=1e-5,
      theta_inversion_atol=1e-2,
      theta_inversion_max_iter=20,
      theta_inversion_t_min=150.0,
      theta_inversion_t_max=350.0,
      theta_inversion_parallelism=3,
      theta_inversion_chunk_size=1024,
  )
  def testConfigFromFlagsUsesFlagValues(self):
    """Checks every field of the config is read from its flag."""
    config = parameters.config_from_flags()

    expected = parameters.SolverConfig(
        rtol=1e-5,
        atol=1e-2,
        max_iter=20,
        t_min=150.0,
        t_max=350.0,
        parallelism=3,
        chunk_size=1024,
    )
    self.assertEqual(expected, config)

  @flagsaver.flagsaver(theta_inversion_parallelism=3)
  def testConfigFromFlagsParallelismOverride(self):
    """Checks the parallelism argument takes precedence over the flag."""
    config = parameters.config_from_flags(parallelism=5)

    self.assertEqual(5, config.parallelism)

  @flagsaver.flagsaver(theta_inversion_t_min=400.0)
  def testConfigFromFlagsRaisesOnInvalidFlags(self):
    """Checks invalid flag values are rejected before use."""
    with self.assertRaises(errors.ConfigurationError):
      parameters.config_from_flags()


if __name__ == '__main__':
  absltest.main()
