"""Tests for theta_inversion.numerics.root_finder_tf."""

from absl.testing import parameterized
import numpy as np
from theta_inversion.numerics import root_finder
from theta_inversion.numerics import root_finder_tf
import tensorflow as tf


def _quadratic(x, c):
  return x**2 - c


class RootFinderTfTest(tf.test.TestCase, parameterized.TestCase):

  def _solve(self, residual_fn, c, x0, x1, lower, upper, **kwargs):
    """Runs the root finder on tensors with bracket residuals from `c`."""
    c = tf.constant(c, dtype=tf.float64)
    lower = lower * tf.ones_like(c)
    upper = upper * tf.ones_like(c)
    kwargs.setdefault('max_iterations', 50)
    kwargs.setdefault('rtol', 1e-12)
    kwargs.setdefault('atol', 1e-10)
    return self.evaluate(
        root_finder_tf.safeguarded_secant(
            residual_fn, (c,),
            x0=x0 * tf.ones_like(c),
            x1=x1 * tf.ones_like(c),
            lower=lower,
            upper=upper,
            f_lower=residual_fn(lower, c),
            f_upper=residual_fn(upper, c),
            **kwargs))

  @parameterized.named_parameters(
      ('Case00', 0.0, 1e-10),
      ('Case01', 1e-12, 1e-10),
      ('Case02', 1e-10, 0.0),
  )
  def testSafeguardedSecantFindsCorrectRoots(self, rtol, atol):
    """Checks the roots of an increasing function are found."""
    c = np.array([1.0, 2.0, 9.0, 0.3])

    x, converged, iterations = self._solve(
        _quadratic, c, 0.5, 1.5, 0.0, 4.0, rtol=rtol, atol=atol)

    self.assertTrue(np.all(converged))
    self.assertAllClose(np.sqrt(c), x, atol=1e-9)
    self.assertTrue(np.all(iterations > 0))

  def testSafeguardedSecantFallsBackToBisection(self):
    """Checks convergence when secant steps from the seeds overshoot."""
    c = np.array([1.0, -3.0, 7.5])

    x, converged, _ = self._solve(lambda x, c: tf.math.atan(x - c), c, -9.0,
                                  9.5, -10.0, 10.0)

    self.assertTrue(np.all(converged))
    self.assertAllClose(c, x, atol=1e-9)

  def testSafeguardedSecantAgreesWithNumpy(self):
    """Checks the tensor and the numpy root finders find the same roots."""
    c = np.array([0.3, 2.0, 5.0, 11.0])
    lower = np.zeros_like(c)
    upper = np.full_like(c, 4.0)

    x, _, _ = self._solve(_quadratic, c, 0.5, 1.5, 0.0, 4.0)
    expected = root_finder.safeguarded_secant(
        _quadratic, (c,),
        x0=np.full_like(c, 0.5),
        x1=np.full_like(c, 1.5),
        lower=lower,
        upper=upper,
        f_lower=_quadratic(lower, c),
        f_upper=_quadratic(upper, c),
        max_iterations=50,
        rtol=1e-12,
        atol=1e-10)

    self.assertAllClose(expected.x, x, atol=1e-9)

  def testSafeguardedSecantReturnsExactRootAtSeed(self):
    x, converged, iterations = self._solve(lambda x, c: x - c, [2.0], 1.0,
                                           2.0, 0.0, 5.0)

    self.assertTrue(converged[0])
    self.assertEqual(2.0, x[0])
    self.assertEqual(0, iterations[0])

  def testSafeguardedSecantSkipsInactiveElements(self):
    """Checks masked elements take no iteration and are not converged."""
    active = tf.constant([True, False, True])

    x, converged, iterations = self._solve(
        _quadratic, [2.0, 3.0, 5.0], 0.5, 1.5, 0.0, 4.0, active=active)

    self.assertAllEqual([True, False, True], converged)
    self.assertEqual(0, iterations[1])
    self.assertAllClose([np.sqrt(2.0), np.sqrt(5.0)], x[[0, 2]], atol=1e-9)

  def testSafeguardedSecantStopsAtMaxIterations(self):
    x, converged, iterations = self._solve(
        _quadratic, [2.0], 0.5, 1.9, 0.0, 4.0, max_iterations=1, rtol=0.0,
        atol=0.0)

    self.assertFalse(converged[0])
    self.assertEqual(1, iterations[0])
    self.assertBetween(x[0], 0.0, 4.0)

  def testSafeguardedSecantRejectsNegativeTolerance(self):
    with self.assertRaisesRegex(ValueError, 'non-negative'):
      self._solve(_quadratic, [2.0], 0.5, 1.5, 0.0, 4.0, atol=-1.0)


if __name__ == '__main__':
  tf.test.main()
