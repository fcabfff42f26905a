"""Tests for theta_inversion.solver.results."""

from absl.testing import absltest
from absl.testing import parameterized
import numpy as np
from theta_inversion.base import errors
from theta_inversion.solver import results

_STATUS = results.SolverStatus


class SolverResultTest(parameterized.TestCase):

  def testStatusCodesAreStable(self):
    """Checks the integer codes of the status stored in batch results."""
    self.assertEqual(0, _STATUS.CONVERGED)
    self.assertEqual(1, _STATUS.DOMAIN_ERROR)
    self.assertEqual(2, _STATUS.NO_BRACKET)
    self.assertEqual(3, _STATUS.MAX_ITERATIONS)

  def testRaiseForStatusPassesWhenConverged(self):
    """Checks a converged result does not raise."""
    results.SolverResult(T=300.0, converged=True, iterations=3).raise_for_status()

  @parameterized.named_parameters(
      ('DomainError', _STATUS.DOMAIN_ERROR, errors.DomainError),
      ('NoBracket', _STATUS.NO_BRACKET, errors.ConvergenceError),
      ('MaxIterations', _STATUS.MAX_ITERATIONS, errors.ConvergenceError),
  )
  def testRaiseForStatusRaisesMatchingError(self, status, expected_error):
    """Checks each failure status maps to its error type."""
    result = results.SolverResult(
        T=300.0, converged=False, iterations=5, status=status)

    with self.assertRaises(expected_error):
      result.raise_for_status()


class BatchResultTest(absltest.TestCase):

  def _make_result(self):
    return results.BatchResult(
        T=np.array([[290.0, 300.0], [np.nan, 350.0]]),
        converged=np.array([[True, True], [False, False]]),
        iterations=np.array([[2, 0], [0, 50]], dtype=np.int32),
        status=np.array([[0, 0], [1, 3]], dtype=np.int8),
    )

  def testEmptyMarksEverySampleUnsolved(self):
    """Checks preallocated results are not mistaken for converged ones."""
    result = results.BatchResult.empty((2, 3))

    self.assertEqual((2, 3), result.T.shape)
    self.assertEqual(6, len(result))
    self.assertFalse(np.any(result.converged))
    np.testing.assert_array_equal(
        np.full((2, 3), _STATUS.DOMAIN_ERROR), result.status)

  def testChunkWritesThroughToBatch(self):
    """Checks chunks are views into the arrays of the batch."""
    result = results.BatchResult.empty(5)

    chunk = result.chunk(1, 3)
    chunk.T[:] = 280.0
    chunk.converged[:] = True
    chunk.status[:] = _STATUS.CONVERGED

    np.testing.assert_array_equal([280.0, 280.0], result.T[1:3])
    np.testing.assert_array_equal(
        [False, True, True, False, False], result.converged)

  def testGetItemUsesFlatOrder(self):
    """Checks samples are indexed in flat order, from both ends."""
    result = self._make_result()

    self.assertEqual(
        results.SolverResult(T=300.0, converged=True, iterations=0), result[1])
    last = result[-1]
    self.assertEqual(350.0, last.T)
    self.assertFalse(last.converged)
    self.assertEqual(50, last.iterations)
    self.assertEqual(_STATUS.MAX_ITERATIONS, last.status)

  def testGetItemRaisesOutOfRange(self):
    result = self._make_result()

    with self.assertRaises(IndexError):
      _ = result[4]
    with self.assertRaises(IndexError):
      _ = result[-5]

  def testIterationYieldsSolverResults(self):
    result = self._make_result()

    statuses = [sample.status for sample in result]

    self.assertEqual([
        _STATUS.CONVERGED, _STATUS.CONVERGED, _STATUS.DOMAIN_ERROR,
        _STATUS.MAX_ITERATIONS
    ], statuses)

  def testFailureSummary(self):
    """Checks the failed samples are counted and located."""
    result = self._make_result()

    self.assertEqual(2, result.num_failed)
    np.testing.assert_array_equal([2, 3], result.failed_indices())
    self.assertEqual(
        {
            _STATUS.CONVERGED: 2,
            _STATUS.DOMAIN_ERROR: 1,
            _STATUS.NO_BRACKET: 0,
            _STATUS.MAX_ITERATIONS: 1,
        }, result.status_counts())

  def testReshapeKeepsFlatOrder(self):
    result = self._make_result().reshape((4,))

    np.testing.assert_array_equal([0, 0, 1, 3], result.status)
    self.assertEqual(350.0, result[3].T)


if __name__ == '__main__':
  absltest.main()
