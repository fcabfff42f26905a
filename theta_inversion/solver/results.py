# Copyright 2025 The theta_inversion Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""The results of the temperature solver."""

import dataclasses
import enum
from typing import Dict, Iterator, Tuple, Union

import numpy as np
from theta_inversion.base import errors
from theta_inversion.utility import types


class SolverStatus(enum.IntEnum):
  """Defines why the solver stopped at a sample."""
  # The temperature satisfies the tolerances.
  CONVERGED = 0
  # The pressure, liquid water content or target is outside of the physical
  # domain.
  DOMAIN_ERROR = 1
  # The target is not attained by any temperature in [t_min, t_max].
  NO_BRACKET = 2
  # The iteration budget is used up before the tolerances are satisfied.
  MAX_ITERATIONS = 3


@dataclasses.dataclass(frozen=True)
class SolverResult:
  """The temperature solved for a single sample.

  Attributes:
    T: The temperature, in units of K. If the solver did not converge, this is
      the best available estimate: the last iterate, or the initial guess.
    converged: Whether the solver converged.
    iterations: The number of iterations taken.
    status: The reason the solver stopped.
  """

  T: float  # pylint: disable=invalid-name
  converged: bool
  iterations: int
  status: SolverStatus = SolverStatus.CONVERGED

  def raise_for_status(self) -> None:
    """Raises the error corresponding to a non-converged result.

    Raises:
      DomainError: If the inputs of the sample are outside of the domain.
      ConvergenceError: If the root is not bracketed or the iteration budget
        was used up.
    """
    if self.status == SolverStatus.DOMAIN_ERROR:
      raise errors.DomainError(
          f'Sample is outside of the physical domain (T = {self.T}).')
    if self.status == SolverStatus.NO_BRACKET:
      raise errors.ConvergenceError(
          f'Target is not bracketed by the temperature bounds (best estimate '
          f'T = {self.T}).')
    if self.status == SolverStatus.MAX_ITERATIONS:
      raise errors.ConvergenceError(
          f'Not converged after {self.iterations} iterations (last iterate '
          f'T = {self.T}).')


@dataclasses.dataclass
class BatchResult:
  """The temperatures solved for a batch of samples, stored as arrays.

  All arrays have the shape of the input of the batch. Integer indexing and
  iteration go through the samples in flat (C) order and yield
  `SolverResult`s.

  Attributes:
    T: The temperatures, in units of K.
    converged: Whether the solver converged at each sample.
    iterations: The number of iterations taken at each sample.
    status: The `SolverStatus` of each sample, as integers.
  """

  T: np.ndarray  # pylint: disable=invalid-name
  converged: np.ndarray
  iterations: np.ndarray
  status: np.ndarray

  @classmethod
  def empty(cls, shape: Union[int, Tuple[int, ...]]) -> 'BatchResult':
    """Preallocates the results of a batch of the given shape."""
    return cls(
        T=np.empty(shape, dtype=types.NP_DTYPE),
        converged=np.zeros(shape, dtype=bool),
        iterations=np.zeros(shape, dtype=types.NP_ITERATION_DTYPE),
        status=np.full(shape, SolverStatus.DOMAIN_ERROR,
                       dtype=types.NP_STATUS_DTYPE),
    )

  def _map(self, fn) -> 'BatchResult':
    return BatchResult(
        T=fn(self.T),
        converged=fn(self.converged),
        iterations=fn(self.iterations),
        status=fn(self.status),
    )

  def chunk(self, start: int, stop: int) -> 'BatchResult':
    """Returns views of the samples in `[start, stop)` in flat order.

    Writing to the returned arrays writes to this result, so disjoint chunks
    can be filled concurrently.

    Args:
      start: The flat index of the first sample.
      stop: The flat index after the last sample.

    Returns:
      A `BatchResult` of 1D views.
    """
    return self._map(lambda a: a.reshape(-1)[start:stop])

  def reshape(self, shape: Tuple[int, ...]) -> 'BatchResult':
    """Returns the results with all arrays reshaped to `shape`."""
    return self._map(lambda a: a.reshape(shape))

  def __len__(self) -> int:
    return self.T.size

  def __getitem__(self, index: int) -> SolverResult:
    size = len(self)
    if not -size <= index < size:
      raise IndexError(f'Index {index} is out of range for {size} samples.')
    index %= size
    return SolverResult(
        T=float(self.T.flat[index]),
        converged=bool(self.converged.flat[index]),
        iterations=int(self.iterations.flat[index]),
        status=SolverStatus(int(self.status.flat[index])),
    )

  def __iter__(self) -> Iterator[SolverResult]:
    for i in range(len(self)):
      yield self[i]

  @property
  def num_failed(self) -> int:
    """The number of samples at which the solver did not converge."""
    return int(self.converged.size - np.count_nonzero(self.converged))

  def failed_indices(self) -> np.ndarray:
    """Returns the flat indices of the samples that did not converge.

    These can be used to resubmit the failed samples with widened bounds or
    relaxed tolerances.
    """
    return np.flatnonzero(~self.converged.reshape(-1))

  def status_counts(self) -> Dict[SolverStatus, int]:
    """Counts the samples of each `SolverStatus`."""
    counts = np.bincount(
        self.status.reshape(-1).astype(np.intp), minlength=len(SolverStatus))
    return {status: int(counts[status]) for status in SolverStatus}
