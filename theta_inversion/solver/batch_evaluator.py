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

"""Solves the temperature for large batches of samples in parallel.

The samples of a batch are independent, so the flattened batch is partitioned
into contiguous chunks that are solved by a pool of worker threads. The numpy
kernels release the GIL, and every worker writes to a disjoint slice of the
preallocated output, so no locking is needed. The results are identical
regardless of the number of workers and the chunk size.

Example usage:

  config = parameters.SolverConfig(parallelism=8)
  result = batch_evaluator.solve_temperature_batch(theta_l, p, q_l, config)
  t = result.T
  if result.num_failed:
    retry = result.failed_indices()
"""

from multiprocessing import pool
import threading
from typing import List, Optional, Tuple

from absl import logging
import numpy as np
from theta_inversion.base import errors
from theta_inversion.base import parameters
from theta_inversion.physics import constants as constants_lib
from theta_inversion.solver import results
from theta_inversion.solver import temperature_solver
from theta_inversion.utility import types

SolverConfig = parameters.SolverConfig
BatchResult = results.BatchResult
SolverStatus = results.SolverStatus


def chunk_bounds(num_samples: int, chunk_size: int) -> List[Tuple[int, int]]:
  """Partitions `num_samples` samples into contiguous `[start, stop)` ranges."""
  return [(start, min(start + chunk_size, num_samples))
          for start in range(0, num_samples, chunk_size)]


def solve_temperature_batch(
    theta_l: types.ArrayLike,
    p: types.ArrayLike,
    q_l: types.ArrayLike,
    config: Optional[SolverConfig] = None,
    constants: Optional[constants_lib.PhysicalConstants] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchResult:
  """Solves the temperature for every sample of a batch.

  Args:
    theta_l: The liquid potential temperatures, in units of K.
    p: The pressures, in units of Pa, with the same shape as `theta_l`.
    q_l: The liquid water contents, in units of kg/kg, with the same shape as
      `theta_l`.
    config: The tolerances, bounds and parallelism of the solver. Defaults to
      `SolverConfig()`.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.
    cancel_event: An optional event that cancels the batch when set. Chunks
      that have started are completed, the others are skipped.

  Returns:
    The `BatchResult` with arrays of the same shape as the inputs. Samples that
    failed to converge are reported in the result and do not affect the
    other samples.

  Raises:
    ConfigurationError: If `config` is invalid. Raised before any sample is
      solved.
    ValueError: If the inputs do not have the same shape.
    BatchCancelledError: If `cancel_event` is set before all chunks are solved.
  """
  config = config if config is not None else SolverConfig()
  config.validate()

  theta_l = np.asarray(theta_l, dtype=types.NP_DTYPE)
  p = np.asarray(p, dtype=types.NP_DTYPE)
  q_l = np.asarray(q_l, dtype=types.NP_DTYPE)
  if not theta_l.shape == p.shape == q_l.shape:
    raise ValueError(
        f'`theta_l`, `p` and `q_l` must have the same shape, but shapes '
        f'{theta_l.shape}, {p.shape} and {q_l.shape} are provided.')

  shape = theta_l.shape
  theta_l, p, q_l = theta_l.ravel(), p.ravel(), q_l.ravel()
  num_samples = theta_l.size
  result = BatchResult.empty(num_samples)

  bounds = chunk_bounds(num_samples, config.chunk_size)
  num_workers = min(config.parallelism, len(bounds))
  logging.info(
      'Solving the temperature of %d samples in %d chunks with %d workers.',
      num_samples, len(bounds), max(num_workers, 1))

  def solve_one_chunk(chunk: Tuple[int, int]) -> bool:
    """Solves one chunk, or skips it if the batch is cancelled."""
    if cancel_event is not None and cancel_event.is_set():
      return False
    start, stop = chunk
    temperature_solver.solve_chunk(
        theta_l[start:stop],
        p[start:stop],
        q_l[start:stop],
        config,
        constants,
        out=result.chunk(start, stop),
    )
    logging.vlog(1, 'Solved samples [%d, %d).', start, stop)
    return True

  if num_workers <= 1:
    completed = [solve_one_chunk(chunk) for chunk in bounds]
  else:
    with pool.ThreadPool(num_workers) as workers:
      completed = workers.map(solve_one_chunk, bounds, chunksize=1)
      workers.close()
      workers.join()

  if not all(completed):
    raise errors.BatchCancelledError(
        f'Batch cancelled after {sum(completed)} of {len(bounds)} chunks.')

  if result.num_failed:
    counts = result.status_counts()
    logging.warning(
        'Temperature not converged at %d of %d samples: %s.',
        result.num_failed, num_samples, ', '.join(
            f'{status.name}={counts[status]}'
            for status in SolverStatus
            if status != SolverStatus.CONVERGED and counts[status]))

  return result.reshape(shape)
