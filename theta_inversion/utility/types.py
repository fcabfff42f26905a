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

"""Commonly used types in the temperature inversion library."""

from typing import Callable, TypeAlias, Union

import numpy as np
import numpy.typing as npt
import tensorflow as tf

# All computations are carried out in double precision.
NP_DTYPE = np.float64
TF_DTYPE = tf.float64

# The integer types of the per-sample iteration counts and status codes.
NP_ITERATION_DTYPE = np.int32
NP_STATUS_DTYPE = np.int8

FloatOrArray: TypeAlias = Union[float, np.ndarray]
ArrayLike: TypeAlias = npt.ArrayLike

# A residual function takes the position and the per-element arguments and
# returns the residual at every element.
ResidualFn = Callable[..., np.ndarray]

TensorResidualFn = Callable[..., tf.Tensor]
