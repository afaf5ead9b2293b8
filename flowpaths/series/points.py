"""Structure-of-arrays storage for batches of 2d points."""
import jax
import jax.numpy as jnp
import einops
import equinox as eqx
from typing import Optional
from jaxtyping import Array, Float
from flowpaths.series.batchable_object import AbstractVersionedBuffer

__all__ = ['Points2D',
           'SdeNoises',
           'make_points2d',
           'make_sde_noises']

class Points2D(AbstractVersionedBuffer):
  """N independent 2d points stored as two equal length arrays.

  Attributes:
    xs: x coordinates
    ys: y coordinates
    version: Bumped by every write
  """
  xs: Float[Array, 'N']
  ys: Float[Array, 'N']
  version: int = eqx.field(static=True, default=0)

  def __check_init__(self):
    if self.xs.shape != self.ys.shape or self.xs.ndim != 1:
      raise ValueError(f"xs and ys must be 1d arrays of equal length, got {self.xs.shape} and {self.ys.shape}")

  @property
  def batch_size(self) -> int:
    return self.xs.shape[0]

  def __len__(self) -> int:
    return self.xs.shape[0]

  def as_array(self) -> Float[Array, 'N 2']:
    return jnp.stack([self.xs, self.ys], axis=-1)

  def with_array(self, xy: Float[Array, 'N 2']) -> 'Points2D':
    """Write an [N, 2] array into this buffer"""
    return self.with_values(xs=xy[...,0], ys=xy[...,1])

class SdeNoises(AbstractVersionedBuffer):
  """A pool of standard Gaussian draws for `count` samples and up to
  `steps_per_sample` integration steps.  The draw for sample i at step j lives
  at flat index i*steps_per_sample + j, so rerunning an integration with the
  same pool reproduces the same stochastic path.
  """
  xs: Float[Array, 'N']
  ys: Float[Array, 'N']
  count: int = eqx.field(static=True)
  steps_per_sample: int = eqx.field(static=True)
  version: int = eqx.field(static=True, default=0)

  def __check_init__(self):
    expected = (self.count*self.steps_per_sample,)
    if self.xs.shape != expected or self.ys.shape != expected:
      raise ValueError(f"Noise pool of {self.count}x{self.steps_per_sample} draws needs arrays of shape {expected}, got {self.xs.shape} and {self.ys.shape}")

  @property
  def batch_size(self) -> int:
    return self.count

  def as_grid(self) -> Float[Array, 'count steps 2']:
    xy = jnp.stack([self.xs, self.ys], axis=-1)
    return einops.rearrange(xy, '(n s) d -> n s d', n=self.count, s=self.steps_per_sample)

  def check_capacity(self, num_samples: int, num_steps: int):
    """Raise if the pool is too small for the requested simulation"""
    if num_steps > self.steps_per_sample:
      raise ValueError(f"Requested {num_steps} SDE steps but the noise pool only holds {self.steps_per_sample} steps per sample")
    if num_samples > self.count:
      raise ValueError(f"Requested {num_samples} samples but the noise pool only holds {self.count} samples")

################################################################################################################

def make_points2d(num: int, dtype: Optional[jnp.dtype] = jnp.float32) -> Points2D:
  return Points2D(xs=jnp.zeros(num, dtype=dtype), ys=jnp.zeros(num, dtype=dtype))

def make_sde_noises(count: int, steps_per_sample: int, dtype: Optional[jnp.dtype] = jnp.float32) -> SdeNoises:
  """Zero filled pool.  Use sampling.create_sde_noises for a filled one."""
  total = count*steps_per_sample
  return SdeNoises(xs=jnp.zeros(total, dtype=dtype),
                   ys=jnp.zeros(total, dtype=dtype),
                   count=count,
                   steps_per_sample=steps_per_sample)
