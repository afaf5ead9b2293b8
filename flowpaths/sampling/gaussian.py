"""
Standard Gaussian sampling with the Box-Muller transform.  This is the only
source of randomness in the engine.  Every entry point takes an explicit PRNG
key so that results are reproducible and testable.
"""
import jax
import jax.numpy as jnp
from jax import random
from typing import Optional, Tuple, Union
from jaxtyping import Array, PRNGKeyArray, Float, Scalar
from flowpaths.series.points import Points2D, SdeNoises, make_points2d, make_sde_noises

__all__ = ['box_muller',
           'sample_two_from_standard_gaussian',
           'sample_standard_gaussian',
           'fill_with_samples_from_std_gaussian',
           'create_gaussian_samples',
           'create_sde_noises']

def box_muller(u1: Float[Array, '...'], u2: Float[Array, '...']) -> Tuple[Float[Array, '...'], Float[Array, '...']]:
  """Map two independent U(0, 1] draws to two independent N(0, 1) draws"""
  r = jnp.sqrt(-2.0*jnp.log(u1))
  theta = 2.0*jnp.pi*u2
  return r*jnp.cos(theta), r*jnp.sin(theta)

def _uniform_pair(key: PRNGKeyArray, shape: Tuple[int, ...], dtype) -> Tuple[Float[Array, '...'], Float[Array, '...']]:
  k1, k2 = random.split(key)
  # random.uniform samples [0, 1).  Flip the first draw so log never sees 0.
  u1 = 1.0 - random.uniform(k1, shape, dtype=dtype)
  u2 = random.uniform(k2, shape, dtype=dtype)
  return u1, u2

def sample_two_from_standard_gaussian(key: PRNGKeyArray) -> Float[Array, '2']:
  """Two independent standard normal values from one pair of uniform draws"""
  u1, u2 = _uniform_pair(key, (), jnp.result_type(float))
  return jnp.stack(box_muller(u1, u2))

def sample_standard_gaussian(key: PRNGKeyArray,
                             num: int,
                             dtype: Optional[jnp.dtype] = jnp.float32) -> Float[Array, 'N 2']:
  """`num` 2d points whose x and y coordinates come from the same uniform pair"""
  u1, u2 = _uniform_pair(key, (num,), dtype)
  nx, ny = box_muller(u1, u2)
  return jnp.stack([nx, ny], axis=-1)

def fill_with_samples_from_std_gaussian(key: PRNGKeyArray,
                                        out: Union[Points2D, SdeNoises]) -> Union[Points2D, SdeNoises]:
  """Overwrite every slot of `out` with fresh N(0, I) draws.

  Args:
    key: PRNG key
    out: The buffer to fill.  Works for point batches and noise pools.

  Returns:
    The filled buffer with its version bumped
  """
  xy = sample_standard_gaussian(key, out.xs.shape[0], dtype=out.xs.dtype)
  return out.with_values(xs=xy[:,0], ys=xy[:,1])

def create_gaussian_samples(key: PRNGKeyArray,
                            count: int,
                            dtype: Optional[jnp.dtype] = jnp.float32) -> Points2D:
  return fill_with_samples_from_std_gaussian(key, make_points2d(count, dtype=dtype))

def create_sde_noises(key: PRNGKeyArray,
                      count: int,
                      steps_per_sample: int,
                      dtype: Optional[jnp.dtype] = jnp.float32) -> SdeNoises:
  """A filled noise pool for `count` samples and up to `steps_per_sample` steps.

  Regenerating the pool (by calling this again or fill_with_samples_from_std_gaussian
  with a new key) is the only way to get a different stochastic path for the
  same schedule and target.
  """
  return fill_with_samples_from_std_gaussian(key, make_sde_noises(count, steps_per_sample, dtype=dtype))
