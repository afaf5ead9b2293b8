import jax
import jax.numpy as jnp
from jax import random
from typing import Tuple, Union
from jaxtyping import Array, PRNGKeyArray, Float, Scalar
from plum import dispatch
from flowpaths.constants import X_DOMAIN, Y_DOMAIN

__all__ = ['clamp01',
           'random_position',
           'to_points2d',
           'time_grid']

def clamp01(t: Scalar) -> Scalar:
  t = jnp.asarray(t, dtype=jnp.result_type(float))
  return jnp.clip(t, 0.0, 1.0)

def time_grid(num_steps: int) -> Float[Array, 'T']:
  """The num_steps + 1 equally spaced times step/num_steps on [0, 1]"""
  return jnp.arange(num_steps + 1)/num_steps

################################################################################################################

def random_position(key: PRNGKeyArray,
                    shape: Tuple[int, ...] = (),
                    scale: float = 1.0) -> Float[Array, '... 2']:
  """Uniform position in the data domain, shrunk towards its center by `scale`"""
  lo = jnp.array([X_DOMAIN[0], Y_DOMAIN[0]])
  hi = jnp.array([X_DOMAIN[1], Y_DOMAIN[1]])
  center, half_width = 0.5*(lo + hi), 0.5*(hi - lo)*scale
  return random.uniform(key, shape + (2,), minval=center - half_width, maxval=center + half_width)

################################################################################################################

@dispatch
def _to_points2d(xy: Float[Array, 'N 2']):
  from flowpaths.series.points import Points2D
  return Points2D(xs=xy[:,0], ys=xy[:,1])

@dispatch
def _to_points2d(xs: Float[Array, 'N'], ys: Float[Array, 'N']):
  from flowpaths.series.points import Points2D
  return Points2D(xs=xs, ys=ys)

def to_points2d(*arrays: Union[Float[Array, 'N 2'], Float[Array, 'N']]) -> 'Points2D':
  """Build a Points2D from either an [N, 2] array or a pair of [N] arrays."""
  return _to_points2d(*[jnp.asarray(a) for a in arrays])
