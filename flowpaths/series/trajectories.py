"""Flat storage for a batch of equally long 2d trajectories."""
import jax
import jax.numpy as jnp
import einops
import equinox as eqx
from typing import Optional, Tuple
from jaxtyping import Array, Float, Scalar, Int
from flowpaths.series.batchable_object import AbstractVersionedBuffer
from flowpaths.series.points import Points2D
from flowpaths.util.misc import clamp01

__all__ = ['Trajectories',
           'make_trajectories',
           'resize_trajectories',
           'interpolate_trajectory',
           'interpolate_trajectories']

class Trajectories(AbstractVersionedBuffer):
  """`count` trajectories with `points_per_trajectory` points each.

  Point j of trajectory i is stored at flat index i*points_per_trajectory + j.
  Integrators bump the version once per full simulation pass, not per step.
  """
  xs: Float[Array, 'M']
  ys: Float[Array, 'M']
  count: int = eqx.field(static=True)
  points_per_trajectory: int = eqx.field(static=True)
  version: int = eqx.field(static=True, default=0)

  def __check_init__(self):
    expected = (self.count*self.points_per_trajectory,)
    if self.xs.shape != expected or self.ys.shape != expected:
      raise ValueError(f"{self.count} trajectories of {self.points_per_trajectory} points need arrays of shape {expected}, got {self.xs.shape} and {self.ys.shape}")

  @property
  def batch_size(self) -> int:
    return self.count

  def as_array(self) -> Float[Array, 'count points 2']:
    xy = jnp.stack([self.xs, self.ys], axis=-1)
    return einops.rearrange(xy, '(c p) d -> c p d', c=self.count, p=self.points_per_trajectory)

  def with_array(self, paths: Float[Array, 'count points 2']) -> 'Trajectories':
    """Write a [count, points_per_trajectory, 2] array into this buffer"""
    xy = einops.rearrange(paths, 'c p d -> (c p) d')
    return self.with_values(xs=xy[:,0], ys=xy[:,1])

################################################################################################################

def make_trajectories(points_per_trajectory: int,
                      count: int,
                      dtype: Optional[jnp.dtype] = jnp.float32) -> Trajectories:
  total = count*points_per_trajectory
  return Trajectories(xs=jnp.zeros(total, dtype=dtype),
                      ys=jnp.zeros(total, dtype=dtype),
                      count=count,
                      points_per_trajectory=points_per_trajectory)

def resize_trajectories(trajectories: Optional[Trajectories],
                        count: int,
                        points_per_trajectory: int) -> Trajectories:
  """Reuse `trajectories` if it already has the requested layout, otherwise
  allocate a new zeroed buffer.  The new buffer keeps the old version so that
  versions seen by consumers never go backwards."""
  if trajectories is None:
    return make_trajectories(points_per_trajectory, count)
  if trajectories.count == count and trajectories.points_per_trajectory == points_per_trajectory:
    return trajectories
  out = make_trajectories(points_per_trajectory, count, dtype=trajectories.xs.dtype)
  return Trajectories(xs=out.xs,
                      ys=out.ys,
                      count=count,
                      points_per_trajectory=points_per_trajectory,
                      version=trajectories.version)

################################################################################################################

def _interpolation_weights(points_per_trajectory: int, t: Scalar) -> Tuple[Int[Array, ''], Float[Array, '']]:
  position = clamp01(t)*(points_per_trajectory - 1)
  lower = jnp.clip(jnp.floor(position).astype(jnp.int32), 0, points_per_trajectory - 2)
  return lower, position - lower

def interpolate_trajectory(trajectories: Trajectories, index: int, t: Scalar) -> Float[Array, '2']:
  """Linearly interpolate trajectory `index` at normalized time t in [0, 1].

  The first stored point is at t = 0 and the last one at t = 1.
  """
  path = trajectories.as_array()[index]
  if trajectories.points_per_trajectory == 1:
    return path[0]
  lower, frac = _interpolation_weights(trajectories.points_per_trajectory, t)
  return path[lower] + frac*(path[lower + 1] - path[lower])

def interpolate_trajectories(trajectories: Trajectories,
                             t: Scalar,
                             out: Optional[Points2D] = None) -> Points2D:
  """Interpolate every trajectory at time t and write the result into `out`"""
  paths = trajectories.as_array()
  if trajectories.points_per_trajectory == 1:
    positions = paths[:,0]
  else:
    lower, frac = _interpolation_weights(trajectories.points_per_trajectory, t)
    positions = paths[:,lower] + frac*(paths[:,lower + 1] - paths[:,lower])
  if out is None:
    return Points2D(xs=positions[:,0], ys=positions[:,1])
  return out.with_array(positions)
