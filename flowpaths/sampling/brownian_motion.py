import jax
import jax.numpy as jnp
import warnings
from jaxtyping import Array, Float
from flowpaths.series.points import Points2D
from flowpaths.series.trajectories import Trajectories

__all__ = ['brownian_motion_trajectory']

def brownian_motion_trajectory(randomness_pool: Points2D,
                               num_steps: int,
                               out: Trajectories) -> Trajectories:
  r"""Write a single Brownian path on [0, 1] that starts at the origin.

  Uses the discretization $W_{t+h} = W_t + \sqrt{h} \epsilon_t$ with $h = 1/num\_steps$
  and $\epsilon_t$ read from `randomness_pool` in order.  The result holds
  exactly one trajectory with the points per trajectory of `out`, filled from
  out's first trajectory.  Points past num_steps + 1 keep their old values.

  Raises:
    ValueError: If num_steps exceeds the size of the randomness pool or the
      path does not fit in one trajectory of `out`
  """
  points_per_trajectory = out.points_per_trajectory
  if points_per_trajectory <= 1 or out.xs.shape[0] < points_per_trajectory:
    warnings.warn(f"Trajectory buffer with {points_per_trajectory} points per trajectory can not hold a Brownian path")
    return out

  if num_steps > randomness_pool.xs.shape[0]:
    raise ValueError(f"num_steps ({num_steps}) exceeds randomness pool size ({randomness_pool.xs.shape[0]})")
  if num_steps + 1 > points_per_trajectory:
    raise ValueError(f"A path of {num_steps} steps needs {num_steps + 1} points but a trajectory holds {points_per_trajectory}")

  sqrt_h = jnp.sqrt(1.0/num_steps)
  increments = sqrt_h*randomness_pool.as_array()[:num_steps]
  path = jnp.concatenate([jnp.zeros((1, 2), dtype=increments.dtype), jnp.cumsum(increments, axis=0)])

  xs = out.xs[:points_per_trajectory].at[:num_steps + 1].set(path[:,0].astype(out.xs.dtype))
  ys = out.ys[:points_per_trajectory].at[:num_steps + 1].set(path[:,1].astype(out.ys.dtype))
  return Trajectories(xs=xs,
                      ys=ys,
                      count=1,
                      points_per_trajectory=points_per_trajectory,
                      version=out.version + 1)
