"""Single trajectory Euler and Euler-Maruyama integration of an arbitrary
time dependent vector field on [0, 1]."""
import jax
import jax.numpy as jnp
from typing import Callable
from jaxtyping import Array, Float, Scalar
from flowpaths.series.points import Points2D
from flowpaths.series.trajectories import Trajectories

__all__ = ['VectorFieldFn',
           'euler_method_trajectory',
           'euler_maruyama_trajectory']

# (position [2], time) -> velocity [2].  Must be traceable by JAX.
VectorFieldFn = Callable[[Float[Array, '2'], Scalar], Float[Array, '2']]

def _safe_steps(steps: float) -> int:
  return max(2, int(steps))

def _to_trajectory(start_pos: Float[Array, '2'], xs: Float[Array, 'S 2']) -> Trajectories:
  path = jnp.concatenate([start_pos[None], xs], axis=0)
  return Trajectories(xs=path[:,0], ys=path[:,1], count=1, points_per_trajectory=path.shape[0])

def euler_method_trajectory(vector_field_fn: VectorFieldFn,
                            steps: float,
                            start_pos: Float[Array, '2']) -> Trajectories:
  """Integrate dx/dt = f(x, t) from t = 0 to t = 1 with explicit Euler.

  Args:
    vector_field_fn: f(x, t)
    steps: Number of steps.  Floored and raised to at least 2.
    start_pos: Starting point

  Returns:
    A single trajectory with steps + 1 points
  """
  num_steps = _safe_steps(steps)
  dt = 1.0/num_steps
  start_pos = jnp.asarray(start_pos, dtype=jnp.result_type(float))

  def step(x, k):
    x = (x + vector_field_fn(x, k*dt)*dt).astype(x.dtype)
    return x, x

  _, xs = jax.lax.scan(step, start_pos, jnp.arange(num_steps))
  return _to_trajectory(start_pos, xs)

def euler_maruyama_trajectory(vector_field_fn: VectorFieldFn,
                              steps: float,
                              start_pos: Float[Array, '2'],
                              diffusion: Scalar,
                              noises: Points2D) -> Trajectories:
  """Integrate dx = f(x, t)dt + diffusion*dW with Euler-Maruyama.

  Step k uses the standard normal draw noises[k], scaled by sqrt(dt).

  Raises:
    ValueError: If `noises` holds fewer draws than there are steps
  """
  num_steps = _safe_steps(steps)
  if len(noises) < num_steps:
    raise ValueError(f"Euler-Maruyama with {num_steps} steps needs {num_steps} noise draws, got {len(noises)}")
  dt = 1.0/num_steps
  sqrt_dt = jnp.sqrt(dt)
  start_pos = jnp.asarray(start_pos, dtype=jnp.result_type(float))

  def step(x, inputs):
    k, z = inputs
    x = (x + vector_field_fn(x, k*dt)*dt + diffusion*z*sqrt_dt).astype(x.dtype)
    return x, x

  z = noises.as_array()[:num_steps].astype(start_pos.dtype)
  _, xs = jax.lax.scan(step, start_pos, (jnp.arange(num_steps), z))
  return _to_trajectory(start_pos, xs)
