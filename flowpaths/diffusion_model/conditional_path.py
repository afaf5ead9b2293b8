r"""
The conditional probability path from a standard Gaussian to a single point z.

With base samples $x_0 \sim N(0, I)$ the path is the affine flow map
$x_t = \alpha(t) z + \beta(t) x_0$, so $p_t = N(\alpha(t) z, \beta(t)^2 I)$.
Everything here is closed form: trajectories are evaluated from the flow map
directly rather than by integrating the velocity field.

The stochastic version of the path uses a stabilized update.  Plain
Euler-Maruyama on $dx = [u_t(x) + \frac{\sigma^2}{2} s_t(x)]dt + \sigma dW$
becomes stiff as $\beta(t) \to 0$ because the drift is proportional to
$1/\beta(t)$.  Instead, each step treats the deviation from the path mean
as an Ornstein-Uhlenbeck process with rate
$K = \dot\beta/\beta - \sigma^2/(2\beta^2)$ and integrates it exactly over
the step.
"""
import jax
import jax.numpy as jnp
from typing import Tuple, Union
import einops
import equinox as eqx
from jaxtyping import Array, Float, Scalar
from flowpaths.schedules.alpha_beta import AbstractAlphaBetaSchedule, get_alpha_beta_schedule
from flowpaths.schedules.sigma import AbstractSigmaSchedule, get_sigma_schedule
from flowpaths.series.points import Points2D, SdeNoises
from flowpaths.series.trajectories import Trajectories
from flowpaths.util.misc import time_grid
from flowpaths.constants import CONDITIONAL_SDE_BETA_FLOOR, CONDITIONAL_SDE_VARIANCE_FLOOR, OU_SINGULARITY_THRESHOLD

__all__ = ['write_positions',
           'write_trajectories',
           'write_velocities',
           'write_scores',
           'stabilized_update',
           'write_sde_trajectories']

Point2D = Union[Float[Array, '2'], Tuple[float, float]]

def _flow_map(schedule: AbstractAlphaBetaSchedule,
              z: Float[Array, '2'],
              x0: Float[Array, 'N 2'],
              t: Scalar) -> Float[Array, 'N 2']:
  return schedule.alpha(t)*z + schedule.beta(t)*x0

def write_positions(schedule: Union[str, AbstractAlphaBetaSchedule],
                    z: Point2D,
                    x0: Points2D,
                    t: Scalar,
                    positions: Points2D) -> Points2D:
  """Push the base samples x0 through the flow map to time t.

  Args:
    schedule: The alpha/beta schedule or its name
    z: The target point
    x0: Base samples
    t: Time in [0, 1]
    positions: Output buffer with as many points as x0

  Returns:
    `positions` holding alpha(t) z + beta(t) x0, with its version bumped
  """
  schedule = get_alpha_beta_schedule(schedule)
  z = jnp.asarray(z)
  return positions.with_array(_flow_map(schedule, z, x0.as_array(), t))

def write_trajectories(schedule: Union[str, AbstractAlphaBetaSchedule],
                       z: Point2D,
                       x0: Points2D,
                       num_steps: int,
                       trajectories: Trajectories) -> Trajectories:
  """Evaluate the flow map at t = step/num_steps for step = 0..num_steps.

  Trajectory i starts at x0[i].  The buffer must hold num_steps + 1 points per
  trajectory and at most len(x0) trajectories.
  """
  if trajectories.points_per_trajectory != num_steps + 1:
    raise ValueError(f"{num_steps} steps need {num_steps + 1} points per trajectory, buffer has {trajectories.points_per_trajectory}")
  if trajectories.count > len(x0):
    raise ValueError(f"Buffer holds {trajectories.count} trajectories but only {len(x0)} base samples were given")

  schedule = get_alpha_beta_schedule(schedule)
  z = jnp.asarray(z)
  x0 = x0.as_array()[:trajectories.count]
  paths = jax.vmap(lambda t: _flow_map(schedule, z, x0, t), out_axes=1)(time_grid(num_steps))
  return trajectories.with_array(paths)

def write_velocities(schedule: Union[str, AbstractAlphaBetaSchedule],
                     z: Point2D,
                     t: Scalar,
                     x: Points2D,
                     v: Points2D) -> Points2D:
  r"""Velocity of the conditional flow at positions x and time t.

  The flow map is inverted to recover the implied base sample
  $x_0 = (x - \alpha(t) z)/\beta(t)$ and the velocity is
  $\dot\alpha(t) z + \dot\beta(t) x_0$.  Not defined at beta(t) = 0.
  """
  schedule = get_alpha_beta_schedule(schedule)
  z = jnp.asarray(z)
  alpha, beta = schedule.alpha(t), schedule.beta(t)
  x0 = (x.as_array() - alpha*z)/beta
  return v.with_array(schedule.alpha_derivative(t)*z + schedule.beta_derivative(t)*x0)

def write_scores(schedule: Union[str, AbstractAlphaBetaSchedule],
                 z: Point2D,
                 t: Scalar,
                 x: Points2D,
                 s: Points2D) -> Points2D:
  r"""Score of $p_t = N(\alpha(t) z, \beta(t)^2 I)$, i.e. $-(x - \alpha(t) z)/\beta(t)^2$"""
  schedule = get_alpha_beta_schedule(schedule)
  z = jnp.asarray(z)
  alpha, beta = schedule.alpha(t), schedule.beta(t)
  return s.with_array(-(x.as_array() - alpha*z)/(beta*beta))

################################################################################################################

def stabilized_update(x_prev: Float[Array, '...'],
                      mean_prev: Float[Array, '...'],
                      mean_curr: Float[Array, '...'],
                      beta: Scalar,
                      beta_dot: Scalar,
                      sigma: Scalar,
                      dt: Scalar,
                      noise_increment: Float[Array, '...']) -> Float[Array, '...']:
  r"""One exact Ornstein-Uhlenbeck step for the deviation from the path mean.

  The deviation $d = x - m_t$ evolves as $dd = K d\,dt + \sigma dW$ with
  $K = \dot\beta/\beta - \sigma^2/(2\max(\beta^2, 10^{-6}))$.  Over a step of
  length dt it decays by $e^{K dt}$ and picks up noise with variance
  $\sigma^2 (e^{2 K dt} - 1)/(2K)$.  When $|2 K dt| < 10^{-4}$ that expression
  is numerically a 0/0, and its limit $\sigma^2 dt$ is used instead.

  Args:
    x_prev: Position at the start of the step
    mean_prev: Path mean alpha(t_prev) z at the start of the step
    mean_curr: Path mean alpha(t) z at the end of the step
    beta: beta(t) at the end of the step (already floored)
    beta_dot: beta'(t) at the end of the step
    sigma: Diffusion coefficient at the end of the step
    dt: Step size
    noise_increment: Standard normal draw

  Returns:
    Position at the end of the step
  """
  variance = jnp.maximum(beta*beta, CONDITIONAL_SDE_VARIANCE_FLOOR)
  K = beta_dot/beta - sigma*sigma/(2*variance)

  decay = jnp.exp(K*dt)
  two_k_dt = 2*K*dt

  is_singular = jnp.abs(two_k_dt) < OU_SINGULARITY_THRESHOLD
  safe_K = jnp.where(is_singular, 1.0, K)
  variance_increment = sigma*sigma*(jnp.exp(two_k_dt) - 1)/(2*safe_K)
  noise_scale = jnp.where(is_singular,
                          sigma*jnp.sqrt(dt),
                          jnp.sqrt(jnp.maximum(0.0, variance_increment)))

  deviation = x_prev - mean_prev
  return mean_curr + deviation*decay + noise_scale*noise_increment

@eqx.filter_jit
def _conditional_sde_paths(schedule: AbstractAlphaBetaSchedule,
                           sigma_schedule: AbstractSigmaSchedule,
                           max_sigma: Scalar,
                           z: Float[Array, '2'],
                           x0: Float[Array, 'N 2'],
                           noise: Float[Array, 'N S 2'],
                           num_steps: int) -> Float[Array, 'N S+1 2']:
  dt = 1.0/num_steps

  def step(x_prev, inputs):
    index, noise_increment = inputs
    t, t_prev = index*dt, (index - 1)*dt
    beta = jnp.maximum(schedule.beta(t), CONDITIONAL_SDE_BETA_FLOOR)
    x = stabilized_update(x_prev,
                          schedule.alpha(t_prev)*z,
                          schedule.alpha(t)*z,
                          beta,
                          schedule.beta_derivative(t),
                          sigma_schedule(t, max_sigma),
                          dt,
                          noise_increment).astype(x_prev.dtype)
    return x, x

  noise = einops.rearrange(noise, 'n s d -> s n d')
  _, xs = jax.lax.scan(step, x0, (jnp.arange(1, num_steps + 1), noise))
  return jnp.concatenate([x0[None], xs], axis=0).swapaxes(0, 1)

def write_sde_trajectories(alpha_beta_schedule: Union[str, AbstractAlphaBetaSchedule],
                           sigma_schedule: Union[str, AbstractSigmaSchedule],
                           max_sigma: Scalar,
                           noise_pool: Points2D,
                           z: Point2D,
                           noises: SdeNoises,
                           num_steps: int,
                           trajectories: Trajectories) -> Trajectories:
  """Simulate the conditional SDE with the stabilized OU update.

  Trajectory i starts at noise_pool[i] and uses noises[i, step] for each of
  its num_steps steps, so the same pool always reproduces the same paths.

  Raises:
    ValueError: If the noise pool is too small or the buffer has the wrong
      number of points per trajectory
  """
  if trajectories.points_per_trajectory != num_steps + 1:
    raise ValueError(f"{num_steps} steps need {num_steps + 1} points per trajectory, buffer has {trajectories.points_per_trajectory}")
  n = trajectories.count
  if n > len(noise_pool):
    raise ValueError(f"Buffer holds {n} trajectories but the start pool only has {len(noise_pool)} points")
  noises.check_capacity(n, num_steps)

  paths = _conditional_sde_paths(get_alpha_beta_schedule(alpha_beta_schedule),
                                 get_sigma_schedule(sigma_schedule),
                                 max_sigma,
                                 jnp.asarray(z, dtype=trajectories.xs.dtype),
                                 noise_pool.as_array()[:n].astype(trajectories.xs.dtype),
                                 noises.as_grid()[:n, :num_steps],
                                 num_steps)
  return trajectories.with_array(paths)
