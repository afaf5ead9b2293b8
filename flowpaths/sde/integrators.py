"""
Fixed step integrators for the marginal probability path.

All three integrators advance the whole batch of samples together, one
`jax.lax.scan` step per time step, over the uniform grid t_k = k/num_steps.
Each one writes num_steps + 1 points per trajectory (the start point plus one
point per step) and bumps the trajectory version exactly once.

The stochastic integrators read their noise from a pre-generated pool: sample
i uses noises[i, k] at step k.  Running twice with the same pool gives the
same paths.
"""
import jax
import jax.numpy as jnp
import einops
import equinox as eqx
from typing import Optional, Union
from jaxtyping import Array, Float, Scalar
from flowpaths.schedules.alpha_beta import AbstractAlphaBetaSchedule, get_alpha_beta_schedule
from flowpaths.schedules.sigma import AbstractSigmaSchedule, get_sigma_schedule
from flowpaths.diffusion_model.marginal_path import MarginalPathSlice
from flowpaths.potential.gaussian_mixture import GaussianMixture
from flowpaths.series.points import Points2D, SdeNoises
from flowpaths.series.trajectories import Trajectories, resize_trajectories
from flowpaths.constants import HEUN_T_MAX

__all__ = ['write_trajectories',
           'write_sde_trajectories',
           'write_sde_trajectories_heun']

################################################################################################################

def _stack_path(x0: Float[Array, 'N 2'], xs: Float[Array, 'S N 2']) -> Float[Array, 'N S+1 2']:
  return einops.rearrange(jnp.concatenate([x0[None], xs], axis=0), 's n d -> n s d')

@eqx.filter_jit
def _euler_paths(schedule: AbstractAlphaBetaSchedule,
                 mixture_arrays,
                 x0: Float[Array, 'N 2'],
                 num_steps: int) -> Float[Array, 'N S+1 2']:
  dt = 1.0/num_steps

  def step(x, k):
    t = k*dt
    path = MarginalPathSlice(schedule, *mixture_arrays, t)
    x = (x + path.velocity(x)*dt).astype(x.dtype)
    return x, x

  _, xs = jax.lax.scan(step, x0, jnp.arange(num_steps))
  return _stack_path(x0, xs)

@eqx.filter_jit
def _euler_maruyama_paths(schedule: AbstractAlphaBetaSchedule,
                          sigma_schedule: AbstractSigmaSchedule,
                          max_sigma: Scalar,
                          mixture_arrays,
                          x0: Float[Array, 'N 2'],
                          noise: Float[Array, 'N S 2'],
                          num_steps: int) -> Float[Array, 'N S+1 2']:
  dt = 1.0/num_steps
  sqrt_dt = jnp.sqrt(dt)

  def step(x, inputs):
    k, z = inputs
    t = k*dt
    sigma = sigma_schedule(t, max_sigma)
    drift = MarginalPathSlice(schedule, *mixture_arrays, t).sde_drift(x, sigma)
    x = (x + drift*dt + sigma*z*sqrt_dt).astype(x.dtype)
    return x, x

  noise = einops.rearrange(noise, 'n s d -> s n d')
  _, xs = jax.lax.scan(step, x0, (jnp.arange(num_steps), noise))
  return _stack_path(x0, xs)

@eqx.filter_jit
def _heun_paths(schedule: AbstractAlphaBetaSchedule,
                sigma_schedule: AbstractSigmaSchedule,
                max_sigma: Scalar,
                mixture_arrays,
                x0: Float[Array, 'N 2'],
                noise: Float[Array, 'N S 2'],
                num_steps: int) -> Float[Array, 'N S+1 2']:
  dt = 1.0/num_steps
  sqrt_dt = jnp.sqrt(dt)

  def step(x, inputs):
    k, z = inputs
    t = k*dt

    # Predictor: a full Euler-Maruyama step with sigma(t)
    sigma = sigma_schedule(t, max_sigma)
    noise_term = sigma*z*sqrt_dt
    drift = MarginalPathSlice(schedule, *mixture_arrays, t).sde_drift(x, sigma)
    x_pred = x + drift*dt + noise_term

    # Corrector: drift at the predicted state, kept off the beta(1) = 0 singularity
    t_next = jnp.minimum(t + dt, HEUN_T_MAX)
    sigma_next = sigma_schedule(t_next, max_sigma)
    drift_next = MarginalPathSlice(schedule, *mixture_arrays, t_next).sde_drift(x_pred, sigma_next)

    # The predictor's noise draw is reused here
    x = (x + 0.5*(drift + drift_next)*dt + noise_term).astype(x.dtype)
    return x, x

  noise = einops.rearrange(noise, 'n s d -> s n d')
  _, xs = jax.lax.scan(step, x0, (jnp.arange(num_steps), noise))
  return _stack_path(x0, xs)

################################################################################################################

def _prepare(sample_pool: Points2D,
             num_samples: int,
             num_steps: int,
             trajectories: Optional[Trajectories]) -> Trajectories:
  if num_steps < 1:
    raise ValueError(f"num_steps must be positive, got {num_steps}")
  if num_samples > len(sample_pool):
    raise ValueError(f"Requested {num_samples} samples but the sample pool only has {len(sample_pool)} points")
  return resize_trajectories(trajectories, num_samples, num_steps + 1)

def _mixture_arrays(mixture: GaussianMixture, dtype):
  return (mixture.means.astype(dtype), mixture.weights.astype(dtype), mixture.covariances.astype(dtype))

def write_trajectories(sample_pool: Points2D,
                       schedule: Union[str, AbstractAlphaBetaSchedule],
                       mixture: GaussianMixture,
                       num_samples: int,
                       num_steps: int,
                       trajectories: Optional[Trajectories] = None) -> Trajectories:
  """Integrate the probability flow ODE with explicit Euler.

  The velocity is evaluated at the start of every step.  The first num_samples
  points of `sample_pool` are the initial conditions.

  Args:
    sample_pool: Initial points, at least num_samples of them
    schedule: The alpha/beta schedule or its name
    mixture: The target mixture
    num_samples: Number of trajectories
    num_steps: Number of Euler steps on [0, 1]
    trajectories: Output buffer.  Reallocated if it does not have num_samples
      trajectories of num_steps + 1 points.

  Returns:
    The filled trajectory buffer
  """
  trajectories = _prepare(sample_pool, num_samples, num_steps, trajectories)
  dtype = trajectories.xs.dtype
  paths = _euler_paths(get_alpha_beta_schedule(schedule),
                       _mixture_arrays(mixture, dtype),
                       sample_pool.as_array()[:num_samples].astype(dtype),
                       num_steps)
  return trajectories.with_array(paths)

def write_sde_trajectories(sample_pool: Points2D,
                           noises: SdeNoises,
                           schedule: Union[str, AbstractAlphaBetaSchedule],
                           sigma_schedule: Union[str, AbstractSigmaSchedule],
                           mixture: GaussianMixture,
                           num_samples: int,
                           num_steps: int,
                           max_sigma: Scalar,
                           trajectories: Optional[Trajectories] = None) -> Trajectories:
  r"""Integrate $dx = [u_t(x) + \frac{\sigma(t)^2}{2}\nabla\log p_t(x)]dt + \sigma(t)dW$
  with Euler-Maruyama.

  Raises:
    ValueError: If the noise pool holds fewer than num_steps draws per sample
      or fewer than num_samples samples
  """
  trajectories = _prepare(sample_pool, num_samples, num_steps, trajectories)
  noises.check_capacity(num_samples, num_steps)
  dtype = trajectories.xs.dtype
  paths = _euler_maruyama_paths(get_alpha_beta_schedule(schedule),
                                get_sigma_schedule(sigma_schedule),
                                max_sigma,
                                _mixture_arrays(mixture, dtype),
                                sample_pool.as_array()[:num_samples].astype(dtype),
                                noises.as_grid()[:num_samples, :num_steps].astype(dtype),
                                num_steps)
  return trajectories.with_array(paths)

def write_sde_trajectories_heun(sample_pool: Points2D,
                                noises: SdeNoises,
                                schedule: Union[str, AbstractAlphaBetaSchedule],
                                sigma_schedule: Union[str, AbstractSigmaSchedule],
                                mixture: GaussianMixture,
                                num_samples: int,
                                num_steps: int,
                                max_sigma: Scalar,
                                trajectories: Optional[Trajectories] = None) -> Trajectories:
  """Integrate the same SDE as write_sde_trajectories with a Heun
  predictor-corrector scheme.

  Each step takes a full Euler-Maruyama predictor step using sigma(t),
  re-evaluates the drift at the predicted state at min(t + dt, 1 - 1e-6) using
  that time's sigma, and then advances with the average of the two drifts.  The
  same noise draw is used for the predictor and for the final update.

  Raises:
    ValueError: If the noise pool holds fewer than num_steps draws per sample
      or fewer than num_samples samples
  """
  trajectories = _prepare(sample_pool, num_samples, num_steps, trajectories)
  noises.check_capacity(num_samples, num_steps)
  dtype = trajectories.xs.dtype
  paths = _heun_paths(get_alpha_beta_schedule(schedule),
                      get_sigma_schedule(sigma_schedule),
                      max_sigma,
                      _mixture_arrays(mixture, dtype),
                      sample_pool.as_array()[:num_samples].astype(dtype),
                      noises.as_grid()[:num_samples, :num_steps].astype(dtype),
                      num_steps)
  return trajectories.with_array(paths)
