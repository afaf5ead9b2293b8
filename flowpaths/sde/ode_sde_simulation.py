import jax
import jax.numpy as jnp
from typing import Union
import einops
import equinox as eqx
import diffrax
from jaxtyping import Array, Float
from flowpaths.schedules.alpha_beta import AbstractAlphaBetaSchedule, get_alpha_beta_schedule
from flowpaths.diffusion_model.marginal_path import MarginalPathSlice
from flowpaths.potential.gaussian_mixture import GaussianMixture
from flowpaths.series.trajectories import Trajectories

"""
Adaptive step solves of the marginal probability flow ODE using diffrax.

The fixed step integrators in flowpaths.sde.integrators are what the rest of
the package uses.  ode_solve is here to get a high accuracy solution of the
same ODE to measure their error against.
"""

__all__ = ['ODESolverParams',
           'ode_solve']

class ODESolverParams(eqx.Module):
  """
  Configuration parameters for ODE solving with diffrax.

  Attributes:
    rtol: Relative tolerance for adaptive step size controllers
    atol: Absolute tolerance for adaptive step size controllers
    solver: Name of the diffrax solver to use ('dopri5', 'euler', 'heun')
    adjoint: Method for computing gradients ('recursive_checkpoint', 'direct')
    stepsize_controller: Controller for step size ('pid', 'none', 'constant')
    max_steps: Maximum number of steps the solver is allowed to take.  With a
      constant step size this is also the number of steps taken.
    throw: Whether to throw an exception if max_steps is exceeded
    progress_meter: Type of progress meter to use ('tqdm', 'text', 'none')
  """
  rtol: float = 1e-8
  atol: float = 1e-8
  solver: str = 'dopri5'
  adjoint: str = 'recursive_checkpoint'
  stepsize_controller: str = 'pid'
  max_steps: int = 65536
  throw: bool = True
  progress_meter: str = 'none'

  def to_dict(self) -> dict:
    return {
      "rtol": self.rtol,
      "atol": self.atol,
      "solver": self.solver,
      "adjoint": self.adjoint,
      "stepsize_controller": self.stepsize_controller,
      "max_steps": self.max_steps,
      "throw": self.throw,
      "progress_meter": self.progress_meter
    }

  def using_constant_step_size(self) -> bool:
    return self.stepsize_controller == 'none' or self.stepsize_controller == 'constant' or self.stepsize_controller is None

  def get_solver(self) -> diffrax.AbstractSolver:
    """
    Raises:
      ValueError: If the configured solver name is not recognized
    """
    if self.solver == 'dopri5':
      return diffrax.Dopri5()
    elif self.solver == 'euler':
      return diffrax.Euler()
    elif self.solver == 'heun':
      return diffrax.Heun()
    else:
      raise ValueError(f"Unknown solver: {self.solver}")

  def get_adjoint(self) -> diffrax.AbstractAdjoint:
    if self.adjoint == 'recursive_checkpoint':
      return diffrax.RecursiveCheckpointAdjoint()
    elif self.adjoint == 'direct':
      return diffrax.DirectAdjoint()
    else:
      raise ValueError(f"Unknown adjoint: {self.adjoint}")

  def get_stepsize_controller(self) -> diffrax.AbstractStepSizeController:
    if self.stepsize_controller == 'pid':
      return diffrax.PIDController(rtol=self.rtol, atol=self.atol)
    elif self.using_constant_step_size():
      return diffrax.ConstantStepSize()
    else:
      raise ValueError(f"Unknown stepsize controller: {self.stepsize_controller}")

  def get_progress_meter(self) -> diffrax.AbstractProgressMeter:
    if self.progress_meter == 'tqdm':
      return diffrax.TqdmProgressMeter()
    elif self.progress_meter == 'text':
      return diffrax.TextProgressMeter()
    else:
      return diffrax.NoProgressMeter()

################################################################################################################

def ode_solve(schedule: Union[str, AbstractAlphaBetaSchedule],
              mixture: GaussianMixture,
              x0: Float[Array, 'N 2'],
              save_times: Float[Array, 'T'],
              params: ODESolverParams = ODESolverParams()) -> Trajectories:
  """Solve the probability flow ODE of the marginal path towards `mixture`.

  **Arguments**:

  - schedule: The alpha/beta schedule or its name
  - mixture: The target mixture
  - x0: Points at time save_times[0]
  - save_times: Increasing times at which to save the solution.  The velocity
    field becomes stiff as t -> 1 (beta(t) -> 0) so adaptive solves should stop
    short of t = 1.
  - params: Parameters for the ODE solver

  **Returns**:

  - Trajectories: One trajectory per starting point with a point for every
    save time
  """
  schedule = get_alpha_beta_schedule(schedule)
  save_times = jnp.asarray(save_times, dtype=jnp.result_type(float))
  x0 = jnp.asarray(x0, dtype=save_times.dtype)

  @diffrax.ODETerm
  def wrapped_dynamics(t, xts, mixture_arrays):
    return MarginalPathSlice(schedule, *mixture_arrays, t).velocity(xts)

  args = (mixture.means.astype(x0.dtype), mixture.weights.astype(x0.dtype), mixture.covariances.astype(x0.dtype))

  t0 = save_times[0]
  t1 = save_times[-1]
  if params.using_constant_step_size():
    dt0 = (t1 - t0)/params.max_steps
  else:
    dt0 = 0.01*jnp.sign(t1 - t0)

  sol = diffrax.diffeqsolve(wrapped_dynamics,
                            params.get_solver(),
                            t0,
                            t1,
                            dt0=dt0,
                            y0=x0,
                            args=args,
                            saveat=diffrax.SaveAt(ts=save_times),
                            adjoint=params.get_adjoint(),
                            stepsize_controller=params.get_stepsize_controller(),
                            max_steps=params.max_steps + 1,
                            throw=params.throw,
                            progress_meter=params.get_progress_meter())

  paths = einops.rearrange(sol.ys, 't n d -> n t d')
  count, points_per_trajectory = paths.shape[:2]
  flat = einops.rearrange(paths, 'n t d -> (n t) d')
  return Trajectories(xs=flat[:,0], ys=flat[:,1], count=count, points_per_trajectory=points_per_trajectory)
