import equinox as eqx
from typing import Callable, Optional
from flowpaths.schedules.alpha_beta import AbstractAlphaBetaSchedule, get_alpha_beta_schedule as _lookup_alpha_beta
from flowpaths.schedules.sigma import AbstractSigmaSchedule, get_sigma_schedule as _lookup_sigma
from flowpaths.potential.gaussian_mixture import GaussianMixture
from flowpaths.series.points import Points2D, SdeNoises
from flowpaths.series.trajectories import Trajectories
from flowpaths.sde.integrators import (write_trajectories,
                                       write_sde_trajectories,
                                       write_sde_trajectories_heun)
from flowpaths.constants import (DEFAULT_MAX_SIGMA,
                                 DEFAULT_NUM_SAMPLES,
                                 DEFAULT_NUM_SDE_STEPS,
                                 MAX_NUM_SAMPLES,
                                 MAX_NUM_SDE_STEPS)

__all__ = ['PathSimulationParams',
           'simulate']

STOCHASTIC_SOLVERS = ('euler_maruyama', 'heun')

class PathSimulationParams(eqx.Module):
  """
  Configuration for simulating trajectories of the marginal probability path.

  Attributes:
    alpha_beta_schedule: Name of the alpha/beta schedule ('linear', 'cosine', 'ddpm', 'sigmoid')
    sigma_schedule: Name of the diffusion schedule ('constant', 'linear', 'linear-reverse',
      'sine-bump', 'quadratic', 'sqrt', 'cosine', 'step').  Unused by 'euler'.
    max_sigma: Scale of the diffusion schedule
    num_samples: Number of trajectories, at most MAX_NUM_SAMPLES
    num_steps: Number of integration steps, between 1 and MAX_NUM_SDE_STEPS
    solver: Integrator to use ('euler', 'euler_maruyama', 'heun')
  """
  alpha_beta_schedule: str = 'linear'
  sigma_schedule: str = 'constant'
  max_sigma: float = DEFAULT_MAX_SIGMA
  num_samples: int = DEFAULT_NUM_SAMPLES
  num_steps: int = DEFAULT_NUM_SDE_STEPS
  solver: str = 'euler'

  def __check_init__(self):
    if not (0 <= self.num_samples <= MAX_NUM_SAMPLES):
      raise ValueError(f"num_samples must be in [0, {MAX_NUM_SAMPLES}], got {self.num_samples}")
    if not (1 <= self.num_steps <= MAX_NUM_SDE_STEPS):
      raise ValueError(f"num_steps must be in [1, {MAX_NUM_SDE_STEPS}], got {self.num_steps}")

  def to_dict(self) -> dict:
    return {
      "alpha_beta_schedule": self.alpha_beta_schedule,
      "sigma_schedule": self.sigma_schedule,
      "max_sigma": self.max_sigma,
      "num_samples": self.num_samples,
      "num_steps": self.num_steps,
      "solver": self.solver
    }

  def is_stochastic(self) -> bool:
    return self.solver in STOCHASTIC_SOLVERS

  def get_alpha_beta_schedule(self) -> AbstractAlphaBetaSchedule:
    """
    Raises:
      ValueError: If the configured schedule name is not recognized
    """
    return _lookup_alpha_beta(self.alpha_beta_schedule)

  def get_sigma_schedule(self) -> AbstractSigmaSchedule:
    """
    Raises:
      ValueError: If the configured schedule name is not recognized
    """
    return _lookup_sigma(self.sigma_schedule)

  def get_integrator(self) -> Callable[..., Trajectories]:
    """
    Get the trajectory integrator for the configured solver name.

    Returns:
      write_trajectories for 'euler', write_sde_trajectories for
      'euler_maruyama' and write_sde_trajectories_heun for 'heun'

    Raises:
      ValueError: If the configured solver name is not recognized
    """
    if self.solver == 'euler':
      return write_trajectories
    elif self.solver == 'euler_maruyama':
      return write_sde_trajectories
    elif self.solver == 'heun':
      return write_sde_trajectories_heun
    else:
      raise ValueError(f"Unknown solver: {self.solver}")

################################################################################################################

def simulate(params: PathSimulationParams,
             mixture: GaussianMixture,
             sample_pool: Points2D,
             noises: Optional[SdeNoises] = None,
             trajectories: Optional[Trajectories] = None) -> Trajectories:
  """Run the integrator configured by `params`.

  **Arguments**:

  - params: The simulation configuration
  - mixture: The target mixture
  - sample_pool: Starting points, at least params.num_samples of them
  - noises: Noise pool for the stochastic solvers.  Ignored by 'euler'.
  - trajectories: Output buffer.  Reallocated if its layout does not match.

  **Returns**:

  - Trajectories: params.num_samples trajectories of params.num_steps + 1 points

  Raises:
    ValueError: If a stochastic solver is configured and `noises` is None
  """
  integrator = params.get_integrator()
  schedule = params.get_alpha_beta_schedule()
  if not params.is_stochastic():
    return integrator(sample_pool, schedule, mixture, params.num_samples, params.num_steps, trajectories)

  if noises is None:
    raise ValueError(f"The '{params.solver}' solver needs a noise pool")
  return integrator(sample_pool,
                    noises,
                    schedule,
                    params.get_sigma_schedule(),
                    mixture,
                    params.num_samples,
                    params.num_steps,
                    params.max_sigma,
                    trajectories)
