r"""
Interpolation schedules $\alpha(t)$ and $\beta(t)$ for probability paths that
move a standard Gaussian at $t = 0$ onto a target at $t = 1$ via
$x_t = \alpha(t) z + \beta(t) x_0$.

Every schedule is expected to satisfy $\alpha(0) = 0$, $\alpha(1) = 1$,
$\beta(0) = 1$ and $\beta(1) = 0$. This is not checked at runtime. The time
argument is clamped into $[0, 1]$ before evaluation.
"""
import jax
import jax.numpy as jnp
import equinox as eqx
import abc
from typing import ClassVar, Dict
from jaxtyping import Scalar
from flowpaths.util.misc import clamp01
from flowpaths.constants import DDPM_DERIVATIVE_EPS

__all__ = ['AbstractAlphaBetaSchedule',
           'LinearSchedule',
           'CosineSchedule',
           'DDPMSchedule',
           'SigmoidSchedule',
           'ALPHA_BETA_SCHEDULES',
           'get_alpha_beta_schedule',
           'get_alpha',
           'get_beta',
           'get_alpha_derivative',
           'get_beta_derivative']

class AbstractAlphaBetaSchedule(eqx.Module, abc.ABC):
  """A stateless pair of interpolation coefficients and their time derivatives."""

  display_name: eqx.AbstractClassVar[str]

  @abc.abstractmethod
  def alpha(self, t: Scalar) -> Scalar:
    pass

  @abc.abstractmethod
  def beta(self, t: Scalar) -> Scalar:
    pass

  @abc.abstractmethod
  def alpha_derivative(self, t: Scalar) -> Scalar:
    pass

  @abc.abstractmethod
  def beta_derivative(self, t: Scalar) -> Scalar:
    pass

################################################################################################################

class LinearSchedule(AbstractAlphaBetaSchedule):

  display_name: ClassVar[str] = 'α(t) = t, β(t) = 1 - t'

  def alpha(self, t: Scalar) -> Scalar:
    return clamp01(t)

  def beta(self, t: Scalar) -> Scalar:
    return 1 - clamp01(t)

  def alpha_derivative(self, t: Scalar) -> Scalar:
    return jnp.ones_like(clamp01(t))

  def beta_derivative(self, t: Scalar) -> Scalar:
    return -jnp.ones_like(clamp01(t))

class CosineSchedule(AbstractAlphaBetaSchedule):

  display_name: ClassVar[str] = 'α(t) = sin(πt/2), β(t) = cos(πt/2)'

  def alpha(self, t: Scalar) -> Scalar:
    return jnp.sin(0.5*jnp.pi*clamp01(t))

  def beta(self, t: Scalar) -> Scalar:
    return jnp.cos(0.5*jnp.pi*clamp01(t))

  def alpha_derivative(self, t: Scalar) -> Scalar:
    return 0.5*jnp.pi*jnp.cos(0.5*jnp.pi*clamp01(t))

  def beta_derivative(self, t: Scalar) -> Scalar:
    return -0.5*jnp.pi*jnp.sin(0.5*jnp.pi*clamp01(t))

class DDPMSchedule(AbstractAlphaBetaSchedule):
  """Variance preserving schedule.  The derivatives are singular at the
  endpoints so their argument is kept DDPM_DERIVATIVE_EPS away from 0 and 1."""

  display_name: ClassVar[str] = 'α(t) = √t, β(t) = √(1 - t)'

  def alpha(self, t: Scalar) -> Scalar:
    return jnp.sqrt(jnp.maximum(0.0, clamp01(t)))

  def beta(self, t: Scalar) -> Scalar:
    return jnp.sqrt(jnp.maximum(0.0, 1 - clamp01(t)))

  def alpha_derivative(self, t: Scalar) -> Scalar:
    t = jnp.maximum(DDPM_DERIVATIVE_EPS, clamp01(t))
    return 0.5/jnp.sqrt(t)

  def beta_derivative(self, t: Scalar) -> Scalar:
    t = jnp.minimum(1 - DDPM_DERIVATIVE_EPS, clamp01(t))
    return -0.5/jnp.sqrt(1 - t)

class SigmoidSchedule(AbstractAlphaBetaSchedule):
  """Logistic schedule rescaled so that it hits the boundary values exactly.
  The raw logistic curve s(6(t - 0.5)) only reaches 1/(1 + e^3) ~ 0.047 at t = 0."""

  display_name: ClassVar[str] = 'α(t) = rescaled σ(6(t-0.5)), β(t) = 1 - α(t)'

  def _rescale(self, s: Scalar) -> Scalar:
    lo = jax.nn.sigmoid(-3.0)
    return (s - lo)/(1 - 2*lo)

  def alpha(self, t: Scalar) -> Scalar:
    return self._rescale(jax.nn.sigmoid(6*(clamp01(t) - 0.5)))

  def beta(self, t: Scalar) -> Scalar:
    return self._rescale(jax.nn.sigmoid(-6*(clamp01(t) - 0.5)))

  def alpha_derivative(self, t: Scalar) -> Scalar:
    s = jax.nn.sigmoid(6*(clamp01(t) - 0.5))
    return 6*s*(1 - s)/(1 - 2*jax.nn.sigmoid(-3.0))

  def beta_derivative(self, t: Scalar) -> Scalar:
    return -self.alpha_derivative(t)

################################################################################################################

ALPHA_BETA_SCHEDULES: Dict[str, AbstractAlphaBetaSchedule] = {
  'linear': LinearSchedule(),
  'cosine': CosineSchedule(),
  'ddpm': DDPMSchedule(),
  'sigmoid': SigmoidSchedule(),
}

def get_alpha_beta_schedule(schedule) -> AbstractAlphaBetaSchedule:
  """Look up a schedule by name.  Schedule objects are passed through.

  Raises:
    ValueError: If the name is not one of ALPHA_BETA_SCHEDULES
  """
  if isinstance(schedule, AbstractAlphaBetaSchedule):
    return schedule
  try:
    return ALPHA_BETA_SCHEDULES[schedule]
  except KeyError:
    raise ValueError(f"Unknown alpha/beta schedule: {schedule}") from None

def get_alpha(t: Scalar, schedule) -> Scalar:
  return get_alpha_beta_schedule(schedule).alpha(t)

def get_beta(t: Scalar, schedule) -> Scalar:
  return get_alpha_beta_schedule(schedule).beta(t)

def get_alpha_derivative(t: Scalar, schedule) -> Scalar:
  return get_alpha_beta_schedule(schedule).alpha_derivative(t)

def get_beta_derivative(t: Scalar, schedule) -> Scalar:
  return get_alpha_beta_schedule(schedule).beta_derivative(t)
