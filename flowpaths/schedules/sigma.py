r"""
Diffusion coefficient schedules $\sigma(t, \sigma_{max}) \geq 0$ that control
how much noise the stochastic probability-path simulation injects.
"""
import jax.numpy as jnp
import equinox as eqx
import abc
from typing import ClassVar, Dict
from jaxtyping import Scalar
from flowpaths.util.misc import clamp01

__all__ = ['AbstractSigmaSchedule',
           'ConstantSigma',
           'LinearSigma',
           'LinearReverseSigma',
           'SineBumpSigma',
           'QuadraticSigma',
           'SqrtSigma',
           'CosineSigma',
           'StepSigma',
           'SIGMA_SCHEDULES',
           'get_sigma_schedule',
           'get_sigma']

class AbstractSigmaSchedule(eqx.Module, abc.ABC):

  display_name: eqx.AbstractClassVar[str]

  @abc.abstractmethod
  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    pass

class ConstantSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return max_sigma*jnp.ones_like(clamp01(t))

class LinearSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · t'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return max_sigma*clamp01(t)

class LinearReverseSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · (1 - t)'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return max_sigma*(1 - clamp01(t))

class SineBumpSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · sin(πt)'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    # Clip the tiny negative value sin(pi) produces in floating point
    return max_sigma*jnp.maximum(0.0, jnp.sin(jnp.pi*clamp01(t)))

class QuadraticSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · t²'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    t = clamp01(t)
    return max_sigma*t*t

class SqrtSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · √t'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return max_sigma*jnp.sqrt(clamp01(t))

class CosineSigma(AbstractSigmaSchedule):

  display_name: ClassVar[str] = 'σ(t) = σ_max · (1 - cos(πt))/2'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return 0.5*(1 - jnp.cos(jnp.pi*clamp01(t)))*max_sigma

class StepSigma(AbstractSigmaSchedule):
  """Full noise for the first half of the path and none afterwards."""

  display_name: ClassVar[str] = 'σ(t) = σ_max · 1[t < ½]'

  def __call__(self, t: Scalar, max_sigma: Scalar) -> Scalar:
    return jnp.where(clamp01(t) < 0.5, max_sigma, 0.0)

################################################################################################################

SIGMA_SCHEDULES: Dict[str, AbstractSigmaSchedule] = {
  'constant': ConstantSigma(),
  'linear': LinearSigma(),
  'linear-reverse': LinearReverseSigma(),
  'sine-bump': SineBumpSigma(),
  'quadratic': QuadraticSigma(),
  'sqrt': SqrtSigma(),
  'cosine': CosineSigma(),
  'step': StepSigma(),
}

def get_sigma_schedule(schedule) -> AbstractSigmaSchedule:
  """Look up a sigma schedule by name.  Schedule objects are passed through.

  Raises:
    ValueError: If the name is not one of SIGMA_SCHEDULES
  """
  if isinstance(schedule, AbstractSigmaSchedule):
    return schedule
  try:
    return SIGMA_SCHEDULES[schedule]
  except KeyError:
    raise ValueError(f"Unknown sigma schedule: {schedule}") from None

def get_sigma(t: Scalar, schedule, max_sigma: Scalar) -> Scalar:
  return get_sigma_schedule(schedule)(t, max_sigma)
