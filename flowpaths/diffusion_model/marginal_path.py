r"""
The marginal probability path from a standard Gaussian to a Gaussian mixture.

Marginalizing the conditional path $x_t = \alpha(t) z + \beta(t) x_0$ over a
target $z \sim \sum_k w_k N(\mu_k, \Sigma_k)$ gives another mixture
$p_t(x) = \sum_k w_k N(x | m_k(t), S_k(t))$ with

$m_k(t) = \alpha(t) \mu_k$, $S_k(t) = \alpha(t)^2 \Sigma_k + \beta(t)^2 I$.

The velocity field and score of $p_t$ are both responsibility weighted sums of
per-component terms.  With responsibilities
$\gamma_k(x) \propto w_k N(x | m_k(t), S_k(t))$ (computed with a max-shifted
softmax) we have

$u_t(x) = A(t) \hat z(x) + B(t) x$, $\hat z(x) = \sum_k \gamma_k(x) [\mu_k + M_k (x - m_k(t))]$,
$M_k = \alpha(t) \Sigma_k S_k(t)^{-1}$, $B(t) = \dot\beta/\beta$, $A(t) = \dot\alpha - B(t)\alpha$

and $\nabla \log p_t(x) = -\sum_k \gamma_k(x) S_k(t)^{-1}(x - m_k(t))$.

$\hat z(x)$ is the posterior mean of the target given $x_t = x$.  beta(t) is
floored at BETA_FLOOR where it is a divisor and every $S_k(t)$ gets
COVARIANCE_EPS added to its diagonal before it is inverted.
"""
import jax
import jax.numpy as jnp
from jax import random
import equinox as eqx
from typing import Optional, Union
from jaxtyping import Array, PRNGKeyArray, Float, Int, Scalar
from flowpaths.schedules.alpha_beta import AbstractAlphaBetaSchedule, get_alpha_beta_schedule
from flowpaths.potential.gaussian_mixture import GaussianMixture
from flowpaths.series.points import Points2D
from flowpaths.matrix.sym2x2 import (mat_scale,
                                     mat_add_scalar_diagonal,
                                     determinant_2x2,
                                     invert_matrix_2x2,
                                     mat_vec_2x2,
                                     covariance_to_axes)
from flowpaths.sampling.gaussian import sample_standard_gaussian
from flowpaths.constants import BETA_FLOOR, COVARIANCE_EPS

__all__ = ['MarginalPathSlice',
           'write_gmm',
           'sample_from_gmm_marg_prob_path',
           'select_components',
           'responsibilities',
           'write_velocities',
           'write_scores']

################################################################################################################

def write_gmm(target_gmm: GaussianMixture,
              schedule: Union[str, AbstractAlphaBetaSchedule],
              t: Scalar,
              out: GaussianMixture) -> GaussianMixture:
  """Write the time t marginal of the path towards `target_gmm` into `out`.

  Means are scaled by alpha(t), covariances become
  alpha(t)^2 Sigma_k + beta(t)^2 I and weights are copied.

  Raises:
    ValueError: If `out` does not have the same number of components as
      `target_gmm`.  An empty target empties `out` instead.
  """
  if target_gmm.num_components == 0:
    return GaussianMixture.empty(version=out.version + 1)
  if out.num_components != target_gmm.num_components:
    raise ValueError(f"write_gmm expects the number of components in out ({out.num_components}) to match target_gmm ({target_gmm.num_components})")

  schedule = get_alpha_beta_schedule(schedule)
  alpha, beta = schedule.alpha(t), schedule.beta(t)
  covariances = mat_add_scalar_diagonal(mat_scale(target_gmm.covariances, alpha*alpha), beta*beta)
  return out.with_values(means=alpha*target_gmm.means,
                         weights=target_gmm.weights,
                         covariances=covariances)

################################################################################################################

def select_components(u: Float[Array, 'N'], weights: Float[Array, 'K']) -> Int[Array, 'N']:
  """Weighted choice of a component index for every uniform draw u in [0, 1).

  This is the linear scan r = u*sum(w); r -= w_k until r <= 0.  If rounding
  exhausts the weights before r reaches zero the last component is chosen.
  """
  r = u[:,None]*weights.sum()
  hit = (r - jnp.cumsum(weights)[None,:]) <= 0
  return jnp.where(hit.any(axis=1), jnp.argmax(hit, axis=1), weights.shape[0] - 1)

def sample_from_gmm_marg_prob_path(key: PRNGKeyArray,
                                   mixture: GaussianMixture,
                                   sample_count: int,
                                   t: Scalar,
                                   schedule: Union[str, AbstractAlphaBetaSchedule],
                                   out: Points2D,
                                   start_index: int = 0,
                                   count: Optional[int] = None) -> Points2D:
  """Draw samples of x_t and write them to out[start_index:start_index + count].

  Each sample picks a component by weight, draws z from it using the
  component's principal axes and blends it with fresh source noise as
  alpha(t) z + beta(t) x_0.  Nothing is written (and the version is unchanged)
  when count <= 0 or the mixture is empty.
  """
  if count is None:
    count = sample_count
  if count <= 0 or mixture.num_components == 0:
    return out
  if start_index + count > len(out):
    raise ValueError(f"Cannot write {count} samples at offset {start_index} into a buffer of {len(out)} points")

  schedule = get_alpha_beta_schedule(schedule)
  alpha, beta = schedule.alpha(t), schedule.beta(t)

  k_component, k_source, k_choice = random.split(key, 3)
  dtype = out.xs.dtype
  component_noise = sample_standard_gaussian(k_component, count, dtype=dtype)
  source_noise = sample_standard_gaussian(k_source, count, dtype=dtype)
  component_index = select_components(random.uniform(k_choice, (count,), dtype=dtype), mixture.weights)

  major_axes, minor_axes = covariance_to_axes(mixture.covariances)
  x1 = (mixture.means[component_index]
        + major_axes[component_index]*component_noise[:,:1]
        + minor_axes[component_index]*component_noise[:,1:])
  samples = (alpha*x1 + beta*source_noise).astype(dtype)

  xy = jax.lax.dynamic_update_slice(out.as_array(), samples, (start_index, 0))
  return out.with_array(xy)

################################################################################################################

class MarginalPathSlice(eqx.Module):
  """Per-component quantities of the marginal path at a fixed time t.

  Building the slice does all of the K-sized work (inverses, determinants,
  affine maps) once so that evaluating the velocity or score at N points only
  does N x K Mahalanobis distances.
  """
  means: Float[Array, 'K 2']
  means_t: Float[Array, 'K 2']
  precisions_t: Float[Array, 'K 2 2']
  log_norm_consts: Float[Array, 'K']
  denoise_maps: Float[Array, 'K 2 2']
  A_t: Scalar
  B_t: Scalar

  def __init__(self,
               schedule: AbstractAlphaBetaSchedule,
               means: Float[Array, 'K 2'],
               weights: Float[Array, 'K'],
               covariances: Float[Array, 'K 2 2'],
               t: Scalar):
    alpha, beta = schedule.alpha(t), schedule.beta(t)
    alpha_dot, beta_dot = schedule.alpha_derivative(t), schedule.beta_derivative(t)

    self.B_t = beta_dot/jnp.maximum(beta, BETA_FLOOR)
    self.A_t = alpha_dot - self.B_t*alpha

    self.means = means
    self.means_t = alpha*means

    # S_k(t) with a small ridge so that point masses stay invertible at t = 1
    S_t = mat_add_scalar_diagonal(mat_scale(covariances, alpha*alpha), beta*beta + COVARIANCE_EPS)
    self.precisions_t = invert_matrix_2x2(S_t)
    self.log_norm_consts = jnp.log(weights) - jnp.log(2*jnp.pi) - 0.5*jnp.log(determinant_2x2(S_t))

    # M_k = alpha Sigma_k S_k(t)^{-1}
    self.denoise_maps = alpha*jnp.einsum('kij,kjl->kil', covariances, self.precisions_t)

  @classmethod
  def from_mixture(cls,
                   schedule: Union[str, AbstractAlphaBetaSchedule],
                   mixture: GaussianMixture,
                   t: Scalar) -> 'MarginalPathSlice':
    return cls(get_alpha_beta_schedule(schedule), mixture.means, mixture.weights, mixture.covariances, t)

  @property
  def num_components(self) -> int:
    return self.means.shape[0]

  def log_likelihoods(self, x: Float[Array, 'N 2']) -> Float[Array, 'N K']:
    """log w_k + log N(x | m_k(t), S_k(t)) for every point and component"""
    diff = x[:,None,:] - self.means_t[None,:,:]
    mahalanobis = jnp.einsum('nki,kij,nkj->nk', diff, self.precisions_t, diff)
    return self.log_norm_consts[None,:] - 0.5*mahalanobis

  def responsibilities(self, x: Float[Array, 'N 2']) -> Float[Array, 'N K']:
    """Posterior component probabilities.  The per-point max log likelihood is
    subtracted before exponentiating so that far away points do not underflow."""
    log_likelihoods = self.log_likelihoods(x)
    max_log = log_likelihoods.max(axis=1, keepdims=True)
    p = jnp.exp(log_likelihoods - max_log)
    return p/p.sum(axis=1, keepdims=True)

  def denoise(self, x: Float[Array, 'N 2']) -> Float[Array, 'N 2']:
    """Posterior mean of the target given x_t = x"""
    if self.num_components == 0:
      return jnp.zeros_like(x)
    gamma = self.responsibilities(x)
    diff = x[:,None,:] - self.means_t[None,:,:]
    z_hat = self.means[None,:,:] + jnp.einsum('kij,nkj->nki', self.denoise_maps, diff)
    return jnp.einsum('nk,nki->ni', gamma, z_hat)

  def velocity(self, x: Float[Array, 'N 2']) -> Float[Array, 'N 2']:
    return self.A_t*self.denoise(x) + self.B_t*x

  def score(self, x: Float[Array, 'N 2']) -> Float[Array, 'N 2']:
    if self.num_components == 0:
      return jnp.zeros_like(x)
    gamma = self.responsibilities(x)
    diff = x[:,None,:] - self.means_t[None,:,:]
    component_scores = -jnp.einsum('kij,nkj->nki', self.precisions_t, diff)
    return jnp.einsum('nk,nki->ni', gamma, component_scores)

  def sde_drift(self, x: Float[Array, 'N 2'], sigma: Scalar) -> Float[Array, 'N 2']:
    r"""Drift $u_t(x) + \frac{\sigma^2}{2}\nabla\log p_t(x)$ of the SDE with the same marginals"""
    return self.velocity(x) + 0.5*sigma*sigma*self.score(x)

################################################################################################################

def responsibilities(schedule: Union[str, AbstractAlphaBetaSchedule],
                     mixture: GaussianMixture,
                     t: Scalar,
                     x: Points2D) -> Float[Array, 'N K']:
  return MarginalPathSlice.from_mixture(schedule, mixture, t).responsibilities(x.as_array())

def write_velocities(schedule: Union[str, AbstractAlphaBetaSchedule],
                     mixture: GaussianMixture,
                     t: Scalar,
                     x: Points2D,
                     v: Points2D) -> Points2D:
  """Marginal velocity field at the points x and time t, written into v"""
  path = MarginalPathSlice.from_mixture(schedule, mixture, t)
  return v.with_array(path.velocity(x.as_array()))

def write_scores(schedule: Union[str, AbstractAlphaBetaSchedule],
                 mixture: GaussianMixture,
                 t: Scalar,
                 x: Points2D,
                 s: Points2D) -> Points2D:
  """Score of the marginal distribution at the points x and time t, written into s"""
  path = MarginalPathSlice.from_mixture(schedule, mixture, t)
  return s.with_array(path.score(x.as_array()))
