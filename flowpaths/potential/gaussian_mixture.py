"""
Gaussian mixtures over the plane.  A mixture is stored as structure-of-arrays
(one row per component) so that every mixture computation is a batched array
operation over components.  Weights are relative masses and need not sum to
one.
"""
import jax
import jax.numpy as jnp
from jax import random
import equinox as eqx
from typing import List, Optional, Sequence
from jaxtyping import Array, PRNGKeyArray, Float, Scalar
from flowpaths.series.batchable_object import AbstractVersionedBuffer
from flowpaths.matrix.sym2x2 import axis_to_covariance
from flowpaths.util.misc import random_position

__all__ = ['GaussianComponent',
           'GaussianMixture',
           'make_gmm',
           'make_random_gmm']

class GaussianComponent(eqx.Module):
  mean: Float[Array, '2']
  weight: Scalar
  covariance: Float[Array, '2 2']

  def __init__(self, mean, weight, covariance):
    self.mean = jnp.asarray(mean, dtype=jnp.result_type(float))
    self.weight = jnp.asarray(weight, dtype=jnp.result_type(float))
    self.covariance = jnp.asarray(covariance, dtype=jnp.result_type(float))

class GaussianMixture(AbstractVersionedBuffer):
  """An ordered list of weighted 2d Gaussians.

  Attributes:
    means: Component means
    weights: Relative component masses
    covariances: Component covariance matrices
    version: Bumped by every write
  """
  means: Float[Array, 'K 2']
  weights: Float[Array, 'K']
  covariances: Float[Array, 'K 2 2']
  version: int = eqx.field(static=True, default=0)

  def __check_init__(self):
    K = self.weights.shape[0]
    if self.means.shape != (K, 2) or self.covariances.shape != (K, 2, 2):
      raise ValueError(f"Inconsistent mixture shapes: means {self.means.shape}, weights {self.weights.shape}, covariances {self.covariances.shape}")

  @classmethod
  def from_components(cls, components: Sequence[GaussianComponent], version: int = 0) -> 'GaussianMixture':
    if len(components) == 0:
      return cls.empty(version=version)
    return cls(means=jnp.stack([c.mean for c in components]),
               weights=jnp.stack([c.weight for c in components]),
               covariances=jnp.stack([c.covariance for c in components]),
               version=version)

  @classmethod
  def empty(cls, version: int = 0) -> 'GaussianMixture':
    dtype = jnp.result_type(float)
    return cls(means=jnp.zeros((0, 2), dtype=dtype),
               weights=jnp.zeros((0,), dtype=dtype),
               covariances=jnp.zeros((0, 2, 2), dtype=dtype),
               version=version)

  @property
  def components(self) -> List[GaussianComponent]:
    return [GaussianComponent(m, w, c) for m, w, c in zip(self.means, self.weights, self.covariances)]

  @property
  def num_components(self) -> int:
    return self.weights.shape[0]

  @property
  def batch_size(self) -> int:
    return self.num_components

  def __len__(self) -> int:
    return self.num_components

  @property
  def total_weight(self) -> Scalar:
    return self.weights.sum()

################################################################################################################

def make_gmm(num_components: int) -> GaussianMixture:
  """Equally weighted standard Gaussians at the origin"""
  if num_components < 0:
    raise ValueError(f"make_gmm expects num_components to be >= 0, got {num_components}")
  if num_components == 0:
    return GaussianMixture.empty()
  dtype = jnp.result_type(float)
  return GaussianMixture(means=jnp.zeros((num_components, 2), dtype=dtype),
                         weights=jnp.full((num_components,), 1/num_components, dtype=dtype),
                         covariances=jnp.tile(jnp.eye(2, dtype=dtype), (num_components, 1, 1)))

def make_random_gmm(key: PRNGKeyArray, num_components: int) -> GaussianMixture:
  """Random mixture with normalized weights, means inside the central 80% of
  the data domain and randomly rotated covariances whose axis lengths are
  sqrt(0.1 + 2.5 u) for u ~ U(0, 1)."""
  if num_components < 0:
    raise ValueError(f"make_random_gmm expects num_components to be >= 0, got {num_components}")
  if num_components == 0:
    return GaussianMixture.empty()

  k_weight, k_mean, k_angle, k_major, k_minor = random.split(key, 5)
  raw_weights = random.uniform(k_weight, (num_components,))
  weights = raw_weights/raw_weights.sum()

  means = random_position(k_mean, (num_components,), scale=0.8)

  angle = random.uniform(k_angle, (num_components,), maxval=2*jnp.pi)
  cos, sin = jnp.cos(angle), jnp.sin(angle)
  major_scale = jnp.sqrt(0.1 + 2.5*random.uniform(k_major, (num_components,)))
  minor_scale = jnp.sqrt(0.1 + 2.5*random.uniform(k_minor, (num_components,)))

  major_axis = major_scale[:,None]*jnp.stack([cos, sin], axis=-1)
  minor_axis = minor_scale[:,None]*jnp.stack([-sin, cos], axis=-1)
  covariances = axis_to_covariance(major_axis, minor_axis)

  return GaussianMixture(means=means, weights=weights, covariances=covariances)
