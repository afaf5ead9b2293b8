import pytest
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
from jax import random
from flowpaths.potential.gaussian_mixture import GaussianComponent, GaussianMixture, make_gmm, make_random_gmm
from flowpaths.constants import X_DOMAIN, Y_DOMAIN

@pytest.fixture
def key():
  """JAX PRNGKey fixture."""
  return random.PRNGKey(0)

class TestGaussianMixture:

  def test_make_gmm(self):
    gmm = make_gmm(4)
    assert gmm.num_components == 4
    assert len(gmm) == 4
    assert jnp.allclose(gmm.weights, 0.25)
    assert jnp.allclose(gmm.total_weight, 1.0)
    assert jnp.allclose(gmm.means, 0.0)
    assert jnp.allclose(gmm.covariances, jnp.eye(2))
    assert gmm.version == 0

  def test_make_empty(self):
    gmm = make_gmm(0)
    assert gmm.num_components == 0
    assert gmm.means.shape == (0, 2)
    assert gmm.components == []

  def test_negative_count_raises(self, key):
    with pytest.raises(ValueError):
      make_gmm(-1)
    with pytest.raises(ValueError):
      make_random_gmm(key, -2)

  def test_inconsistent_shapes_raise(self):
    with pytest.raises(ValueError):
      GaussianMixture(means=jnp.zeros((3, 2)), weights=jnp.ones(2), covariances=jnp.zeros((2, 2, 2)))

  def test_components_round_trip(self):
    components = [GaussianComponent([0.0, 1.0], 2.0, jnp.eye(2)),
                  GaussianComponent([1.0, -1.0], 0.5, [[1.0, 0.2], [0.2, 0.5]])]
    gmm = GaussianMixture.from_components(components, version=3)
    assert gmm.version == 3
    assert jnp.allclose(gmm.weights, jnp.array([2.0, 0.5]))
    # Weights are relative masses
    assert jnp.allclose(gmm.total_weight, 2.5)

    back = gmm.components
    assert len(back) == 2
    assert jnp.allclose(back[1].mean, jnp.array([1.0, -1.0]))
    assert jnp.allclose(back[1].covariance, jnp.array([[1.0, 0.2], [0.2, 0.5]]))

  def test_random_gmm(self, key):
    gmm = make_random_gmm(key, 6)
    assert gmm.num_components == 6
    assert jnp.allclose(gmm.weights.sum(), 1.0)
    assert jnp.all(gmm.weights > 0)

    assert jnp.all(jnp.abs(gmm.means[:,0]) <= 0.8*X_DOMAIN[1])
    assert jnp.all(jnp.abs(gmm.means[:,1]) <= 0.8*Y_DOMAIN[1])

    covs = gmm.covariances
    assert jnp.allclose(covs, jnp.swapaxes(covs, -1, -2))
    eigenvalues = jnp.linalg.eigvalsh(covs)
    assert jnp.all(eigenvalues >= 0.1 - 1e-8)
    assert jnp.all(eigenvalues <= 2.6 + 1e-8)
