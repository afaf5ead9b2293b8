import pytest
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
from jax import random
from flowpaths.matrix.sym2x2 import (mat_scale,
                                     mat_add_scalar_diagonal,
                                     determinant_2x2,
                                     invert_matrix_2x2,
                                     mat_vec_2x2,
                                     covariance_to_axes,
                                     axis_to_covariance)

@pytest.fixture
def key():
  """JAX PRNGKey fixture."""
  return random.PRNGKey(0)

def random_covariances(key, n):
  L = random.normal(key, (n, 2, 2))
  return jnp.einsum('nij,nkj->nik', L, L) + 0.1*jnp.eye(2)

class TestElementaryOps:

  def test_scale_and_diagonal(self):
    A = jnp.array([[2.0, 1.0], [1.0, 3.0]])
    assert jnp.allclose(mat_scale(A, 2.0), 2*A)
    assert jnp.allclose(mat_add_scalar_diagonal(A, 0.5), A + 0.5*jnp.eye(2))

  def test_batched_scale(self):
    A = jnp.tile(jnp.eye(2), (3, 1, 1))
    scaled = mat_scale(A, jnp.array([1.0, 2.0, 3.0]))
    assert jnp.allclose(scaled[2], 3*jnp.eye(2))

  def test_inverse(self, key):
    covs = random_covariances(key, 10)
    inv = invert_matrix_2x2(covs)
    assert jnp.allclose(jnp.einsum('nij,njk->nik', covs, inv), jnp.eye(2), atol=1e-10)
    assert jnp.allclose(determinant_2x2(covs), jnp.linalg.det(covs))

  def test_singular_inverse_is_not_finite(self):
    inv = invert_matrix_2x2(jnp.zeros((2, 2)))
    assert not jnp.all(jnp.isfinite(inv))

  def test_mat_vec(self):
    A = jnp.array([[1.0, 2.0], [3.0, 4.0]])
    x = jnp.array([1.0, -1.0])
    assert jnp.allclose(mat_vec_2x2(A, x), A@x)

class TestAxes:

  def test_round_trip(self, key):
    covs = random_covariances(key, 100)
    major, minor = covariance_to_axes(covs)
    assert jnp.allclose(axis_to_covariance(major, minor), covs, atol=1e-5)

  def test_axes_are_orthogonal_and_ordered(self, key):
    covs = random_covariances(key, 100)
    major, minor = covariance_to_axes(covs)
    assert jnp.allclose(jnp.sum(major*minor, axis=-1), 0.0, atol=1e-8)
    assert jnp.all(jnp.linalg.norm(major, axis=-1) >= jnp.linalg.norm(minor, axis=-1))

  def test_axis_aligned_fallback(self):
    major, minor = covariance_to_axes(jnp.diag(jnp.array([4.0, 1.0])))
    assert jnp.allclose(major, jnp.array([2.0, 0.0]))
    assert jnp.allclose(minor, jnp.array([0.0, 1.0]))

    major, minor = covariance_to_axes(jnp.diag(jnp.array([1.0, 4.0])))
    assert jnp.allclose(major, jnp.array([0.0, 2.0]))
    assert jnp.allclose(minor, jnp.array([-1.0, 0.0]))

  def test_isotropic(self):
    cov = 2.0*jnp.eye(2)
    major, minor = covariance_to_axes(cov)
    assert jnp.all(jnp.isfinite(major)) and jnp.all(jnp.isfinite(minor))
    assert jnp.allclose(axis_to_covariance(major, minor), cov)

  def test_zero_covariance(self):
    major, minor = covariance_to_axes(jnp.zeros((2, 2)))
    assert jnp.allclose(major, 0.0)
    assert jnp.allclose(minor, 0.0)

  def test_axis_to_covariance_from_rotation(self):
    theta = 0.3
    u = jnp.array([jnp.cos(theta), jnp.sin(theta)])
    v = jnp.array([-jnp.sin(theta), jnp.cos(theta)])
    cov = axis_to_covariance(2.0*u, 0.5*v)
    major, minor = covariance_to_axes(cov)
    assert jnp.allclose(jnp.abs(major@u), 2.0)
    assert jnp.allclose(jnp.abs(minor@v), 0.5)
