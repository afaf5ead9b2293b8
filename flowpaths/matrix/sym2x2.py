"""
Closed form linear algebra for 2x2 symmetric (covariance-like) matrices.

Matrices are plain arrays of shape [..., 2, 2] so that every function here
broadcasts over any number of leading batch dimensions (e.g. one matrix per
mixture component).  Nothing here guards against singular input: inverting a
matrix with zero determinant yields inf/nan and callers are responsible for
keeping matrices positive definite.
"""
import jax
import jax.numpy as jnp
from typing import Tuple
from jaxtyping import Array, Float, Scalar
from flowpaths.constants import AXIS_DEGENERACY_EPS

__all__ = ['mat_scale',
           'mat_add_scalar_diagonal',
           'determinant_2x2',
           'invert_matrix_2x2',
           'mat_vec_2x2',
           'covariance_to_axes',
           'axis_to_covariance']

def mat_scale(A: Float[Array, '... 2 2'], s: Scalar) -> Float[Array, '... 2 2']:
  return A*jnp.asarray(s)[..., None, None]

def mat_add_scalar_diagonal(A: Float[Array, '... 2 2'], s: Scalar) -> Float[Array, '... 2 2']:
  return A + jnp.asarray(s)[..., None, None]*jnp.eye(2, dtype=A.dtype)

def determinant_2x2(A: Float[Array, '... 2 2']) -> Float[Array, '...']:
  return A[...,0,0]*A[...,1,1] - A[...,0,1]*A[...,1,0]

def invert_matrix_2x2(A: Float[Array, '... 2 2']) -> Float[Array, '... 2 2']:
  """Adjugate over determinant.  No check for a zero determinant."""
  inv_det = 1.0/determinant_2x2(A)
  row0 = jnp.stack([A[...,1,1], -A[...,0,1]], axis=-1)
  row1 = jnp.stack([-A[...,1,0], A[...,0,0]], axis=-1)
  return jnp.stack([row0, row1], axis=-2)*inv_det[..., None, None]

def mat_vec_2x2(A: Float[Array, '... 2 2'], x: Float[Array, '... 2']) -> Float[Array, '... 2']:
  return jnp.einsum('...ij,...j->...i', A, x)

################################################################################################################

def covariance_to_axes(cov: Float[Array, '... 2 2']) -> Tuple[Float[Array, '... 2'], Float[Array, '... 2']]:
  """Decompose a covariance matrix into its principal axes.

  The eigenvalues come from the trace and determinant via the quadratic
  formula.  The discriminant is clamped at zero so that rounding error on a
  nearly isotropic matrix can not produce a nan.  The major eigenvector is
  (lambda_1 - d, b) for cov = [[a, b], [b, d]].  When the off diagonal term is
  (nearly) zero this vector degenerates, so we fall back to the coordinate axis
  that carries the larger variance.

  Args:
    cov: Symmetric positive semi-definite matrices

  Returns:
    major_axis: Unit major eigenvector scaled by sqrt(lambda_1)
    minor_axis: Unit minor eigenvector scaled by sqrt(lambda_2).  This is the
      major direction rotated by +90 degrees.
  """
  a, b, d = cov[...,0,0], 0.5*(cov[...,0,1] + cov[...,1,0]), cov[...,1,1]

  half_trace = 0.5*(a + d)
  det = a*d - b*b
  disc = jnp.sqrt(jnp.maximum(0.0, half_trace*half_trace - det))
  lambda1 = half_trace + disc
  lambda2 = half_trace - disc

  is_degenerate = jnp.abs(b) <= AXIS_DEGENERACY_EPS

  # General case
  vx, vy = lambda1 - d, b
  norm = jnp.sqrt(vx*vx + vy*vy)
  safe_norm = jnp.where(is_degenerate | (norm == 0), 1.0, norm)
  ux, uy = vx/safe_norm, vy/safe_norm

  # Axis aligned fallback
  x_is_major = a >= d
  ux = jnp.where(is_degenerate, jnp.where(x_is_major, 1.0, 0.0), ux)
  uy = jnp.where(is_degenerate, jnp.where(x_is_major, 0.0, 1.0), uy)

  major_length = jnp.sqrt(jnp.maximum(0.0, lambda1))
  minor_length = jnp.sqrt(jnp.maximum(0.0, lambda2))

  major_axis = jnp.stack([ux, uy], axis=-1)*major_length[..., None]
  minor_axis = jnp.stack([-uy, ux], axis=-1)*minor_length[..., None]
  return major_axis, minor_axis

def axis_to_covariance(major_axis: Float[Array, '... 2'],
                       minor_axis: Float[Array, '... 2']) -> Float[Array, '... 2 2']:
  """Inverse of covariance_to_axes.  The axis lengths are standard deviations
  along each principal direction, so the covariance is the sum of the outer
  products of the two axes."""
  return jnp.einsum('...i,...j->...ij', major_axis, major_axis) + jnp.einsum('...i,...j->...ij', minor_axis, minor_axis)
