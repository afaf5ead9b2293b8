import jax
import jax.numpy as jnp
import pytest
from typing import Tuple, Union
import equinox as eqx
from jaxtyping import Array, Float
from flowpaths.series.batchable_object import AbstractVersionedBuffer

################################################################################################################

class ToyBuffer(AbstractVersionedBuffer):
  """Concrete implementation of AbstractVersionedBuffer for testing."""
  data: Float[Array, "N"]
  other_data: Float[Array, "N 3"]
  version: int = eqx.field(static=True, default=0)

  @property
  def batch_size(self) -> Union[Tuple[int], int, None]:
    return self.data.shape[0]

class TestAbstractVersionedBuffer:
  """PyTest for AbstractVersionedBuffer"""

  def test_with_values_bumps_version(self):
    buffer = ToyBuffer(data=jnp.zeros(4), other_data=jnp.zeros((4, 3)))
    written = buffer.with_values(data=jnp.arange(4.0))
    assert written.version == 1
    assert jnp.allclose(written.data, jnp.arange(4.0))
    assert jnp.allclose(written.other_data, buffer.other_data)
    assert buffer.version == 0

  def test_with_values_keeps_dtype(self):
    buffer = ToyBuffer(data=jnp.zeros(4, dtype=jnp.float32), other_data=jnp.zeros((4, 3)))
    written = buffer.with_values(data=jnp.arange(4))
    assert written.data.dtype == jnp.float32

  def test_with_values_checks_shape(self):
    buffer = ToyBuffer(data=jnp.zeros(4), other_data=jnp.zeros((4, 3)))
    with pytest.raises(ValueError):
      buffer.with_values(other_data=jnp.zeros((4, 2)))

  def test_versions_are_monotonic(self):
    buffer = ToyBuffer(data=jnp.zeros(4), other_data=jnp.zeros((4, 3)))
    versions = []
    for i in range(5):
      buffer = buffer.with_values(data=jnp.full(4, float(i)))
      versions.append(buffer.version)
    assert versions == [1, 2, 3, 4, 5]
    assert buffer.is_newer_than(4)
    assert not buffer.is_newer_than(5)

  def test_version_is_static(self):
    a = ToyBuffer(data=jnp.zeros(4), other_data=jnp.zeros((4, 3)))
    b = a.bump_version()
    assert len(jax.tree_util.tree_leaves(b)) == 2
    assert jax.tree_util.tree_structure(a) != jax.tree_util.tree_structure(b)

  def test_shape(self):
    buffer = ToyBuffer(data=jnp.zeros(4), other_data=jnp.zeros((4, 3)))
    shapes = buffer.shape
    assert shapes.data == (4,)
    assert shapes.other_data == (4, 3)
    assert buffer.batch_size == 4
