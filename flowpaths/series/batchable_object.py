import jax
import jax.numpy as jnp
import dataclasses
from typing import Tuple, Union, Any
import equinox as eqx
from jaxtyping import PyTree
import abc
import jax.tree_util as jtu

__all__ = ["AbstractVersionedBuffer"]

class AbstractVersionedBuffer(eqx.Module, abc.ABC):
  """Base class for the caller-owned buffers the engine writes into.

  Buffers are immutable.  A "write" produces a new buffer with the same layout
  and a version counter that is one larger than the buffer it replaces.
  Consumers that cache derived data (e.g. uploaded vertex buffers) keep the last
  version they saw and compare integers instead of comparing array contents.
  The version is a static field, so it is never traced and never changes the
  numerical content of a buffer.
  """

  version: eqx.AbstractVar[int]

  @property
  @abc.abstractmethod
  def batch_size(self) -> Union[Tuple[int],int,None]:
    """The number of items (points, trajectories, noise draws) in the buffer"""
    pass

  def with_values(self, **arrays: Any) -> "AbstractVersionedBuffer":
    """Return a copy with some array fields replaced and the version bumped.

    Args:
      **arrays: New values for array fields.  Their shapes must match the
        fields they replace.

    Returns:
      A new buffer of the same type with version = self.version + 1
    """
    for name, value in arrays.items():
      old = getattr(self, name)
      if old.shape != value.shape:
        raise ValueError(f"Cannot write an array of shape {value.shape} into field '{name}' of shape {old.shape}")
    arrays = {name: value.astype(getattr(self, name).dtype) for name, value in arrays.items()}
    return dataclasses.replace(self, version=self.version + 1, **arrays)

  def bump_version(self) -> "AbstractVersionedBuffer":
    return dataclasses.replace(self, version=self.version + 1)

  def is_newer_than(self, seen_version: int) -> bool:
    return self.version > seen_version

  @property
  def shape(self) -> PyTree:
    """Get the shapes of all array parameters in this object.

    Returns:
      A PyTree with the same structure as this object, containing
      the shapes of all array parameters
    """
    params, static = eqx.partition(self, eqx.is_array)
    shapes = jtu.tree_map(lambda x: x.shape, params)
    return shapes
