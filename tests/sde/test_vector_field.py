import pytest
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
from flowpaths.sde.vector_field import euler_method_trajectory, euler_maruyama_trajectory
from flowpaths.series.points import Points2D

class TestEulerMethod:

  def test_constant_field(self):
    trajectory = euler_method_trajectory(lambda x, t: jnp.array([1.0, -2.0]), 10, jnp.array([0.5, 0.5]))
    assert trajectory.count == 1
    assert trajectory.points_per_trajectory == 11
    path = trajectory.as_array()[0]
    assert jnp.allclose(path[0], jnp.array([0.5, 0.5]))
    assert jnp.allclose(path[-1], jnp.array([1.5, -1.5]))

  def test_step_count_is_sanitized(self):
    assert euler_method_trajectory(lambda x, t: x, 1, jnp.zeros(2)).points_per_trajectory == 3
    assert euler_method_trajectory(lambda x, t: x, 7.9, jnp.zeros(2)).points_per_trajectory == 8

  def test_linear_decay(self):
    steps = 20
    trajectory = euler_method_trajectory(lambda x, t: -x, steps, jnp.array([1.0, 2.0]))
    expected = (1 - 1/steps)**steps*jnp.array([1.0, 2.0])
    assert jnp.allclose(trajectory.as_array()[0, -1], expected)

  def test_time_argument(self):
    # dx/dt = t integrates to sum_k k dt^2
    trajectory = euler_method_trajectory(lambda x, t: jnp.array([t, 0.0]), 4, jnp.zeros(2))
    assert jnp.allclose(trajectory.xs, jnp.array([0.0, 0.0, 0.0625, 0.1875, 0.375]))

class TestEulerMaruyama:

  def test_unit_noise(self):
    noises = Points2D(xs=jnp.ones(16), ys=-jnp.ones(16))
    trajectory = euler_maruyama_trajectory(lambda x, t: jnp.zeros(2), 16, jnp.zeros(2), 0.5, noises)
    # 16 increments of 0.5 * sqrt(1/16)
    assert jnp.allclose(trajectory.as_array()[0, -1], jnp.array([2.0, -2.0]))

  def test_zero_diffusion_matches_euler(self):
    noises = Points2D(xs=jnp.ones(10), ys=jnp.ones(10))
    fn = lambda x, t: jnp.array([-x[1], x[0]])
    a = euler_method_trajectory(fn, 10, jnp.array([1.0, 0.0]))
    b = euler_maruyama_trajectory(fn, 10, jnp.array([1.0, 0.0]), 0.0, noises)
    assert jnp.allclose(a.as_array(), b.as_array())

  def test_too_few_noises_raises(self):
    noises = Points2D(xs=jnp.ones(5), ys=jnp.ones(5))
    with pytest.raises(ValueError):
      euler_maruyama_trajectory(lambda x, t: x, 10, jnp.zeros(2), 1.0, noises)
