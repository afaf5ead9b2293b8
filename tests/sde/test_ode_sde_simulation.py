import pytest
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
from jax import random
import diffrax
from flowpaths.sde.ode_sde_simulation import ODESolverParams, ode_solve
from flowpaths.potential.gaussian_mixture import make_gmm, make_random_gmm
from flowpaths.diffusion_model.marginal_path import sample_from_gmm_marg_prob_path
from flowpaths.series.points import make_points2d

@pytest.fixture
def key():
  """JAX PRNGKey fixture."""
  return random.PRNGKey(0)

class TestODESolverParams:
  """Test ODE solver parameters"""

  def test_default_initialization(self):
    params = ODESolverParams()
    assert params.rtol == 1e-8
    assert params.atol == 1e-8
    assert params.solver == 'dopri5'
    assert params.stepsize_controller == 'pid'
    assert params.using_constant_step_size() is False

  def test_to_dict(self):
    params = ODESolverParams(solver='euler', stepsize_controller='constant', max_steps=100)
    d = params.to_dict()
    assert d['solver'] == 'euler'
    assert d['stepsize_controller'] == 'constant'
    assert d['max_steps'] == 100
    assert params.using_constant_step_size() is True

  def test_get_objects(self):
    params = ODESolverParams()
    assert isinstance(params.get_solver(), diffrax.Dopri5)
    assert isinstance(params.get_adjoint(), diffrax.RecursiveCheckpointAdjoint)
    assert isinstance(params.get_stepsize_controller(), diffrax.PIDController)
    assert isinstance(params.get_progress_meter(), diffrax.NoProgressMeter)
    assert isinstance(ODESolverParams(solver='heun').get_solver(), diffrax.Heun)
    assert isinstance(ODESolverParams(stepsize_controller='none').get_stepsize_controller(), diffrax.ConstantStepSize)

  def test_unknown_names_raise(self):
    with pytest.raises(ValueError):
      ODESolverParams(solver='rk4').get_solver()
    with pytest.raises(ValueError):
      ODESolverParams(adjoint='backsolve').get_adjoint()
    with pytest.raises(ValueError):
      ODESolverParams(stepsize_controller='adaptive').get_stepsize_controller()

class TestODESolve:

  def test_empty_mixture_contracts_to_origin(self, key):
    x0 = random.normal(key, (5, 2))
    save_times = jnp.array([0.0, 0.25, 0.5, 0.75])
    trajectories = ode_solve('linear', make_gmm(0), x0, save_times)
    assert trajectories.count == 5
    assert trajectories.points_per_trajectory == 4
    expected = (1 - save_times)[None,:,None]*x0[:,None,:]
    assert jnp.allclose(trajectories.as_array(), expected, atol=1e-6)

  def test_constant_step_euler(self, key):
    x0 = random.normal(key, (5, 2))
    params = ODESolverParams(solver='euler', stepsize_controller='constant', max_steps=1000)
    trajectories = ode_solve('linear', make_gmm(0), x0, jnp.array([0.0, 0.5]), params)
    assert jnp.allclose(trajectories.as_array()[:,-1], 0.5*x0, atol=1e-6)

  def test_transports_marginals(self, key):
    """Pushing samples of p_0 through the flow gives samples of p_t"""
    k1, k2, k3 = random.split(key, 3)
    mixture = make_random_gmm(k1, 3)
    x0 = sample_from_gmm_marg_prob_path(k2, mixture, 4000, 0.0, 'cosine', make_points2d(4000, dtype=jnp.float64))
    trajectories = ode_solve('cosine', mixture, x0.as_array(), jnp.array([0.0, 0.7]), ODESolverParams(rtol=1e-6, atol=1e-6))
    pushed = trajectories.as_array()[:,-1]

    direct = sample_from_gmm_marg_prob_path(k3, mixture, 4000, 0.7, 'cosine', make_points2d(4000, dtype=jnp.float64)).as_array()
    assert jnp.allclose(pushed.mean(axis=0), direct.mean(axis=0), atol=0.1)
    assert jnp.allclose(jnp.cov(pushed.T), jnp.cov(direct.T), atol=0.15)
