import pytest
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
from jax import random
from flowpaths.sde.integrators import write_sde_trajectories, write_sde_trajectories_heun
from flowpaths.diffusion_model.marginal_path import write_gmm
from flowpaths.potential.gaussian_mixture import make_gmm
from flowpaths.sampling.gaussian import create_gaussian_samples, create_sde_noises

MEAN = jnp.array([0.6, -0.4])
VARIANCE = 0.5
RIDGE = 1e-6

def isotropic_target():
  return make_gmm(1).with_values(means=MEAN[None], covariances=VARIANCE*jnp.eye(2)[None])

def gaussian_drift(x, t, sigma):
  """u_t(x) + sigma^2/2 * score for the linear schedule and a N(MEAN, VARIANCE I) target,
  written out by hand.  alpha = t, beta = 1 - t, alpha' = 1, beta' = -1."""
  alpha, beta = t, 1 - t
  v = alpha**2*VARIANCE + beta**2 + RIDGE
  diff = x - alpha*MEAN
  z_hat = MEAN + alpha*VARIANCE/v*diff
  velocity = z_hat - (x - alpha*z_hat)/beta
  score = -diff/v
  return velocity + 0.5*sigma**2*score

def euler_maruyama_reference(x, z, num_steps, max_sigma):
  dt = 1.0/num_steps
  xs = [x]
  for k in range(num_steps):
    t = k*dt
    sigma = max_sigma*(1 - t)
    x = x + gaussian_drift(x, t, sigma)*dt + sigma*z[:,k]*jnp.sqrt(dt)
    xs.append(x)
  return jnp.stack(xs, axis=1)

def heun_reference(x, z, num_steps, max_sigma):
  dt = 1.0/num_steps
  xs = [x]
  for k in range(num_steps):
    t = k*dt
    sigma = max_sigma*(1 - t)
    noise_term = sigma*z[:,k]*jnp.sqrt(dt)
    drift = gaussian_drift(x, t, sigma)
    x_pred = x + drift*dt + noise_term
    t_next = min(t + dt, 1 - 1e-6)
    sigma_next = max_sigma*(1 - t_next)
    drift_next = gaussian_drift(x_pred, t_next, sigma_next)
    x = x + 0.5*(drift + drift_next)*dt + noise_term
    xs.append(x)
  return jnp.stack(xs, axis=1)

@pytest.fixture
def key():
  """JAX PRNGKey fixture."""
  return random.PRNGKey(0)

@pytest.fixture
def sample_pool(key):
  return create_gaussian_samples(random.fold_in(key, 1), 16, dtype=jnp.float64)

@pytest.fixture
def noises(key):
  return create_sde_noises(random.fold_in(key, 2), 16, 4, dtype=jnp.float64)

class TestStochasticSteps:
  """Single steps with sigma > 0 against the update written out by hand"""

  def test_single_euler_maruyama_step(self, sample_pool, noises):
    # At t = 0 the drift is MEAN - x - sigma^2/2 * x/(1 + ridge)
    sigma = 0.7
    written = write_sde_trajectories(sample_pool, noises, 'linear', 'constant', isotropic_target(), 16, 1, sigma, None)
    x0 = sample_pool.as_array()
    z = noises.as_grid()[:,0]
    expected = x0 + (MEAN - x0 - 0.5*sigma**2*x0/(1 + RIDGE)) + sigma*z
    assert jnp.allclose(written.as_array()[:,1], expected, rtol=1e-10, atol=1e-10)

  @pytest.mark.parametrize('num_steps', [1, 2])
  def test_euler_maruyama_matches_reference(self, sample_pool, noises, num_steps):
    written = write_sde_trajectories(sample_pool, noises, 'linear', 'linear-reverse', isotropic_target(), 16, num_steps, 0.8, None)
    expected = euler_maruyama_reference(sample_pool.as_array(), noises.as_grid(), num_steps, 0.8)
    assert jnp.allclose(written.as_array(), expected, rtol=1e-8, atol=1e-8)

  @pytest.mark.parametrize('num_steps', [1, 2])
  def test_heun_matches_reference(self, sample_pool, noises, num_steps):
    """The corrector uses sigma at the clamped next time and the predictor's noise draw"""
    written = write_sde_trajectories_heun(sample_pool, noises, 'linear', 'linear-reverse', isotropic_target(), 16, num_steps, 0.8, None)
    expected = heun_reference(sample_pool.as_array(), noises.as_grid(), num_steps, 0.8)
    assert jnp.allclose(written.as_array(), expected, rtol=1e-8, atol=1e-8)

class TestMarginalPreservation:
  """With sigma > 0 the SDE still carries N(0, I) samples along the marginal path"""

  @pytest.mark.parametrize('integrator', [write_sde_trajectories, write_sde_trajectories_heun])
  def test_moments_at_half_time(self, key, integrator):
    num_samples, num_steps = 4000, 100
    target = make_gmm(1).with_values(means=jnp.array([[1.0, -0.5]]),
                                     covariances=jnp.array([[[0.5, 0.0], [0.0, 0.2]]]))
    pool = create_gaussian_samples(random.fold_in(key, 3), num_samples, dtype=jnp.float64)
    noises = create_sde_noises(random.fold_in(key, 4), num_samples, num_steps, dtype=jnp.float64)

    written = integrator(pool, noises, 'linear', 'constant', target, num_samples, num_steps, 1.0, None)
    x_half = written.as_array()[:,num_steps//2]

    marginal = write_gmm(target, 'linear', 0.5, make_gmm(1))
    assert jnp.allclose(x_half.mean(axis=0), marginal.means[0], atol=0.05)
    assert jnp.allclose(jnp.cov(x_half.T), marginal.covariances[0], atol=0.05)
