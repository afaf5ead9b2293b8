"""Default sizes, plotting domains and the numerical epsilons used by the engine."""

__all__ = ['X_DOMAIN',
           'Y_DOMAIN',
           'NUM_TRAJECTORY_STEPS',
           'MAX_NUM_TRAJECTORY_STEPS',
           'MAX_NUM_SAMPLES',
           'DEFAULT_NUM_SAMPLES',
           'DEFAULT_NUM_SDE_STEPS',
           'MAX_NUM_SDE_STEPS',
           'DEFAULT_MAX_SIGMA',
           'DDPM_DERIVATIVE_EPS',
           'COVARIANCE_EPS',
           'BETA_FLOOR',
           'HEUN_T_MAX',
           'CONDITIONAL_SDE_BETA_FLOOR',
           'CONDITIONAL_SDE_VARIANCE_FLOOR',
           'OU_SINGULARITY_THRESHOLD',
           'AXIS_DEGENERACY_EPS']

X_DOMAIN = (-2.0, 2.0)
Y_DOMAIN = (-1.5, 1.5)

NUM_TRAJECTORY_STEPS = 100
MAX_NUM_TRAJECTORY_STEPS = 500

DEFAULT_NUM_SAMPLES = 200
MAX_NUM_SAMPLES = 1000

DEFAULT_NUM_SDE_STEPS = 100
MAX_NUM_SDE_STEPS = 500
DEFAULT_MAX_SIGMA = 0.8

################################################################################################################

# Keeps the ddpm derivatives finite at t = 0 and t = 1
DDPM_DERIVATIVE_EPS = 1e-5

# Added to the diagonal of every time-t mixture covariance before inversion
COVARIANCE_EPS = 1e-6

# Lower bound on beta(t) wherever it is used as a divisor in the marginal path
BETA_FLOOR = 1e-8

# The Heun corrector never evaluates the drift past this time
HEUN_T_MAX = 1 - 1e-6

CONDITIONAL_SDE_BETA_FLOOR = 1e-4
CONDITIONAL_SDE_VARIANCE_FLOOR = 1e-6

# Below |2 K dt| the OU variance increment is replaced by sigma^2 dt
OU_SINGULARITY_THRESHOLD = 1e-4

AXIS_DEGENERACY_EPS = 1e-9
