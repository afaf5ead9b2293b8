from flowpaths.schedules.alpha_beta import *
from flowpaths.schedules.sigma import *
