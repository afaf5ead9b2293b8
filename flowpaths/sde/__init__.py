from flowpaths.sde.integrators import *
from flowpaths.sde.vector_field import *
from flowpaths.sde.ode_sde_simulation import *
from flowpaths.sde.params import *
