from flowpaths.schedules import *
from flowpaths.series import *
from flowpaths.potential import *
from flowpaths.sampling import *
import flowpaths.diffusion_model.conditional_path as conditional_path
import flowpaths.diffusion_model.marginal_path as marginal_path
from flowpaths.diffusion_model.marginal_path import MarginalPathSlice
import flowpaths.sde.integrators as integrators
from flowpaths.sde.vector_field import *
from flowpaths.sde.ode_sde_simulation import *
from flowpaths.sde.params import *
