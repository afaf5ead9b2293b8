import flowpaths.diffusion_model.conditional_path as conditional_path
import flowpaths.diffusion_model.marginal_path as marginal_path
from flowpaths.diffusion_model.marginal_path import MarginalPathSlice
