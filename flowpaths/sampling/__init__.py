from flowpaths.sampling.gaussian import *
from flowpaths.sampling.brownian_motion import *
