from flowpaths.potential.gaussian_mixture import *
