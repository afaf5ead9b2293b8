from flowpaths.series.batchable_object import *
from flowpaths.series.points import *
from flowpaths.series.trajectories import *
