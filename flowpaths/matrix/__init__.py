from flowpaths.matrix.sym2x2 import *
