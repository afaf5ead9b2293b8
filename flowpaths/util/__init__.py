from flowpaths.util.misc import *
