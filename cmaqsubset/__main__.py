import sys
from .drivers import parse_args

parse_args(sys.argv[1:], noexit=False)
