"""Domain errors raised by the core; adapters decide how to surface them."""

from .dataset import *
from .training import *
