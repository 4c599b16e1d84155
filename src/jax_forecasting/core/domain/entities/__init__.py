"""Domain entities.

These are pure-ish structures used by the core. Keep filesystem/network I/O in adapters.
"""

from .base import *
from .dataset import *
from .distribution import *
from .forecast import *
from .model import *
