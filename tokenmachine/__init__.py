"""Public API of the token machine aliasing model."""

from . import constants as _constants
from . import machine as _machine
from .constants import *  # noqa: F401,F403
from .machine import *  # noqa: F401,F403

__all__ = []
__all__ += getattr(_constants, "__all__", [])
__all__ += getattr(_machine, "__all__", [])
