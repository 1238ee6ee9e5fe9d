"""lunals package root."""

from lunals.exceptions import LunalsError, NeverThrown
from lunals.invariants import never

__all__ = ["__version__", "LunalsError", "NeverThrown", "never"]

__version__ = "0.1.0"
