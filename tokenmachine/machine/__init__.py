"""
Token machine — a dynamic model of an aliasing discipline.

One memory location, one root reference, a tree of references derived from
it, and a token that has to be lent down and handed back up the tree before a
reference may touch the location.

| Component              | Role                                                |
<----------------------- + --------------------------------------------------- >
| **Reference registry** | identities, derivation parents, kinds, lifecycle    |
| **Token ledger**       | lend / return / split / merge of token units        |
| **Permission register**| exclusive vs. shared, read-only vs. read-write      |
| **Access validator**   | which reads and writes each reference may perform   |
"""

from . import core as _core
from . import errors as _errors
from . import registry as _registry
from . import ledger as _ledger
from . import permissions as _permissions
from . import validator as _validator
from . import state as _state
from . import analysis as _analysis
from . import trace as _trace
from .cli import main, parse_args, run_repl
from ..constants import LOGBOOK_FILE

from .core import *
from .errors import *
from .validator import *
from .permissions import *
from .state import *
from .analysis import *
from .trace import *

__all__ = []
for module in (_core, _errors, _validator, _permissions, _state, _analysis, _trace):
    __all__.extend(getattr(module, '__all__', []))
__all__ += ['main', 'parse_args', 'run_repl', 'LOGBOOK_FILE']
__all__ = list(dict.fromkeys(__all__))
