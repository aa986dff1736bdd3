"""treepush CLI: write files into a remote git repository."""

from ._helpers import main  # noqa: F401  entry point

# Import command modules to register Click commands with the main group.
from . import _ls, _push  # noqa: F401
