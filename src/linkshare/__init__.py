"""linkshare - Tokenized shared links for anonymous, permission-scoped project data access."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("linkshare")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
