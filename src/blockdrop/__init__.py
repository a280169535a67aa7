"""blockdrop: materialize path-tagged code blocks from AI chats as files."""

from importlib import metadata

try:
    __version__ = metadata.version("blockdrop")
except metadata.PackageNotFoundError:  # source checkout without an install
    __version__ = "0.0.0"

__all__ = ["__version__"]
