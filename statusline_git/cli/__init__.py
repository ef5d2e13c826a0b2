"""statusline-git command line interface."""

from statusline_git import __version__

__all__ = ["__version__"]
