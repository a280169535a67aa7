"""Version-control collaborators."""

from .git import Committer, GitCommitter

__all__ = ["Committer", "GitCommitter"]
