"""Content-addressed persistence for snapshots and coverage blobs."""

from .filesystem import FileSystemRepository, content_id
from .repository import Repository

__all__ = ["Repository", "FileSystemRepository", "content_id"]
