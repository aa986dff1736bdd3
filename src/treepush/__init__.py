from .exceptions import ExternalServiceError, InconsistentIndexError, TransportError, TreePushError
from .github import GitHubService
from .index import RemoteTreeIndex
from .local import LocalObjectService
from .splice import PendingChange, splice
from .tree import BranchHead, ObjectRef, TreeEntry, TreeListing
from .upload import UploadResult, fetch_index, load_changes, upload

__version__ = "0.1.0"

__all__ = [
    "RemoteTreeIndex", "PendingChange", "splice", "upload", "fetch_index", "load_changes",
    "UploadResult", "ObjectRef", "TreeEntry", "TreeListing", "BranchHead",
    "GitHubService", "LocalObjectService",
    "TreePushError", "TransportError", "ExternalServiceError", "InconsistentIndexError",
]
