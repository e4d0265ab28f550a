"""
labelsync - shared, concurrently edited image annotation datasets.

Clients batch per-record saves through :class:`SaveCoordinator`; the server
merges each batch into the dataset's document by filename and commits it
with a generation precondition through :class:`MergeCommitter`.
"""

__version__ = "0.1.0"

from labelsync.committer import LoadResult, MergeCommitter, SaveOutcome, SaveResult  # noqa: E402
from labelsync.coordinator import SaveCoordinator  # noqa: E402
from labelsync.merge import merge_by_key, renumber  # noqa: E402

__all__ = [
    "__version__",
    "LoadResult",
    "MergeCommitter",
    "SaveCoordinator",
    "SaveOutcome",
    "SaveResult",
    "merge_by_key",
    "renumber",
]
