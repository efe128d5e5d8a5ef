"""Course document pipeline: Canvas file cache, text extraction and folder access."""

from study_os.files.folder_access import FolderAccessChecker, FolderBrowser
from study_os.files.reconciler import FileCacheReconciler, ReconcileResult
from study_os.files.text_cache import FileContext, TextExtractionCache

__all__ = [
    "FileCacheReconciler",
    "FileContext",
    "FolderAccessChecker",
    "FolderBrowser",
    "ReconcileResult",
    "TextExtractionCache",
]
