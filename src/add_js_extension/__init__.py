"""add-js-extension - Append the ".js" extension Node's ES module resolver needs to imports."""

__all__ = (
    "BatchSummary",
    "FileMetaData",
    "FileSystemProbe",
    "ImportAnalyzer",
    "PackageFinder",
    "RewriteConfig",
    "RewriteManager",
    "SourceParseError",
    "SpecifierKind",
    "SpecifierResolver",
    "Transformation",
    "WatchSession",
    "apply_transformations",
    "classify_specifier",
    "is_candidate_file",
    "load_config",
)

from .analyzer import ImportAnalyzer, SourceParseError
from .config import RewriteConfig, load_config
from .finder import PackageFinder
from .manager import RewriteManager
from .resolver import SpecifierResolver, classify_specifier
from .transformation import apply_transformations
from .types import BatchSummary, FileMetaData, SpecifierKind, Transformation
from .utils import FileSystemProbe, is_candidate_file
from .watcher import WatchSession
