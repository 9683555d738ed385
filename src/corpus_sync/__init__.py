__version__ = "0.1.0"

from .bundle import (
    build_bundle as build_bundle,
    csv_to_records as csv_to_records,
    dump_bundle as dump_bundle,
    load_bundle as load_bundle,
    records_to_csv as records_to_csv,
)
from .catalog import (
    EMERGENCY_DATASET as EMERGENCY_DATASET,
    PredefinedCatalog as PredefinedCatalog,
    load_catalog as load_catalog,
)
from .categories import (
    Category as Category,
    CategoryService as CategoryService,
)
from .config import (
    Settings as Settings,
    configure_logging as configure_logging,
    load_settings as load_settings,
)
from .duplicates import (
    scan as scan,
    scan_all as scan_all,
)
from .engine import (
    PersistenceEngine as PersistenceEngine,
    SqliteEngine as SqliteEngine,
)
from .exceptions import (
    ConfigError as ConfigError,
    CorpusSyncError as CorpusSyncError,
    DataImportError as DataImportError,
    DuplicateRecordError as DuplicateRecordError,
    EngineUnavailableError as EngineUnavailableError,
    StorageCorruptionError as StorageCorruptionError,
)
from .models import (
    ContentError as ContentError,
    ContentItem as ContentItem,
    ContentType as ContentType,
    DuplicateGroup as DuplicateGroup,
    DuplicateReport as DuplicateReport,
    ErrorKind as ErrorKind,
    ImportReport as ImportReport,
    MatchKind as MatchKind,
    NormalizeResult as NormalizeResult,
    NumberItem as NumberItem,
    OperationResult as OperationResult,
    RotationState as RotationState,
    RotationStats as RotationStats,
    Sentence as Sentence,
    Verb as Verb,
    Word as Word,
)
from .normalizer import normalize as normalize
from .rotation import RotationEngine as RotationEngine
from .synchronizer import ContentSynchronizer as ContentSynchronizer

__all__ = [
    # Core services
    "ContentSynchronizer",
    "RotationEngine",
    "CategoryService",
    # Persistence
    "PersistenceEngine",
    "SqliteEngine",
    # Normalization and duplicates
    "normalize",
    "scan",
    "scan_all",
    # Import / export
    "build_bundle",
    "dump_bundle",
    "load_bundle",
    "records_to_csv",
    "csv_to_records",
    # Catalog
    "PredefinedCatalog",
    "load_catalog",
    "EMERGENCY_DATASET",
    # Configuration
    "Settings",
    "load_settings",
    "configure_logging",
    # Models
    "ContentType",
    "ContentItem",
    "Word",
    "Verb",
    "Sentence",
    "NumberItem",
    "Category",
    "ErrorKind",
    "MatchKind",
    "ContentError",
    "OperationResult",
    "NormalizeResult",
    "ImportReport",
    "RotationState",
    "RotationStats",
    "DuplicateGroup",
    "DuplicateReport",
    # Exceptions
    "CorpusSyncError",
    "EngineUnavailableError",
    "StorageCorruptionError",
    "DuplicateRecordError",
    "DataImportError",
    "ConfigError",
]
