"""Custom exception hierarchy for corpus-sync."""


class CorpusSyncError(Exception):
    """Base exception for all corpus-sync errors."""


class EngineUnavailableError(CorpusSyncError):
    """Persistence engine failed to open or a transaction was rejected."""


class StorageCorruptionError(CorpusSyncError):
    """A stored record could not be decoded (malformed JSON, wrong shape)."""


class DuplicateRecordError(CorpusSyncError):
    """Record with the same id already exists in the collection."""


class DataImportError(CorpusSyncError):
    """Failed to import data (malformed JSON bundle or CSV)."""


class ConfigError(CorpusSyncError):
    """Settings file is unreadable or holds invalid values."""
