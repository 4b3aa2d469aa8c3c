from .models import (
    BankMetadata,
    Collections,
    FileDetail,
    ImportOptions,
    ImportResult,
    ImportSummary,
    MediaRefs,
    MergeConflict,
    ParseResult,
    ParseSnapshot,
    ParseSummary,
    Provenance,
    QuestionAnalytics,
    QuestionRecord,
    RowError,
    RowWarning,
    UploadEntry,
    UploadResult,
    ValidationReport,
    ValidationResult,
)

__all__ = [
    "BankMetadata",
    "Collections",
    "FileDetail",
    "ImportOptions",
    "ImportResult",
    "ImportSummary",
    "MediaRefs",
    "MergeConflict",
    "ParseResult",
    "ParseSnapshot",
    "ParseSummary",
    "Provenance",
    "QuestionAnalytics",
    "QuestionRecord",
    "RowError",
    "RowWarning",
    "UploadEntry",
    "UploadResult",
    "ValidationReport",
    "ValidationResult",
]
