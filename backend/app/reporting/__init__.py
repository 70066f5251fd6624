from app.reporting.generator import ReportGenerationError, ReportGenerator
from app.reporting.merge import ABSENT, build_patch, combine_patches, has_override, merge_final, value_at_path
from app.reporting.service import ReportService
from app.reporting.store import FileReportStore, RedisReportStore, build_report_store

__all__ = [
    "ABSENT",
    "FileReportStore",
    "RedisReportStore",
    "ReportGenerationError",
    "ReportGenerator",
    "ReportService",
    "build_patch",
    "build_report_store",
    "combine_patches",
    "has_override",
    "merge_final",
    "value_at_path",
]
