"""Release and pipeline helpers: OLM graph checks, types-file version bumps,
merge blockers, supported versions and AWS/S3 cleanup."""

__version__ = "0.1.0"

__all__ = [
    "aws_cleanup",
    "merge_blocker",
    "olm_graph",
    "report_cleanup",
    "rhmi_types",
    "supported_versions",
]