"""
Request contracts for the public API.
"""

from .scraping import ContractModel, ScanSubmission, SubmissionMetadata, PermissionCheck

__all__ = [
    'ContractModel',
    'ScanSubmission',
    'SubmissionMetadata',
    'PermissionCheck',
]
