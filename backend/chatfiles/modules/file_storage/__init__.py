"""File storage module for chat attachments.

This module provides:
- Transfer client for presigned uploads and downloads
- Classification of transfer failures into user-facing errors

Note: Do not instantiate clients at import time. Import classes only; callers
build a TransferClient with explicit settings.
"""

from .error_classifier import ErrorClassifier
from .transfer_client import TransferClient

__all__ = [
    "ErrorClassifier",
    "TransferClient",
]
