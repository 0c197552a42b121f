"""Chat file attachments and message composition.

Validates, uploads and downloads chat attachments through presigned storage
URLs, and turns draft text and attachments into outbound chat messages.
"""

__version__ = "0.1.0"
