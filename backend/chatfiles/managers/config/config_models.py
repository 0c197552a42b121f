"""Pydantic models for configuration."""

from typing import List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from chatfiles.file_config import FilePolicy


class FilePolicyConfig(BaseModel):
    """Configuration for the upload policy table, as read from a policy file."""

    policies: List[FilePolicy]


class AppSettings(BaseSettings):
    """Main application settings loaded from environment variables."""

    app_name: str = "Chat Files"
    debug_mode: bool = False
    log_level: str = "INFO"
    app_log_dir: str = Field(default="logs", validation_alias="APP_LOG_DIR")

    # Backend that issues presigned upload URLs
    api_base_url: str = Field(
        default="http://localhost:5000", validation_alias="API_BASE_URL"
    )
    upload_endpoint: str = "/api/files/upload"

    # Public object storage endpoint; retrieval URL is {storage_base_url}/{key}
    storage_base_url: str = Field(
        default="http://localhost:9000/chat-files", validation_alias="STORAGE_BASE_URL"
    )

    upload_timeout: float = 60.0
    download_timeout: float = 30.0
    upload_chunk_size: int = 64 * 1024
    download_dir: str = Field(default="downloads", validation_alias="DOWNLOAD_DIR")

    message_page_size: int = 30

    # Optional YAML/JSON override for the upload policy table
    file_policy_file: str = Field(
        default="file_policies.yml", validation_alias="FILE_POLICY_FILE"
    )

    model_config = {
        "env_file": "../.env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
        "env_prefix": "",
        "populate_by_name": True,
    }


# Export for use in other modules
__all__ = [
    "AppSettings",
    "FilePolicyConfig",
]
