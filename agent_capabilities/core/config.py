"""
Configuration Settings.

This module defines the capability configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.

The loaded settings are only a convenience for hosts that configure capabilities
through the environment; every component also accepts its configuration object
directly.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_capabilities.capabilities.models import (
    CapabilitiesConfig,
    OrchestrationLevel,
    ToolAccessPolicy,
)
from agent_capabilities.capabilities.storage import CapabilityStorageConfig


class Settings(BaseSettings):
    """
    Capability settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    List values (``CAPABILITIES_ALLOWED_TOOLS``) are read as JSON arrays.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="AGENT_CAPABILITIES_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
        alias="AGENT_CAPABILITIES_LOG_FORMAT",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory for the log file when file logging is enabled",
        alias="AGENT_CAPABILITIES_LOG_FILE_DIR",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Write DEBUG logs to a file under log_file_dir",
        alias="AGENT_CAPABILITIES_ENABLE_FILE_LOGGING",
    )

    # =====================================================================
    # Enforcement Configuration
    # =====================================================================
    capabilities_enabled: bool = Field(
        default=True,
        description="Whether capability enforcement is active",
        alias="CAPABILITIES_ENABLED",
    )
    orchestration_level: Optional[OrchestrationLevel] = Field(
        default=None,
        description="Orchestration level (none, limited, standard, full, coordinator)",
        alias="CAPABILITIES_ORCHESTRATION_LEVEL",
    )
    max_concurrent_subassistants: Optional[int] = Field(
        default=None,
        ge=0,
        description="Explicit ceiling on concurrently running sub-assistants",
        alias="CAPABILITIES_MAX_CONCURRENT_SUBASSISTANTS",
    )
    max_subassistant_depth: Optional[int] = Field(
        default=None,
        ge=0,
        description="Explicit ceiling on sub-assistant nesting depth",
        alias="CAPABILITIES_MAX_SUBASSISTANT_DEPTH",
    )
    tool_policy: Optional[ToolAccessPolicy] = Field(
        default=None,
        description="Tool access policy (allow_all, allow_list, deny_list, require_approval)",
        alias="CAPABILITIES_TOOL_POLICY",
    )
    allowed_tools: List[str] = Field(
        default_factory=list,
        description="Tool patterns for the allow_list policy",
        alias="CAPABILITIES_ALLOWED_TOOLS",
    )
    denied_tools: List[str] = Field(
        default_factory=list,
        description="Tool patterns for the deny_list policy",
        alias="CAPABILITIES_DENIED_TOOLS",
    )
    allowed_delegates: Optional[List[str]] = Field(
        default=None,
        description="Delegation target id patterns; unset allows any target",
        alias="CAPABILITIES_ALLOWED_DELEGATES",
    )

    # =====================================================================
    # Storage Configuration
    # =====================================================================
    storage_enabled: bool = Field(
        default=True,
        description="Whether the host intends to use capability storage",
        alias="CAPABILITIES_STORAGE_ENABLED",
    )

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def capabilities(self) -> CapabilitiesConfig:
        """Get the enforcer configuration from environment variables."""
        return CapabilitiesConfig(
            enabled=self.capabilities_enabled,
            orchestration_level=self.orchestration_level,
            max_concurrent_subassistants=self.max_concurrent_subassistants,
            max_subassistant_depth=self.max_subassistant_depth,
            tool_policy=self.tool_policy,
            allowed_tools=list(self.allowed_tools),
            denied_tools=list(self.denied_tools),
            allowed_delegates=list(self.allowed_delegates) if self.allowed_delegates is not None else None,
        )

    @property
    def storage(self) -> CapabilityStorageConfig:
        """Get the storage configuration from environment variables."""
        return CapabilityStorageConfig(enabled=self.storage_enabled)


def get_settings() -> Settings:
    """Load settings from the current environment."""
    return Settings()
