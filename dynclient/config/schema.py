"""Configuration schema using Pydantic.

Single data model and defaults for dynclient, persisted to
~/.dynclient/config.json.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

# Ten minutes, the preset used for every open/close/send/receive timeout.
DEFAULT_TIMEOUT_SECONDS = 600.0
MAX_MESSAGE_SIZE = 2**31 - 1
ENV_PREFIX = "DYNCLIENT_"


class BindingDefaults(BaseModel):
    """Presets applied to every binding the registry constructs."""
    default_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_received_message_size: int = Field(default=MAX_MESSAGE_SIZE, gt=0)


class InspectionConfig(BaseModel):
    """Message interception switches."""
    ignore_message_inspect: bool = False
    ignore_message_validate: bool = False


class SynthesisConfig(BaseModel):
    """Client type synthesis options."""
    builder: Literal["source", "dynamic"] = "source"
    generate_async: bool = False
    output_dir: str = ""  # Materialize generated modules here when set


class MetadataConfig(BaseModel):
    """Metadata exchange options."""
    timeout_seconds: float = Field(default=30.0, gt=0)
    query: str = "?metadata"  # Appended to the service address by HttpMetadataSource


class EndpointConfig(BaseModel):
    """Named endpoint configuration (looked up by configuration name)."""
    address: str
    binding: str = "http"
    contract: str = ""  # Contract name; lets a client without a configuration name find its endpoint


class Settings(BaseSettings):
    """Root configuration for dynclient."""
    bindings: BindingDefaults = Field(default_factory=BindingDefaults)
    inspection: InspectionConfig = Field(default_factory=InspectionConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    endpoints: dict[str, EndpointConfig] = Field(default_factory=dict)

    def find_endpoint_config(self, contract_name: str) -> tuple[str, EndpointConfig] | None:
        """First named endpoint declared for a contract name (case-insensitive)."""
        wanted = contract_name.lower()
        for name, entry in self.endpoints.items():
            if entry.contract.lower() == wanted:
                return name, entry
        return None

    model_config = ConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__"
    )
