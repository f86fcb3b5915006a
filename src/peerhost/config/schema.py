"""Pydantic models for peerhost.yaml configuration."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class NodeConfig(BaseModel):
    """Local peer node configuration."""

    data_dir: str = Field(
        default="~/.peerhost/data",
        description="Directory holding the node identity key and local stores",
    )


class AddonsConfig(BaseModel):
    """Addon host configuration."""

    paths: list[str] = Field(
        default_factory=list,
        description="Addon locators loaded at node start (paths, registry:<name>, entrypoint:<name>)",
    )
    blocked: list[str] = Field(
        default_factory=list,
        description="Addon ids to refuse at load time",
    )
    entry_point_group: str = Field(
        default="peerhost.addons",
        description="Entry point group searched for entrypoint:<name> locators",
    )
    gate_event_bus: bool = Field(
        default=False,
        description="Require the host:events permission for event bus access",
    )
    gate_identity: bool = Field(
        default=False,
        description="Require the host:identity permission to read the node identity",
    )
    gate_addon_access: bool = Field(
        default=False,
        description="Require the host:addons permission to reach other addons' instances",
    )
    audit_trail_size: int = Field(
        default=256,
        description="Access decisions kept per addon",
        ge=1,
    )


class StorageConfig(BaseModel):
    """Storage engine configuration."""

    backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Storage engine: 'memory' keeps data in process, 'sqlite' persists to disk",
    )
    directory: str | None = Field(
        default=None,
        description="Directory for the sqlite database (default: <data_dir>/stores)",
    )
    namespace: str = Field(
        default="addon",
        description="Prefix of every addon-scoped store name",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level",
    )


class PeerHostConfig(BaseModel):
    """Root configuration schema for peerhost."""

    node: NodeConfig = Field(default_factory=NodeConfig)
    addons: AddonsConfig = Field(default_factory=AddonsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> Path:
        return Path(self.node.data_dir).expanduser()

    @property
    def storage_directory(self) -> Path:
        if self.storage.directory:
            return Path(self.storage.directory).expanduser()
        return self.data_dir / "stores"
