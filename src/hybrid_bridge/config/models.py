"""Pydantic configuration models with validation."""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class StratumServerConfig(BaseModel):
    """Configuration for a single upstream pool server."""

    model_config = ConfigDict(frozen=True)

    # Negative ids are kept in the config but never connected
    id: int = Field(..., description="Peer identifier; only ids >= 0 are connected")
    host: str = Field(..., description="Server hostname or IP")
    # 8008 is the usual ethproxy port
    port: int = Field(default=8008, ge=1, le=65535, description="Server port")
    login: str = Field(default="", description="Wallet/login sent with eth_submitLogin")
    worker: str = Field(default="hybrid", description="Worker name sent with the login")
    password: str = Field(default="x", description="Pool password")
    protocol: Literal["ethproxy", "stratum"] = Field(
        default="ethproxy", description="Subscribe dialect used for the handshake"
    )
    timeout: int = Field(default=30, ge=1, description="Connection timeout in seconds")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate host is a non-empty name without whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("Server host cannot be empty")
        if re.search(r"\s", v):
            raise ValueError(f"Server host cannot contain whitespace: {v!r}")
        return v

    @field_validator("login", "worker", "password")
    @classmethod
    def validate_credentials(cls, v: str) -> str:
        """
        Validate login fields don't contain control characters.

        The login is sent over JSON-RPC and echoed into log lines.
        """
        for char in v:
            if ord(char) < 32:
                raise ValueError(
                    f"Login fields cannot contain control characters (found \\x{ord(char):02x})"
                )
        if len(v) > 256:
            raise ValueError("Login fields must be 256 characters or less")
        return v

    @property
    def address(self) -> str:
        """Get host:port string."""
        return f"{self.host}:{self.port}"


class ClientConfig(BaseModel):
    """Configuration for the bridge client connections."""

    poll_interval: float = Field(default=2.0, gt=0, description="Seconds between eth_getWork polls")
    auto_reconnect_on_error: bool = Field(
        default=True, description="Reopen a connection after a socket error or remote close"
    )
    reconnect_initial_delay: float = Field(
        default=1.0, gt=0, description="First reconnect delay in seconds"
    )
    # Delay doubles on every failed attempt up to this cap
    reconnect_max_delay: float = Field(default=60.0, gt=0, description="Maximum reconnect delay in seconds")
    send_timeout: float = Field(default=10.0, gt=0, description="Timeout for draining a write in seconds")
    tcp_keepalive: bool = Field(default=True, description="Enable TCP keepalive on pool connections")
    keepalive_idle: int = Field(default=60, ge=10, description="Seconds before sending keepalive probes")
    keepalive_interval: int = Field(default=10, ge=1, description="Seconds between keepalive probes")
    keepalive_count: int = Field(default=3, ge=1, description="Failed probes before connection is dead")
    stats_interval: int = Field(default=900, ge=10, description="Seconds between stats log summaries")

    @model_validator(mode="after")
    def validate_delays(self) -> "ClientConfig":
        """Ensure the reconnect delay range is ordered."""
        if self.reconnect_initial_delay > self.reconnect_max_delay:
            raise ValueError(
                f"reconnect_initial_delay ({self.reconnect_initial_delay}) cannot exceed "
                f"reconnect_max_delay ({self.reconnect_max_delay})"
            )
        return self


class ApiServerConfig(BaseModel):
    """Configuration for the local query API server."""

    enabled: bool = Field(default=True, description="Start the query API server")
    host: str = Field(default="127.0.0.1", description="Address to bind to")
    # 0 binds a free port
    port: int = Field(default=8545, ge=0, le=65535, description="Port to listen on")

    @field_validator("port")
    @classmethod
    def warn_privileged_port(cls, v: int) -> int:
        """Warn if using a privileged port."""
        if 0 < v < 1024:
            import warnings
            warnings.warn(
                f"Port {v} is a privileged port (< 1024) and requires "
                f"root/administrator privileges to bind",
                UserWarning,
                stacklevel=2,
            )
        return v


class DerivationConfig(BaseModel):
    """Configuration for lambda derivation."""

    # A 32-byte lambda splits evenly into 1, 2, 4, 8, 16 or 32 blocks
    virtual_block_count: int = Field(default=4, ge=1, le=32, description="Virtual blocks per work unit")

    @field_validator("virtual_block_count")
    @classmethod
    def validate_divisor(cls, v: int) -> int:
        """Validate the count splits 32 bytes evenly."""
        if 32 % v != 0:
            raise ValueError(f"virtual_block_count must divide 32, got {v}")
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    file: Optional[str] = Field(default=None, description="Log file path")
    stats_file: Optional[str] = Field(default=None, description="File receiving periodic stats summaries")
    rotation: str = Field(default="50 MB", description="Log rotation size")
    retention: int = Field(default=10, ge=1, description="Number of rotated files to keep")
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        description="Log message format",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class Config(BaseModel):
    """Main configuration model."""

    servers: List[StratumServerConfig] = Field(..., min_length=1)
    client: ClientConfig = Field(default_factory=ClientConfig)
    api_server: ApiServerConfig = Field(default_factory=ApiServerConfig)
    derivation: DerivationConfig = Field(default_factory=DerivationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_config(self) -> "Config":
        """Validate the entire configuration."""
        self._validate_unique_server_ids()
        return self

    def _validate_unique_server_ids(self) -> None:
        """Ensure all server ids are unique."""
        ids = [s.id for s in self.servers]
        if len(ids) != len(set(ids)):
            duplicates = [i for i in ids if ids.count(i) > 1]
            raise ValueError(f"Duplicate server ids: {set(duplicates)}")

    @property
    def active_servers(self) -> List[StratumServerConfig]:
        """Servers the client connects to (id >= 0)."""
        return [s for s in self.servers if s.id >= 0]

    def get_server_by_id(self, server_id: int) -> Optional[StratumServerConfig]:
        """Get a server configuration by id."""
        for server in self.servers:
            if server.id == server_id:
                return server
        return None
