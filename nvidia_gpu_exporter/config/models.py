"""Pydantic configuration models for the exporter."""

from pydantic import BaseModel, Field, field_validator
from typing import Tuple
import re

from ..collectors.command import DEFAULT_COMMAND_TIMEOUT, DEFAULT_NVIDIA_SMI_COMMAND
from ..collectors.fields import DEFAULT_QUERY_FIELDS, FieldSpec


DEFAULT_PREFIX = "nvidia_smi"
DEFAULT_LISTEN_ADDRESS = ":9835"
DEFAULT_TELEMETRY_PATH = "/metrics"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CollectorConfig(BaseModel):
    """Configuration for the nvidia-smi collector."""
    prefix: str = DEFAULT_PREFIX
    nvidia_smi_command: str = DEFAULT_NVIDIA_SMI_COMMAND
    query_field_names: str = DEFAULT_QUERY_FIELDS  # Comma-separated list or AUTO
    shutdown_on_error: bool = False
    command_timeout: float = Field(default=DEFAULT_COMMAND_TIMEOUT, gt=0)

    @field_validator('prefix')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefix must be usable at the start of a Prometheus metric name."""
        if v and not re.match(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$', v):
            raise ValueError(f'Invalid metric prefix: {v!r}')
        return v

    @field_validator('nvidia_smi_command')
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('nvidia-smi command must not be empty')
        return v

    @field_validator('query_field_names')
    @classmethod
    def validate_query_field_names(cls, v: str) -> str:
        """Reject malformed field lists before anything is started."""
        FieldSpec.parse(v)
        return v

    def field_spec(self) -> FieldSpec:
        return FieldSpec.parse(self.query_field_names)


class WebConfig(BaseModel):
    """HTTP exposition configuration."""
    listen_address: str = DEFAULT_LISTEN_ADDRESS  # host:port, host may be empty
    telemetry_path: str = DEFAULT_TELEMETRY_PATH

    @field_validator('listen_address')
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        host, sep, port = v.rpartition(':')
        if not sep or not port.isdigit() or int(port) > 65535:
            raise ValueError('Listen address must have the form [host]:port')
        return v

    @field_validator('telemetry_path')
    @classmethod
    def validate_telemetry_path(cls, v: str) -> str:
        if not v.startswith('/'):
            raise ValueError('Telemetry path must start with /')
        return v

    def host_port(self) -> Tuple[str, int]:
        """
        Split the listen address.

        Returns:
            Tuple[str, int]: Host (empty string binds all interfaces) and port
        """
        host, _, port = self.listen_address.rpartition(':')
        return host.strip('[]'), int(port)


class ExporterConfig(BaseModel):
    """Root configuration model for the exporter."""
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f'Log level must be one of {", ".join(LOG_LEVELS)}')
        return v.upper()
