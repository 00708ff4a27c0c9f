"""Configuration management for edmconv.

Loads registry, store, cache and transform settings from environment
variables (and an optional .env file) using Pydantic.

Settings are passed explicitly into the orchestrator; there is no global
instance, so several orchestrators (e.g. in tests) never share state.

Usage:
    from edmconv.config import Settings

    settings = Settings()
    print(settings.registry_url)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TRANSFORM_QUERIES = [
    "eccbooks2edm",
    "eccucfix2edm",
    "finnabooks2edm",
    "ksamsok2edm",
    "nmvw2edm",
    "schema2edm",
]


class Settings(BaseSettings):
    """edmconv configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.
    The TriplyDB token is optional: without it the managed tier and the
    remote publish target are unavailable.

    Attributes:
        registry_url: SPARQL repository serving the dataset register
        triplydb_url: TriplyDB API base URL
        triplydb_token: TriplyDB API token
        triplydb_account: Account that owns managed datasets and queries
        default_graph_prefix: IRI base for pipeline-owned graphs
        cache_dir: Directory for the response cache
        data_dir: Directory for local output
        max_inmemory_size: Byte ceiling for the in-memory endpoint tier
        transform_mode: "dataset" (run once) or "instance" (per subject)
        transform_queries: Logical names of the transform templates to run
        publish_target: "triplydb" or "file"
        report_dataset: Destination of the aggregate violation report
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # Remote endpoints
    registry_url: str = Field(
        default="https://triplestore.netwerkdigitaalerfgoed.nl/repositories/registry",
        description="Dataset register SPARQL repository",
    )
    triplydb_url: str = Field(
        default="https://api.data.netwerkdigitaalerfgoed.nl",
        description="TriplyDB API base URL",
    )
    triplydb_token: str | None = Field(default=None, description="TriplyDB API token")
    triplydb_account: str | None = Field(
        default=None,
        description="TriplyDB account (default: the token's own account)",
    )
    default_graph_prefix: str = Field(
        default="https://data.netwerkdigitaalerfgoed.nl/edm/",
        description="IRI base for pipeline-owned graphs",
    )

    # System Settings
    log_level: str = Field(default="INFO", description="Logging level")
    cache_dir: str = Field(default="data/cache", description="Response cache directory")
    data_dir: str = Field(default="data", description="Local output directory")
    query_dir: str | None = Field(
        default=None,
        description="Directory overriding the packaged transform templates",
    )
    shapes_dir: str | None = Field(
        default=None,
        description="Directory overriding the packaged SHACL shapes",
    )

    # Endpoint resolution
    max_inmemory_size: int = Field(
        default=20_000_000,
        ge=1,
        description="Largest distribution (bytes) loaded into an in-memory store",
    )

    # Transformation
    transform_mode: str = Field(default="dataset", description="'dataset' or 'instance'")
    transform_queries: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TRANSFORM_QUERIES),
        min_length=1,
        description="Transform templates to run, by logical name",
    )

    # Publishing
    publish_target: str = Field(default="triplydb", description="'triplydb' or 'file'")
    report_dataset: str = Field(
        default="datasetBeschrijvingen",
        description="Destination of the aggregate violation report",
    )
    publish_dump_asset: bool = Field(
        default=False,
        description="Also attach the serialized output as a dataset asset",
    )

    # Rate Limiting and timeouts (conservative defaults)
    registry_rate_limit: int = Field(default=5, ge=1, description="Registry requests/second")
    triplydb_rate_limit: int = Field(default=10, ge=1, description="TriplyDB requests/second")
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout (seconds)")
    job_poll_interval: float = Field(default=2.0, ge=0, description="Job polling interval (seconds)")
    job_max_wait: float = Field(
        default=21_600.0,
        gt=0,
        description="Longest wait for a remote import/upload job (seconds)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper

    @field_validator("transform_mode")
    @classmethod
    def validate_transform_mode(cls, v: str) -> str:
        """Ensure transform mode is valid."""
        v_lower = v.lower()
        if v_lower not in {"dataset", "instance"}:
            raise ValueError(f"transform_mode must be 'dataset' or 'instance', got '{v}'")
        return v_lower

    @field_validator("publish_target")
    @classmethod
    def validate_publish_target(cls, v: str) -> str:
        """Ensure publish target is valid."""
        v_lower = v.lower()
        if v_lower not in {"triplydb", "file"}:
            raise ValueError(f"publish_target must be 'triplydb' or 'file', got '{v}'")
        return v_lower

    @property
    def report_graph(self) -> str:
        """Named graph collecting all shape violations of a batch."""
        return f"{self.default_graph_prefix}violationReport"
