"""Pydantic models for run settings and connection profiles."""

from pydantic import BaseModel, Field, NonNegativeInt, model_validator

FLUSH_WITHOUT_FORCE_MESSAGE = (
    "--flush deletes every key in the target database and must be confirmed: "
    "specify --force together with --flush"
)


# ============================================================================
# Configuration Models
# ============================================================================


class StoreProfile(BaseModel):
    """Store connection profile from redis-dump.toml."""

    url: str
    description: str = ""
    password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class StoreConfig(BaseModel):
    """Complete configuration from redis-dump.toml."""

    profiles: dict[str, StoreProfile] = Field(default_factory=dict)
    batch_size: int = Field(default=100, ge=1)
    database_count: int = Field(default=16, ge=1)  # used when the server reports none


# ============================================================================
# Run Settings
# ============================================================================


class SharedSettings(BaseModel):
    """Settings common to dump and restore runs."""

    connection: str = "localhost:6379"
    password: str | None = None
    databases: list[NonNegativeInt] = Field(default_factory=list)  # empty = all
    batch_size: int = Field(default=100, ge=1)
    verbose: bool = False


class DumpSettings(SharedSettings):
    """Settings for a dump run."""

    output_file: str = "redis-dump.json"


class RestoreSettings(SharedSettings):
    """Settings for a restore run.

    ``flush`` without ``force`` fails validation, before any connection is
    made.
    """

    input_file: str = "redis-dump.json"
    flush: bool = False
    force: bool = False

    @model_validator(mode="after")
    def _flush_requires_force(self) -> "RestoreSettings":
        if self.flush and not self.force:
            raise ValueError(FLUSH_WITHOUT_FORCE_MESSAGE)
        return self
