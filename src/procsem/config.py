"""Configuration management for procsem.

Named resources are declared in a TOML file::

    lock_dir = "/var/lock/myapp"
    retry_delay_ms = 100

    [resources.gpu]
    capacity = 2

    [resources.db-migrations]
    capacity = 1
    path = "/srv/shared/db-migrations.lock"
"""

import tempfile
import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError

from .constants import DEFAULT_RETRY_DELAY_MS
from .errors import ConfigError


class ResourceConfig(BaseModel):
    """A named semaphore shared by cooperating processes."""

    capacity: int = Field(default=1, ge=1, description="Number of slots")
    path: Path | None = Field(
        default=None, description="Lock file (defaults to lock_dir/<name>.lock)"
    )
    retry_delay_ms: int | None = Field(
        default=None, ge=1, description="Overrides the global retry delay"
    )
    strict: bool = Field(default=False, description="Reject releases beyond capacity")


class ResolvedResource(BaseModel):
    """A resource with every default applied."""

    name: str
    capacity: int
    path: Path
    retry_delay_ms: int
    strict: bool


class ProcsemConfig(BaseModel):
    """Root configuration for procsem."""

    lock_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=1)
    resources: dict[str, ResourceConfig] = Field(default_factory=dict)

    def get_resource(self, name: str) -> ResolvedResource:
        """Get a resource with its path and retry delay filled in.

        Args:
            name: Resource name as declared under [resources]

        Returns:
            Resource with its lock path and retry delay resolved

        Raises:
            ConfigError: If no resource has that name
        """
        resource = self.resources.get(name)
        if resource is None:
            known = ", ".join(sorted(self.resources)) or "none"
            raise ConfigError(f"Unknown resource '{name}' (configured: {known})")
        return ResolvedResource(
            name=name,
            capacity=resource.capacity,
            path=resource.path or self.lock_dir / f"{name}.lock",
            retry_delay_ms=resource.retry_delay_ms or self.retry_delay_ms,
            strict=resource.strict,
        )


def load_config(config_path: Path) -> ProcsemConfig:
    """Load config from a TOML file.

    Args:
        config_path: Path to the config file

    Returns:
        Loaded configuration, or defaults if the file doesn't exist

    Raises:
        ConfigError: If the file is not valid TOML or fails validation
    """
    if not config_path.exists():
        return ProcsemConfig()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        return ProcsemConfig.model_validate(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def write_config_template(config_path: Path) -> Path:
    """Write a starter config file.

    Args:
        config_path: Destination path

    Returns:
        Path to the written config file
    """
    template = {
        "lock_dir": str(Path(tempfile.gettempdir())),
        "retry_delay_ms": DEFAULT_RETRY_DELAY_MS,
        "resources": {
            "example": {"capacity": 2},
        },
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
