from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 not supported per pyproject
    tomllib = None  # type: ignore

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/libsync/config.toml").expanduser()
ENV_PREFIX = "LIBSYNC_"


class LibSettings(BaseSettings):
    """Settings for the library synchronization core.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/libsync/config.toml)
    - Environment variables with prefix LIBSYNC_
    - CLI overrides passed to `load(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Persistence
    db_path: str = Field(
        default="~/.local/share/libsync/library.db",
        description="SQLite file holding the catalog snapshot and folder capabilities",
    )
    snapshot_key: str = Field(
        default="audiocore_library", description="Record id the catalog snapshot is stored under"
    )
    autosave: bool = Field(default=True, description="Save the snapshot after every catalog change")

    # Folder removal and scan cancellation; both off by default
    cascade_folder_removal: bool = Field(
        default=False,
        description="Removing a folder also removes the tracks discovered in it",
    )
    allow_scan_cancel: bool = Field(
        default=False, description="Allow an in-flight scan to be cancelled"
    )

    # Scanning
    metadata_workers: int = Field(
        default=4, ge=1, description="Metadata extractions allowed in flight during a scan"
    )

    # Queries
    query_limit: int = Field(default=10, ge=1, description="Default size of most/recently played lists")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        if tomllib is None:
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "LibSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/libsync/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings; drop file keys the env already sets
        from_env = cls().model_fields_set
        base = cls(**{k: v for k, v in file_values.items() if k not in from_env})
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged = base.model_dump()
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True)
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "db_path",
        "snapshot_key",
        "autosave",
        "cascade_folder_removal",
        "allow_scan_cancel",
        "metadata_workers",
        "query_limit",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
