# metadata_renamer/config_manager.py

import os
import sys
import logging
import argparse
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import platformdirs
import pytomlpp
from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm

from .exceptions import ConfigError

log = logging.getLogger(__name__)
APP_NAME = "metadata_renamer"
DEFAULT_CONFIG_FILENAME = "config.toml"
ENV_PREFIX = "METADATA_RENAMER_"

DEFAULT_VIDEO_EXTENSIONS = [".mkv", ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mpg", ".mpeg", ".m4v", ".ts", ".m2ts"]


def _split_list(v: Any) -> Any:
    if isinstance(v, str):
        return [item.strip() for item in v.split(',') if item.strip()]
    return v


class RenamerSettings(BaseModel):
    # Feature Toggles
    enabled: bool = Field(default=True, description="Master switch. When false every notification is ignored.")
    dry_run: bool = Field(default=True, description="Log what would be renamed without touching the filesystem.")
    rename_series_folders: bool = Field(default=True, description="Rename show folders when a show is (re)identified.")
    rename_season_folders: bool = Field(default=True, description="Rename season folders to the canonical season name.")
    rename_episode_files: bool = Field(default=True, description="Rename episode files to the canonical episode name.")
    rename_movie_folders: bool = Field(default=True, description="Rename movie folders (or files) when a movie is (re)identified.")

    # Identity Gates
    require_provider_id_match: bool = Field(default=True, description="Skip shows/movies that carry no external provider id.")
    only_rename_when_provider_ids_change: bool = Field(default=True, description="Only act on a show/movie the first time it is seen or when its provider ids change.")
    allowed_library_names: List[str] = Field(default_factory=list, description="Only process shows/movies from these libraries (empty = all).")

    # Timing
    per_item_cooldown_seconds: float = Field(default=60.0, ge=0.0, description="Minimum seconds between two processing attempts for the same item.")
    global_min_interval_seconds: float = Field(default=0.0, ge=0.0, description="Minimum seconds between any two handled notifications (0 disables).")

    # Format Strings
    series_folder_format: str = Field(default="{Name} ({Year}) [{Provider}-{Id}]", description="Folder name format for shows.")
    season_folder_format: str = Field(default="Season {Season:00}", description="Folder name format for seasons. {SeasonName} inserts the season display name.")
    episode_file_format: str = Field(default="{SeriesName} S{Season:00}E{Episode:00} - {Title}", description="File name format for episodes (extension is kept).")
    movie_folder_format: str = Field(default="{Name} ({Year}) [{Provider}-{Id}]", description="Folder name format for movies.")

    # Provider Preferences
    preferred_series_providers: List[str] = Field(default_factory=lambda: ["Tvdb", "Tmdb", "Imdb"], description="Provider order used to pick the id shown in show folder names.")
    preferred_movie_providers: List[str] = Field(default_factory=lambda: ["Tmdb", "Imdb", "Tvdb"], description="Provider order used to pick the id shown in movie folder names.")

    # Retry Queue
    retry_min_delay_seconds: float = Field(default=30.0, ge=0.0, description="Minimum seconds before a queued episode is retried.")
    retry_max_attempts: int = Field(default=5, ge=1, description="Number of retries before a queued episode is dropped.")

    # Bulk Refresh Detection
    bulk_refresh_window_seconds: float = Field(default=30.0, gt=0.0, description="Sliding window for counting routine show updates.")
    bulk_refresh_threshold: int = Field(default=10, ge=2, description="Show updates inside the window that indicate a 'replace all metadata' refresh.")
    bulk_refresh_cooldown_seconds: float = Field(default=300.0, ge=0.0, description="Minimum seconds between two bulk reconciliation sweeps.")

    # Season Remapping
    fallback_episodes_per_season: Optional[int] = Field(default=None, ge=1, description="Episodes per season assumed when metadata has no usable season boundaries (unset = derive from the catalog).")
    overstuffed_season_threshold: int = Field(default=100, ge=1, description="A nominal season 1 folder holding more video files than this is treated as unreliable.")
    video_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS), description="List of video file extensions.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., metadata_renamer.log).")
    log_level: str = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> str:
        if v is None: return 'INFO'
        if not isinstance(v, str) or v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper()

    @field_validator('allowed_library_names', mode='before')
    @classmethod
    def check_allowed_library_names(cls, v: Any) -> List[str]:
        if v is None: return []
        return _split_list(v)

    @field_validator('preferred_series_providers', 'preferred_movie_providers', mode='before')
    @classmethod
    def check_provider_preference(cls, v: Any) -> List[str]:
        val = _split_list(v)
        if not isinstance(val, list):
            raise ValueError("provider preference must be a list or comma-separated string")
        cleaned = [str(item).strip() for item in val if str(item).strip()]
        if len({s.lower() for s in cleaned}) != len(cleaned):
            raise ValueError(f"provider preference contains duplicates: {cleaned}")
        return cleaned

    @field_validator('video_extensions', mode='before')
    @classmethod
    def check_video_extensions(cls, v: Any) -> List[str]:
        val = _split_list(v)
        if not isinstance(val, list) or not val:
            raise ValueError("video_extensions must be a non-empty list")
        return [e.lower() if str(e).startswith('.') else f".{str(e).lower()}" for e in val]

    @field_validator('series_folder_format', 'season_folder_format', 'episode_file_format', 'movie_folder_format', mode='before')
    @classmethod
    def check_format_string(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("format strings must be non-empty")
        if '/' in v or '\\' in v:
            raise ValueError(f"format string '{v}' must describe a single path component (no path separators)")
        return v


class RootConfigModel(BaseModel):
    default: RenamerSettings = Field(default_factory=RenamerSettings)
    model_config = {'extra': 'allow'}


def generate_default_toml_content() -> str:
    default_settings = RenamerSettings()
    content_lines = ["# Metadata Renamer Default Configuration File"]
    content_lines.append("# Placeholders: {Name} {SeriesName} {Year} {Season} {Episode} {Title} {SeasonName} {Provider} {Id}")
    content_lines.append("# Zero padding: {Season:00}. Missing values drop their placeholder and its bracket group.\n")

    sections: Dict[str, List[str]] = {
        "Feature Toggles": ['enabled', 'dry_run', 'rename_series_folders', 'rename_season_folders', 'rename_episode_files', 'rename_movie_folders'],
        "Identity Gates": ['require_provider_id_match', 'only_rename_when_provider_ids_change', 'allowed_library_names'],
        "Timing": ['per_item_cooldown_seconds', 'global_min_interval_seconds'],
        "Format Strings": ['series_folder_format', 'season_folder_format', 'episode_file_format', 'movie_folder_format'],
        "Provider Preferences": ['preferred_series_providers', 'preferred_movie_providers'],
        "Retry Queue": ['retry_min_delay_seconds', 'retry_max_attempts'],
        "Bulk Refresh Detection": ['bulk_refresh_window_seconds', 'bulk_refresh_threshold', 'bulk_refresh_cooldown_seconds'],
        "Season Remapping": ['fallback_episodes_per_season', 'overstuffed_season_threshold', 'video_extensions'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = RenamerSettings.model_fields[key]
            default_value = getattr(default_settings, key)
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")

            if default_value is None:
                content_lines.append(f"  # {key} = (not set)")
                continue
            if isinstance(default_value, bool):
                toml_value_str = str(default_value).lower()
            elif isinstance(default_value, str):
                escaped = default_value.replace('\\', '\\\\').replace('"', '\\"')
                toml_value_str = f'"{escaped}"'
            elif isinstance(default_value, list):
                toml_value_str = "[" + ", ".join(f'"{item}"' for item in default_value) + "]"
            else:
                toml_value_str = str(default_value)
            content_lines.append(f"  {key} = {toml_value_str}")

    content_lines.append("\n# You can create other profiles, e.g.:")
    content_lines.append("# [live]")
    content_lines.append("# dry_run = false")
    content_lines.append("# per_item_cooldown_seconds = 120")

    return "\n".join(content_lines) + "\n"


def _format_validation_error(source: str, e_val: ValidationError) -> str:
    error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
    return f"Config '{source}' validation failed:\n" + "\n".join(error_msgs)


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None, interactive_fallback: bool = True, quiet_mode: bool = False):
        self.console = Console(quiet=quiet_mode)
        self.quiet_mode = quiet_mode

        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config(interactive_fallback=interactive_fallback)
        self._env_overrides = self._load_env_overrides()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override)
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_config_path = Path(platformdirs.user_config_dir(APP_NAME, ensure_exists=False)) / DEFAULT_CONFIG_FILENAME
        if user_config_path.is_file():
            log.debug(f"Found config file in user config directory: {user_config_path}")
            return user_config_path.resolve()

        proj_path = Path(__file__).parent.parent.resolve() / DEFAULT_CONFIG_FILENAME
        if proj_path.is_file():
            log.debug(f"Found config file in project directory: {proj_path}")
            return proj_path

        log.debug(f"No config file found. Preferred default creation location: {user_config_path}")
        return user_config_path.resolve()

    def _create_default_config_interactively(self, target_path: Path) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping interactive creation of default config file.")
            return False

        self.console.print("[yellow]Configuration file not found at an expected location.[/yellow]")
        self.console.print("A default configuration file can be created at:")
        self.console.print(f"  [cyan]{target_path}[/cyan]")
        try:
            if not Confirm.ask("Would you like to create a default configuration file now?", default=True):
                self.console.print("[yellow]Skipping default configuration file creation. Using internal defaults.[/yellow]")
                log.info("User opted out of creating a default configuration file.")
                return False
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Config creation cancelled by user.[/yellow]")
            log.warning("User cancelled config creation during interactive prompt.")
            return False

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(generate_default_toml_content(), encoding="utf-8")
        except OSError as e_io:
            self.console.print(f"[bold red]Error creating configuration file: {e_io}[/bold red]")
            log.error(f"Failed to write default config to {target_path}: {e_io}")
            return False
        self.console.print(f"[green]✓ Default configuration file created at: {target_path}[/green]")
        log.info(f"Default configuration file created at {target_path}")
        return True

    def _load_config(self, interactive_fallback: bool = True) -> Dict[str, Any]:
        if not self.config_path.is_file() and interactive_fallback:
            if not self._create_default_config_interactively(self.config_path):
                log.warning("Proceeding without a config file. Using internal defaults.")
                self._raw_toml_content_str = "# No configuration file present or created.\n"
                return {}

        if not self.config_path.is_file():
            log.warning(f"Config file not found at '{self.config_path}'. Using internal defaults.")
            self._raw_toml_content_str = "# Config file not found.\n"
            return {}

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}")
        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            return {}

        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}")
        log.info(f"Loaded configuration from '{self.config_path}'")

        try:
            RootConfigModel.model_validate(cfg_dict)
        except ValidationError as e_val:
            error_summary = _format_validation_error(str(self.config_path), e_val)
            log.error(error_summary)
            raise ConfigError(error_summary) from e_val
        log.debug("Config validation successful.")
        return cfg_dict

    def _load_env_overrides(self) -> Dict[str, str]:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            log.debug(f"Loading environment variables from: {env_path}")
            load_dotenv(dotenv_path=env_path)

        overrides: Dict[str, str] = {}
        for key in RenamerSettings.model_fields:
            env_val = os.getenv(f"{ENV_PREFIX}{key.upper()}")
            if env_val is not None:
                overrides[key] = env_val
        if overrides:
            log.info(f"Environment overrides applied for: {', '.join(sorted(overrides))}")
        return overrides

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    @property
    def profiles(self) -> List[str]:
        return ['default'] + [k for k, v in self._config.items() if k != 'default' and isinstance(v, dict)]

    def get_profile_dict(self, profile: str = 'default') -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        default_section = self._config.get('default', {})
        if isinstance(default_section, dict):
            merged.update(default_section)

        if profile != 'default':
            profile_section = self._config.get(profile)
            if isinstance(profile_section, dict):
                merged.update(profile_section)
            elif profile_section is None:
                log.debug(f"Profile '{profile}' not found in config. Using default settings.")
            else:
                log.warning(f"Profile '{profile}' in config is not a table. Skipping merge for this profile.")

        merged.update(self._env_overrides)
        return merged

    def get_profile_settings(self, profile: str = 'default', overrides: Optional[Dict[str, Any]] = None) -> RenamerSettings:
        values = self.get_profile_dict(profile)
        if overrides:
            values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return RenamerSettings.model_validate(values)
        except ValidationError as e_val:
            raise ConfigError(_format_validation_error(f"{self.config_path} [{profile}]", e_val)) from e_val

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value
        values = self.get_profile_dict(profile)
        if values.get(key) is not None:
            return values[key]
        field_info = RenamerSettings.model_fields.get(key)
        if default_value is None and field_info is not None:
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default
        return default_value


class ConfigHelper:
    """Binds a ConfigManager to the parsed command line: CLI value > env > profile > default."""

    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_list(self, key: str, default_value: Optional[List[Any]] = None) -> List[Any]:
        val = self(key, default_value)
        if isinstance(val, list):
            return val
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        return default_value if isinstance(default_value, list) else []

    def settings(self) -> RenamerSettings:
        cli_overrides: Dict[str, Any] = {}
        for key in RenamerSettings.model_fields:
            arg_val = getattr(self.args, key, None)
            if arg_val is not None:
                cli_overrides[key] = arg_val
        return self.manager.get_profile_settings(self.profile, cli_overrides)


def load_settings_from_toml(path: Union[str, Path], profile: str = 'default') -> RenamerSettings:
    """Non-interactive helper for embedding hosts: parse one TOML file into validated settings."""
    manager = ConfigManager(config_path_override=Path(path), interactive_fallback=False, quiet_mode=True)
    return manager.get_profile_settings(profile)
