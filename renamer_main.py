#!/usr/bin/env python3
import sys
import json
import logging
from pathlib import Path
from typing import Optional, List

import platformdirs
from rich.console import Console
from rich.prompt import Confirm
from rich.text import Text

from metadata_renamer.cli import parse_arguments
from metadata_renamer.config_manager import (
    APP_NAME, ConfigManager, ConfigHelper, generate_default_toml_content, DEFAULT_CONFIG_FILENAME,
)
from metadata_renamer.catalog import SnapshotCatalog
from metadata_renamer.coordinator import RenameCoordinator
from metadata_renamer.exceptions import RenamerError, ConfigError
from metadata_renamer.log_setup import setup_logging, LOGGER_NAME
from metadata_renamer.models import ItemUpdatedEvent
from metadata_renamer.observability import CollectingDecisionSink, LoggingDecisionSink, FanOutSink
from metadata_renamer.ui_utils import print_run_summary

log = logging.getLogger(LOGGER_NAME)


def print_stderr_message(message, is_quiet: bool) -> None:
    """Errors always reach stderr; styling is dropped in quiet mode."""
    if is_quiet:
        plain = message.plain if isinstance(message, Text) else str(message)
        print(plain, file=sys.stderr)
        return
    Console(stderr=True).print(message)


def generate_config_file(args, console: Console, is_quiet: bool) -> int:
    if args.output:
        target_path = args.output.resolve()
    else:
        target_path = (Path(platformdirs.user_config_dir(APP_NAME, ensure_exists=False)) / DEFAULT_CONFIG_FILENAME).resolve()
    log.debug(f"Generate config: target path {target_path}")

    if target_path.exists() and not args.force:
        if is_quiet:
            print(f"Config file {target_path} exists. Use --force to overwrite (quiet mode).", file=sys.stderr)
            return 1
        console.print(f"[bold yellow]Warning:[/bold yellow] Config file already exists at [cyan]{target_path}[/cyan].")
        if not Confirm.ask("Overwrite existing file?", default=False):
            console.print("Config file generation cancelled.")
            return 0
        log.info(f"User confirmed overwrite for existing config file at {target_path}")

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(generate_default_toml_content(), encoding="utf-8")
    except OSError as e:
        print(f"Error: Could not write configuration file to {target_path}: {e}", file=sys.stderr)
        log.error(f"Failed to write generated config to {target_path}: {e}")
        return 1
    console.print(f"[green]✓ Default configuration file generated successfully at: {target_path}[/green]")
    log.info(f"Default config.toml generated at {target_path}")
    return 0


def show_config(args, manager: ConfigManager, cfg: ConfigHelper, console: Console) -> None:
    console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
    if manager.config_path.is_file():
        console.print(f"Config file loaded: [cyan]{manager.config_path}[/cyan]")
    else:
        console.print(f"Config file [yellow]{manager.config_path}[/yellow] not found. Using internal defaults and environment variables.")
    if args.raw:
        console.print("\n--- Raw TOML Content ---")
        raw_content = manager.get_raw_toml_content()
        console.print(raw_content if raw_content else "# No config file loaded or content was empty.", markup=False)
        return
    console.print(json.dumps(cfg.settings().model_dump(), indent=2, default=str), markup=False)


def validate_config(manager: ConfigManager, console: Console, is_quiet: bool) -> int:
    console.print(f"--- Validating Configuration File: {manager.config_path} ---")
    if not manager.config_path.is_file():
        console.print(f"Config file '[yellow]{manager.config_path}[/yellow]' not found. Nothing to validate.")
        return 0
    failures = 0
    for profile in manager.profiles:
        try:
            manager.get_profile_settings(profile)
        except ConfigError as e_cfg:
            failures += 1
            print_stderr_message(Text(f"Profile '{profile}': {e_cfg}", style="bold red"), is_quiet)
            log.error(f"Profile '{profile}' failed validation: {e_cfg}")
        else:
            console.print(f"[green]Profile '{profile}' is valid.[/green]")
    return 1 if failures else 0


def run_reconcile(args, cfg: ConfigHelper, console: Console) -> None:
    settings = cfg.settings()
    catalog = SnapshotCatalog.from_json_file(args.snapshot)
    collector = CollectingDecisionSink()
    coordinator = RenameCoordinator(catalog, sink=FanOutSink([LoggingDecisionSink(), collector]))

    if settings.dry_run:
        log.warning("DRY RUN mode active. No files or folders will be changed.")
    else:
        log.info("LIVE mode active. Files and folders will be renamed.")

    if args.show_ids:
        shows = []
        for show_id in args.show_ids:
            show = catalog.get_show(show_id)
            if show is None:
                log.warning(f"Show id '{show_id}' is not in the snapshot, skipping.")
            else:
                shows.append(show)
        movies = []
    else:
        shows = catalog.get_all_shows()
        movies = catalog.get_all_movies()
    log.info(f"Notifying {len(shows)} show(s) and {len(movies)} movie(s).")

    try:
        for item in [*shows, *movies]:
            coordinator.handle_item_updated(ItemUpdatedEvent.for_item(item), settings)
        coordinator.wait_for_background_work()
    finally:
        coordinator.close()

    print_run_summary(console, collector.events, settings.dry_run)


def main(argv: Optional[List[str]] = None):
    args = parse_arguments(argv)
    is_quiet = getattr(args, 'quiet', False)
    console = Console(quiet=is_quiet)

    try:
        if args.command == 'config' and args.config_command == 'generate':
            if not log.handlers:
                setup_logging(log_level_console=getattr(logging, args.log_level or 'INFO'), quiet=is_quiet)
            sys.exit(generate_config_file(args, console, is_quiet))

        manager = ConfigManager(
            config_path_override=getattr(args, 'config', None),
            interactive_fallback=not is_quiet,
            quiet_mode=is_quiet,
        )
        cfg = ConfigHelper(manager, args)

        log_level_str = cfg('log_level', 'INFO')
        setup_logging(
            log_level_console=getattr(logging, str(log_level_str).upper(), logging.INFO),
            log_file=cfg('log_file', None),
            quiet=is_quiet,
        )
        log.debug(f"Full logging configured. Parsed args: {args}")
        log.debug(f"Using profile: {args.profile}")

        if args.command == 'config':
            if args.config_command == 'show':
                show_config(args, manager, cfg, console)
            elif args.config_command == 'validate':
                sys.exit(validate_config(manager, console, is_quiet))
        elif args.command == 'reconcile':
            run_reconcile(args, cfg, console)

    except ConfigError as e_cfg:
        print(f"FATAL CONFIGURATION ERROR: {e_cfg}", file=sys.stderr)
        if log.handlers: log.critical(f"Config Error: {e_cfg}")
        sys.exit(2)
    except RenamerError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}", exc_info=True)
        print_stderr_message(Text(f"ERROR: {e_app}", style="bold red"), is_quiet)
        sys.exit(1)
    except KeyboardInterrupt:
        if log.handlers: log.warning("Operation interrupted by user.")
        print("\nCancelled by user.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
