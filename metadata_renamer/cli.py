import argparse
from pathlib import Path
from . import __version__

def create_parser():
    parser = argparse.ArgumentParser(
        description=f"Metadata-driven folder and file reconciler for media catalogs (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path (overrides config).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output (summaries, info). Errors still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Reconcile Subparser ---
    parser_reconcile = subparsers.add_parser('reconcile', help='Replay a catalog snapshot as item-updated notifications.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_reconcile.add_argument("snapshot", type=Path, help="JSON catalog snapshot (shows, seasons, episodes, movies).")
    parser_reconcile.add_argument("--live", action="store_true", default=False, help="Perform live run (Default: dry run).")
    parser_reconcile.add_argument("--show-id", action="append", dest="show_ids", default=None, metavar="ID", help="Only notify these shows (repeatable). Movies are skipped when given.")
    parser_reconcile.add_argument("--rename-series-folders", action=argparse.BooleanOptionalAction, default=None, help="Enable/disable show folder renames (overrides config).")
    parser_reconcile.add_argument("--rename-season-folders", action=argparse.BooleanOptionalAction, default=None, help="Enable/disable season folder renames (overrides config).")
    parser_reconcile.add_argument("--rename-episode-files", action=argparse.BooleanOptionalAction, default=None, help="Enable/disable episode file renames (overrides config).")
    parser_reconcile.add_argument("--rename-movie-folders", action=argparse.BooleanOptionalAction, default=None, help="Enable/disable movie renames (overrides config).")
    parser_reconcile.add_argument("--only-rename-when-provider-ids-change", action=argparse.BooleanOptionalAction, default=None, help="Only act on new or re-identified items (overrides config).")
    parser_reconcile.add_argument("--series-folder-format", type=str, default=None, help="Show folder format string (overrides config).")
    parser_reconcile.add_argument("--season-folder-format", type=str, default=None, help="Season folder format string (overrides config).")
    parser_reconcile.add_argument("--episode-file-format", type=str, default=None, help="Episode file format string (overrides config).")
    parser_reconcile.add_argument("--movie-folder-format", type=str, default=None, help="Movie folder format string (overrides config).")
    parser_reconcile.add_argument("--fallback-episodes-per-season", type=int, default=None, metavar="N", help="Episodes per season when metadata has no season boundaries (overrides config).")

    # --- Config Subparser ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')

    parser_config_show = config_subparsers.add_parser('show', help='Show the currently loaded configuration.')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")

    config_subparsers.add_parser('validate', help='Validate the configuration file (every profile) against the schema.')

    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', '-o', type=Path, default=None, help='Optional path to save the generated config.toml. Defaults to the standard location (user config dir).')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists at the target location.')

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, 'profile') or args.profile is None:
        args.profile = 'default'

    # Only map --live onto dry_run when the reconcile command is used; otherwise config decides.
    if getattr(args, 'command', None) == 'reconcile' and args.live:
        args.dry_run = False
    return args
