# metadata_renamer/naming.py
"""
Canonical name rendering and the conservative filename parsers that guard it.

Templates use named placeholders such as ``{Name} ({Year}) [{Provider}-{Id}]``.
Placeholder names are case-insensitive and numbers may be zero padded with
``{Season:00}`` (width = number of zeros) or the Python spelling ``{Season:02d}``.
A placeholder without a value is removed together with its decoration: a
bracket group containing it disappears entirely, otherwise one adjacent
separator goes with it.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Dict, Any, NamedTuple, Iterable, Tuple

from guessit import guessit

from .models import ShowEntity, EpisodeEntity, MovieEntity

log = logging.getLogger(__name__)

KNOWN_PLACEHOLDERS = {'name', 'seriesname', 'year', 'season', 'episode', 'title', 'seasonname', 'provider', 'id'}
UNKNOWN_NAME = "Unknown"
_MISSING = "\x00"

PLACEHOLDER_PATTERN = re.compile(r'\{(?P<name>[A-Za-z]+)(?::(?P<fmt>[^{}]*))?\}')
BRACKET_GROUP_PATTERN = re.compile(r'\s*(?:\([^()]*\)|\[[^\[\]]*\])')
MISSING_WITH_LEADING_SEP_PATTERN = re.compile(r'\s*[-._]*\s*' + _MISSING)
MISSING_WITH_TRAILING_SEP_PATTERN = re.compile(_MISSING + r'\s*[-._]*\s*')
EMPTY_BRACKETS_PATTERN = re.compile(r'\s*(?:\(\s*[-._]?\s*\)|\[\s*[-._]?\s*\])')
WHITESPACE_PATTERN = re.compile(r'\s+')
INVALID_CHARS_PATTERN = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
WINDOWS_RESERVED_NAMES = {'CON', 'PRN', 'AUX', 'NUL'} | {f'COM{i}' for i in range(1, 10)} | {f'LPT{i}' for i in range(1, 10)}
MAX_NAME_BYTES = 255

SEASON_EPISODE_PATTERN = re.compile(
    r'(?<![A-Za-z0-9])[Ss](?P<season>\d{1,4})'
    r'[\s._-]*[Ee][Pp]?'
    r'(?P<episode>\d{1,4})'
    r'(?!\d)'
)
VERBOSE_SEASON_EPISODE_PATTERN = re.compile(
    r'season[\s._-]*(?P<season>\d{1,4})[\s._,-]*episode[\s._-]*(?P<episode>\d{1,4})(?!\d)',
    re.IGNORECASE
)
CROSS_SEASON_EPISODE_PATTERN = re.compile(
    r'(?<![A-Za-z0-9])(?P<season>\d{1,2})x(?P<episode>\d{2,3})(?!\d)',
    re.IGNORECASE
)
EPISODE_ONLY_PATTERN = re.compile(
    r'(?<![A-Za-z0-9])(?:episode|ep|e)[\s._-]*(?P<episode>\d{1,4})(?!\d)',
    re.IGNORECASE
)

SEASON_FOLDER_PATTERN = re.compile(
    r'^\s*(?:season|series|staffel|saison|temporada|stagione)[\s._-]*(?P<num>\d{1,4})(?:\D.*)?$',
    re.IGNORECASE
)
SHORT_SEASON_FOLDER_PATTERN = re.compile(r'^\s*s(?P<num>\d{1,4})\s*$', re.IGNORECASE)
SPECIALS_FOLDER_PATTERN = re.compile(r'^\s*specials?\s*$', re.IGNORECASE)

FILENAME_SEPARATORS_PATTERN = re.compile(r'[\s._\-–—]+')
RELEASE_MARKER_KEYS = {'screen_size', 'source', 'video_codec', 'audio_codec', 'release_group', 'container', 'streaming_service'}
DEFAULT_VIDEO_SUFFIXES = {".mkv", ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mpg", ".mpeg", ".m4v", ".ts", ".m2ts"}


class EpisodeNumbers(NamedTuple):
    season: Optional[int]
    episode: Optional[int]


def _format_value(value: Any, fmt: Optional[str]) -> str:
    if isinstance(value, int) and not isinstance(value, bool) and fmt:
        if set(fmt) == {'0'}:
            return str(value).zfill(len(fmt))
        try:
            return format(value, fmt)
        except ValueError:
            log.debug(f"Ignoring unusable number format '{fmt}' for value {value}")
    return str(value)


def _normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        normalized[key.lower()] = value
    return normalized


def _is_missing(name: str, values: Dict[str, Any]) -> bool:
    return name.lower() not in values


def render(format_str: str, fields: Dict[str, Any]) -> str:
    """Render a template into a filesystem-safe name. Never raises on missing fields."""
    values = _normalize_fields(fields)

    def drop_incomplete_group(match: re.Match) -> str:
        group = match.group(0)
        names = [m.group('name') for m in PLACEHOLDER_PATTERN.finditer(group)]
        if names and any(_is_missing(n, values) for n in names):
            return ''
        return group

    text = BRACKET_GROUP_PATTERN.sub(drop_incomplete_group, format_str)

    def substitute(match: re.Match) -> str:
        key = match.group('name').lower()
        if key not in KNOWN_PLACEHOLDERS:
            log.debug(f"Unknown placeholder '{match.group(0)}' in format '{format_str}'")
            return _MISSING
        if key not in values:
            return _MISSING
        return _format_value(values[key], match.group('fmt'))

    text = PLACEHOLDER_PATTERN.sub(substitute, text)
    text = MISSING_WITH_LEADING_SEP_PATTERN.sub('', text)
    text = MISSING_WITH_TRAILING_SEP_PATTERN.sub('', text)
    text = text.replace(_MISSING, '')
    text = EMPTY_BRACKETS_PATTERN.sub('', text)
    text = WHITESPACE_PATTERN.sub(' ', text).strip(' -_')
    return sanitize_name(text)


def sanitize_name(name: Optional[str]) -> str:
    sanitized = INVALID_CHARS_PATTERN.sub('_', name or '')
    sanitized = WHITESPACE_PATTERN.sub(' ', sanitized).strip()
    # Names ending in '.' or ' ' are problematic on Windows
    sanitized = sanitized.rstrip('. ')
    if not sanitized or sanitized in ('.', '..') or all(c in '._ ' for c in sanitized):
        return UNKNOWN_NAME
    return sanitized


def is_safe_name(name: Optional[str]) -> bool:
    if not name or name in ('.', '..') or name.strip() != name:
        return False
    if INVALID_CHARS_PATTERN.search(name):
        return False
    if name.endswith('.') or name.endswith(' '):
        return False
    if name.split('.')[0].upper() in WINDOWS_RESERVED_NAMES:
        return False
    return len(name.encode('utf-8')) <= MAX_NAME_BYTES


def parse_season_episode(file_name: str) -> EpisodeNumbers:
    """Extract (season, episode) from explicit tokens only. Bare numbers are never trusted."""
    for pattern in (SEASON_EPISODE_PATTERN, VERBOSE_SEASON_EPISODE_PATTERN, CROSS_SEASON_EPISODE_PATTERN):
        match = pattern.search(file_name)
        if match:
            return EpisodeNumbers(int(match.group('season')), int(match.group('episode')))
    match = EPISODE_ONLY_PATTERN.search(file_name)
    if match:
        return EpisodeNumbers(None, int(match.group('episode')))
    return EpisodeNumbers(None, None)


def parse_episode_number(file_name: str) -> Optional[int]:
    return parse_season_episode(file_name).episode


def guess_episode_number(file_name: str) -> Optional[int]:
    """Tentative episode number: strict tokens first, then guessit. Used for retry decisions only."""
    strict = parse_episode_number(file_name)
    if strict is not None:
        return strict
    try:
        guess = guessit(file_name, {'type': 'episode'})
    except Exception as e:
        log.debug(f"Guessit failed on '{file_name}': {e}")
        return None
    episode = guess.get('episode')
    if isinstance(episode, list):
        episode = episode[0] if episode else None
    return episode if isinstance(episode, int) else None


def looks_like_raw_filename(title: Optional[str], file_name: Optional[str] = None) -> bool:
    """True when an episode title is really a release/file name that metadata has not replaced yet."""
    if not title or not title.strip():
        return False
    candidate = title.strip()
    if file_name and candidate.casefold() == Path(file_name).stem.casefold():
        return True
    if Path(candidate).suffix.lower() in DEFAULT_VIDEO_SUFFIXES:
        return True
    if SEASON_EPISODE_PATTERN.search(candidate):
        return True
    try:
        guess = guessit(candidate)
    except Exception as e:
        log.debug(f"Guessit failed on title '{candidate}': {e}")
        return False
    return len(RELEASE_MARKER_KEYS.intersection(guess.keys())) >= 2


def normalize_for_comparison(name: str) -> str:
    return FILENAME_SEPARATORS_PATTERN.sub(' ', name.casefold()).strip()


def do_filenames_match(current: str, desired: str) -> bool:
    return normalize_for_comparison(current) == normalize_for_comparison(desired)


def parse_season_folder_number(folder_name: str) -> Optional[int]:
    if SPECIALS_FOLDER_PATTERN.match(folder_name):
        return 0
    for pattern in (SEASON_FOLDER_PATTERN, SHORT_SEASON_FOLDER_PATTERN):
        match = pattern.match(folder_name)
        if match:
            return int(match.group('num'))
    return None


def is_video_file(path: Path, extensions: Iterable[str]) -> bool:
    return path.suffix.lower() in {e.lower() for e in extensions}


def episode_sort_key(path: Path) -> Tuple[int, int, str]:
    """Order files by their parsed (season, episode) tokens, unparseable ones last, then by name."""
    numbers = parse_season_episode(path.name)
    if numbers.episode is None:
        return (1, 0, path.name.casefold())
    return (0, (numbers.season or 0) * 10000 + numbers.episode, path.name.casefold())


class NameRenderer:
    """Binds the configured templates to entities."""

    def __init__(self, settings):
        self.settings = settings

    def show_folder_name(self, show: ShowEntity, provider: Optional[Tuple[str, str]]) -> str:
        label, provider_id = provider if provider else (None, None)
        return render(self.settings.series_folder_format, {
            'Name': show.name, 'SeriesName': show.name, 'Year': show.effective_year,
            'Provider': label, 'Id': provider_id,
        })

    def movie_folder_name(self, movie: MovieEntity, provider: Optional[Tuple[str, str]]) -> str:
        label, provider_id = provider if provider else (None, None)
        return render(self.settings.movie_folder_format, {
            'Name': movie.name, 'Year': movie.effective_year, 'Provider': label, 'Id': provider_id,
        })

    def season_folder_name(self, season_number: int, season_name: Optional[str] = None, show: Optional[ShowEntity] = None) -> str:
        # A display name like "Season 2" adds nothing over the number.
        if season_name and parse_season_folder_number(season_name) == season_number:
            season_name = None
        return render(self.settings.season_folder_format, {
            'Season': season_number, 'SeasonName': season_name,
            'Name': show.name if show else None, 'SeriesName': show.name if show else None,
            'Year': show.effective_year if show else None,
        })

    def episode_file_name(self, show: Optional[ShowEntity], episode: EpisodeEntity, season_number: int, episode_number: int, extension: str) -> str:
        title = episode.title
        stem = render(self.settings.episode_file_format, {
            'SeriesName': show.name if show else None, 'Name': show.name if show else None,
            'Year': show.effective_year if show else None,
            'Season': season_number, 'Episode': episode_number, 'Title': title,
        })
        return f"{stem}{extension}"
