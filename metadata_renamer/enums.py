# metadata_renamer/enums.py
from enum import Enum, auto


class EntityKind(Enum):
    """The closed set of catalog entity kinds a notification can carry."""
    SHOW = auto()
    SEASON = auto()
    EPISODE = auto()
    MOVIE = auto()

    def __str__(self):
        return self.name.title()


class IdentityState(Enum):
    FIRST_TIME = auto()
    CHANGED = auto()
    UNCHANGED = auto()

    def __str__(self):
        return self.name.replace("_", " ").title()


class ProcessingStatus(Enum):
    """
    Represents the outcome or reason for a reconciliation decision.
    Used for standardized log prefixes and for the decision event sink.
    """
    # General operational status
    SUCCESS = auto()
    DRY_RUN = auto()                    # Would have renamed, nothing touched
    PATH_ALREADY_CORRECT = auto()       # Current name already matches the canonical name

    # --- Skips (expected, non-error) ---
    SKIP_DISABLED = auto()              # Global enable flag is off
    SKIP_KIND_DISABLED = auto()         # Toggle for this entity kind is off
    SKIP_LIBRARY_NOT_ALLOWED = auto()
    SKIP_GLOBAL_DEBOUNCE = auto()
    SKIP_COOLDOWN = auto()
    SKIP_NO_PATH = auto()
    SKIP_PATH_MISSING = auto()
    SKIP_MISSING_NAME = auto()
    SKIP_MISSING_SEASON_NUMBER = auto()
    SKIP_MISSING_EPISODE_NUMBER = auto() # Absent from metadata and filename, nothing to retry on
    SKIP_NO_PROVIDER_IDS = auto()
    SKIP_PROVIDER_IDS_UNCHANGED = auto()
    SKIP_NOT_A_SEASON_FOLDER = auto()
    SKIP_LIBRARY_ROOT = auto()          # Path is the top folder of a library

    # --- Retry queue ---
    RETRY_QUEUED = auto()
    RETRY_EXHAUSTED = auto()

    # --- Aborts (safety violations) ---
    ABORT_UNSAFE_NAME = auto()
    ABORT_EPISODE_MISMATCH = auto()
    TARGET_EXISTS = auto()

    # --- Execution failures (caught) ---
    FILE_OPERATION_ERROR = auto()

    # --- Other ---
    BULK_REFRESH_TRIGGERED = auto()
    INTERNAL_ERROR = auto()

    def __str__(self):
        return self.name.replace("_", " ").title()

    @property
    def is_skip(self) -> bool:
        return self.name.startswith("SKIP_") or self is ProcessingStatus.PATH_ALREADY_CORRECT

    @property
    def is_abort(self) -> bool:
        return self in (ProcessingStatus.ABORT_UNSAFE_NAME, ProcessingStatus.ABORT_EPISODE_MISMATCH, ProcessingStatus.TARGET_EXISTS)

    @property
    def is_failure(self) -> bool:
        return self in (ProcessingStatus.FILE_OPERATION_ERROR, ProcessingStatus.INTERNAL_ERROR)

    @property
    def is_positive(self) -> bool:
        """True for outcomes that count as the item being in (or put into) its canonical state."""
        return self in (ProcessingStatus.SUCCESS, ProcessingStatus.DRY_RUN, ProcessingStatus.PATH_ALREADY_CORRECT)
