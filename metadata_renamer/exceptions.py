class RenamerError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(RenamerError):
    """Errors related to configuration loading or validation."""
    pass

class CatalogError(RenamerError):
    """Errors raised while loading or querying the media catalog."""
    pass

class FileOperationError(RenamerError):
    """Errors during file system operations."""
    pass

class UnsafeNameError(FileOperationError):
    """A rendered name failed the filesystem-safe-name validation."""
    pass
