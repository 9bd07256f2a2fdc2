"""Core exception types for apppack."""


class ApppackError(Exception):
    """Base exception for all apppack errors."""
    pass


class ManifestError(ApppackError):
    """Raised when a manifest cannot be serialized or deserialized."""
    pass


class ModuleSpecError(ApppackError):
    """Raised when a module spec file cannot be parsed."""
    pass


class ValidationError(ApppackError):
    """Raised when a tracked file does not match its manifest entry."""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class MissingFileError(ValidationError):
    """Raised when a tracked file is absent from the tree."""

    def __init__(self, name: str):
        super().__init__(name, "no such file")


class ChecksumMismatchError(ValidationError):
    """Raised when a tracked file's SHA-256 differs from the recorded one."""

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(name, f"checksum mismatch (expected {expected[:12]}, got {actual[:12]})")
        self.expected = expected
        self.actual = actual


class FetchError(ApppackError):
    """Raised when a file cannot be retrieved from a source root."""
    pass


class SourceNotFoundError(FetchError):
    """Raised when the source root does not hold the requested file."""
    pass


class UnsupportedSchemeError(FetchError):
    """Raised when no retrieval backend is registered for a URI scheme."""
    pass


class ExtractionError(ApppackError):
    """Raised when an archive entry cannot be expanded."""
    pass


class BundleError(ApppackError):
    """Raised when a bundle cannot be written."""
    pass


class BundleNotFoundError(ApppackError):
    """Raised when a bundle cannot be located on the search path."""
    pass
