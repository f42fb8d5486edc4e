"""Exception hierarchy for cadenza."""

from typing import List, Optional


class CadenzaError(Exception):
    """Base class for all errors raised by cadenza."""


class RegistryError(CadenzaError):
    """Raised when the package registry cannot be reached or returns garbage."""


class PackageNotFoundError(RegistryError):
    """Raised when the registry has no record for a package name or version."""

    def __init__(self, name: str, version: Optional[str] = None, message: Optional[str] = None):
        self.name = name
        self.version = version
        if message is None:
            if version:
                message = f"version {version} not found for package {name}"
            else:
                message = f"package not found: {name}"
        super().__init__(message)


class ConstraintParseError(CadenzaError, ValueError):
    """Raised when a version constraint cannot be parsed."""

    def __init__(self, constraint: str, reason: str = ""):
        self.constraint = constraint
        detail = f": {reason}" if reason else ""
        super().__init__(f"invalid version constraint '{constraint}'{detail}")


class NoMatchingVersionError(CadenzaError):
    """Raised when no available version satisfies a constraint"""

    def __init__(self, constraint: str, name: Optional[str] = None):
        self.name = name
        self.constraint = constraint
        if name:
            message = f"no matching version for {name} {constraint}"
        else:
            message = f"no version matches constraint: {constraint}"
        super().__init__(message)


class ResolutionError(CadenzaError):
    """Raised when dependency resolution aborts; names the top-level package."""

    def __init__(self, package: str, cause: Exception, dev: bool = False):
        self.package = package
        self.dev = dev
        kind = "dev dependency " if dev else ""
        super().__init__(f"failed to resolve {kind}{package}: {cause}")


class ManifestError(CadenzaError):
    """Raised when composer.json cannot be read, parsed or written."""


class LockfileError(CadenzaError):
    """Raised when composer.lock cannot be read, parsed or written."""


class DownloadError(CadenzaError):
    """Raised after a download run when one or more packages failed."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("download errors: " + "; ".join(self.errors))


class ScriptError(CadenzaError):
    """Raised when a manifest script command fails."""


class ScriptLoopError(ScriptError):
    """Raised when scripts reference each other in a cycle."""
