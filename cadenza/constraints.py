"""Version constraint matching on top of semantic_version.

Composer constraints (``^1.2``, ``~1.2.3``, ``>=2.0``, ``1.0.*``,
``^1.9 || ^2.4``) are handed to :class:`semantic_version.NpmSpec`, whose
grammar covers the caret, tilde, x-range and ``||`` forms. Comma separated
conjunctions (``>=1.0,<2.0``) are retried with :class:`semantic_version.SimpleSpec`.
"""

import logging
from typing import Iterable, Optional

import semantic_version

from .errors import ConstraintParseError, NoMatchingVersionError

logger = logging.getLogger(__name__)

DEV_MARKER = "dev"
PRERELEASE_MARKERS = ("alpha", "beta", "RC")


def normalize_constraint(constraint: str) -> str:
    """Trim a constraint and drop the spaces around its operators.

    ``"^1.9 || ^2.4"`` becomes ``"^1.9||^2.4"``; the ``||`` separator is kept.
    """
    return constraint.strip().replace(" ", "")


def normalize_version(version: str) -> str:
    """Make a registry version string acceptable to the semantic version parser."""
    if version.startswith("v"):
        version = version[1:]
    return version.replace("-dev", "-alpha")


def parse_constraint(constraint: str) -> semantic_version.base.BaseSpec:
    """Parse a constraint string into a semantic_version spec.

    Raises:
        ConstraintParseError: If neither the npm nor the simple grammar accepts it
    """
    normalized = normalize_constraint(constraint)
    if not normalized:
        raise ConstraintParseError(constraint, "empty constraint")

    try:
        return semantic_version.NpmSpec(normalized)
    except ValueError:
        pass

    try:
        return semantic_version.SimpleSpec(normalized)
    except ValueError as e:
        raise ConstraintParseError(constraint, str(e)) from e


def parse_version(version: str) -> Optional[semantic_version.Version]:
    """Parse a registry version string, returning None when it is not a version."""
    try:
        return semantic_version.Version.coerce(normalize_version(version))
    except ValueError:
        return None


def constraint_allows(constraint: str, version: str) -> bool:
    """Return True when ``version`` satisfies ``constraint``.

    Raises:
        ConstraintParseError: If the constraint is malformed
    """
    spec = parse_constraint(constraint)
    parsed = parse_version(version)
    if parsed is None:
        return False
    return spec.match(parsed)


def find_matching_version(versions: Iterable[str], constraint: str) -> str:
    """Pick the greatest available version satisfying ``constraint``.

    Versions mentioning ``dev`` are never candidates. A constraint that cannot
    be parsed is not an error: the latest stable version is returned instead.

    Args:
        versions: Version strings as published in the registry
        constraint: Composer-style constraint

    Returns:
        The chosen version string, exactly as it appears in ``versions``

    Raises:
        NoMatchingVersionError: If no candidate satisfies the constraint
    """
    versions = list(versions)

    try:
        spec = parse_constraint(constraint)
    except ConstraintParseError as e:
        logger.debug(f"{e}; falling back to latest stable version")
        latest = find_latest_stable(versions)
        if latest is None:
            raise NoMatchingVersionError(normalize_constraint(constraint)) from e
        return latest

    best_version: Optional[str] = None
    best_parsed: Optional[semantic_version.Version] = None

    for version in versions:
        if DEV_MARKER in version:
            continue

        parsed = parse_version(version)
        if parsed is None:
            continue

        if spec.match(parsed) and (best_parsed is None or parsed > best_parsed):
            best_parsed = parsed
            best_version = version

    if best_version is None:
        raise NoMatchingVersionError(normalize_constraint(constraint))

    return best_version


def find_latest_stable(versions: Iterable[str]) -> Optional[str]:
    """Return the greatest non-dev version.

    When nothing parses, any available version is returned so callers always
    get a version as long as one exists; None only for an empty input.
    """
    versions = list(versions)
    latest: Optional[str] = None
    latest_parsed: Optional[semantic_version.Version] = None

    for version in versions:
        if DEV_MARKER in version:
            continue

        parsed = parse_version(version)
        if parsed is None:
            continue

        if latest_parsed is None or parsed > latest_parsed:
            latest_parsed = parsed
            latest = version

    if latest is None and versions:
        return versions[0]

    return latest


def find_latest_release(versions: Iterable[str]) -> Optional[str]:
    """Return the greatest released version, skipping dev builds and pre-releases.

    Used for the registry's "latest stable" label. Versions the parser rejects
    are compared as plain strings unless they look like a pre-release.
    """
    versions = list(versions)
    latest: Optional[str] = None
    latest_parsed: Optional[semantic_version.Version] = None

    for version in versions:
        if DEV_MARKER in version:
            continue

        parsed = parse_version(version)
        if parsed is None:
            if latest_parsed is None and (latest is None or version > latest):
                if not any(marker in version for marker in PRERELEASE_MARKERS):
                    latest = version
            continue

        if parsed.prerelease:
            continue

        if latest_parsed is None or parsed > latest_parsed:
            latest_parsed = parsed
            latest = version

    if latest is None:
        for version in versions:
            if DEV_MARKER not in version:
                return version
        return versions[0] if versions else None

    return latest
