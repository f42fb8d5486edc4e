"""composer.lock generation and loading."""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .errors import LockfileError
from .manifest import manifest_to_dict
from .models import DistInfo, LockedPackage, LockFile, Manifest, ResolvedPackage, SourceInfo, _as_requirements
from .platform import is_platform_package

logger = logging.getLogger(__name__)

README = [
    "This file locks the dependencies of your project to a known state",
    "Read more about it at https://getcomposer.org/doc/01-basic-usage.md#installing-dependencies",
    "This file is @generated automatically",
]

# Manifest keys whose change invalidates the lock
HASH_KEYS = [
    "name",
    "version",
    "require",
    "require-dev",
    "conflict",
    "replace",
    "provide",
    "minimum-stability",
    "prefer-stable",
    "repositories",
    "extra",
]


def compute_content_hash(manifest: Manifest) -> str:
    """md5 over the lock-relevant parts of composer.json.

    The encoding follows PHP's json_encode defaults (no whitespace, escaped
    slashes and non-ASCII) so hashes match the ones Composer writes.
    """
    document = manifest_to_dict(manifest)

    relevant: Dict[str, Any] = {}
    for key in HASH_KEYS:
        if key in document:
            relevant[key] = document[key]

    platform = (document.get("config") or {}).get("platform")
    if platform:
        relevant["config"] = {"platform": platform}

    encoded = json.dumps(dict(sorted(relevant.items())), separators=(',', ':'), ensure_ascii=True)
    encoded = encoded.replace("/", "\\/")
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def _locked_from_resolved(package: ResolvedPackage) -> LockedPackage:
    return LockedPackage(
        name=package.name,
        version=package.version,
        require=dict(package.require),
        dist=package.dist,
        source=package.source,
        autoload=package.autoload,
    )


def _platform_requirements(requirements: Dict[str, str]) -> Dict[str, str]:
    return {name: constraint for name, constraint in requirements.items() if is_platform_package(name)}


def build_lock(manifest: Manifest, packages: List[ResolvedPackage]) -> LockFile:
    """Create lock contents for a resolved package list."""
    lock = LockFile(
        content_hash=compute_content_hash(manifest),
        minimum_stability=manifest.minimum_stability or "stable",
        prefer_stable=manifest.prefer_stable,
        platform=_platform_requirements(manifest.require),
        platform_dev=_platform_requirements(manifest.require_dev),
    )

    for package in sorted(packages, key=lambda p: p.name):
        if package.dev:
            lock.packages_dev.append(_locked_from_resolved(package))
        else:
            lock.packages.append(_locked_from_resolved(package))

    return lock


def _package_to_dict(package: LockedPackage) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"name": package.name, "version": package.version}
    if package.source.url:
        entry["source"] = package.source.to_dict()
    if package.dist.url:
        entry["dist"] = package.dist.to_dict()
    if package.require:
        entry["require"] = package.require
    if package.type:
        entry["type"] = package.type
    if package.autoload:
        entry["autoload"] = package.autoload
    if package.description:
        entry["description"] = package.description
    return entry


def _package_from_dict(data: Dict[str, Any]) -> LockedPackage:
    if not isinstance(data, dict) or not data.get("name"):
        raise LockfileError(f"invalid package entry in lock file: {data!r}")
    return LockedPackage(
        name=data["name"],
        version=str(data.get("version", "")),
        require=_as_requirements(data.get("require")),
        dist=DistInfo.from_dict(data.get("dist")),
        source=SourceInfo.from_dict(data.get("source")),
        autoload=data.get("autoload") or None,
        type=data.get("type") or "",
        description=data.get("description") or "",
    )


def lock_to_dict(lock: LockFile) -> Dict[str, Any]:
    return {
        "_readme": README,
        "content-hash": lock.content_hash,
        "packages": [_package_to_dict(p) for p in lock.packages],
        "packages-dev": [_package_to_dict(p) for p in lock.packages_dev],
        "aliases": [],
        "minimum-stability": lock.minimum_stability,
        "stability-flags": {},
        "prefer-stable": lock.prefer_stable,
        "prefer-lowest": False,
        "platform": lock.platform,
        "platform-dev": lock.platform_dev,
    }


def lock_from_dict(data: Dict[str, Any]) -> LockFile:
    if not isinstance(data, dict):
        raise LockfileError("composer.lock must contain a JSON object")
    return LockFile(
        content_hash=data.get("content-hash") or "",
        packages=[_package_from_dict(p) for p in data.get("packages") or []],
        packages_dev=[_package_from_dict(p) for p in data.get("packages-dev") or []],
        minimum_stability=data.get("minimum-stability") or "stable",
        prefer_stable=bool(data.get("prefer-stable", False)),
        platform=_as_requirements(data.get("platform")),
        platform_dev=_as_requirements(data.get("platform-dev")),
    )


def write_lock(path: Union[str, Path], lock: LockFile) -> None:
    """Write composer.lock with 4-space indentation."""
    path = Path(path)
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(lock_to_dict(lock), f, indent=4, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        raise LockfileError(f"failed to write {path}: {e}") from e
    logger.info(f"Wrote {len(lock.packages)} packages and {len(lock.packages_dev)} dev packages to {path}")


def load_lock(path: Union[str, Path]) -> LockFile:
    """
    Read composer.lock.

    Raises:
        LockfileError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise LockfileError(f"failed to read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise LockfileError(f"failed to parse {path}: {e}") from e
    return lock_from_dict(data)


def is_lock_fresh(lock: LockFile, manifest: Manifest) -> bool:
    """True when the lock was written for the manifest as it is now."""
    fresh = bool(lock.content_hash) and lock.content_hash == compute_content_hash(manifest)
    if not fresh:
        logger.debug("Lock file is out of date with composer.json")
    return fresh
