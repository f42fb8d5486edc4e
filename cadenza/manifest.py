"""Reading, writing and validating the project manifest (composer.json)."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from .errors import ManifestError
from .models import Manifest
from .registry import normalize_package_name

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationResult",
    "default_manifest",
    "is_valid_constraint",
    "is_valid_package_name",
    "load_manifest",
    "manifest_from_dict",
    "manifest_to_dict",
    "normalize_package_name",
    "validate_manifest",
    "write_manifest",
]

# Manifest attribute -> composer.json key, in the order new keys are written
_FIELDS = [
    ("name", "name"),
    ("description", "description"),
    ("type", "type"),
    ("license", "license"),
    ("require", "require"),
    ("require_dev", "require-dev"),
    ("autoload", "autoload"),
    ("autoload_dev", "autoload-dev"),
    ("scripts", "scripts"),
    ("config", "config"),
    ("extra", "extra"),
    ("repositories", "repositories"),
    ("minimum_stability", "minimum-stability"),
    ("prefer_stable", "prefer-stable"),
]

_CONSTRAINT_PART = re.compile(
    r"^(\*|dev-\S+|v?[0-9]+(\.[0-9x*]+)*(-[0-9A-Za-z.]+)?"
    r"|(\^|~|>=?|<=?|!=|==?)v?[0-9]+(\.[0-9x*]+)*(-[0-9A-Za-z.]+)?|-)$"
)
_STABILITY_FLAG = re.compile(r"@(dev|alpha|beta|RC|stable)$", re.IGNORECASE)
_OPERATOR_GAP = re.compile(r"(\^|~|>=?|<=?|!=|==?)\s+")


def _mapping(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def manifest_from_dict(data: Dict[str, Any]) -> Manifest:
    """Build a Manifest from a decoded composer.json document."""
    if not isinstance(data, dict):
        raise ManifestError("composer.json must contain a JSON object")

    return Manifest(
        name=data.get("name") or "",
        description=data.get("description") or "",
        type=data.get("type") or "",
        license=data.get("license") or "",
        require={k: str(v) for k, v in _mapping(data.get("require")).items()},
        require_dev={k: str(v) for k, v in _mapping(data.get("require-dev")).items()},
        autoload=_mapping(data.get("autoload")),
        autoload_dev=_mapping(data.get("autoload-dev")),
        scripts=_mapping(data.get("scripts")),
        config=_mapping(data.get("config")),
        extra=_mapping(data.get("extra")),
        repositories=data.get("repositories"),
        minimum_stability=data.get("minimum-stability") or "",
        prefer_stable=bool(data.get("prefer-stable", False)),
        raw=dict(data),
    )


def manifest_to_dict(manifest: Manifest) -> Dict[str, Any]:
    """Serialize a Manifest, keeping keys cadenza does not model untouched.

    Existing keys keep their position; empty fields are left out.
    """
    document = dict(manifest.raw)

    for attr, key in _FIELDS:
        value = getattr(manifest, attr)
        if value in ("", None, {}, [], False):
            document.pop(key, None)
        else:
            document[key] = value

    return document


def load_manifest(path: Union[str, Path]) -> Manifest:
    """
    Read and parse a composer.json file.

    Raises:
        ManifestError: If the file cannot be read or is not valid JSON
    """
    path = Path(path)
    logger.debug(f"Reading manifest from {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ManifestError(f"failed to read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"failed to parse {path}: {e}") from e

    return manifest_from_dict(data)


def write_manifest(path: Union[str, Path], manifest: Manifest) -> None:
    """Write composer.json with 4-space indentation."""
    path = Path(path)
    document = manifest_to_dict(manifest)

    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=4, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        raise ManifestError(f"failed to write {path}: {e}") from e

    manifest.raw = document
    logger.debug(f"Wrote manifest to {path}")


def default_manifest() -> Manifest:
    """Starting manifest written by ``cadenza init``."""
    return Manifest(
        name="vendor/project",
        description="A new PHP project",
        type="project",
        license="MIT",
        require={"php": "^8.1"},
        autoload={"psr-4": {"App\\": "src/"}},
    )


def is_valid_package_name(name: str) -> bool:
    """A package name is exactly two non-empty parts: vendor/package."""
    parts = name.split("/")
    return len(parts) == 2 and all(parts)


def is_valid_constraint(constraint: str) -> bool:
    """Syntactic check of a version constraint.

    Accepts the forms the resolver understands: wildcards, exact and partial
    versions, comparison operators, caret and tilde ranges, hyphen ranges,
    ``dev-`` branches and ``||`` / ``,`` / space separated combinations, each
    optionally followed by a stability flag such as ``@dev``.
    """
    if not constraint or not constraint.strip():
        return False

    collapsed = _OPERATOR_GAP.sub(r"\1", constraint.strip())
    parts = [p for p in re.split(r"[|,\s]+", collapsed) if p]
    if not parts:
        return False

    for part in parts:
        bare = _STABILITY_FLAG.sub("", part)
        if not bare:
            # A lone flag like "@dev" means "any version at this stability".
            continue
        if not _CONSTRAINT_PART.match(bare):
            return False

    return True


@dataclass
class ValidationResult:
    """Errors make a manifest invalid; warnings only do in strict mode."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def is_valid(self, strict: bool = False) -> bool:
        if self.errors:
            return False
        if strict and self.warnings:
            return False
        return True


def validate_manifest(manifest: Manifest) -> ValidationResult:
    """Check a manifest for structural errors and missing recommended fields."""
    result = ValidationResult()

    if not manifest.name:
        result.errors.append("The 'name' property is required")
    elif not is_valid_package_name(manifest.name):
        result.errors.append(
            f"The package name '{manifest.name}' is invalid. It should be in 'vendor/package' format."
        )

    if not manifest.description:
        result.warnings.append("The 'description' property is recommended")
    if not manifest.license:
        result.warnings.append("The 'license' property is recommended")
    if not manifest.type:
        result.warnings.append("The 'type' property is recommended (e.g., 'library', 'project')")

    for name, constraint in manifest.require.items():
        if not is_valid_constraint(constraint):
            result.errors.append(f"Invalid version constraint '{constraint}' for package '{name}'")

    for name, constraint in manifest.require_dev.items():
        if not is_valid_constraint(constraint):
            result.errors.append(
                f"Invalid version constraint '{constraint}' for package '{name}' in require-dev"
            )

    for name in manifest.require:
        if name in manifest.require_dev:
            result.errors.append(f"Package '{name}' is listed in both 'require' and 'require-dev'")

    autoload = manifest.autoload
    if not any(autoload.get(key) for key in ("psr-4", "psr-0", "classmap", "files")):
        if manifest.type == "library":
            result.warnings.append("A library should usually have an 'autoload' section")

    for namespace in _mapping(autoload.get("psr-4")):
        if namespace and not namespace.endswith("\\"):
            result.warnings.append(f"PSR-4 namespace '{namespace}' should end with a backslash")

    return result
