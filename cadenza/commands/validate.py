"""Validate command for checking composer.json."""

import logging
from pathlib import Path

from ..manifest import load_manifest, validate_manifest

logger = logging.getLogger(__name__)


def validate_manifest_file(manifest_path: Path, strict: bool = False) -> bool:
    """Validate a manifest and print the results.

    Returns True when the manifest is valid (warnings count in strict mode).
    """
    manifest = load_manifest(manifest_path)
    result = validate_manifest(manifest)

    print("Manifest Validation Results:")
    print(f"  File: {manifest_path}")

    if result.errors:
        print()
        print("Errors:")
        for err in result.errors:
            print(f"  ✗ {err}")
    if result.warnings:
        print()
        print("Warnings:")
        for warn in result.warnings:
            print(f"  ⚠ {warn}")

    valid = result.is_valid(strict)
    print()
    if valid and not result.warnings:
        print("Result: ✓ Valid composer.json")
    elif valid:
        print(f"Result: ✓ Valid composer.json with {len(result.warnings)} warning(s)")
    elif result.errors:
        print(f"Result: ✗ Invalid composer.json - {len(result.errors)} error(s)")
    else:
        print(f"Result: ✗ Invalid composer.json - {len(result.warnings)} warning(s) in strict mode")

    logger.debug(f"Validation of {manifest_path}: {len(result.errors)} errors, {len(result.warnings)} warnings")
    return valid
