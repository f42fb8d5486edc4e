"""Best-effort answers to "why is this package here?" and "why can't I add it?".

Both queries go back to the registry instead of reusing a resolver run, so
their answers can disagree with what ``DependencyResolver.resolve`` would
actually pick: every hop of the search uses the latest stable version.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from .constraints import find_latest_stable
from .errors import PackageNotFoundError, RegistryError
from .models import Manifest
from .platform import is_extension_requirement, is_platform_package, RUNTIME_NAME
from .registry import PackagistClient

logger = logging.getLogger(__name__)

TREE_ROOT = "Your project"
TREE_INDENT = "  "
TREE_STEP = "    "
TREE_BRANCH = "└─ "


def build_dependency_tree(client: PackagistClient, manifest: Manifest, target: str) -> str:
    """
    Explain how ``target`` ends up in the project.

    Returns:
        Text tree from the project down to the target, one hop per line

    Raises:
        PackageNotFoundError: If no requirement path leads to the target
    """
    for requirements, marker in ((manifest.require, ""), (manifest.require_dev, " [dev]")):
        if target in requirements:
            return _render([(target, requirements[target])], None, marker)

    for requirements, marker in ((manifest.require, ""), (manifest.require_dev, " [dev]")):
        path = _search(client, target, requirements, set())
        if path is not None:
            return _render(path, target, marker)

    raise PackageNotFoundError(target, message=f"package {target} not found in dependency tree")


def _search(client: PackagistClient, target: str, requirements: Dict[str, str],
            on_path: Set[str]) -> Optional[List[Tuple[str, str]]]:
    """Depth-first search for a requirement edge to ``target``.

    Returns the (package, constraint) hops leading to the package that
    requires the target, or None.
    """
    for name, constraint in requirements.items():
        if is_platform_package(name) or name in on_path:
            continue

        try:
            info = client.get_package(name)
            record = client.get_version(name, find_latest_stable(info.versions.keys()) or "")
        except RegistryError as e:
            logger.debug(f"Skipping {name} while searching for {target}: {e}")
            continue

        if target in record.require:
            return [(name, constraint)]

        path = _search(client, target, record.require, on_path | {name})
        if path is not None:
            return [(name, constraint)] + path

    return None


def _render(path: List[Tuple[str, str]], target: Optional[str], marker: str) -> str:
    lines = [TREE_ROOT]
    indent = TREE_INDENT
    for i, (name, constraint) in enumerate(path):
        suffix = marker if i == 0 else ""
        lines.append(f"{indent}{TREE_BRANCH}{name} ({constraint}){suffix}")
        indent += TREE_STEP
    if target is not None:
        lines.append(f"{indent}{TREE_BRANCH}{target}")
    return "\n".join(lines) + "\n"


def versions_compatible(existing: str, required: str) -> bool:
    """Decide whether two constraints on the same package can both hold.

    Always True for now. check_conflicts only reports on top of this, so no
    dependency conflict advisory is ever produced until real range
    intersection lands here.
    """
    return True


def check_conflicts(client: PackagistClient, manifest: Manifest, name: str, version: str) -> List[str]:
    """
    List advisories about installing name@version into the project.

    Advisories are informational strings, not errors: the PHP runtime
    requirement, each required extension, and manifest dependencies the
    candidate constrains differently.

    Raises:
        PackageNotFoundError: If the package version is unknown
    """
    record = client.get_version(name, version)
    advisories: List[str] = []

    if RUNTIME_NAME in record.require:
        advisories.append(f"Requires PHP {record.require[RUNTIME_NAME]} (check your version)")

    for requirement in record.require:
        if is_extension_requirement(requirement):
            advisories.append(f"Requires PHP extension: {requirement}")

    for existing_name, existing_constraint in manifest.require.items():
        if is_platform_package(existing_name):
            continue
        required = record.require.get(existing_name)
        if required is not None and not versions_compatible(existing_constraint, required):
            advisories.append(f"{name} requires {existing_name} {required} (you have {existing_constraint})")

    logger.debug(f"{len(advisories)} advisories for {name} {version}")
    return advisories
