"""Resolves a manifest's requirements into a flat list of concrete packages."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from .constraints import find_matching_version, parse_constraint, parse_version
from .errors import CadenzaError, ConstraintParseError, NoMatchingVersionError, ResolutionError
from .models import LockedPackage, LockFile, Manifest, ResolvedPackage
from .platform import is_platform_package
from .registry import PackagistClient, normalize_package_name
from . import explain

logger = logging.getLogger(__name__)


class PackageStatus(Enum):
    """Lifecycle of a package name within one resolution run."""

    UNVISITED = "unvisited"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    SUPERSEDED = "superseded"


@dataclass
class ResolutionState:
    """Mutable bookkeeping owned by a single resolve() call."""

    resolved: Dict[str, str] = field(default_factory=dict)  # name -> chosen version
    visited: Dict[str, bool] = field(default_factory=dict)  # name -> being processed or finalized
    status: Dict[str, PackageStatus] = field(default_factory=dict)
    packages: Dict[str, ResolvedPackage] = field(default_factory=dict)  # output, in append order
    dev: Dict[str, bool] = field(default_factory=dict)  # name -> first reached from require-dev
    superseded: Dict[str, List[str]] = field(default_factory=dict)  # name -> versions given up
    notices: List[str] = field(default_factory=list)

    def status_of(self, name: str) -> PackageStatus:
        return self.status.get(name, PackageStatus.UNVISITED)

    def supersede(self, name: str) -> None:
        """Give up the version chosen for ``name`` so it can be resolved again."""
        previous = self.resolved.get(name)
        self.packages.pop(name, None)
        self.visited[name] = False
        self.status[name] = PackageStatus.SUPERSEDED
        if previous is not None:
            self.superseded.setdefault(name, []).append(previous)

    def package_list(self) -> List[ResolvedPackage]:
        return list(self.packages.values())


class DependencyResolver:
    """
    Greedy, recursive dependency resolver.

    Requirements are walked depth first. The first constraint seen for a
    package picks its version; when a later requirer's constraint rejects that
    version the package is dropped and resolved again against the newer
    constraint (last writer wins, no intersection). Processing order therefore
    decides which requirer wins a conflict.

    A resolver instance is not thread-safe. Every resolve() call starts from a
    fresh ResolutionState.
    """

    def __init__(self, client: PackagistClient):
        """Initialize the resolver with a registry client."""
        self.client = client
        self.state = ResolutionState()
        self._walking_dev = False

    @property
    def resolved(self) -> Dict[str, str]:
        return self.state.resolved

    @property
    def visited(self) -> Dict[str, bool]:
        return self.state.visited

    @property
    def notices(self) -> List[str]:
        """Human-readable conflict repair notices from the last run."""
        return self.state.notices

    def resolve(self, manifest: Manifest) -> List[ResolvedPackage]:
        """
        Resolve production then development requirements of a manifest.

        Returns:
            Packages to install, each package's dependencies ahead of it

        Raises:
            ResolutionError: If a package or a matching version cannot be found
        """
        self.state = ResolutionState()

        logger.info(f"Resolving {len(manifest.require)} requirements "
                    f"and {len(manifest.require_dev)} dev requirements")

        self._walking_dev = False
        for name, constraint in manifest.require.items():
            name = normalize_package_name(name)
            if is_platform_package(name):
                continue
            try:
                self._resolve_dependency(name, constraint)
            except (CadenzaError, RecursionError) as e:
                raise ResolutionError(name, e) from e

        self._walking_dev = True
        for name, constraint in manifest.require_dev.items():
            name = normalize_package_name(name)
            if is_platform_package(name):
                continue
            try:
                self._resolve_dependency(name, constraint)
            except (CadenzaError, RecursionError) as e:
                raise ResolutionError(name, e, dev=True) from e

        packages = self.state.package_list()
        logger.info(f"Resolved {len(packages)} installable packages "
                    f"({len(self.state.resolved)} names including virtual packages)")
        return packages

    def _resolve_dependency(self, name: str, constraint: str) -> None:
        """Resolve one requirement and, recursively, everything it requires."""
        state = self.state

        if state.visited.get(name):
            resolved_version = state.resolved.get(name)
            if resolved_version is None:
                # Still being resolved further up the stack: a cycle.
                return
            if self._satisfies(resolved_version, constraint):
                return

            notice = (f"CONFLICT FIX: Package {name} v{resolved_version} does not satisfy "
                      f"'{constraint}'. Re-resolving with new constraint...")
            logger.warning(notice)
            state.notices.append(notice)
            state.supersede(name)

        if state.visited.get(name):
            return
        state.visited[name] = True
        state.status[name] = PackageStatus.RESOLVING
        state.dev.setdefault(name, self._walking_dev)

        info = self.client.get_package(name)

        try:
            version = find_matching_version(info.versions.keys(), constraint)
        except NoMatchingVersionError as e:
            raise NoMatchingVersionError(constraint, name=name) from e

        record = self.client.get_version(name, version)
        download_url = record.download_url
        if not download_url:
            logger.debug(f"{name} {version} has no download location; treating it as a virtual package")

        state.resolved[name] = version
        logger.debug(f"Selected {name} {version} for '{constraint}'")

        for dep_name, dep_constraint in record.require.items():
            dep_name = normalize_package_name(dep_name)
            if is_platform_package(dep_name):
                continue
            self._resolve_dependency(dep_name, dep_constraint)

        if state.resolved.get(name) != version:
            # A dependency re-resolved this package while we were walking it;
            # the newer frame owns the output entry.
            logger.debug(f"{name} {version} was superseded by {state.resolved.get(name)}")
            return

        state.status[name] = PackageStatus.RESOLVED
        if download_url:
            state.packages[name] = ResolvedPackage(
                name=name,
                version=version,
                url=download_url,
                require=dict(record.require),
                autoload=record.autoload,
                dev=state.dev.get(name, False),
                dist=record.dist,
                source=record.source,
            )

    @staticmethod
    def _satisfies(version: str, constraint: str) -> bool:
        """Check an already chosen version against another requirer's constraint.

        Anything that cannot be parsed counts as satisfied, so only a
        definite mismatch triggers a re-resolve.
        """
        try:
            spec = parse_constraint(constraint)
        except ConstraintParseError:
            return True
        parsed = parse_version(version)
        if parsed is None:
            return True
        return spec.match(parsed)

    def resolve_from_lock(self, lock: LockFile) -> List[ResolvedPackage]:
        """
        Turn lock file entries into resolved packages without touching the registry.

        Lock contents are trusted as-is; constraints are not re-checked.
        """
        self.state = ResolutionState()
        packages: List[ResolvedPackage] = []

        for locked, dev in [(p, False) for p in lock.packages] + [(p, True) for p in lock.packages_dev]:
            package = self._from_locked(locked, dev)
            self.state.resolved[package.name] = package.version
            self.state.visited[package.name] = True
            self.state.status[package.name] = PackageStatus.RESOLVED
            packages.append(package)

        logger.info(f"Loaded {len(packages)} packages from lock file")
        return packages

    @staticmethod
    def _from_locked(locked: LockedPackage, dev: bool) -> ResolvedPackage:
        return ResolvedPackage(
            name=locked.name,
            version=locked.version,
            url=locked.download_url,
            require=dict(locked.require),
            autoload=locked.autoload,
            dev=dev,
            dist=locked.dist,
            source=locked.source,
        )

    def build_dependency_tree(self, manifest: Manifest, target: str) -> str:
        """Explain why ``target`` is required; see explain.build_dependency_tree."""
        return explain.build_dependency_tree(self.client, manifest, target)

    def check_conflicts(self, manifest: Manifest, name: str, version: str) -> List[str]:
        """List advisories for installing name@version; see explain.check_conflicts."""
        return explain.check_conflicts(self.client, manifest, name, version)

    def close(self):
        """Close the registry client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
