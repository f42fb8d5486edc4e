"""Core data models for cadenza."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

UNSET = "__unset"


def _as_requirements(value: Any) -> Dict[str, str]:
    """Coerce a registry/lock requirement field into a name -> constraint dict.

    Packagist sends empty requirement sets as ``[]`` and sometimes ``null`` or
    the ``"__unset"`` marker, so anything that is not a mapping is empty.
    """
    if not isinstance(value, dict):
        return {}
    return {str(name): str(constraint) for name, constraint in value.items()}


@dataclass
class DistInfo:
    """Distribution archive location of a package version."""

    type: str = ""
    url: str = ""
    reference: str = ""
    shasum: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "DistInfo":
        if not isinstance(data, dict):
            return cls()
        return cls(
            type=data.get("type") or "",
            url=data.get("url") or "",
            reference=data.get("reference") or "",
            shasum=data.get("shasum") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "url": self.url, "reference": self.reference, "shasum": self.shasum}


@dataclass
class SourceInfo:
    """Source repository location of a package version."""

    type: str = ""
    url: str = ""
    reference: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "SourceInfo":
        if not isinstance(data, dict):
            return cls()
        return cls(
            type=data.get("type") or "",
            url=data.get("url") or "",
            reference=data.get("reference") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "url": self.url, "reference": self.reference}

    def archive_url(self) -> str:
        """Zip archive endpoint for git repositories on GitHub, Codeberg and GitLab.

        Other sources are returned unchanged.
        """
        url = self.url
        if self.type != "git" or not url:
            return url
        repo_url = url[:-4] if url.endswith(".git") else url
        if "github.com" in url or "codeberg.org" in url:
            return f"{repo_url}/archive/{self.reference}.zip"
        if "gitlab.com" in url:
            return f"{repo_url}/-/archive/{self.reference}/archive.zip"
        return url


@dataclass
class VersionRecord:
    """One version of a package as published in the registry."""

    name: str
    version: str
    require: Dict[str, str] = field(default_factory=dict)
    require_dev: Dict[str, str] = field(default_factory=dict)
    autoload: Optional[Any] = None  # opaque, passed through to the autoload generator
    dist: DistInfo = field(default_factory=DistInfo)
    source: SourceInfo = field(default_factory=SourceInfo)
    description: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "VersionRecord":
        """Build a record from one (already expanded) registry version entry."""
        autoload = data.get("autoload")
        if autoload == UNSET:
            autoload = None
        return cls(
            name=name,
            version=str(data.get("version", "")),
            require=_as_requirements(data.get("require")),
            require_dev=_as_requirements(data.get("require-dev")),
            autoload=autoload,
            dist=DistInfo.from_dict(data.get("dist")),
            source=SourceInfo.from_dict(data.get("source")),
            description=data.get("description") or "",
            type=data.get("type") or "",
        )

    @property
    def download_url(self) -> str:
        """Distribution archive URL, falling back to the source repository's archive."""
        return self.dist.url or self.source.archive_url() or ""


@dataclass
class PackageInfo:
    """All known versions of a package."""

    name: str
    versions: Dict[str, VersionRecord] = field(default_factory=dict)
    description: str = ""
    latest_stable: Optional[str] = None


@dataclass
class PackageSummary:
    """A registry search hit."""

    name: str
    description: str = ""
    downloads: int = 0
    favers: int = 0


@dataclass
class ResolvedPackage:
    """A concrete package version chosen by the resolver."""

    name: str
    version: str
    url: str = ""
    require: Dict[str, str] = field(default_factory=dict)
    autoload: Optional[Any] = None
    dev: bool = False
    dist: DistInfo = field(default_factory=DistInfo)
    source: SourceInfo = field(default_factory=SourceInfo)

    @property
    def full_name(self) -> str:
        """Return the package in name:version format."""
        return f"{self.name}:{self.version}"

    def __str__(self) -> str:
        return self.full_name


@dataclass
class Manifest:
    """The project manifest (composer.json)."""

    name: str = ""
    description: str = ""
    type: str = ""
    license: Any = ""
    require: Dict[str, str] = field(default_factory=dict)
    require_dev: Dict[str, str] = field(default_factory=dict)
    autoload: Dict[str, Any] = field(default_factory=dict)
    autoload_dev: Dict[str, Any] = field(default_factory=dict)
    scripts: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    repositories: Any = None
    minimum_stability: str = ""
    prefer_stable: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def all_dependencies(self) -> Dict[str, str]:
        """Return production and development requirements merged."""
        merged = dict(self.require)
        merged.update(self.require_dev)
        return merged


@dataclass
class LockedPackage:
    """A package entry in composer.lock."""

    name: str
    version: str
    require: Dict[str, str] = field(default_factory=dict)
    dist: DistInfo = field(default_factory=DistInfo)
    source: SourceInfo = field(default_factory=SourceInfo)
    autoload: Optional[Any] = None
    type: str = ""
    description: str = ""

    @property
    def download_url(self) -> str:
        return self.dist.url or self.source.archive_url() or ""


@dataclass
class LockFile:
    """Parsed composer.lock contents."""

    content_hash: str = ""
    packages: List[LockedPackage] = field(default_factory=list)
    packages_dev: List[LockedPackage] = field(default_factory=list)
    minimum_stability: str = "stable"
    prefer_stable: bool = False
    platform: Dict[str, str] = field(default_factory=dict)
    platform_dev: Dict[str, str] = field(default_factory=dict)


@dataclass
class DependencyNode:
    """Represents a node in a dependency graph (not a tree - nodes can be shared)."""

    label: str
    is_root: bool = False
    children: List['DependencyNode'] = field(default_factory=list, compare=False, hash=False)

    def __eq__(self, other) -> bool:
        """Equality based on object identity for graph node sharing."""
        return self is other

    def __hash__(self) -> int:
        """Hash based on object identity for graph node sharing."""
        return id(self)

    def add_child(self, child: 'DependencyNode') -> None:
        """Add a child dependency to this node."""
        if child not in self.children:
            self.children.append(child)

    def get_tree_representation(self, prefix: str = "", is_last: bool = True, depth: int = 0,
                                visited: Optional[set] = None) -> str:
        """Generate a tree visualization string.

        A node already on the current path is printed once more with a
        ``(cycle)`` marker and not expanded again.
        """
        if visited is None:
            visited = set()

        connector = "└── " if is_last else "├── "
        line_prefix = "" if depth == 0 else f"{prefix}{connector}"

        if id(self) in visited:
            return f"{line_prefix}{self.label} (cycle)"

        lines = [f"{line_prefix}{self.label}"]
        path = visited | {id(self)}

        for i, child in enumerate(self.children):
            is_last_child = (i == len(self.children) - 1)
            if depth == 0:
                child_prefix = ""
            else:
                child_prefix = prefix + ("    " if is_last else "│   ")
            lines.append(child.get_tree_representation(child_prefix, is_last_child, depth + 1, path))

        return "\n".join(lines)
