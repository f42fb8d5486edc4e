"""Generation of vendor/autoload.php and the Composer-style autoload maps."""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import Constants
from .models import Manifest, ResolvedPackage

logger = logging.getLogger(__name__)

GENERATED_BY = "@generated by cadenza"

_DECLARATION = re.compile(
    r"^\s*(?:namespace\s+(?P<namespace>[A-Za-z0-9_\\]+)\s*[;{]"
    r"|(?:(?:abstract|final|readonly)\s+)*(?:class|interface|trait|enum)\s+(?P<name>[A-Za-z_][A-Za-z0-9_]*))",
    re.MULTILINE,
)

AUTOLOAD_PHP = """<?php

// autoload.php {generated}

$vendorDir = __DIR__;

$classMap = require __DIR__ . '/composer/autoload_classmap.php';
$psr4 = require __DIR__ . '/composer/autoload_psr4.php';
$namespaces = require __DIR__ . '/composer/autoload_namespaces.php';
$files = require __DIR__ . '/composer/autoload_files.php';

spl_autoload_register(function ($class) use ($classMap, $psr4, $namespaces) {{
    if (isset($classMap[$class])) {{
        require $classMap[$class];
        return;
    }}

    foreach ($psr4 as $prefix => $dirs) {{
        if (strpos($class, $prefix) !== 0) {{
            continue;
        }}
        $relative = str_replace('\\\\', '/', substr($class, strlen($prefix))) . '.php';
        foreach ($dirs as $dir) {{
            if (is_file($dir . '/' . $relative)) {{
                require $dir . '/' . $relative;
                return;
            }}
        }}
    }}

    foreach ($namespaces as $prefix => $dirs) {{
        if ($prefix !== '' && strpos($class, $prefix) !== 0) {{
            continue;
        }}
        $pos = strrpos($class, '\\\\');
        $namespacePath = $pos === false ? '' : str_replace('\\\\', '/', substr($class, 0, $pos + 1));
        $className = $pos === false ? $class : substr($class, $pos + 1);
        $relative = $namespacePath . str_replace('_', '/', $className) . '.php';
        foreach ($dirs as $dir) {{
            if (is_file($dir . '/' . $relative)) {{
                require $dir . '/' . $relative;
                return;
            }}
        }}
    }}
}});

foreach ($files as $identifier => $file) {{
    require_once $file;
}}
"""


def _php_string(value: str) -> str:
    """Quote a value as a single-quoted PHP string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value]
    return []


def find_classes(source: str) -> List[str]:
    """Return the fully qualified class-like names declared in a PHP source."""
    classes = []
    namespace = ""
    for match in _DECLARATION.finditer(source):
        if match.group("namespace") is not None:
            namespace = match.group("namespace").strip("\\")
        else:
            name = match.group("name")
            classes.append(f"{namespace}\\{name}" if namespace else name)
    return classes


class AutoloadGenerator:
    """Writes the autoloader for the root project and its installed packages.

    Paths inside installed packages are written relative to ``$vendorDir`` and
    paths of the root project relative to ``$baseDir`` (the vendor directory's
    parent), so the generated files survive moving the project.
    """

    def __init__(self, vendor_dir: Union[str, Path] = Constants.VENDOR_DIR,
                 base_dir: Optional[Union[str, Path]] = None):
        self.vendor_dir = Path(vendor_dir)
        self.base_dir = Path(base_dir) if base_dir is not None else self.vendor_dir.parent

    def generate(self, manifest: Manifest, packages: Iterable[ResolvedPackage], dev: bool = True) -> Path:
        """
        Write vendor/autoload.php and vendor/composer/autoload_*.php.

        Args:
            manifest: Root project manifest
            packages: Installed packages
            dev: Also include the root project's autoload-dev section

        Returns:
            Path of the written autoload.php
        """
        psr4: Dict[str, List[str]] = {}
        namespaces: Dict[str, List[str]] = {}
        classmap: Dict[str, str] = {}
        files: Dict[str, str] = {}

        # Root sections go first so the project's own classes win.
        sources: List[Tuple[str, Optional[str], Any]] = [("__root__", None, manifest.autoload)]
        if dev:
            sources.append(("__root__", None, manifest.autoload_dev))
        for package in packages:
            sources.append((package.name, package.name, package.autoload))

        for owner, package_path, autoload in sources:
            if not isinstance(autoload, dict):
                continue
            self._collect(owner, package_path, autoload, psr4, namespaces, classmap, files)

        composer_dir = self.vendor_dir / "composer"
        composer_dir.mkdir(parents=True, exist_ok=True)

        self._write_map(composer_dir / "autoload_psr4.php", self._render_dirs(psr4))
        self._write_map(composer_dir / "autoload_namespaces.php", self._render_dirs(namespaces))
        self._write_map(composer_dir / "autoload_classmap.php", self._render_flat(dict(sorted(classmap.items()))))
        self._write_map(composer_dir / "autoload_files.php", self._render_flat(files))

        autoload_path = self.vendor_dir / "autoload.php"
        autoload_path.write_text(AUTOLOAD_PHP.format(generated=GENERATED_BY), encoding="utf-8")

        logger.info(f"Generated autoloader: {len(psr4)} PSR-4 prefixes, {len(namespaces)} PSR-0 prefixes, "
                    f"{len(classmap)} classes, {len(files)} files")
        return autoload_path

    def _collect(self, owner: str, package_path: Optional[str], autoload: Dict[str, Any],
                 psr4: Dict[str, List[str]], namespaces: Dict[str, List[str]],
                 classmap: Dict[str, str], files: Dict[str, str]) -> None:
        for prefix, paths in (autoload.get("psr-4") or {}).items():
            dirs = psr4.setdefault(prefix, [])
            dirs.extend(self._path_expr(package_path, p) for p in _as_list(paths))

        for prefix, paths in (autoload.get("psr-0") or {}).items():
            dirs = namespaces.setdefault(prefix, [])
            dirs.extend(self._path_expr(package_path, p) for p in _as_list(paths))

        for path in _as_list(autoload.get("classmap")):
            for class_name, relative in self._scan_classmap(package_path, path):
                classmap.setdefault(class_name, self._path_expr(package_path, relative))

        for path in _as_list(autoload.get("files")):
            identifier = hashlib.md5(f"{owner}:{path}".encode("utf-8")).hexdigest()
            files[identifier] = self._path_expr(package_path, path)

    def _root_of(self, package_path: Optional[str]) -> Path:
        return self.base_dir if package_path is None else self.vendor_dir / package_path

    def _path_expr(self, package_path: Optional[str], relative: str) -> str:
        """PHP expression for a path declared in a package's autoload section."""
        relative = relative.strip("/")
        if package_path is None:
            base, sub = "$baseDir", relative
        else:
            base, sub = "$vendorDir", f"{package_path}/{relative}" if relative else package_path
        return f"{base} . {_php_string('/' + sub)}" if sub else base

    def _scan_classmap(self, package_path: Optional[str], path: str) -> List[Tuple[str, str]]:
        """Find (class, path relative to the package) pairs under a classmap entry."""
        root = self._root_of(package_path)
        target = root / path
        if target.is_file():
            candidates = [target]
        elif target.is_dir():
            candidates = sorted(p for p in target.rglob("*") if p.suffix in (".php", ".inc") and p.is_file())
        else:
            logger.debug(f"Classmap path does not exist: {target}")
            return []

        found = []
        for candidate in candidates:
            try:
                source = candidate.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"Could not read {candidate}: {e}")
                continue
            relative = candidate.relative_to(root).as_posix()
            for class_name in find_classes(source):
                found.append((class_name, relative))
        return found

    @staticmethod
    def _render_dirs(mapping: Dict[str, List[str]]) -> List[str]:
        # Longest prefix first so more specific namespaces are tried before their parents.
        lines = []
        for prefix in sorted(mapping, key=lambda p: (-len(p), p)):
            lines.append(f"    {_php_string(prefix)} => array({', '.join(mapping[prefix])}),")
        return lines

    @staticmethod
    def _render_flat(mapping: Dict[str, str]) -> List[str]:
        return [f"    {_php_string(key)} => {value}," for key, value in mapping.items()]

    def _write_map(self, path: Path, entries: List[str]) -> None:
        base_expr = "dirname($vendorDir)"
        if self.base_dir.resolve() != self.vendor_dir.resolve().parent:
            base_expr = _php_string(self.base_dir.resolve().as_posix())

        lines = [
            "<?php",
            "",
            f"// {path.name} {GENERATED_BY}",
            "",
            "$vendorDir = dirname(__DIR__);",
            f"$baseDir = {base_expr};",
            "",
            "return array(",
            *entries,
            ");",
            "",
        ]
        path.write_text("\n".join(lines), encoding="utf-8")


def refresh_package_autoload(packages: Iterable[ResolvedPackage],
                             vendor_dir: Union[str, Path] = Constants.VENDOR_DIR) -> int:
    """Replace registry autoload descriptors with the ones shipped in each package.

    The composer.json inside the downloaded archive is authoritative. Returns
    the number of packages updated.
    """
    updated = 0
    for package in packages:
        manifest_path = Path(vendor_dir) / package.name / Constants.MANIFEST_FILE
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug(f"Could not read {manifest_path}: {e}")
            continue

        autoload = data.get("autoload") if isinstance(data, dict) else None
        if autoload:
            package.autoload = autoload
            updated += 1
            logger.debug(f"Updated autoload for {package.name} from {manifest_path}")
    return updated
