"""Install and update: resolve, download, autoload, lock, scripts."""

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from ..autoload import AutoloadGenerator, refresh_package_autoload
from ..config import Constants, Settings
from ..downloader import PackageDownloader
from ..errors import LockfileError
from ..lockfile import build_lock, is_lock_fresh, load_lock, write_lock
from ..manifest import load_manifest
from ..models import LockFile, Manifest, ResolvedPackage
from ..registry import PackagistClient
from ..resolver import DependencyResolver
from ..scripts import ScriptRunner

logger = logging.getLogger(__name__)


def vendor_path(project_dir: Path, settings: Settings, manifest: Manifest) -> Path:
    """Vendor directory for a project; the manifest's config.vendor-dir wins."""
    configured = manifest.config.get("vendor-dir") if manifest.config else None
    return project_dir / (configured or settings.vendor_dir)


def remove_changed_packages(previous: LockFile, packages: List[ResolvedPackage], vendor_dir: Path) -> List[str]:
    """Delete the vendor directories of packages whose locked version changed.

    The downloader skips directories that already exist, so a new version is
    only unpacked once the old one is gone.
    """
    locked = {pkg.name: pkg.version for pkg in previous.packages + previous.packages_dev}
    removed = []
    for package in packages:
        old_version = locked.get(package.name)
        if old_version is None or old_version == package.version:
            continue
        target = vendor_dir / package.name
        if target.exists():
            logger.info(f"Removing {package.name} {old_version} to install {package.version}")
            shutil.rmtree(target)
            removed.append(package.name)
    return removed


def install_project(project_dir: Path, settings: Settings, update: bool = False, dev: bool = True,
                    run_scripts: bool = True, client: Optional[PackagistClient] = None,
                    downloader: Optional[PackageDownloader] = None) -> List[ResolvedPackage]:
    """
    Install a project's dependencies.

    A lock file that still matches composer.json is installed as-is. Otherwise
    (or when ``update`` is set) dependencies are resolved against the registry
    and a new lock file is written.

    Returns:
        The installed packages
    """
    project_dir = Path(project_dir).resolve()
    manifest_path = project_dir / Constants.MANIFEST_FILE
    lock_path = project_dir / Constants.LOCK_FILE

    manifest = load_manifest(manifest_path)
    print(f"Project: {manifest.name or '(unnamed)'}")
    if manifest.description:
        print(f"Description: {manifest.description}")
    print()

    lock = None
    previous_lock = None
    if lock_path.exists():
        try:
            previous_lock = load_lock(lock_path)
        except LockfileError as e:
            if not update:
                raise
            logger.warning(f"Ignoring unreadable {Constants.LOCK_FILE}: {e}")

    if not update and previous_lock is not None:
        if is_lock_fresh(previous_lock, manifest):
            lock = previous_lock
        else:
            print("⚠ composer.lock is out of date with composer.json, resolving again")

    client = client if client is not None else PackagistClient(settings.registry_url)
    with DependencyResolver(client) as resolver:
        if lock is not None:
            print("Installing from lock file...")
            resolved = resolver.resolve_from_lock(lock)
        else:
            print("Resolving dependencies...")
            resolved = resolver.resolve(manifest)
            for notice in resolver.notices:
                print(f"  ⚠ {notice}")

    packages = resolved if dev else [pkg for pkg in resolved if not pkg.dev]
    print(f"✓ Resolved {len(packages)} packages")

    vendor_dir = vendor_path(project_dir, settings, manifest)
    if lock is None and previous_lock is not None:
        for name in remove_changed_packages(previous_lock, resolved, vendor_dir):
            print(f"  Removed outdated {name}")

    if downloader is None:
        downloader = PackageDownloader(vendor_dir, workers=settings.workers,
                                       cache_dir=project_dir / settings.cache_dir)
    print("Downloading packages...")
    try:
        fetched = downloader.download_all(packages)
    finally:
        downloader.close()
    print(f"✓ Downloaded {len(fetched)} packages ({len(packages) - len(fetched)} already installed)")

    refresh_package_autoload(packages, vendor_dir)

    print("Generating autoload files...")
    AutoloadGenerator(vendor_dir, base_dir=project_dir).generate(manifest, packages, dev=dev)

    if lock is None:
        print(f"Writing {Constants.LOCK_FILE}...")
        write_lock(lock_path, build_lock(manifest, resolved))

    if run_scripts:
        event = "post-update-cmd" if update else "post-install-cmd"
        ScriptRunner(project_dir, vendor_dir=str(vendor_dir)).run(event, manifest)

    print()
    print("✓ Installation complete")
    return packages
