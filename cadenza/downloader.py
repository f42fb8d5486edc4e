"""Parallel download and extraction of package archives into the vendor directory."""

import hashlib
import logging
import os
import shutil
import tempfile
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional, Union

import requests

from .config import Constants
from .errors import DownloadError
from .models import ResolvedPackage
from .ssl_config import create_session

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class PackageDownloader:
    """Downloads resolved packages with a fixed-size worker pool.

    Every package is attempted; failures are collected and reported together
    once the pool has drained.
    """

    def __init__(self, vendor_dir: Union[str, Path] = Constants.VENDOR_DIR,
                 workers: int = Constants.DOWNLOAD_WORKERS,
                 timeout: int = Constants.DOWNLOAD_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 cache_dir: Optional[Union[str, Path]] = None):
        self.vendor_dir = Path(vendor_dir)
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self.workers = max(1, workers)
        self.timeout = timeout
        self.session = session if session is not None else create_session(accept="*/*")

    def download_all(self, packages: List[ResolvedPackage]) -> List[ResolvedPackage]:
        """
        Download and extract every package that is not already in the vendor directory.

        Returns:
            The packages that were fetched in this run

        Raises:
            DownloadError: Listing every package that failed
        """
        self.vendor_dir.mkdir(parents=True, exist_ok=True)

        downloaded: List[ResolvedPackage] = []
        errors: List[str] = []

        logger.info(f"Downloading {len(packages)} packages with {self.workers} workers")

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            future_to_package = {
                executor.submit(self.download_package, package): package
                for package in packages
            }
            for future in as_completed(future_to_package):
                package = future_to_package[future]
                try:
                    if future.result():
                        downloaded.append(package)
                except Exception as e:
                    detail = "; ".join(e.errors) if isinstance(e, DownloadError) else str(e)
                    logger.debug(f"Download of {package.name} failed: {detail}")
                    errors.append(f"failed to download {package.name}: {detail}")

        if errors:
            raise DownloadError(sorted(errors))

        logger.info(f"Downloaded {len(downloaded)} packages, "
                    f"{len(packages) - len(downloaded)} already present")
        return downloaded

    def package_dir(self, package: ResolvedPackage) -> Path:
        return self.vendor_dir / package.name

    def cached_archive(self, package: ResolvedPackage) -> Optional[Path]:
        """Location of the package's archive in the download cache, if caching is on."""
        if self.cache_dir is None:
            return None
        key = hashlib.sha1(package.url.encode("utf-8")).hexdigest()
        return self.cache_dir / "files" / package.name / f"{key}.zip"

    def download_package(self, package: ResolvedPackage) -> bool:
        """Fetch one package archive and unpack it.

        Returns False when the package directory already exists.
        """
        target = self.package_dir(package)
        if target.exists():
            logger.debug(f"{package.name} already present in {target}")
            return False

        if not package.url:
            raise DownloadError([f"no download URL for {package.full_name}"])

        cached = self.cached_archive(package)
        if cached is not None and cached.exists():
            logger.debug(f"Using cached archive {cached} for {package.full_name}")
            self._unpack(cached, target)
            return True

        logger.debug(f"Fetching {package.full_name} from {package.url}")
        if cached is not None:
            cached.parent.mkdir(parents=True, exist_ok=True)
        fd, archive_path = tempfile.mkstemp(prefix="cadenza-", suffix=".zip",
                                            dir=str(cached.parent) if cached is not None else None)
        os.close(fd)

        try:
            sha1 = self._fetch(package.url, archive_path)
            expected = package.dist.shasum
            if expected and package.dist.url == package.url and sha1 != expected:
                raise DownloadError([f"checksum mismatch for {package.full_name}: "
                                     f"expected {expected}, got {sha1}"])
            self._unpack(archive_path, target)
            if cached is not None:
                os.replace(archive_path, cached)
        finally:
            if os.path.exists(archive_path):
                os.remove(archive_path)

        return True

    @staticmethod
    def _unpack(archive_path: Union[str, Path], target: Path) -> None:
        try:
            extract_zip(archive_path, target)
        except (zipfile.BadZipFile, OSError, ValueError):
            shutil.rmtree(target, ignore_errors=True)
            raise

    def _fetch(self, url: str, destination: str) -> str:
        """Stream ``url`` into ``destination`` and return the sha1 of the body."""
        digest = hashlib.sha1()
        with self.session.get(url, stream=True, timeout=self.timeout) as response:
            if response.status_code != 200:
                raise DownloadError([f"HTTP status {response.status_code} for {url}"])
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        digest.update(chunk)
        return digest.hexdigest()

    def close(self):
        self.session.close()


def extract_zip(archive_path: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    Extract a package archive, dropping its top-level directory.

    Registry archives wrap their contents in a single ``vendor-name-ref/``
    directory; entries are written relative to ``destination`` without it.

    Raises:
        ValueError: If an entry would land outside ``destination``
    """
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()

    with zipfile.ZipFile(archive_path) as archive:
        for member in archive.infolist():
            parts = member.filename.split("/")
            if len(parts) > 1:
                parts = parts[1:]
            parts = [p for p in parts if p]
            if not parts:
                continue

            path = destination.joinpath(*parts)
            if root != path.resolve() and root not in path.resolve().parents:
                raise ValueError(f"archive entry escapes target directory: {member.filename}")

            if member.is_dir():
                path.mkdir(parents=True, exist_ok=True)
                continue

            path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as src, open(path, 'wb') as dst:
                shutil.copyfileobj(src, dst)

            mode = (member.external_attr >> 16) & 0o777
            if mode:
                os.chmod(path, mode)
