"""Security advisory lookups against OSV and Packagist."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from .config import Constants
from .constraints import constraint_allows, parse_version
from .errors import ConstraintParseError
from .platform import is_platform_package
from .ssl_config import create_session

logger = logging.getLogger(__name__)

OSV_ECOSYSTEM = "Packagist"
DEFAULT_FIX = "Update to the latest version"
SEVERITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


@dataclass
class Vulnerability:
    """A known vulnerability affecting an installed package version."""

    package: str
    version: str
    cve: str
    severity: str
    description: str
    fix: str
    source: str


def normalize_severity(severity: str) -> str:
    """Map a source's severity label onto CRITICAL/HIGH/MEDIUM/LOW."""
    upper = (severity or "").upper()
    for level in SEVERITIES:
        if level in upper:
            return level
    return "MEDIUM"


def severity_from_title(title: str) -> str:
    """Guess a severity from an advisory title when the source gives none."""
    lower = title.lower()

    for level in SEVERITIES:
        if level.lower() in lower:
            return level

    if any(term in lower for term in ("remote code execution", "rce", "sql injection")):
        return "CRITICAL"
    if any(term in lower for term in ("xss", "csrf", "authentication")):
        return "HIGH"

    return "MEDIUM"


def is_version_affected(version: str, affected_versions: str) -> bool:
    """
    Check a version against a Packagist ``affectedVersions`` expression.

    The expression is a ``|`` separated list of ranges, each range a ``,``
    separated list of comparators (``>=1.0.0,<1.2.3|>=2.0.0,<2.0.5``).
    An empty expression, a version that cannot be parsed, or a comparator
    that cannot be parsed all count as affected.
    """
    if not affected_versions.strip():
        return True
    if parse_version(version) is None:
        return True

    for range_expr in affected_versions.split("|"):
        comparators = [c.strip() for c in range_expr.split(",") if c.strip()]
        if not comparators:
            continue
        if all(_comparator_allows(c, version) for c in comparators):
            return True

    return False


def _comparator_allows(comparator: str, version: str) -> bool:
    if comparator[0].isdigit():
        # A bare version is an exact match, not a caret range.
        comparator = "==" + comparator
    try:
        return constraint_allows(comparator, version)
    except ConstraintParseError:
        logger.debug(f"Unparseable advisory range '{comparator}', assuming affected")
        return True


def _osv_fix(database_specific: Optional[Dict[str, Any]]) -> str:
    if not database_specific:
        return DEFAULT_FIX
    fixed = database_specific.get("fixed_version")
    if fixed:
        return f"Update to version {fixed} or later"
    recommendation = database_specific.get("recommendation")
    if recommendation:
        return recommendation
    return DEFAULT_FIX


def deduplicate(vulnerabilities: List[Vulnerability]) -> List[Vulnerability]:
    """Drop repeats of the same CVE (or the same package and description)."""
    seen = set()
    result = []
    for vulnerability in vulnerabilities:
        key = vulnerability.cve or f"{vulnerability.package}:{vulnerability.description}"
        if key not in seen:
            seen.add(key)
            result.append(vulnerability)
    return result


class SecurityAuditor:
    """Checks installed package versions against public advisory databases."""

    def __init__(self, session: Optional[requests.Session] = None,
                 osv_url: str = Constants.OSV_QUERY_URL,
                 advisories_url: str = Constants.ADVISORIES_URL,
                 timeout: int = Constants.REQUEST_TIMEOUT):
        self.session = session if session is not None else create_session()
        self.osv_url = osv_url
        self.advisories_url = advisories_url
        self.timeout = timeout

    def scan(self, packages: Iterable[Tuple[str, str]]) -> List[Vulnerability]:
        """
        Check (name, version) pairs, skipping platform packages.

        A package whose lookups fail is logged and skipped; the scan carries on.
        """
        vulnerabilities: List[Vulnerability] = []
        for name, version in packages:
            if is_platform_package(name):
                continue
            vulnerabilities.extend(self.check_package(name, version))
        return vulnerabilities

    def check_package(self, name: str, version: str) -> List[Vulnerability]:
        found: List[Vulnerability] = []

        try:
            found.extend(self._check_osv(name, version))
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"OSV lookup failed for {name}: {e}")

        try:
            found.extend(self._check_packagist(name, version))
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Packagist advisory lookup failed for {name}: {e}")

        return deduplicate(found)

    def _check_osv(self, name: str, version: str) -> List[Vulnerability]:
        payload = {
            "package": {"name": name, "ecosystem": OSV_ECOSYSTEM},
            "version": version.lstrip("v"),
        }
        response = self.session.post(self.osv_url, json=payload, timeout=self.timeout)
        if response.status_code != 200:
            logger.debug(f"OSV returned {response.status_code} for {name}")
            return []

        vulnerabilities = []
        for vuln in response.json().get("vulns") or []:
            database_specific = vuln.get("database_specific") or {}

            severity = database_specific.get("severity") or ""
            if not severity and vuln.get("severity"):
                severity = vuln["severity"][0].get("type", "")

            cve = vuln.get("id", "")
            for alias in vuln.get("aliases") or []:
                if alias.startswith("CVE-"):
                    cve = alias
                    break

            vulnerabilities.append(Vulnerability(
                package=name,
                version=version,
                cve=cve,
                severity=normalize_severity(severity),
                description=vuln.get("summary") or vuln.get("details", ""),
                fix=_osv_fix(database_specific),
                source="OSV",
            ))

        return vulnerabilities

    def _check_packagist(self, name: str, version: str) -> List[Vulnerability]:
        response = self.session.get(self.advisories_url, params={"packages[]": name}, timeout=self.timeout)
        if response.status_code != 200:
            logger.debug(f"Packagist advisories returned {response.status_code} for {name}")
            return []

        payload = response.json()
        advisories = payload.get("advisories", payload) if isinstance(payload, dict) else {}

        vulnerabilities = []
        for package_advisories in advisories.values():
            for advisory in package_advisories or []:
                if not is_version_affected(version, advisory.get("affectedVersions") or ""):
                    continue
                title = advisory.get("title", "")
                link = advisory.get("link", "")
                vulnerabilities.append(Vulnerability(
                    package=name,
                    version=version,
                    cve=advisory.get("cve") or "",
                    severity=normalize_severity(advisory["severity"]) if advisory.get("severity")
                    else severity_from_title(title),
                    description=title,
                    fix=f"See: {link}" if link else DEFAULT_FIX,
                    source="Packagist",
                ))

        return vulnerabilities

    def close(self):
        self.session.close()
