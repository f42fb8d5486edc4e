"""Output formatters for resolved dependency sets."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Collection, Dict, List, Optional
from uuid import uuid4

from packageurl import PackageURL
from cyclonedx.model.bom import Bom
from cyclonedx.model.component import Component, ComponentType, ComponentScope
from cyclonedx.output.json import JsonV1Dot6

from .models import DependencyNode, Manifest, ResolvedPackage
from .platform import is_platform_package

logger = logging.getLogger(__name__)

PURL_TYPE = "composer"


def build_dependency_trees(manifest: Manifest, packages: Collection[ResolvedPackage],
                           include_dev: bool = True) -> List[DependencyNode]:
    """Link resolved packages into one tree per top-level requirement.

    Nodes are shared between parents, so a package required from several
    places is a single node. Platform requirements are left out. A
    requirement that did not resolve to a downloadable package (a virtual
    package) is shown with its constraint and no children.
    """
    by_name = {pkg.name: pkg for pkg in packages}
    nodes: Dict[str, DependencyNode] = {}

    def node_for(name: str, constraint: str) -> DependencyNode:
        if name in nodes:
            return nodes[name]

        pkg = by_name.get(name)
        label = f"{name} ({pkg.version if pkg else constraint})"
        node = DependencyNode(label=label)
        nodes[name] = node

        if pkg:
            for dep_name, dep_constraint in pkg.require.items():
                if not is_platform_package(dep_name):
                    node.add_child(node_for(dep_name, dep_constraint))
        return node

    requirements = dict(manifest.require)
    if include_dev:
        requirements.update(manifest.require_dev)

    roots = []
    for name, constraint in requirements.items():
        if is_platform_package(name):
            continue
        root = node_for(name, constraint)
        root.is_root = True
        roots.append(root)
    return roots


class OutputFormatter:
    """Formatter for various output formats."""

    @staticmethod
    def format_as_list(packages: Collection[ResolvedPackage]) -> str:
        """Format packages as a flat list (one per line)."""
        lines = [f"{pkg.full_name} [dev]" if pkg.dev else pkg.full_name for pkg in packages]
        return '\n'.join(lines) + '\n'

    @staticmethod
    def format_as_tree(
        dependency_trees: List[DependencyNode],
        all_packages: Collection[ResolvedPackage],
        project_name: str = 'project'
    ) -> str:
        """Format as a tree visualization."""
        lines = ["Dependency Tree:", ""]

        project_root = DependencyNode(label=project_name or 'project', is_root=True)
        for tree in dependency_trees:
            project_root.add_child(tree)

        lines.append(project_root.get_tree_representation())

        lines.extend([
            "",
            "Dependency Statistics:",
            f"  Total Packages: {len(all_packages)}",
            f"  Root Packages: {len(dependency_trees)}"
        ])

        return '\n'.join(lines) + '\n'

    @staticmethod
    def format_as_sbom(
        packages: Collection[ResolvedPackage],
        project_name: Optional[str] = None,
        command_line: Optional[str] = None
    ) -> str:
        """Generate a CycloneDX SBOM in JSON format."""
        from . import __version__

        bom = Bom()
        bom.serial_number = uuid4()

        tool_purl_str = f"pkg:pypi/cadenza@{__version__}"
        tool_component = Component(
            name="cadenza",
            version=__version__,
            type=ComponentType.APPLICATION,
            purl=PackageURL.from_string(tool_purl_str),
            bom_ref=tool_purl_str,
        )
        bom.metadata.tools.components.add(tool_component)
        bom.metadata.timestamp = datetime.now(timezone.utc).replace(microsecond=0)

        if project_name:
            bom.metadata.component = Component(
                name=project_name,
                type=ComponentType.APPLICATION,
                bom_ref=f"project:{project_name}",
            )

        for pkg in packages:
            bom.components.add(OutputFormatter._package_to_component(pkg))

        outputter = JsonV1Dot6(bom)
        sbom = json.loads(outputter.output_as_string())

        # Dependencies are added to the JSON directly (easier than using the API)
        purls = {pkg.name: OutputFormatter._build_purl(pkg) for pkg in packages}
        dependencies = []
        for pkg in packages:
            depends_on = sorted(purls[dep] for dep in pkg.require if dep in purls)
            dependencies.append({"ref": purls[pkg.name], "dependsOn": depends_on})
        dependencies.sort(key=lambda d: d['ref'])
        sbom['dependencies'] = dependencies

        sbom['components'] = sorted(sbom.get('components', []), key=lambda c: c.get('purl', ''))

        metadata = sbom.get('metadata', {})
        if command_line:
            metadata.setdefault('properties', []).append({
                'name': 'commandLine',
                'value': command_line
            })

        # UTC with Z suffix, no offset
        if 'timestamp' in metadata:
            match = re.match(r'(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})', metadata['timestamp'])
            if match:
                metadata['timestamp'] = match.group(1) + 'Z'

        logger.debug(f"Generated SBOM with {len(dependencies)} components")
        return json.dumps(sbom, indent=2)

    @staticmethod
    def _package_to_component(pkg: ResolvedPackage) -> Component:
        """Convert a resolved package to a CycloneDX Component."""
        group, _, name = pkg.name.rpartition('/')

        purl_str = OutputFormatter._build_purl(pkg)
        component = Component(
            name=name,
            version=pkg.version,
            type=ComponentType.LIBRARY,
            group=group or None,
            purl=PackageURL.from_string(purl_str),
            bom_ref=purl_str,
        )
        component.scope = ComponentScope.EXCLUDED if pkg.dev else ComponentScope.REQUIRED
        return component

    @staticmethod
    def _build_purl(pkg: ResolvedPackage) -> str:
        """Build a Package URL (purl) string for a package."""
        namespace, _, name = pkg.name.rpartition('/')
        return PackageURL(type=PURL_TYPE, namespace=namespace or None, name=name, version=pkg.version).to_string()
