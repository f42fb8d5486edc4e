"""Main CLI entry point for cadenza."""

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import __version__
from .auditor import SecurityAuditor
from .commands.install import install_project, vendor_path
from .commands.report import (
    print_audit_report,
    print_conflicts,
    print_dependency_chain,
    print_search_results,
    show_packages,
)
from .commands.validate import validate_manifest_file
from .config import Constants, ExitCodes, Settings
from .constraints import normalize_version, parse_version
from .errors import CadenzaError, ManifestError
from .formatters import OutputFormatter, build_dependency_trees
from .lockfile import is_lock_fresh, load_lock
from .manifest import default_manifest, load_manifest, normalize_package_name, write_manifest
from .models import Manifest, ResolvedPackage
from .registry import PackagistClient
from .resolver import DependencyResolver
from .scripts import ScriptRunner

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=Constants.LOG_FORMAT
    )


def _project_dir(args) -> Path:
    return Path(getattr(args, 'working_dir', None) or '.')


def _settings(args) -> Settings:
    settings = Settings.from_env()
    workers = getattr(args, 'workers', None)
    if workers:
        settings.workers = max(1, workers)
    return settings


def _load(args) -> Tuple[Path, Settings, Manifest]:
    setup_logging(args.verbose, args.loglevel)
    project_dir = _project_dir(args)
    settings = _settings(args)
    manifest = load_manifest(project_dir / Constants.MANIFEST_FILE)
    return project_dir, settings, manifest


def _current_packages(project_dir: Path, manifest: Manifest, client: PackagistClient) -> List[ResolvedPackage]:
    """Packages from a fresh lock file, or resolved from scratch when there is none."""
    resolver = DependencyResolver(client)
    lock_path = project_dir / Constants.LOCK_FILE
    if lock_path.exists():
        lock = load_lock(lock_path)
        if is_lock_fresh(lock, manifest):
            return resolver.resolve_from_lock(lock)
        logger.warning(f"{Constants.LOCK_FILE} is out of date, resolving dependencies again")

    print("Resolving dependencies (this may take a moment)...", file=sys.stderr)
    return resolver.resolve(manifest)


def default_constraint(version: str) -> str:
    """Constraint written by ``require`` when none is given: a caret on the latest release."""
    if parse_version(version) is None:
        return version
    return f"^{normalize_version(version)}"


def parse_requirement(arg: str) -> Tuple[str, Optional[str]]:
    """Split ``vendor/name:constraint`` (or ``vendor/name constraint``) into its parts."""
    for separator in (':', '=', ' '):
        if separator in arg:
            name, constraint = arg.split(separator, 1)
            return normalize_package_name(name), constraint.strip() or None
    return normalize_package_name(arg), None


def handle_install(args):
    """Handle the 'install' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    install_project(_project_dir(args), _settings(args), dev=not args.no_dev, run_scripts=not args.no_scripts)
    return ExitCodes.SUCCESS.value


def handle_update(args):
    """Handle the 'update' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    if args.packages:
        # Resolution is all-or-nothing; named packages are re-resolved with everything else.
        print(f"Updating: {', '.join(args.packages)}")
    else:
        print("Updating all packages")
    install_project(_project_dir(args), _settings(args), update=True,
                    dev=not args.no_dev, run_scripts=not args.no_scripts)
    return ExitCodes.SUCCESS.value


def handle_require(args):
    """Handle the 'require' subcommand."""
    project_dir, settings, manifest = _load(args)
    target, other = (manifest.require_dev, manifest.require) if args.dev else (manifest.require, manifest.require_dev)

    with PackagistClient(settings.registry_url) as client:
        for arg in args.packages:
            name, constraint = parse_requirement(arg)
            if constraint is None:
                print(f"Fetching {name}...")
                info = client.get_package(name)
                if not info.latest_stable:
                    raise CadenzaError(f"no installable version found for {name}")
                constraint = default_constraint(info.latest_stable)

            target[name] = constraint
            other.pop(name, None)
            print(f"✓ Added {name}: {constraint}")

        write_manifest(project_dir / Constants.MANIFEST_FILE, manifest)

        if args.no_update:
            return ExitCodes.SUCCESS.value

        install_project(project_dir, settings, update=True, client=client)
    return ExitCodes.SUCCESS.value


def handle_remove(args):
    """Handle the 'remove' subcommand."""
    project_dir, _, manifest = _load(args)

    for arg in args.packages:
        name = normalize_package_name(arg)
        found = manifest.require.pop(name, None) is not None
        found = manifest.require_dev.pop(name, None) is not None or found
        if found:
            print(f"✓ Removed {name}")
        else:
            print(f"⚠ {name} is not required by this project")

    write_manifest(project_dir / Constants.MANIFEST_FILE, manifest)
    return ExitCodes.SUCCESS.value


def handle_show(args):
    """Handle the 'show' subcommand."""
    project_dir, _, manifest = _load(args)
    lock_path = project_dir / Constants.LOCK_FILE
    lock = load_lock(lock_path) if lock_path.exists() else None
    show_packages(manifest, lock)
    return ExitCodes.SUCCESS.value


def handle_tree(args):
    """Handle the 'tree' (alias 'map') subcommand."""
    project_dir, settings, manifest = _load(args)
    command_line = ' '.join(sys.argv[1:])

    with PackagistClient(settings.registry_url) as client:
        packages = _current_packages(project_dir, manifest, client)

    if args.no_dev:
        packages = [pkg for pkg in packages if not pkg.dev]

    project_name = manifest.name or 'project'
    if args.output_format == 'list':
        output = OutputFormatter.format_as_list(packages)
    elif args.output_format == 'sbom':
        output = OutputFormatter.format_as_sbom(packages, project_name, command_line)
    else:
        trees = build_dependency_trees(manifest, packages, include_dev=not args.no_dev)
        output = OutputFormatter.format_as_tree(trees, packages, project_name)

    if args.output == '-':
        print(output, end='')
    else:
        with open(args.output, 'w') as f:
            f.write(output)
        logger.info(f"Output written to: {args.output}")
        print(f"Output written to: {args.output}")
    return ExitCodes.SUCCESS.value


def handle_why(args):
    """Handle the 'why' subcommand."""
    _, settings, manifest = _load(args)
    name = normalize_package_name(args.package)

    with DependencyResolver(PackagistClient(settings.registry_url)) as resolver:
        tree = resolver.build_dependency_tree(manifest, name)

    print_dependency_chain(name, tree)
    return ExitCodes.SUCCESS.value


def handle_why_not(args):
    """Handle the 'why-not' subcommand."""
    _, settings, manifest = _load(args)
    name = normalize_package_name(args.package)

    with DependencyResolver(PackagistClient(settings.registry_url)) as resolver:
        advisories = resolver.check_conflicts(manifest, name, args.version)

    print_conflicts(name, args.version, advisories)
    return ExitCodes.SUCCESS.value


def handle_audit(args):
    """Handle the 'audit' subcommand."""
    project_dir, settings, manifest = _load(args)

    with PackagistClient(settings.registry_url) as client:
        packages = _current_packages(project_dir, manifest, client)

    if args.no_dev:
        packages = [pkg for pkg in packages if not pkg.dev]

    auditor = SecurityAuditor()
    try:
        vulnerabilities = auditor.scan((pkg.name, pkg.version) for pkg in packages)
    finally:
        auditor.close()

    print_audit_report(vulnerabilities)
    return ExitCodes.FAILURE.value if vulnerabilities else ExitCodes.SUCCESS.value


def handle_validate(args):
    """Handle the 'validate' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    manifest_path = Path(args.file) if args.file else _project_dir(args) / Constants.MANIFEST_FILE
    valid = validate_manifest_file(manifest_path, strict=args.strict)
    return ExitCodes.SUCCESS.value if valid else ExitCodes.FAILURE.value


def handle_init(args):
    """Handle the 'init' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    manifest_path = _project_dir(args) / Constants.MANIFEST_FILE
    if manifest_path.exists() and not args.force:
        raise ManifestError(f"{manifest_path} already exists (use --force to overwrite)")

    manifest = default_manifest()
    if args.name:
        manifest.name = normalize_package_name(args.name)
    if args.description:
        manifest.description = args.description

    write_manifest(manifest_path, manifest)
    print(f"✓ Created {manifest_path}")
    return ExitCodes.SUCCESS.value


def handle_run_script(args):
    """Handle the 'run-script' subcommand."""
    project_dir, settings, manifest = _load(args)
    vendor_dir = vendor_path(project_dir.resolve(), settings, manifest)

    if not ScriptRunner(project_dir, vendor_dir=str(vendor_dir)).run(args.script, manifest):
        print(f"Script '{args.script}' is not defined in {Constants.MANIFEST_FILE}", file=sys.stderr)
        return ExitCodes.FAILURE.value
    return ExitCodes.SUCCESS.value


def handle_search(args):
    """Handle the 'search' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    settings = _settings(args)
    with PackagistClient(settings.registry_url) as client:
        results = client.search_packages(' '.join(args.query))
    print_search_results(results)
    return ExitCodes.SUCCESS.value


def handle_cache_clear(args):
    """Handle the 'cache clear' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    cache_dir = _project_dir(args) / _settings(args).cache_dir
    if cache_dir.exists():
        shutil.rmtree(cache_dir)
        logger.info(f"Removed cache directory: {cache_dir}")
    print("✓ Cache cleared")
    return ExitCodes.SUCCESS.value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cadenza',
        description='A fast dependency manager for PHP projects'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('-v', '--verbose', action='store_true', help='Verbose logging')
    common.add_argument('--loglevel', choices=['TRACE', 'DEBUG', 'INFO', 'WARN', 'ERROR'],
                        help='Set log level')
    common.add_argument('-d', '--working-dir', dest='working_dir', default=None,
                        help='Project directory (default: current directory)')

    subparsers = parser.add_subparsers(dest='command', help='Subcommands')

    install_parser = subparsers.add_parser('install', parents=[common],
                                           help='Install dependencies from composer.lock or composer.json')
    install_parser.add_argument('--no-dev', action='store_true', help='Skip require-dev packages')
    install_parser.add_argument('--no-scripts', action='store_true', help='Do not run post-install scripts')
    install_parser.add_argument('--workers', type=int, help=f'Parallel downloads (default: {Constants.DOWNLOAD_WORKERS})')
    install_parser.set_defaults(func=handle_install)

    update_parser = subparsers.add_parser('update', parents=[common],
                                          help='Resolve dependencies again, replace changed packages in vendor and rewrite composer.lock')
    update_parser.add_argument('packages', nargs='*', help='Packages to update (default: all)')
    update_parser.add_argument('--no-dev', action='store_true', help='Skip require-dev packages')
    update_parser.add_argument('--no-scripts', action='store_true', help='Do not run post-update scripts')
    update_parser.add_argument('--workers', type=int, help='Parallel downloads')
    update_parser.set_defaults(func=handle_update)

    require_parser = subparsers.add_parser('require', parents=[common], help='Add packages to composer.json')
    require_parser.add_argument('packages', nargs='+', help='vendor/package[:constraint]')
    require_parser.add_argument('--dev', action='store_true', help='Add to require-dev')
    require_parser.add_argument('--no-update', action='store_true', help='Only edit composer.json')
    require_parser.set_defaults(func=handle_require)

    remove_parser = subparsers.add_parser('remove', parents=[common], help='Remove packages from composer.json')
    remove_parser.add_argument('packages', nargs='+', help='vendor/package')
    remove_parser.set_defaults(func=handle_remove)

    show_parser = subparsers.add_parser('show', parents=[common], help='List required packages')
    show_parser.set_defaults(func=handle_show)

    tree_parser = subparsers.add_parser('tree', aliases=['map'], parents=[common],
                                        help='Display the resolved dependency graph')
    tree_parser.add_argument('--format', dest='output_format', default='tree',
                             choices=['tree', 'list', 'sbom'],
                             help='Output format (tree, list, sbom). Default: tree')
    tree_parser.add_argument('--output', '-o', default='-', help='Output file (default: stdout)')
    tree_parser.add_argument('--no-dev', action='store_true', help='Leave out require-dev packages')
    tree_parser.set_defaults(func=handle_tree)

    why_parser = subparsers.add_parser('why', parents=[common], help='Show why a package is installed')
    why_parser.add_argument('package', help='vendor/package')
    why_parser.set_defaults(func=handle_why)

    why_not_parser = subparsers.add_parser('why-not', parents=[common],
                                           help='Show what may prevent installing a package version')
    why_not_parser.add_argument('package', help='vendor/package')
    why_not_parser.add_argument('version', help='Version to check')
    why_not_parser.set_defaults(func=handle_why_not)

    audit_parser = subparsers.add_parser('audit', parents=[common], help='Check installed packages for advisories')
    audit_parser.add_argument('--no-dev', action='store_true', help='Skip require-dev packages')
    audit_parser.set_defaults(func=handle_audit)

    validate_parser = subparsers.add_parser('validate', parents=[common], help='Validate composer.json')
    validate_parser.add_argument('file', nargs='?', help='Manifest to validate (default: ./composer.json)')
    validate_parser.add_argument('--strict', action='store_true', help='Treat warnings as errors')
    validate_parser.set_defaults(func=handle_validate)

    init_parser = subparsers.add_parser('init', parents=[common], help='Create a composer.json')
    init_parser.add_argument('--name', help='Package name (vendor/project)')
    init_parser.add_argument('--description', help='Project description')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing composer.json')
    init_parser.set_defaults(func=handle_init)

    run_parser = subparsers.add_parser('run-script', aliases=['run'], parents=[common],
                                       help='Run a script defined in composer.json')
    run_parser.add_argument('script', help='Script name')
    run_parser.set_defaults(func=handle_run_script)

    search_parser = subparsers.add_parser('search', parents=[common], help='Search the package registry')
    search_parser.add_argument('query', nargs='+', help='Search terms')
    search_parser.set_defaults(func=handle_search)

    cache_parser = subparsers.add_parser('cache', help='Manage the download cache')
    cache_subparsers = cache_parser.add_subparsers(dest='cache_command')
    clear_parser = cache_subparsers.add_parser('clear', parents=[common], help='Delete cached archives')
    clear_parser.set_defaults(func=handle_cache_clear)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command or not hasattr(args, 'func'):
        parser.print_help()
        return ExitCodes.FAILURE.value

    try:
        return args.func(args)
    except CadenzaError as e:
        logger.debug(f"Command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return ExitCodes.FAILURE.value
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return ExitCodes.FAILURE.value


if __name__ == '__main__':
    sys.exit(main())
