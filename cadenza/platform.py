"""Classification of platform and virtual package names.

Platform packages describe the runtime a project runs on (the PHP
interpreter, its extensions and system libraries) and virtual packages name a
capability that other packages provide. Neither can be downloaded, so the
resolver must recognise them by name alone.
"""

RUNTIME_NAME = "php"
RUNTIME_PREFIX = "php-"  # php-64bit, php-ipv6, php-zts, ...
EXTENSION_PREFIX = "ext-"
LIBRARY_PREFIX = "lib-"
IMPLEMENTATION_SUFFIX = "-implementation"
API_PACKAGES = frozenset({"composer-plugin-api", "composer-runtime-api"})


def is_platform_package(name: str) -> bool:
    """Return True when ``name`` must never be downloaded.

    The vendor separator check comes first: ``vendor/php-extra`` is a regular
    package even though it contains a platform prefix.
    """
    if name in API_PACKAGES:
        return True

    if "/" in name:
        # psr/log-implementation, php-http/client-implementation
        return name.endswith(IMPLEMENTATION_SUFFIX)

    return (
        name == RUNTIME_NAME
        or name.startswith(RUNTIME_PREFIX)
        or name.startswith(EXTENSION_PREFIX)
        or name.startswith(LIBRARY_PREFIX)
    )


def is_runtime_requirement(name: str) -> bool:
    """Return True for a requirement on the PHP runtime itself."""
    return name == RUNTIME_NAME


def is_extension_requirement(name: str) -> bool:
    """Return True for a requirement on a native PHP extension."""
    return "/" not in name and name.startswith(EXTENSION_PREFIX)
