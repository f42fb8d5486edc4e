"""cadenza - a dependency manager for PHP projects built on the Packagist registry."""

__version__ = "0.4.0"
