# src/h3stack/__init__.py
try:
    from .h3stack_version import __version__
except ImportError:
    try:
        from importlib.metadata import version, PackageNotFoundError
        __version__ = version("h3stack")
    except (ImportError, PackageNotFoundError):
        __version__ = "0.0.0"

__all__ = ["__version__"]
