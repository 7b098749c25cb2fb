"""SoundSOS Python package: emergency sound detection and contact alerting."""

from importlib.metadata import version, PackageNotFoundError

__all__ = [
    "get_version",
]


def get_version() -> str:
    """Return package version if installed as distribution."""
    try:
        return version("soundsos")
    except PackageNotFoundError:
        return "0.0.0"
