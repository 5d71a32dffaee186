"""
Project metadata, such as the current version number.
"""

# Single-sourcing the package version from the installed package.  This
# has the caveat that the imported version may be different from the
# installed version in some rare circumstances, such as when current
# working directory is the ``src`` folder and the package install did
# not use the ``-e`` or ``--editable`` flag.
# https://packaging.python.org/guides/single-sourcing-package-version/

# Standard Library
import pathlib
from collections import namedtuple
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    '__version__',
]


class Version(namedtuple('Version', 'major minor patch')):
    """
    Version information.
    """

    @classmethod
    def parse(cls, s):
        return Version(*map(int, s.split('.')[:3]))

    def __str__(self):
        return '.'.join(map(str, self))


project = pathlib.Path(__file__).parent.name
try:
    __version__ = Version.parse(version(project))
except PackageNotFoundError:
    __version__ = None
