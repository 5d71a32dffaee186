"""
Read SAS XPORT/XPT-format files.

The decoder lives in ``xpt.v56``.  This module holds what is shared by
its parts: the variable types, the error classes, and the pandas-backed
``Dataset`` that ``xpt.v56.load`` returns.
"""

# Standard Library
import enum
import logging

# Community Packages
import pandas as pd

from .__about__ import __version__  # noqa: F401 module imported but unused

LOG = logging.getLogger(__name__)

__all__ = [
    'Dataset',
    'VariableType',
    'XportError',
    'InsufficientData',
    'MalformedMarker',
    'FieldFormatError',
    'Truncation',
    'UnknownField',
    'OutOfRange',
    'EndOfStream',
]


class VariableType(enum.IntEnum):
    """
    SAS variables can be either Numeric or Character type.
    """
    NUMERIC = 1
    CHARACTER = 2


########################################################################
# Errors


class XportError(Exception):
    """Base class for errors decoding a SAS Transport file."""


class InsufficientData(XportError, ValueError):
    """
    Fewer bytes available than a section of the file requires.
    """

    def __init__(self, section, available, required):
        super().__init__(f'Read {available} out of {required} bytes of {section}')
        self.section = section
        self.available = available
        self.required = required


class MalformedMarker(XportError, ValueError):
    """
    A header record did not carry the expected marker.

    ``got`` holds the record bytes verbatim, not decoded.
    """

    def __init__(self, section, expected, got):
        super().__init__(f'Expected {section} record {expected!r}, got {got!r}')
        self.section = section
        self.expected = expected
        self.got = got


class FieldFormatError(XportError, ValueError):
    """
    A numeric header field could not be parsed.
    """

    def __init__(self, field, got, reason='expected decimal digits'):
        super().__init__(f'Invalid {field} {got!r}, {reason}')
        self.field = field
        self.got = got


class Truncation(XportError, ValueError):
    """
    A record read started but ended before its expected width.
    """

    def __init__(self, section, expected, got):
        super().__init__(f'Incomplete {section}, read {got} out of {expected} bytes')
        self.section = section
        self.expected = expected
        self.got = got


class UnknownField(XportError, LookupError):
    """
    No variable has the requested name.
    """

    def __init__(self, name):
        super().__init__(f'Variable does not exist: {name!r}')
        self.name = name


class OutOfRange(XportError, IndexError):
    """
    A variable's declared position and length exceed the record width.
    """

    def __init__(self, name, position, length, record_length):
        super().__init__(
            f'Variable {name!r} at {position}:{position + length} '
            f'is out of bounds of {record_length}-byte record'
        )
        self.name = name
        self.position = position
        self.length = length
        self.record_length = record_length


class EndOfStream(EOFError):
    """No more observation records."""


########################################################################
# Datasets

# The Pandas documentation suggests avoiding inheritance, but the
# metadata must survive the many Pandas methods that return new
# instances, so we override the constructor and list the attributes in
# ``_metadata`` for ``__finalize__`` to copy.
# https://pandas.pydata.org/pandas-docs/stable/development/extending.html


class Dataset(pd.DataFrame):
    """
    SAS data set.

    ``Dataset`` extends Pandas' ``DataFrame``, adding SAS metadata.
    """

    _metadata = [
        'name',
        'created',
        'modified',
        'sas_os',
        'sas_version',
    ]

    def __init__(
        self,
        data=None,
        index=None,
        columns=None,
        dtype=None,
        copy=None,
        name=None,
        created=None,
        modified=None,
        sas_os=None,
        sas_version=None,
    ):
        """
        Initialize SAS dataset metadata.
        """
        metadata = {
            'name': name,
            'created': created,
            'modified': modified,
            'sas_os': sas_os,
            'sas_version': sas_version,
        }
        super().__init__(data=data, index=index, columns=columns, dtype=dtype, copy=copy)
        for key, value in metadata.items():
            if value is None:
                value = getattr(data, key, None) if isinstance(data, Dataset) else None
            object.__setattr__(self, key, value)
        # Formatting ``self`` here would recurse through ``__repr__``.
        LOG.debug(f'Initialized dataset {self.name!r} with {len(self.columns)} variables')

    def __repr__(self):
        """REPL-format."""
        metadata = {name: getattr(self, name, None) for name in self._metadata}
        metadata = (f'{k}: {v}' for k, v in metadata.items() if v)
        return f'{type(self).__name__}\n{super().__repr__()}\n{", ".join(metadata)}'

    @property
    def _constructor(self):
        """
        Construct an instance with the same dimensions as the original.
        """
        return Dataset
