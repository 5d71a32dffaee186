"""
Shared test fixtures.
"""

# Standard Library
import struct

# Community Packages
import pytest

OBSERVATION_HEADER = b'HEADER RECORD*******OBS     HEADER RECORD!!!!!!!' + b'0' * 30 + b'  '


@pytest.fixture(scope='session')
def header_bytestring():
    """
    Header records of a 4-variable dataset named ECON.
    """
    return b'''\
HEADER RECORD*******LIBRARY HEADER RECORD!!!!!!!000000000000000000000000000000  \
SAS     SAS     SASLIB  9.3     W32_7PRO                        13NOV15:10:35:08\
13NOV15:10:35:08                                                                \
HEADER RECORD*******MEMBER  HEADER RECORD!!!!!!!000000000000000001600000000140  \
HEADER RECORD*******DSCRPTR HEADER RECORD!!!!!!!000000000000000000000000000000  \
SAS     ECON    SASDATA 9.3     W32_7PRO                        13NOV15:10:35:08\
13NOV15:10:35:08                Blank-padded dataset label                      \
HEADER RECORD*******NAMESTR HEADER RECORD!!!!!!!000000000400000000000000000000  \
'''


@pytest.fixture(scope='session')
def namestrs_bytestring():
    """
    Four 140-byte namestrs: two character and two numeric variables.
    """
    return b'''\
\x00\x02\x00\x00\x00\x08\x00\x01VIT_STATVital status                            \
$       \x00\x05\x00\x00\x00\x00\x00\x00        \x00\x00\x00\x00\x00\x00\x00\x00\
\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\
\x00\x02\x00\x00\x00\x08\x00\x02ECON    Economic status                         \
$CHAR   \x00\x04\x00\x00\x00\x01\x00\x00        \x00\x00\x00\x00\x00\x00\x00\x08\
\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\
\x00\x01\x00\x00\x00\x08\x00\x03COUNT   Count                                   \
COMMA   \x00\x08\x00\x00\x00\x00\x00\x00        \x00\x00\x00\x00\x00\x00\x00\x10\
\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\
\x00\x01\x00\x00\x00\x08\x00\x04TEMP    Temperature                             \
        \x00\x08\x00\x01\x00\x00\x00\x00        \x00\x00\x00\x00\x00\x00\x00\x18\
\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\
'''


@pytest.fixture(scope='session')
def namestr_bytestring(namestrs_bytestring):
    """
    The first namestr, for the character variable VIT_STAT.
    """
    return namestrs_bytestring[:140]


@pytest.fixture(scope='session')
def observations_bytestring():
    """
    Six 32-byte observations, then blank padding to an 80-byte boundary.
    """
    return b'''\
ALIVE   POOR    CL\x00\x00\x00\x00\x00\x00Bb\x99\x99\x99\x99\x99\x98\
ALIVE   NOT     Cn\x10\x00\x00\x00\x00\x00B_fffffh\
ALIVE   UNK     C\x9dP\x00\x00\x00\x00\x00BV\xb333334\
DEAD    POOR    B\xfe\x00\x00\x00\x00\x00\x00B]fffffh\
DEAD    NOT     B<\x00\x00\x00\x00\x00\x00Bg\x80\x00\x00\x00\x00\x00\
DEAD    UNK     B\x89\x00\x00\x00\x00\x00\x00B8\xb333334\
''' + b' ' * 48


@pytest.fixture(scope='session')
def library_bytestring(
    header_bytestring,
    namestrs_bytestring,
    observations_bytestring,
):
    """
    A complete transport file.

    The 4 namestrs fill exactly 7 records, so a full blank record
    separates them from the observation header.
    """
    return b''.join([
        header_bytestring,
        namestrs_bytestring,
        b' ' * 80,
        OBSERVATION_HEADER,
        observations_bytestring,
    ])


@pytest.fixture(scope='session')
def make_header():
    """
    Factory for the eight header records.
    """

    def make(name=b'AE', variable_count=12, variable_record_size=140):
        modified = b' 21JAN08:13:32:41'.ljust(80)
        records = [
            b'HEADER RECORD*******LIBRARY HEADER RECORD!!!!!!!' + b'0' * 30 + b'  ',
            b'SAS'.ljust(80),
            modified,
            b'HEADER RECORD*******MEMBER  HEADER RECORD!!!!!!!'
            + b'0' * 17 + b'16' + b'0' * 7 + b'%04d' % variable_record_size + b'  ',
            b'HEADER RECORD*******DSCRPTR HEADER RECORD!!!!!!!' + b'0' * 30 + b'  ',
            (b' ' * 8 + name).ljust(80),
            modified,
            b'HEADER RECORD*******NAMESTR HEADER RECORD!!!!!!!'
            + b'000000' + b'%04d' % variable_count + b'0' * 20 + b'  ',
        ]
        assert all(len(r) == 80 for r in records)
        return b''.join(records)

    return make


@pytest.fixture(scope='session')
def make_namestr():
    """
    Factory for 140-byte namestrs.
    """
    # ntype, nhfun, nlng, nvar0, nname, nlabel, nform, nfl, nfd, nfj,
    # nfill, niform, nifl, nifd, npos, rest
    fmt = '>hhhh8s40s8shhh2s8shhl52s'

    def make(name, vtype=1, length=8, number=1, position=0, label=b''):
        return struct.pack(
            fmt,
            vtype,
            0,
            length,
            number,
            name.ljust(8),
            label.ljust(40),
            b' ' * 8,
            0,
            0,
            0,
            b'',
            b' ' * 8,
            0,
            0,
            position,
            b'',
        )

    return make


@pytest.fixture(scope='session')
def make_xpt(make_header, make_namestr):
    """
    Factory for a complete transport file.

    Each variable is a mapping of ``make_namestr`` keyword arguments.
    """

    def make(variables, observations=b'', name=b'AE'):
        namestrs = b''.join(make_namestr(**v) for v in variables)
        padding = 80 - len(namestrs) % 80
        return b''.join([
            make_header(name=name, variable_count=len(variables)),
            namestrs,
            b' ' * padding,
            OBSERVATION_HEADER,
            observations,
        ])

    return make
