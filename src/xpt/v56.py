"""
Read the SAS XPORT/XPT file format from SAS Version 5 or 6.

A transport file is a sequence of 80-byte header records describing a
dataset, a directory of fixed-size variable descriptors (namestrs), and
a stream of fixed-width observation records.

    with open('example.xpt', 'rb') as f:
        reader = Reader(f)
        for record in reader:
            print(record['AGE'])
"""

# All "records" are 80 bytes long, padded if necessary.
# Integer data are big-endian, unsigned.
# Floating point data are IBM-style double format.

# Standard Library
import enum
import logging
import struct
from collections import namedtuple
from collections.abc import Iterator, Sequence
from io import BytesIO

# Community Packages
import pandas as pd

# Xpt Modules
import xpt

__all__ = [
    'Reader',
    'load',
    'loads',
    'ibm_to_ieee',
]

LOG = logging.getLogger(__name__)

# ISO-8859-1 maps every byte to one character, so decoded text keeps
# the stored bytes exactly.
TEXT_ENCODING = 'ISO-8859-1'

RECORD_LENGTH = 80
HEADER_RECORDS = 8

# The first real header record holds this symbol somewhere in the line,
# not necessarily at the start, so it is not a ``Marker``.
SAS_SYMBOL = b'SAS'


class Marker(bytes, enum.Enum):
    """
    Fixed text that opens a header record.
    """

    LIBRARY = b'HEADER RECORD*******LIBRARY HEADER RECORD!!!!!!!000000000000000000000000000000'
    MEMBER = b'HEADER RECORD*******MEMBER  HEADER RECORD!!!!!!!'
    DESCRIPTOR = b'HEADER RECORD*******DSCRPTR HEADER RECORD!!!!!!!'
    NAMESTR = b'HEADER RECORD*******NAMESTR HEADER RECORD!!!!!!!'
    OBSERVATION = b'HEADER RECORD*******OBS     HEADER RECORD!!!!!!!'

    def check(self, record, section):
        """
        Verify the record begins with this marker.
        """
        if not record.startswith(self.value):
            LOG.error('Expected %s record, got\n%s', section, record)
            raise xpt.MalformedMarker(section, expected=self.value, got=record)


class Stream:
    """
    Forward-only reader with lookahead.

    Wraps a ``.read()``-supporting file-like object in bytes-mode.  The
    stream never seeks; ``peek`` buffers bytes that ``read`` will return
    later.
    """

    def __init__(self, fp):
        self._fp = fp
        self._buffer = b''
        self.position = 0

    def __repr__(self):
        return f'<{type(self).__name__} position={self.position}>'

    def peek(self, n):
        """
        Get up to ``n`` bytes without consuming them.

        Fewer than ``n`` bytes are returned only at the end of the stream.
        """
        while len(self._buffer) < n:
            chunk = self._fp.read(n - len(self._buffer))
            if not chunk:
                break
            if not isinstance(chunk, (bytes, bytearray)):
                raise TypeError(f'Expected a stream in bytes-mode, got {type(chunk).__name__}')
            self._buffer += chunk
        return self._buffer[:n]

    def read(self, n):
        """
        Consume up to ``n`` bytes.
        """
        data = self.peek(n)
        self._buffer = self._buffer[len(data):]
        self.position += len(data)
        return data


def decode(bytestring, field, encoding=TEXT_ENCODING):
    """
    Decode text from a header, namestr, or observation field.
    """
    try:
        return bytes(bytestring).decode(encoding)
    except UnicodeDecodeError as e:
        raise xpt.FieldFormatError(field, bytes(bytestring), reason=f'not {encoding} text') from e


def parse_digits(bytestring, field):
    """
    Parse a fixed-width, zero-padded decimal field from a header record.
    """
    if not bytestring.isdigit():
        raise xpt.FieldFormatError(field, bytestring)
    return int(bytestring)


class Header(namedtuple(
        'Header',
        'sas_version sas_os created modified dataset_name variable_count variable_record_size',
)):
    """
    Dataset metadata from the header records of a transport file.
    """

    # 1. The first header record:
    #
    #   HEADER RECORD*******LIBRARY HEADER RECORD!!!!!!!
    #   000000000000000000000000000000
    #
    # 2. The first real header record ... as a C structure:
    #
    #   struct REAL_HEADER {
    #      char sas_symbol[2][8];       /* "SAS", twice             */
    #      char saslib[8];              /* "SASLIB"                 */
    #      char sasver[8];              /* version of SAS used      */
    #      char sas_os[8];              /* operating system used    */
    #      char blanks[24];
    #      char sas_create[16];         /* datetime created         */
    #      };
    #
    # 3. Second real header record: the datetime modified.
    #
    # 4. Member header records
    #
    #    HEADER RECORD*******MEMBER  HEADER RECORD!!!!!!!
    #    000000000000000001600000000140
    #    HEADER RECORD*******DSCRPTR HEADER RECORD!!!!!!!
    #    000000000000000000000000000000
    #
    #    The 0140 is the size of each variable descriptor (NAMESTR)
    #    record.  On VAX/VMS the value is 0136.
    #
    # 5. Member header data, the dataset name at bytes 8 to 16, then
    #    the datetime modified again.
    #
    # 6. Namestr header record
    #
    #    HEADER RECORD*******NAMESTR HEADER RECORD!!!!!!!
    #    000000xxxx00000000000000000000
    #
    #    Here xxxx is the number of variables in the data set.

    size = RECORD_LENGTH * HEADER_RECORDS

    @classmethod
    def from_stream(cls, stream, encoding=TEXT_ENCODING):
        """
        Consume the eight header records from a ``Stream``.
        """
        LOG.debug(f'Decode {cls.__name__}')
        available = len(stream.peek(cls.size))
        if available < cls.size:
            raise xpt.InsufficientData('header', available, cls.size)

        # --- line 1 -------------
        Marker.LIBRARY.check(stream.read(RECORD_LENGTH), 'library header')

        # --- line 2 -------------
        line = stream.read(RECORD_LENGTH)
        if SAS_SYMBOL not in line:
            LOG.error('Expected first real header record, got\n%s', line)
            raise xpt.MalformedMarker('first real header', expected=SAS_SYMBOL, got=line)
        sas_version = decode(line[24:32], 'sas_version', encoding).strip()
        sas_os = decode(line[32:40], 'sas_os', encoding).strip()
        created = decode(line[74:], 'created', encoding)

        # --- line 3 -------------
        modified = decode(stream.read(RECORD_LENGTH), 'modified', encoding).strip()

        # --- line 4 -------------
        line = stream.read(RECORD_LENGTH)
        Marker.MEMBER.check(line, 'member header')
        variable_record_size = parse_digits(line[74:78], 'variable_record_size')

        # --- line 5 -------------
        Marker.DESCRIPTOR.check(stream.read(RECORD_LENGTH), 'descriptor header')

        # --- line 6 -------------
        dataset_name = decode(stream.read(RECORD_LENGTH)[8:16], 'dataset_name', encoding).strip()

        # --- line 7 -------------
        modified = decode(stream.read(RECORD_LENGTH)[:17], 'modified', encoding).strip()

        # --- line 8 -------------
        line = stream.read(RECORD_LENGTH)
        Marker.NAMESTR.check(line, 'namestr header')
        variable_count = parse_digits(line[54:58], 'variable_count')

        self = cls(
            sas_version=sas_version,
            sas_os=sas_os,
            created=created,
            modified=modified,
            dataset_name=dataset_name,
            variable_count=variable_count,
            variable_record_size=variable_record_size,
        )
        LOG.debug('%r', self)
        return self


class Variable(namedtuple('Variable', 'name vtype length number position label')):
    """
    Variable metadata from a namestr record.
    """

    # Here is the C structure definition for the namestr record:
    #
    # struct NAMESTR {
    #    short ntype;       /* VARIABLE TYPE: 1=NUMERIC, 2=CHAR       */
    #    short nhfun;       /* HASH OF NNAME (always 0)               */
    #    short nlng;        /* LENGTH OF VARIABLE IN OBSERVATION      */
    #    short nvar0;       /* VARNUM                                 */
    #    char8 nname;       /* NAME OF VARIABLE                       */
    #    char40 nlabel;     /* LABEL OF VARIABLE                      */
    #    ...
    #    long npos;         /* POSITION OF VALUE IN OBSERVATION       */
    #    char rest[52];     /* remaining fields are irrelevant        */
    #    };
    #
    # The position is read from the low two bytes of ``npos``, so the
    # record must be at least 88 bytes long.

    fmt = '>HHHH8s'
    position_fmt = '>H'
    position_offset = 86
    minimum_size = 88

    @property
    def numeric(self):
        return self.vtype == xpt.VariableType.NUMERIC

    @classmethod
    def from_bytes(cls, bytestring, encoding=TEXT_ENCODING):
        """
        Construct a ``Variable`` from a namestr record.
        """
        ntype, _, length, number, name = struct.unpack_from(cls.fmt, bytestring)
        position, = struct.unpack_from(cls.position_fmt, bytestring, cls.position_offset)
        name = decode(name, 'name', encoding).strip()
        return cls(
            name=name,
            vtype=xpt.VariableType.NUMERIC if ntype == 1 else xpt.VariableType.CHARACTER,
            length=length,
            number=number,
            position=position,
            label=decode(bytestring[16:], f'{name} label', encoding),
        )


def padding(variable_count, variable_record_size):
    """
    Count the bytes between the last namestr and the observation header.

    A full 80-byte block is skipped when the namestrs end exactly on a
    record boundary.
    """
    return RECORD_LENGTH - (variable_count * variable_record_size) % RECORD_LENGTH


class Directory(Sequence):
    """
    Variables of a dataset, in the order they were declared.
    """

    def __init__(self, variables=()):
        """
        Initialize from an iterable of ``Variable``.
        """
        self._variables = tuple(variables)
        self.record_length = sum(v.length for v in self._variables)

    def __repr__(self):
        """
        Format for the REPL.
        """
        return f'<{type(self).__name__} {[v.name for v in self]}>'

    def __getitem__(self, index):
        return self._variables[index]

    def __len__(self):
        return len(self._variables)

    def __eq__(self, other):
        if not isinstance(other, Directory):
            return NotImplemented
        return self._variables == other._variables

    def find(self, name):
        """
        Get the first variable with the given name.
        """
        for variable in self._variables:
            if variable.name == name:
                return variable
        raise xpt.UnknownField(name)

    @classmethod
    def from_stream(cls, stream, header, encoding=TEXT_ENCODING):
        """
        Consume the namestrs, padding, and observation header from a ``Stream``.
        """
        LOG.debug(f'Decode {cls.__name__}')
        count = header.variable_count
        size = header.variable_record_size
        if count and size < Variable.minimum_size:
            raise xpt.FieldFormatError(
                'variable_record_size',
                size,
                reason=f'namestrs must be at least {Variable.minimum_size} bytes',
            )

        required = count * size
        available = len(stream.peek(required))
        if available < required:
            raise xpt.InsufficientData('variable directory', available, required)

        self = cls(Variable.from_bytes(stream.read(size), encoding) for _ in range(count))

        n = padding(count, size)
        got = len(stream.read(n))
        if got < n:
            raise xpt.Truncation('variable directory padding', n, got)

        line = stream.read(RECORD_LENGTH)
        if len(line) < RECORD_LENGTH:
            raise xpt.Truncation('observation header', RECORD_LENGTH, len(line))
        Marker.OBSERVATION.check(line, 'observation header')

        LOG.debug(f'Decoded {self} with {self.record_length}-byte records')
        return self


########################################################################
# Observations


def ibm_to_ieee(ibm: bytes) -> float:
    """
    Convert IBM-format floating point (bytes) to IEEE 754 64-bit (float).
    """
    # IBM mainframe:    sign * 0.mantissa * 16 ** (exponent - 64)
    # Python uses IEEE: sign * 1.mantissa * 2 ** (exponent - 1023)

    # Numerics may be stored in 2 to 8 bytes, with the low-order
    # mantissa bytes truncated.  Pad-out to 8 bytes.
    if len(ibm) > 8:
        raise ValueError(f'IBM-format floats are at most 8 bytes, got {len(ibm)}')
    ibm = bytes(ibm).ljust(8, b'\x00')

    # parse the 64 bits of IBM float as one 8-byte unsigned long long
    ulong, = struct.unpack('>Q', ibm)

    # IBM: 1-bit sign, 7-bits exponent, 56-bits mantissa
    sign = ulong & 0x8000000000000000
    exponent = (ulong & 0x7f00000000000000) >> 56
    mantissa = ulong & 0x00ffffffffffffff

    # Any sign and exponent with a zero mantissa is zero.
    if mantissa == 0:
        return -0.0 if sign else 0.0

    # IBM-format exponent is base 16, so the mantissa can have up to 3
    # leading zero-bits in the binary mantissa. IEEE format exponent
    # is base 2, so we don't need any leading zero-bits and will shift
    # accordingly.
    if ulong & 0x0080000000000000:
        shift = 3
    elif ulong & 0x0040000000000000:
        shift = 2
    elif ulong & 0x0020000000000000:
        shift = 1
    else:
        shift = 0
    mantissa >>= shift

    # clear the 1 bit to the left of the binary point
    # this is implicit in IEEE specification
    mantissa &= 0xffefffffffffffff

    # IBM exponent is excess 64, but we subtract 65, because of the
    # implicit 1 left of the radix point for the IEEE mantissa
    exponent -= 65
    # IBM exponent is base 16, IEEE is base 2, so we multiply by 4
    exponent <<= 2
    # IEEE exponent is excess 1023, but we also increment for each
    # right-shift when aligning the mantissa's first 1-bit
    exponent += shift + 1023

    # IEEE: 1-bit sign, 11-bits exponent, 52-bits mantissa
    # We didn't shift the sign bit, so it's already in the right spot
    ieee = sign | (exponent << 52) | mantissa
    return struct.unpack('>d', struct.pack('>Q', ieee))[0]


def field_bytes(record, variable):
    """
    Slice a variable's bytes from an observation record.
    """
    end = variable.position + variable.length
    if end > len(record.raw):
        raise xpt.OutOfRange(variable.name, variable.position, variable.length, len(record.raw))
    return record.raw[variable.position:end]


def field_value(record, variable):
    """
    Decode a variable's value: a float if numeric, otherwise text.

    Character values keep their trailing blanks.
    """
    chunk = field_bytes(record, variable)
    if variable.numeric:
        return ibm_to_ieee(chunk)
    return decode(chunk, variable.name, record.encoding)


def field_text(record, variable):
    """
    Decode a variable's value as text, numbers to 6 decimal places.
    """
    value = field_value(record, variable)
    if variable.numeric:
        return f'{value:.6f}'
    return value


class ObservationRecord:
    """
    One row of a transport file.

    The record borrows the reader's ``Directory`` to look up variables.
    """

    __slots__ = ('raw', 'variables', 'encoding')

    def __init__(self, raw, variables, encoding=TEXT_ENCODING):
        self.raw = raw
        self.variables = variables
        self.encoding = encoding

    def __repr__(self):
        return f'<{type(self).__name__} {self.raw!r}>'

    def __len__(self):
        return len(self.raw)

    def __getitem__(self, name):
        return self.value(name)

    def value(self, name):
        """
        Get the text of a variable by name.
        """
        return field_text(self, self.variables.find(name))

    def values(self):
        """
        Get a tuple of decoded values, in the order variables were declared.
        """
        return tuple(field_value(self, v) for v in self.variables)


class Reader(Iterator):
    """
    Read records from a SAS Transport (XPORT) file.

    The header and variable directory are parsed on construction.  The
    returned object is an iterator; each iteration returns the next
    ``ObservationRecord``.

        with open('example.xpt', 'rb') as f:
            for record in Reader(f):
                process(record)
    """

    # 9. Data records
    #    Data records are streamed in the same way that namestrs are.
    #    There is ASCII blank padding at the end of the last record if
    #    necessary. There is no special trailing record.

    def __init__(self, fp, encoding=TEXT_ENCODING):
        """
        Consume the header and variable directory from ``fp``.
        """
        self._stream = fp if isinstance(fp, Stream) else Stream(fp)
        self.encoding = encoding
        self.header = Header.from_stream(self._stream, encoding)
        self.variables = Directory.from_stream(self._stream, self.header, encoding)
        self.count = 0
        LOG.info(f'Reading dataset {self.header.dataset_name!r} with {self.variables}')

    def __repr__(self):
        return f'<{type(self).__name__} dataset={self.header.dataset_name!r} count={self.count}>'

    @property
    def fields(self):
        return tuple(v.name for v in self.variables)

    @property
    def record_length(self):
        return self.variables.record_length

    def read(self):
        """
        Get the next observation record.

        Raises ``xpt.EndOfStream`` once no more records remain.
        """
        width = self.record_length
        if width == 0:
            raise xpt.EndOfStream()
        chunk = self._stream.read(width)
        if not chunk or self._is_padding(chunk):
            LOG.debug(f'Read {self.count} observations')
            raise xpt.EndOfStream()
        if len(chunk) < width:
            raise xpt.Truncation('observation', width, len(chunk))
        self.count += 1
        return ObservationRecord(chunk, self.variables, self.encoding)

    def __next__(self):
        """
        Get the next item from the iterator.
        """
        try:
            return self.read()
        except xpt.EndOfStream:
            raise StopIteration

    def _is_padding(self, chunk):
        """
        Check for the blanks that fill the last 80-byte record.

        Consumes the remaining padding if found.
        """
        remainder = self.count * self.record_length % RECORD_LENGTH
        if not remainder or chunk.strip(b' '):
            return False
        n = RECORD_LENGTH - remainder
        if len(chunk) > n:
            return False
        # Ask for one byte more than the padding to detect more data.
        rest = self._stream.peek(n - len(chunk) + 1)
        if len(chunk) + len(rest) != n or rest.strip(b' '):
            return False
        self._stream.read(len(rest))
        return True


def load(fp, encoding=TEXT_ENCODING):
    """
    Deserialize a dataset from a SAS Transport v5 (XPT) file.

        >>> with open('example.xpt', 'rb') as f:
        ...     dataset = load(f)

    Numeric columns are floats.  Character columns keep trailing blanks.
    """
    reader = Reader(fp, encoding=encoding)
    rows = [record.values() for record in reader]
    header = reader.header
    df = pd.DataFrame.from_records(rows, columns=list(reader.fields))
    numerics = {v.name: 'float' for v in reader.variables if v.numeric}
    if numerics:
        df = df.astype(numerics)
    dataset = xpt.Dataset(
        df,
        name=header.dataset_name,
        created=header.created,
        modified=header.modified,
        sas_os=header.sas_os,
        sas_version=header.sas_version,
    )
    LOG.info(f'Decoded XPORT dataset {dataset.name!r} with {len(dataset)} observations')
    return dataset


def loads(bytestring, encoding=TEXT_ENCODING):
    """
    Deserialize a dataset from an XPORT-format byte string.

        >>> with open('example.xpt', 'rb') as f:
        ...     bytestring = f.read()
        >>> dataset = loads(bytestring)
    """
    return load(BytesIO(bytestring), encoding=encoding)
