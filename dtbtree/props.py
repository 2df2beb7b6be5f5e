#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import struct
from enum import Enum

from dtbtree.fmt import DtbFmt
from dtbtree.errors import BadPropValue

class StatusValue(Enum):
    """Enum class for the values a 'status' property may take
    """
    OKAY = "okay"
    DISABLED = "disabled"
    RESERVED = "reserved"
    FAIL = "fail"
    FAIL_SSS = "fail-sss"


def decode_u32( name, raw ):
    if len(raw) < 4:
        raise BadPropValue( f"property '{name}': {len(raw)} bytes is too short for a u32" )

    return struct.unpack_from( '>I', raw )[0]

def decode_u64( name, raw ):
    if len(raw) < 8:
        raise BadPropValue( f"property '{name}': {len(raw)} bytes is too short for a u64" )

    return struct.unpack_from( '>Q', raw )[0]

def decode_string( name, raw ):
    nul = raw.find( b'\x00' )
    if nul < 0:
        raise BadPropValue( f"property '{name}': string is not NUL terminated" )

    try:
        return raw[:nul].decode( 'utf-8' )
    except UnicodeDecodeError as e:
        raise BadPropValue( f"property '{name}': {e}" ) from e

def decode_stringlist( name, raw ):
    """Decode a run of NUL separated strings

    The payload must end with a NUL, so "a\\0b\\0" is ['a','b'] and an
    empty payload is an empty list.
    """
    if not raw:
        return []

    if raw[-1] != 0:
        raise BadPropValue( f"property '{name}': string list is not NUL terminated" )

    try:
        return [ s.decode( 'utf-8' ) for s in raw[:-1].split( b'\x00' ) ]
    except UnicodeDecodeError as e:
        raise BadPropValue( f"property '{name}': {e}" ) from e

def decode_empty( name, raw ):
    if raw:
        raise BadPropValue( f"property '{name}': expected no value, found {len(raw)} bytes" )

    return None

def decode_bytes( name, raw ):
    return bytes( raw )


# coercion strategies, by the type names used in dtb_known_types and
# in the [types] section of a configuration file
dtb_coercions = {
    "u32" : (DtbFmt.UINT32, decode_u32),
    "u64" : (DtbFmt.UINT64, decode_u64),
    "string" : (DtbFmt.STRING, decode_string),
    "stringlist" : (DtbFmt.MULTI_STRING, decode_stringlist),
    "empty" : (DtbFmt.EMPTY, decode_empty),
    "bytes" : (DtbFmt.BYTES, decode_bytes),
    "raw" : (DtbFmt.RAW, decode_bytes),
}

# well known property names. Anything not listed stays raw.
dtb_known_types = {
    "#address-cells" : "u32",
    "#size-cells" : "u32",
    "#interrupt-cells" : "u32",
    "phandle" : "u32",
    "virtual-reg" : "u32",
    "timebase-frequency" : "u32",
    "clock-frequency" : "u32",
    "compatible" : "stringlist",
    "model" : "string",
    "status" : "string",
    "name" : "string",
    "device_type" : "string",
    "dma-coherent" : "empty",
    "local-mac-address" : "bytes",
}

def property_get_known_type( name, known_types = None ):
    """Look up the coercion type name for a property

    Args:
        name (string): the property name
        known_types (dict,optional): extra name -> type mappings that take
                                     precedence over the built in table

    Returns:
        string: a key of dtb_coercions, "raw" if the name is not known
    """
    if known_types and name in known_types:
        return known_types[name]

    return dtb_known_types.get( name, "raw" )

def coerce( name, raw, known_types = None ):
    """Decode a raw property payload according to the property name

    Args:
        name (string): the property name
        raw (bytes): the payload, without alignment padding
        known_types (dict,optional): extra name -> type mappings

    Returns:
        tuple: (DtbFmt, decoded value)
    """
    fmt, decoder = dtb_coercions[property_get_known_type( name, known_types )]

    return fmt, decoder( name, raw )

def check_known_types( known_types ):
    """Raise ValueError if a mapping names a type with no coercion"""
    for pname, tname in (known_types or {}).items():
        if tname not in dtb_coercions:
            raise ValueError( f"unknown type '{tname}' for property '{pname}' "
                              f"(expected one of: {', '.join(dtb_coercions)})" )

def known_types_from_config( config ):
    """Build a name -> type mapping from the [types] section of a config

    Args:
        config (ConfigParser): the loaded configuration

    Returns:
        dict: property name to coercion type name
    """
    if not config.has_section( "types" ):
        return {}

    known_types = { pname: tname.strip().lower() for pname, tname in config.items( "types" ) }
    check_known_types( known_types )

    return known_types

def decode_cells( name, raw, *counts ):
    """Split a cell encoded payload into tuples of cell groups

    Each record is made up of one group per entry in counts, and each
    group is a tuple of that many 32 bit cells. A 'reg' with two address
    cells and one size cell is decoded with counts (2, 1) into:

        [ ((addr_hi, addr_lo), (size,)), ... ]

    Args:
        name (string): the property name (used in errors)
        raw (bytes): the payload
        counts (int): the number of cells in each group of a record

    Returns:
        list: of tuples, one per record
    """
    stride = sum( counts )
    if stride == 0:
        raise BadPropValue( f"property '{name}': zero cells per record" )

    if len(raw) % 4:
        raise BadPropValue( f"property '{name}': {len(raw)} bytes is not a whole number of cells" )

    cells = struct.unpack( f">{len(raw) // 4}I", raw )
    if len(cells) % stride:
        raise BadPropValue( f"property '{name}': {len(cells)} cells do not divide "
                            f"into records of {stride}" )

    records = []
    for i in range( 0, len(cells), stride ):
        group = []
        pos = i
        for c in counts:
            group.append( tuple( cells[pos:pos + c] ) )
            pos += c
        records.append( tuple( group ) )

    return records

def status_from_string( name, value ):
    try:
        return StatusValue( value )
    except ValueError:
        raise BadPropValue( f"property '{name}': unknown status '{value}'" ) from None

def encode_value( name, value ):
    """Turn a python value into a (DtbFmt, value, raw bytes) triple

    This is used when a property is set through the tree API rather than
    decoded from a blob. bytes are passed through the same coercion as
    decoding, so setting raw bytes behaves exactly like reading them.

    Args:
        name (string): the property name
        value: None, bytes, str, list of str, int or StatusValue

    Returns:
        tuple: (DtbFmt, value, raw)
    """
    if value is None:
        return DtbFmt.EMPTY, None, b""

    if isinstance( value, StatusValue ):
        return DtbFmt.STATUS, value, value.value.encode( 'utf-8' ) + b'\x00'

    if isinstance( value, str ):
        return DtbFmt.STRING, value, value.encode( 'utf-8' ) + b'\x00'

    if isinstance( value, list ) and all( isinstance( v, str ) for v in value ):
        raw = b"".join( v.encode( 'utf-8' ) + b'\x00' for v in value )
        return DtbFmt.MULTI_STRING, list(value), raw

    # bool is an int, but a presence marker is what is meant
    if isinstance( value, bool ):
        if not value:
            raise BadPropValue( f"property '{name}': False is not a property value" )
        return DtbFmt.EMPTY, None, b""

    if isinstance( value, int ):
        if value < 0:
            raise BadPropValue( f"property '{name}': negative value {value}" )
        if value < 2**32:
            return DtbFmt.UINT32, value, struct.pack( '>I', value )
        if value < 2**64:
            return DtbFmt.UINT64, value, struct.pack( '>Q', value )
        raise BadPropValue( f"property '{name}': {value} does not fit in 64 bits" )

    if isinstance( value, (bytes, bytearray, memoryview) ):
        raw = bytes( value )
        fmt, decoded = coerce( name, raw )
        return fmt, decoded, raw

    raise BadPropValue( f"property '{name}': cannot store a value of type {type(value).__name__}" )

def format_value( fmt, value ):
    """Render a property value the way it reads in device tree source

    Args:
        fmt (DtbFmt): the value variant
        value: the decoded value

    Returns:
        string
    """
    if fmt == DtbFmt.EMPTY:
        return ""
    if fmt == DtbFmt.STRING:
        return value
    if fmt == DtbFmt.STATUS:
        return value.value
    if fmt == DtbFmt.MULTI_STRING:
        return ", ".join( f"'{s}'" for s in value )
    if fmt in (DtbFmt.UINT32, DtbFmt.UINT64):
        return hex( value )
    if fmt in (DtbFmt.PAIRS, DtbFmt.TRIPLETS):
        return " ".join( f"0x{c:X}" for record in value for group in record for c in group )

    return " ".join( f"{b:02x}" for b in value )
