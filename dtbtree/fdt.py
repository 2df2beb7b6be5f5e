#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import struct
from collections import namedtuple
from enum import Enum

from dtbtree.errors import BadMagic, BadVersion, TruncatedInput, NotAToken, \
                           BadToken, BadStringsBlockOffset, BadPropValue
from dtbtree.tree import DtbTree, DtbProp
from dtbtree.props import check_known_types
import dtbtree.log

# FDT header magic number
FDT_MAGIC = 0xd00dfeed

# the only structure version that is decoded
FDT_VERSION = 17

# ten big endian 32 bit words
FDT_HEADER_SIZE = 40

# property names and payloads in the structure block are padded to this
FDT_TAGSIZE = 4

class FdtToken(Enum):
    """Enum class for the structure block control tokens
    """
    BEGIN_NODE = 0x00000001
    END_NODE = 0x00000002
    PROP = 0x00000003
    NOP = 0x00000004
    END = 0x00000009


class FdtCursor:
    """A bounds checked read position over an immutable byte buffer

    Every read either returns the requested bytes and advances, or
    raises TruncatedInput and leaves the position untouched.

    Attributes:
       - data: the buffer (bytes)
       - offset: the current read position
    """
    def __init__( self, data, offset = 0 ):
        self.data = bytes( data )
        self.offset = offset

    def remaining( self ):
        return len( self.data ) - self.offset

    def take( self, length, what = "data" ):
        if length > self.remaining():
            raise TruncatedInput( f"{what}: need {length} bytes at offset {self.offset:#x}, "
                                  f"{self.remaining()} remain" )

        out = self.data[self.offset:self.offset + length]
        self.offset += length

        return out

    def take_be_u32( self, what = "u32" ):
        return struct.unpack( '>I', self.take( 4, what ) )[0]

    def take_be_u64( self, what = "u64" ):
        return struct.unpack( '>Q', self.take( 8, what ) )[0]

    def peek_be_u32( self ):
        if self.remaining() < 4:
            return None

        return struct.unpack_from( '>I', self.data, self.offset )[0]

    def take_aligned( self, length, align = FDT_TAGSIZE, what = "data" ):
        """Take length bytes plus the padding up to the next multiple of align

        The padding is consumed but not returned.
        """
        padded = length + (-length % align)
        if padded > self.remaining():
            raise TruncatedInput( f"{what}: need {padded} bytes at offset {self.offset:#x}, "
                                  f"{self.remaining()} remain" )

        return self.take( padded, what )[:length]

    def take_cstring_aligned( self, align = FDT_TAGSIZE, what = "string" ):
        """Take a NUL terminated UTF-8 string, padded to align bytes

        Returns:
           string: without the terminating NUL
        """
        nul = self.data.find( b'\x00', self.offset )
        if nul < 0:
            raise TruncatedInput( f"{what}: no NUL terminator after offset {self.offset:#x}" )

        raw = self.take_aligned( nul - self.offset + 1, align, what )
        try:
            return raw[:-1].decode( 'utf-8' )
        except UnicodeDecodeError as e:
            raise BadPropValue( f"{what}: {e}" ) from e


FDT_HEADER_FIELDS = ( "magic", "totalsize", "off_dt_struct", "off_dt_strings",
                      "off_mem_rsvmap", "version", "last_comp_version",
                      "boot_cpuid_phys", "size_dt_strings", "size_dt_struct" )

class FdtHeader(namedtuple( "FdtHeader", FDT_HEADER_FIELDS )):
    """The fixed header at the start of a device tree blob

    Attributes:
       - magic: shall be 0xd00dfeed
       - totalsize: total size in bytes of the blob
       - off_dt_struct: offset of the structure block
       - off_dt_strings: offset of the strings block
       - off_mem_rsvmap: offset of the memory reservation block
       - version: the structure version (17)
       - last_comp_version: lowest version this blob is compatible with
       - boot_cpuid_phys: physical id of the boot cpu
       - size_dt_strings: length in bytes of the strings block
       - size_dt_struct: length in bytes of the structure block
    """
    __slots__ = ()

    @classmethod
    def from_cursor( cls, cursor ):
        """Read and validate a header, advancing the cursor past it

        Args:
           cursor (FdtCursor): positioned at the start of the blob

        Returns:
           FdtHeader
        """
        if cursor.remaining() < FDT_HEADER_SIZE:
            raise TruncatedInput( f"header: need {FDT_HEADER_SIZE} bytes, "
                                  f"{cursor.remaining()} available" )

        header = cls( *struct.unpack( '>10I', cursor.take( FDT_HEADER_SIZE, "header" ) ) )
        header.check()

        dtbtree.log._debug( f"valid header: version {header.version}, "
                            f"struct {header.size_dt_struct} bytes, "
                            f"strings {header.size_dt_strings} bytes" )

        return header

    def magic_check( self ):
        if self.magic != FDT_MAGIC:
            raise BadMagic( self.magic )

    def version_check( self ):
        if self.version != FDT_VERSION:
            raise BadVersion( self.version )

    def check( self ):
        self.magic_check()
        self.version_check()


class FdtReserveEntry(namedtuple( "FdtReserveEntry", "address size" )):
    """One (address, size) record of the memory reservation block"""
    __slots__ = ()

    @classmethod
    def from_cursor( cls, cursor ):
        address = cursor.take_be_u64( "memory reservation address" )
        size = cursor.take_be_u64( "memory reservation size" )

        return cls( address, size )

    def end_of_list( self ):
        return self.address == 0 and self.size == 0


def read_reservations( cursor ):
    """Read memory reservation records up to and including the {0,0} sentinel

    Args:
       cursor (FdtCursor): positioned just after the header

    Returns:
       list: of FdtReserveEntry, without the sentinel
    """
    entries = []
    while True:
        entry = FdtReserveEntry.from_cursor( cursor )
        if entry.end_of_list():
            break
        entries.append( entry )

    dtbtree.log._debug( f"{len(entries)} memory reservation entries" )

    return entries


class FdtPropDescribe(namedtuple( "FdtPropDescribe", "len name_off" )):
    """The (len, nameoff) descriptor that follows a PROP token"""
    __slots__ = ()

    @classmethod
    def from_cursor( cls, cursor ):
        length = cursor.take_be_u32( "property length" )
        name_off = cursor.take_be_u32( "property name offset" )

        return cls( length, name_off )


class FdtStringsBlock:
    """The strings block: NUL terminated names, referenced by offset"""
    def __init__( self, data ):
        self.data = bytes( data )

    def __len__( self ):
        return len( self.data )

    def find( self, offset ):
        """Get the string starting at offset

        The offset is not checked against string boundaries: an offset
        into the middle of a name returns the rest of that name.

        Args:
           offset (int): byte offset into the block

        Returns:
           string
        """
        if offset >= len( self.data ):
            raise BadStringsBlockOffset( f"offset {offset:#x} is outside the strings "
                                         f"block ({len(self.data)} bytes)" )

        nul = self.data.find( b'\x00', offset )
        if nul < 0:
            raise BadStringsBlockOffset( f"string at offset {offset:#x} is not NUL terminated" )

        try:
            return self.data[offset:nul].decode( 'utf-8' )
        except UnicodeDecodeError as e:
            raise BadStringsBlockOffset( f"string at offset {offset:#x}: {e}" ) from e


class FdtStructBlock:
    """The structure block: the token stream of nodes and properties"""
    def __init__( self, data ):
        self.data = bytes( data )

    def __len__( self ):
        return len( self.data )

    def scanner( self ):
        return FdtTokenScanner( self )


class FdtTokenScanner:
    """Classify the words of a structure block as tokens

    next_token() only ever consumes the token word itself. Payloads are
    read by the caller through the cursor, since only the caller knows
    their shape.

    Attributes:
       - cursor: FdtCursor over the structure block
    """
    def __init__( self, block ):
        self.cursor = FdtCursor( block.data )

    def next_token( self ):
        """Read the next token

        Returns:
           FdtToken, or None if the next word is not a token (nothing is consumed)
        """
        code = self.cursor.peek_be_u32()
        if code is None:
            raise NotAToken( f"expected a token at offset {self.cursor.offset:#x}, "
                             f"{self.cursor.remaining()} bytes remain" )

        try:
            token = FdtToken( code )
        except ValueError:
            return None

        self.cursor.offset += 4

        return token


class FdtTreeBuilder:
    """Build a DtbTree from the structure and strings blocks

    The builder is a loop over tokens with a 'current node' and a
    nesting depth; there is no recursion. Decoding ends when the root
    node is closed or an END token is seen at depth zero.

    Attributes:
       - structure_block: FdtStructBlock
       - strings_block: FdtStringsBlock
       - known_types: extra property name -> coercion type mappings
    """
    def __init__( self, structure_block, strings_block, known_types = None ):
        self.structure_block = structure_block
        self.strings_block = strings_block
        self.known_types = known_types

    def build( self ):
        tree = DtbTree()
        scanner = self.structure_block.scanner()
        cursor = scanner.cursor

        current = tree.root().number
        depth = 0

        while True:
            offset = cursor.offset
            token = scanner.next_token()

            if token is None:
                raise BadToken( f"unrecognized token {cursor.peek_be_u32():#010x} at offset {offset:#x}" )

            if token == FdtToken.BEGIN_NODE:
                name = cursor.take_cstring_aligned( FDT_TAGSIZE, "node name" )
                if depth == 0:
                    if name not in ( "", "/" ):
                        raise BadToken( f"outermost node at offset {offset:#x} is named '{name}', "
                                        "expected the root" )
                    dtbtree.log._debug( "root node opened" )
                else:
                    if not name:
                        raise BadToken( f"node with an empty name at offset {offset:#x}" )
                    if "/" in name:
                        raise BadToken( f"node name '{name}' at offset {offset:#x} contains '/'" )
                    current = tree._add_child( current, name )
                depth += 1

            elif token == FdtToken.PROP:
                if depth == 0:
                    raise BadToken( f"property at offset {offset:#x} is outside of any node" )

                describe = FdtPropDescribe.from_cursor( cursor )
                name = self.strings_block.find( describe.name_off )
                raw = cursor.take_aligned( describe.len, FDT_TAGSIZE, f"property '{name}' value" )

                prop = DtbProp.from_bytes( name, raw, self.known_types )
                tree._node( current ).set_prop( prop )

            elif token == FdtToken.END_NODE:
                if depth == 0:
                    raise BadToken( f"end of node at offset {offset:#x} with no open node" )

                depth -= 1
                if depth == 0:
                    dtbtree.log._debug( "root node closed" )
                    return tree

                current = tree._node( current ).parent

            elif token == FdtToken.NOP:
                pass

            elif token == FdtToken.END:
                if depth != 0:
                    raise BadToken( f"end of structure block at offset {offset:#x} "
                                    f"with {depth} node(s) still open" )
                return tree


class DeviceTreeBlob:
    """A validated device tree blob, split into its blocks

    Attributes:
       - header: FdtHeader
       - memory_reservation_block: list of FdtReserveEntry
       - structure_block: FdtStructBlock
       - strings_block: FdtStringsBlock
       - known_types: extra property coercions used by into_tree()
    """
    def __init__( self, header, memory_reservation_block, structure_block,
                  strings_block, known_types = None ):
        self.header = header
        self.memory_reservation_block = memory_reservation_block
        self.structure_block = structure_block
        self.strings_block = strings_block
        self.known_types = known_types

    @classmethod
    def from_bytes( cls, data, known_types = None ):
        """Validate and split a blob

        The blocks are read in sequence after the header (reservation
        list, then size_dt_struct bytes, then size_dt_strings bytes); the
        offsets in the header are not used.

        Args:
           data (bytes): the blob
           known_types (dict,optional): extra property coercions

        Returns:
           DeviceTreeBlob, ValueError if known_types names an unknown type
        """
        check_known_types( known_types )

        cursor = FdtCursor( data )

        header = FdtHeader.from_cursor( cursor )
        reservations = read_reservations( cursor )
        structure_block = FdtStructBlock( cursor.take( header.size_dt_struct, "structure block" ) )
        strings_block = FdtStringsBlock( cursor.take( header.size_dt_strings, "strings block" ) )

        return cls( header, reservations, structure_block, strings_block, known_types )

    def into_tree( self ):
        """Decode the structure block into a DtbTree

        Returns:
           DtbTree
        """
        tree = FdtTreeBuilder( self.structure_block, self.strings_block,
                               self.known_types ).build()
        tree.reserved_memory = list( self.memory_reservation_block )
        tree.resolve()

        dtbtree.log._debug( f"decoded tree with {len(tree)} nodes" )

        return tree

    to_tree = into_tree
