#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

class DecodeError(Exception):
    "Base class for errors raised while decoding or accessing a device tree blob"


class BadMagic(DecodeError):
    """The header magic is not 0xd00dfeed

    Attributes:
       - actual: the magic value found in the blob
    """
    def __init__( self, actual ):
        super().__init__( f"bad magic: {actual:#x}" )
        self.actual = actual


class BadVersion(DecodeError):
    """The header version is not a supported one

    Attributes:
       - actual: the version found in the blob
    """
    def __init__( self, actual ):
        super().__init__( f"unsupported version: {actual}" )
        self.actual = actual


class TruncatedInput(DecodeError):
    "A fixed or declared length runs past the end of the available bytes"


class NotAToken(DecodeError):
    "Fewer than four bytes remain where a structure block token is required"


class BadToken(DecodeError):
    "A token appeared where the node nesting does not allow it"


class BadStringsBlockOffset(DecodeError):
    "A property name offset does not reference a string in the strings block"


class BadPropValue(DecodeError):
    "A payload does not decode as the type selected for it"


class BadPropType(DecodeError):
    "A property accessor asked for a value variant the property does not hold"
