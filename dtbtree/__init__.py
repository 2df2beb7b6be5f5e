#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import os
from pathlib import Path

from dtbtree.errors import DecodeError, BadMagic, BadVersion, TruncatedInput, \
                           NotAToken, BadToken, BadStringsBlockOffset, \
                           BadPropValue, BadPropType
from dtbtree.fmt import DtbFmt
from dtbtree.props import StatusValue
from dtbtree.tree import DtbTree, DtbNode, DtbNodeHandle, DtbProp, DtbTreePrinter
from dtbtree.fdt import DeviceTreeBlob, FdtHeader, FdtReserveEntry

import dtbtree.log

dtbtree_directory = os.path.dirname(os.path.realpath(__file__))

def decode( data, known_types = None ):
    """Validate a device tree blob and split it into its blocks

    Call into_tree() on the result to get the node tree.

    Args:
       data (bytes): the blob
       known_types (dict,optional): extra property name -> type coercions
                                    (see dtbtree.props.dtb_coercions)

    Returns:
       DeviceTreeBlob, or raises a DecodeError (ValueError for an unknown
       type in known_types)
    """
    return DeviceTreeBlob.from_bytes( data, known_types )

def decode_file( dtb_file, known_types = None ):
    """Read and decode a .dtb file into a tree

    Args:
       dtb_file (string or Path): the file to read
       known_types (dict,optional): extra property coercions

    Returns:
       DtbTree, or raises a DecodeError
    """
    data = Path( dtb_file ).read_bytes()
    dtbtree.log._info( f"decoding {dtb_file} ({len(data)} bytes)" )

    return decode( data, known_types ).into_tree()
