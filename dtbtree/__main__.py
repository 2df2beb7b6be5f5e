#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import getopt
import sys
from pathlib import Path
import configparser

import humanfriendly

import dtbtree
from dtbtree import dtbtree_directory, DecodeError, DtbTreePrinter
from dtbtree.fdt import FDT_HEADER_FIELDS
from dtbtree.props import known_types_from_config
import dtbtree.log

with open(Path(__file__).parent / 'VERSION', 'r') as f:
    DTBTREE_VERSION = f.read().strip()

def usage():
    prog = "dtbtree"
    print(f'Usage: {prog} [OPTION] <device tree blob>')
    print('  -v, --verbose       enable verbose/debug processing (specify more than once for more verbosity)')
    print('  -o, --output        output file (default is stdout)')
    print('    , --header        dump the blob header before the tree' )
    print('  -r, --reserved      dump the memory reservation map before the tree' )
    print('    , --cfgfile       specify a configuration file to use (configparser format) ' )
    print('    , --cfgval        specify a configuration value to use (in configparser section format). Can be specified multiple times' )
    print('  -h, --help          display this help and exit')
    print('    , --version       output the version and exit')
    print('')

def load_config( config_file, config_vals ):
    """Load the configuration, applying --cfgval overrides

    Args:
       config_file (string): file to read, None for the packaged default
       config_vals (list): "section.option=value" strings

    Returns:
       ConfigParser
    """
    config = configparser.ConfigParser()
    # property names are case sensitive
    config.optionxform = str
    if not config_file:
        config_file = f"{dtbtree_directory}/dtbtree.ini"

    inf = Path(config_file)
    if not inf.exists():
        dtbtree.log._error( f"config file {config_file} does not exist" )

    config.read( inf.absolute() )

    for k in config_vals:
        config_sections = k.split( '.' )
        if len(config_sections) < 2:
            dtbtree.log._error( f"config value '{k}' is not in section.option=value format" )

        section = ".".join( config_sections[:-1] )
        config_option = config_sections[-1]
        config_option_name = config_option.split('=')[0]
        config_option_val = config_option.split('=')[-1]
        if config_option_name == config_option_val:
            config_option_val = True

        if not config.has_section( section ):
            config[section] = {}
        config[section][config_option_name] = str(config_option_val)

    return config

def dump_header( blob, output ):
    print( "/*", file=output )
    for field in FDT_HEADER_FIELDS:
        val = getattr( blob.header, field )
        if field == "totalsize":
            print( f" * {field}: {val:#x} ({humanfriendly.format_size( val, binary=True )})", file=output )
        else:
            print( f" * {field}: {val:#x}", file=output )
    print( " */", file=output )

def dump_reserved( blob, output ):
    print( f"/* memory reservation map: {len(blob.memory_reservation_block)} entries */", file=output )
    for entry in blob.memory_reservation_block:
        print( f"/*   {entry.address:#018x} - {entry.address + entry.size:#018x} "
               f"({humanfriendly.format_size( entry.size, binary=True )}) */", file=output )

def main():
    verbose = 0
    output = ""
    header = False
    reserved = False
    config_file = None
    config_vals = []

    try:
        opts, args = getopt.getopt(sys.argv[1:], "vo:rh",
                                   [ "verbose", "output=", "header", "reserved",
                                     "cfgfile=", "cfgval=", "help", "version" ] )
    except getopt.GetoptError as err:
        print('%s' % str(err))
        usage()
        sys.exit(2)

    for o, a in opts:
        if o in ('-v', "--verbose"):
            verbose = verbose + 1
        elif o in ('-o', "--output"):
            output = a
        elif o == '--header':
            header = True
        elif o in ('-r', "--reserved"):
            reserved = True
        elif o == '--cfgfile':
            config_file = a
        elif o == '--cfgval':
            config_vals.append( a )
        elif o in ('-h', "--help"):
            usage()
            sys.exit(0)
        elif o == '--version':
            print( f"{DTBTREE_VERSION}" )
            sys.exit(0)

    if len(args) != 1:
        usage()
        sys.exit(2)

    dtb_file = Path( args[0] )

    dtbtree.log._init( __name__ )
    dtbtree.log._init( "dtbtree.fdt" )
    dtbtree.log._init( "dtbtree.tree" )
    dtbtree.log.init( verbose )

    config = load_config( config_file, config_vals )

    try:
        known_types = known_types_from_config( config )
        indent = config.getint( "output", "indent", fallback=8 )
        human_sizes = config.getboolean( "output", "human_sizes", fallback=False )
    except ValueError as e:
        dtbtree.log._error( f"invalid configuration: {e}" )

    if not dtb_file.exists():
        dtbtree.log._error( f"device tree blob {dtb_file} does not exist" )

    try:
        blob = dtbtree.decode( dtb_file.read_bytes(), known_types )
        tree = blob.into_tree()
    except DecodeError as e:
        dtbtree.log._error( f"{dtb_file}: {type(e).__name__}: {e}" )

    dtbtree.log._info( f"{dtb_file}: {len(tree)} nodes, {tree.num_cpus()} cpus" )

    if output:
        out = open( output, "w" )
    else:
        out = sys.stdout

    try:
        if header:
            dump_header( blob, out )
        if reserved:
            dump_reserved( blob, out )

        DtbTreePrinter( out, indent, human_sizes ).exec( tree )
    finally:
        if out != sys.stdout:
            out.close()

    return 0

if __name__ == "__main__":
    sys.exit( main() )
