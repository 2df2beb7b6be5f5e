#/*
# * Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import sys
from collections import OrderedDict

import humanfriendly

from dtbtree.fmt import DtbFmt
from dtbtree.errors import BadPropType, BadPropValue
import dtbtree.props
import dtbtree.log

# defaults when no ancestor declares #address-cells / #size-cells
DEFAULT_ADDRESS_CELLS = 2
DEFAULT_SIZE_CELLS = 1

# properties that change how reg / ranges below a node are decoded
CELL_PROPERTIES = ( "#address-cells", "#size-cells" )

class DtbProp():
    """Class representing a device tree property

    A property has a name, a value variant (DtbFmt) and the typed value
    for that variant. The raw payload is kept alongside, so that values
    whose decoding depends on the tree (reg, ranges) can be decoded again
    once the cell counts are known.

    Attributes:
       - name: The property name
       - fmt: The DtbFmt variant of the value
       - value: The decoded value
       - raw: The payload bytes, without alignment padding

    """
    def __init__(self, name, fmt = DtbFmt.EMPTY, value = None, raw = b"" ):
        self.name = name
        self.fmt = fmt
        self.value = value
        self.raw = bytes( raw )

    @classmethod
    def from_bytes( cls, name, raw, known_types = None ):
        """Create a property by coercing a raw payload

        Args:
           name (string): property name
           raw (bytes): payload, without padding
           known_types (dict,optional): extra name -> type coercions

        Returns:
           DtbProp
        """
        fmt, value = dtbtree.props.coerce( name, raw, known_types )
        return cls( name, fmt, value, raw )

    @classmethod
    def from_value( cls, name, value ):
        """Create a property from a python value (see props.encode_value)"""
        fmt, value, raw = dtbtree.props.encode_value( name, value )
        return cls( name, fmt, value, raw )

    def _expect( self, *fmts ):
        if self.fmt not in fmts:
            raise BadPropType( f"property '{self.name}' holds {self.fmt.name}, "
                               f"not {' or '.join( f.name for f in fmts )}" )

    def u32( self ):
        self._expect( DtbFmt.UINT32 )
        return self.value

    def u64( self ):
        self._expect( DtbFmt.UINT64 )
        return self.value

    def string( self ):
        self._expect( DtbFmt.STRING )
        return self.value

    def stringlist( self ):
        self._expect( DtbFmt.MULTI_STRING )
        return list( self.value )

    def bytes( self ):
        self._expect( DtbFmt.BYTES, DtbFmt.RAW )
        return self.value

    def pairs( self ):
        self._expect( DtbFmt.PAIRS )
        return self.value

    def triplets( self ):
        self._expect( DtbFmt.TRIPLETS )
        return self.value

    def status( self ):
        """Get the value of a status property

        Both a STATUS value and a STRING value (as decoded from a blob)
        are accepted. A string that is not a known status raises
        BadPropValue.

        Returns:
           StatusValue
        """
        self._expect( DtbFmt.STATUS, DtbFmt.STRING )
        if self.fmt == DtbFmt.STATUS:
            return self.value

        return dtbtree.props.status_from_string( self.name, self.value )

    def to_stringfmt( self ):
        return dtbtree.props.format_value( self.fmt, self.value )

    def __str__( self ):
        """The property in device tree source notation

        Returns:
           string: <name> = <value>; or <name>; for empty properties
        """
        if self.fmt == DtbFmt.EMPTY:
            return f"{self.name};"

        if self.fmt in (DtbFmt.STRING, DtbFmt.STATUS):
            outval = f"\"{self.to_stringfmt()}\""
        elif self.fmt == DtbFmt.MULTI_STRING:
            outval = ", ".join( f"\"{s}\"" for s in self.value )
        elif self.fmt == DtbFmt.BYTES:
            outval = f"[{self.to_stringfmt()}]"
        elif self.fmt == DtbFmt.RAW:
            # unknown payloads are most often cells
            if self.raw and len(self.raw) % 4 == 0:
                cells = dtbtree.props.decode_cells( self.name, self.raw, 1 )
                outval = "<" + " ".join( hex( c[0][0] ) for c in cells ) + ">"
            else:
                outval = f"[{self.to_stringfmt()}]"
        else:
            outval = f"<{self.to_stringfmt()}>"

        return f"{self.name} = {outval};"

    def __repr__( self ):
        return f"DtbProp({self.name!r}, {self.fmt.name}, {self.value!r})"

    def __eq__( self, other ):
        if not isinstance( other, DtbProp ):
            return NotImplemented

        return self.name == other.name and self.fmt == other.fmt and self.value == other.value

    __hash__ = None


class DtbNode(object):
    """Class representing the stored state of a device tree node

    Nodes live in the arena of a DtbTree and refer to each other by
    their arena number, never by object reference. A node that is not
    (yet) part of a tree has a number of -1; it can hold properties and
    is attached with DtbNodeHandle.add_child().

     Attributes:
       - number: the index of the node in the tree arena (-1 when detached)
       - name: the node name (not the path)
       - label: optional label
       - parent: the arena number of the parent, None for the root
       - child_nodes: ordered dictionary of child name -> arena number
       - address_cells: the #address-cells declared by this node, or None
       - size_cells: the #size-cells declared by this node, or None
       - __props__: ordered dictionary of DtbProp

    """
    def __init__(self, name = "", label = None ):
        self.number = -1
        self.name = name
        self.label = label
        self.parent = None

        self.child_nodes = OrderedDict()
        self.__props__ = OrderedDict()

        self.address_cells = None
        self.size_cells = None

    def set_prop( self, prop ):
        """Store a property, replacing one of the same name

        Setting #address-cells or #size-cells also updates the declared
        cell counts of the node.

        Args:
           prop (DtbProp): the property

        Returns:
           DtbProp: the replaced property, or None
        """
        old = self.__props__.get( prop.name )
        self.__props__[prop.name] = prop

        if prop.name == "#address-cells":
            self.address_cells = prop.value if prop.fmt == DtbFmt.UINT32 else None
        elif prop.name == "#size-cells":
            self.size_cells = prop.value if prop.fmt == DtbFmt.UINT32 else None

        return old

    def remove_prop( self, name ):
        prop = self.__props__.pop( name, None )

        if name == "#address-cells":
            self.address_cells = None
        elif name == "#size-cells":
            self.size_cells = None

        return prop


class DtbNodeHandle(object):
    """A reference to one node of a DtbTree

    Handles are cheap and can be created freely; two handles are equal
    when they name the same node of the same tree. All reads and writes
    go through the tree, so a handle never keeps a detached node alive.

    Attributes:
       - tree: the DtbTree holding the node
       - number: the arena number of the node

    """
    def __init__(self, tree, number ):
        self.tree = tree
        self.number = number

    @property
    def node( self ):
        return self.tree._node( self.number )

    @property
    def name( self ):
        return self.node.name

    @property
    def label( self ):
        return self.node.label

    def set_label( self, label ):
        self.node.label = label

    def parent( self ):
        parent = self.node.parent
        if parent is None:
            return None

        return DtbNodeHandle( self.tree, parent )

    def depth( self ):
        depth = 0
        n = self.node
        while n.parent is not None:
            depth += 1
            n = self.tree._node( n.parent )

        return depth

    def path( self ):
        """The absolute path of the node, i.e. /cpus/cpu@0"""
        names = []
        n = self.node
        while n.parent is not None:
            names.append( n.name )
            n = self.tree._node( n.parent )

        return "/" + "/".join( reversed( names ) )

    def find_child( self, name ):
        number = self.node.child_nodes.get( name )
        if number is None:
            return None

        return DtbNodeHandle( self.tree, number )

    def children( self ):
        return [ DtbNodeHandle( self.tree, c ) for c in self.node.child_nodes.values() ]

    def child_exists( self, name ):
        return name in self.node.child_nodes

    def num_children( self ):
        return len( self.node.child_nodes )

    def add_child( self, name, node = None ):
        """Add a child node

        If a child of the same name exists, it (and everything below it)
        is replaced. An empty name, or one containing '/', raises
        ValueError.

        Args:
           name (string): the child name
           node (DtbNode,optional): a detached node whose label and
                                    properties are taken over

        Returns:
           DtbNodeHandle: the new child
        """
        number = self.tree._add_child( self.number, name, node )

        return DtbNodeHandle( self.tree, number )

    def property( self, name ):
        return self.node.__props__.get( name )

    def properties( self ):
        return list( self.node.__props__.values() )

    def prop_exists( self, name ):
        return name in self.node.__props__

    def set_property( self, name, value ):
        """Set (or replace) a property

        Args:
           name (string): property name
           value: a DtbProp, or a python value accepted by
                  props.encode_value()

        Returns:
           DtbProp: the property that was replaced, or None
        """
        if isinstance( value, DtbProp ):
            prop = value
            if prop.name != name:
                prop = DtbProp( name, prop.fmt, prop.value, prop.raw )
        else:
            prop = DtbProp.from_value( name, value )

        dtbtree.log._debug( f"setting property {prop!r} on node '{self.path()}'" )

        old = self.node.set_prop( prop )
        if name in CELL_PROPERTIES:
            self.tree.resolve( self )

        return old

    def remove_prop( self, name ):
        """Remove a property

        Removing #address-cells or #size-cells re-decodes reg and ranges
        below this node with the inherited cell counts.

        Returns:
           DtbProp: the removed property, or None
        """
        prop = self.node.remove_prop( name )
        if name in CELL_PROPERTIES:
            self.tree.resolve( self )

        return prop

    def _inherited_cells( self, number ):
        # nearest declaration wins, walking up from 'number'
        address_cells = None
        size_cells = None
        while number is not None and (address_cells is None or size_cells is None):
            n = self.tree._node( number )
            if address_cells is None:
                address_cells = n.address_cells
            if size_cells is None:
                size_cells = n.size_cells
            number = n.parent

        if address_cells is None:
            address_cells = DEFAULT_ADDRESS_CELLS
        if size_cells is None:
            size_cells = DEFAULT_SIZE_CELLS

        return address_cells, size_cells

    def cells( self ):
        """The (#address-cells, #size-cells) used to decode this node's reg

        These come from the nearest ancestor that declares them, with
        defaults of 2 and 1.
        """
        return self._inherited_cells( self.node.parent )

    def address_cells( self ):
        return self.cells()[0]

    def size_cells( self ):
        return self.cells()[1]

    def decode_reg( self, raw ):
        address_cells, size_cells = self.cells()
        return dtbtree.props.decode_cells( "reg", raw, address_cells, size_cells )

    def decode_ranges( self, raw ):
        child_address_cells, child_size_cells = self._inherited_cells( self.number )
        parent_address_cells = self.address_cells()
        return dtbtree.props.decode_cells( "ranges", raw, child_address_cells,
                                           parent_address_cells, child_size_cells )

    def reg( self ):
        """The reg property as (address, size) pairs, or None if absent

        The payload is decoded with the cell counts in effect now, so a
        reg that no longer divides into whole pairs raises BadPropValue.
        """
        prop = self.property( "reg" )
        if prop is None:
            return None
        # a PAIRS value built in python has no payload to decode
        if prop.fmt == DtbFmt.PAIRS and not prop.raw:
            return prop.value

        return self.decode_reg( prop.raw )

    def ranges( self ):
        """The ranges property as (child, parent, size) triplets

        An empty ranges (identity mapping) is an empty list, and None is
        returned if the node has no ranges.
        """
        prop = self.property( "ranges" )
        if prop is None:
            return None
        if not prop.raw:
            return prop.value if prop.fmt == DtbFmt.TRIPLETS else []

        return self.decode_ranges( prop.raw )

    def subnodes( self ):
        """Iterate this node and all nodes below it, depth first"""
        return self.tree.subnodes( self )

    def __eq__( self, other ):
        if not isinstance( other, DtbNodeHandle ):
            return NotImplemented

        return self.tree is other.tree and self.number == other.number

    def __hash__( self ):
        return hash( (id(self.tree), self.number) )

    def __repr__( self ):
        return f"<DtbNodeHandle {self.path()}>"


class DtbTree:
    """Class holding a device tree as an arena of nodes

    Nodes are stored in a list and addressed by their index. A node
    stores the index of its parent and a name -> index mapping of its
    children, so the only owner of any node is the tree itself.

    Attributes:
       - __nodes__: the node arena, a detached slot holds None
       - reserved_memory: the memory reservation entries of the blob
                          this tree was decoded from (empty otherwise)

    """
    def __init__(self):
        self.__nodes__ = []
        self.reserved_memory = []

        root = DtbNode( "/" )
        root.number = 0
        self.__nodes__.append( root )

    def _node( self, number ):
        try:
            node = self.__nodes__[number]
        except (IndexError, TypeError):
            node = None

        if node is None:
            raise KeyError( number )

        return node

    def root( self ):
        return DtbNodeHandle( self, 0 )

    def node( self, number ):
        """Get a handle to a node by arena number (KeyError if invalid)"""
        self._node( number )
        return DtbNodeHandle( self, number )

    def __getitem__( self, path ):
        """Get a handle to a node by absolute path

        Args:
           path (string): i.e. "/cpus/cpu@0"

        Returns:
           DtbNodeHandle, or KeyError if the path does not exist
        """
        number = 0
        for name in path.split( "/" ):
            if not name:
                continue
            try:
                number = self._node( number ).child_nodes[name]
            except KeyError:
                raise KeyError( path ) from None

        return DtbNodeHandle( self, number )

    def __len__( self ):
        return sum( 1 for n in self.__nodes__ if n is not None )

    def _add_child( self, parent_number, name, node = None ):
        parent = self._node( parent_number )

        if not name or "/" in name:
            raise ValueError( f"invalid node name '{name}' under '{parent.name}'" )

        child = DtbNode( name )
        if node is not None:
            if node.number != -1:
                raise ValueError( f"node '{node.name}' is already part of a tree" )
            child.label = node.label
            for p in node.__props__.values():
                child.set_prop( p )

        old = parent.child_nodes.get( name )
        if old is not None:
            dtbtree.log._debug( f"replacing node '{name}' under '{parent.name}'" )
            self._detach( old )

        child.number = len( self.__nodes__ )
        child.parent = parent_number
        self.__nodes__.append( child )
        parent.child_nodes[name] = child.number

        dtbtree.log._debug( f"added node '{name}' ({child.number}) under '{parent.name}'" )

        return child.number

    def _detach( self, number ):
        stack = [ number ]
        while stack:
            n = self.__nodes__[stack.pop()]
            stack.extend( n.child_nodes.values() )
            self.__nodes__[n.number] = None

    def subnodes( self, start = None ):
        """Iterate nodes depth first, parents before children

        Args:
           start (DtbNodeHandle,optional): node to start at, default is the root

        Returns:
           generator of DtbNodeHandle
        """
        if start is None:
            start = self.root()

        stack = [ start.number ]
        while stack:
            number = stack.pop()
            yield DtbNodeHandle( self, number )
            stack.extend( reversed( self._node( number ).child_nodes.values() ) )

    def resolve( self, start = None ):
        """Decode reg and ranges now that every cell count is known

        reg becomes PAIRS and ranges becomes TRIPLETS (or EMPTY for an
        empty ranges). A payload that does not divide into whole records
        is left RAW and a warning is logged. This is run again for the
        subtree of a node whose #address-cells or #size-cells changes.

        Args:
           start (DtbNodeHandle,optional): subtree to resolve, default is the root

        Returns:
           Nothing
        """
        for n in self.subnodes( start ):
            prop = n.property( "reg" )
            # PAIRS set from python values have no payload to decode again
            if prop is not None and (prop.fmt == DtbFmt.RAW or (prop.fmt == DtbFmt.PAIRS and prop.raw)):
                try:
                    n.node.set_prop( DtbProp( "reg", DtbFmt.PAIRS, n.decode_reg( prop.raw ), prop.raw ) )
                except BadPropValue as e:
                    dtbtree.log._warning( f"{n.path()}: leaving reg undecoded: {e}" )
                    n.node.set_prop( DtbProp( "reg", DtbFmt.RAW, prop.raw, prop.raw ) )

            prop = n.property( "ranges" )
            if prop is None or prop.fmt not in (DtbFmt.RAW, DtbFmt.TRIPLETS, DtbFmt.EMPTY):
                continue
            if not prop.raw:
                if prop.fmt != DtbFmt.TRIPLETS:
                    n.node.set_prop( DtbProp( "ranges", DtbFmt.EMPTY, None, b"" ) )
                continue
            try:
                n.node.set_prop( DtbProp( "ranges", DtbFmt.TRIPLETS, n.decode_ranges( prop.raw ), prop.raw ) )
            except BadPropValue as e:
                dtbtree.log._warning( f"{n.path()}: leaving ranges undecoded: {e}" )
                n.node.set_prop( DtbProp( "ranges", DtbFmt.RAW, prop.raw, prop.raw ) )

    def has_cpus( self ):
        return self.root().child_exists( "cpus" )

    def num_cpus( self ):
        cpus = self.root().find_child( "cpus" )
        if cpus is None:
            return 0

        return cpus.num_children()

    def __eq__( self, other ):
        """Deep structural comparison of two trees

        Names, labels, properties and children (in order) must match.
        Arena numbering is not compared.
        """
        if not isinstance( other, DtbTree ):
            return NotImplemented

        pending = [ (self._node( 0 ), other._node( 0 )) ]
        while pending:
            a, b = pending.pop()
            if a.name != b.name or a.label != b.label:
                return False
            if list( a.__props__.items() ) != list( b.__props__.items() ):
                return False
            if list( a.child_nodes ) != list( b.child_nodes ):
                return False
            for ca, cb in zip( a.child_nodes.values(), b.child_nodes.values() ):
                pending.append( (self._node( ca ), other._node( cb )) )

        return True

    __hash__ = None

    def print( self, output = None, indent = 8 ):
        """Print the tree in device tree source notation

        Args:
           output (file,optional): where to write, default is stdout
           indent (int,optional): spaces per nesting level

        Returns:
           Nothing
        """
        DtbTreePrinter( output, indent ).exec( self )


class DtbTreePrinter:
    """Print a DtbTree as device tree source

    The walk is done with an explicit stack, and the nesting depth is
    passed to each callback, so there is no indentation state outside
    of a single exec() call.

    Attributes:
       - output: the file to write to
       - indent: spaces per nesting level
       - human_sizes: annotate /memreserve/ entries with a readable size

    """
    def __init__( self, output = None, indent = 8, human_sizes = False ):
        self.output = output if output is not None else sys.stdout
        self.indent = indent
        self.human_sizes = human_sizes

    def exec( self, tree ):
        self.start( tree )

        # (node number, depth, closing)
        stack = [ (0, 0, False) ]
        while stack:
            number, depth, closing = stack.pop()
            n = DtbNodeHandle( tree, number )
            if closing:
                self.end_node( n, depth )
                continue

            self.start_node( n, depth )
            for p in n.properties():
                self.start_property( p, depth + 1 )

            stack.append( (number, depth, True) )
            for c in reversed( n.children() ):
                stack.append( (c.number, depth + 1, False) )

    def _print( self, depth, text ):
        print( " " * (depth * self.indent) + text, file=self.output )

    def start( self, tree ):
        print( "/dts-v1/;\n", file=self.output )
        for entry in tree.reserved_memory:
            outstring = f"/memreserve/ {entry.address:#018x} {entry.size:#018x};"
            if self.human_sizes:
                outstring += f" /* {humanfriendly.format_size( entry.size, binary=True )} */"
            print( outstring, file=self.output )

        if tree.reserved_memory:
            print( "", file=self.output )

    def start_node( self, n, depth ):
        if depth == 0:
            outstring = "/ {"
        elif n.label:
            outstring = f"{n.label}: {n.name} {{"
        else:
            outstring = f"{n.name} {{"

        if depth > 0:
            print( "", file=self.output )
        self._print( depth, outstring )

    def start_property( self, p, depth ):
        self._print( depth, str( p ) )

    def end_node( self, n, depth ):
        self._print( depth, "};" )
