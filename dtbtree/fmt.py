from enum import Enum

# value variants of a decoded property
class DtbFmt(Enum):
    """Enum class to define the value types a DtbProp can hold
    """
    EMPTY = 1
    STRING = 2
    MULTI_STRING = 3
    UINT32 = 4
    UINT64 = 5
    BYTES = 6
    RAW = 7
    PAIRS = 8
    TRIPLETS = 9
    STATUS = 10
