from enum import StrEnum


class RecursionMode(StrEnum):
    SIAZ = "siaz"  # Application walks the tree and snapshots each object
    ZFS = "zfs"  # Delegated to the storage system's native recursive snapshot
