from enum import StrEnum


class ZfsObjectKind(StrEnum):
    """Value of the native `type` property."""

    FILESYSTEM = "filesystem"
    VOLUME = "volume"
    SNAPSHOT = "snapshot"

    @property
    def is_dataset(self) -> bool:
        return self is not ZfsObjectKind.SNAPSHOT
