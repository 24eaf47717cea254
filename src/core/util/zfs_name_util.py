import re

from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from exception import InvalidZfsNameError

MAX_NAME_LENGTH = 255

# Components may contain inner spaces but never start or end with one
_COMPONENT = r"[A-Za-z0-9_.:-](?:[A-Za-z0-9_.: -]*[A-Za-z0-9_.:-])?"
_POOL = rf"(?P<pool>{_COMPONENT})"
_DATASET = rf"(?P<dataset>(?:/{_COMPONENT})*)"
_SNAPSHOT = rf"@(?P<snapshot>{_COMPONENT})"

DATASET_NAME_PATTERN = re.compile(rf"^{_POOL}{_DATASET}$")
SNAPSHOT_NAME_PATTERN = re.compile(rf"^{_POOL}{_DATASET}{_SNAPSHOT}$")


def is_valid_name(name: str, kind: ZfsObjectKind) -> bool:
    if not name or len(name) > MAX_NAME_LENGTH:
        return False
    pattern = SNAPSHOT_NAME_PATTERN if kind is ZfsObjectKind.SNAPSHOT else DATASET_NAME_PATTERN
    return pattern.fullmatch(name) is not None


def validate_name(name: str, kind: ZfsObjectKind) -> str:
    """Return `name` unchanged, or raise InvalidZfsNameError if it breaks the grammar for `kind`."""
    if not is_valid_name(name, kind):
        raise InvalidZfsNameError(f"Invalid {kind} name: '{name}'", name=name, kind=str(kind))
    return name


def get_parent_path(name: str) -> str | None:
    """
    Parent object name: everything before '@' for a snapshot, otherwise
    everything before the last '/'. Pool roots have no parent.
    """
    if "@" in name:
        return name.split("@", 1)[0]
    if "/" in name:
        return name.rsplit("/", 1)[0]
    return None


def get_pool_name(name: str) -> str:
    return name.split("@", 1)[0].split("/", 1)[0]
