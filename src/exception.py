"""Snapshot Lifecycle Exception Definitions"""


class SiazError(Exception):
    """Base exception for the snapshot lifecycle system"""

    pass


class ZfsStructureError(SiazError, ValueError):
    """Invalid operation on the dataset/snapshot tree (caller defect)"""

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class InvalidZfsNameError(ZfsStructureError):
    """Object name does not match the naming grammar for its kind"""

    def __init__(self, message: str, name: str | None = None, kind: str | None = None):
        super().__init__(message, name)
        self.kind = kind


class UnknownZfsPropertyError(SiazError, KeyError):
    """Requested property name is not defined on the object"""

    def __init__(self, message: str, property_name: str | None = None):
        super().__init__(message)
        self.property_name = property_name

    def __str__(self) -> str:
        # KeyError quotes its argument by default
        return str(self.args[0]) if self.args else ""


class ZfsSchemaIntegrityError(SiazError):
    """Inheritance could not be resolved because a root lacks a local definition"""

    def __init__(self, message: str, name: str | None = None, property_names: list[str] | None = None):
        super().__init__(message)
        self.name = name
        self.property_names = property_names or []


class MalformedZfsObjectError(SiazError):
    """Raw object is missing required properties or carries unparseable values"""

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class ConfigError(SiazError):
    """Settings file could not be loaded or validated"""

    pass
