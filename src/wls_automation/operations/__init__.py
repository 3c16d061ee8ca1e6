from .base import Operation
from .exec import CommandOperation
from .group import GroupOperation
from .java_version import JavaVersionOperation
from .unarchive import UnarchiveOperation
from .user import UserOperation

OPERATION_REGISTRY = {
    "command": CommandOperation,
    "group": GroupOperation,
    "java_version": JavaVersionOperation,
    "unarchive": UnarchiveOperation,
    "user": UserOperation,
}

__all__ = [
    "Operation",
    "CommandOperation",
    "GroupOperation",
    "JavaVersionOperation",
    "UnarchiveOperation",
    "UserOperation",
    "OPERATION_REGISTRY",
]
