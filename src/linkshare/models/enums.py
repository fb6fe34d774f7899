from enum import StrEnum


class Permission(StrEnum):
    INSERT = "insert"
    VIEW = "view"
    DELETE = "delete"
    MODIFY_SCHEMA = "modify_schema"
