from linkshare.models.client_entry import ClientEntry
from linkshare.models.enums import Permission
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS, LinkPermissions
from linkshare.models.project import Project, ProjectInfo
from linkshare.models.results import SchemaUpdate
from linkshare.models.shared_link import SharedLink

__all__ = [
    "ClientEntry",
    "DEFAULT_LINK_PERMISSIONS",
    "LinkPermissions",
    "Permission",
    "Project",
    "ProjectInfo",
    "SchemaUpdate",
    "SharedLink",
]
