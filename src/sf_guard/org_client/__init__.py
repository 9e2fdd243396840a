from sf_guard.org_client.auth import lookup_username
from sf_guard.org_client.client import OrgClient
from sf_guard.org_client.metadata import MetadataClient, ModificationInfo
from sf_guard.org_client.project import ProjectClient
from sf_guard.org_client.runner import SfCliRunner
from sf_guard.org_client.session import SessionCache, SessionHandle

__all__ = [
    "MetadataClient",
    "ModificationInfo",
    "OrgClient",
    "ProjectClient",
    "SessionCache",
    "SessionHandle",
    "SfCliRunner",
    "lookup_username",
]
