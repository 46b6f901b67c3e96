"""Binary deployment: install, upgrade and rollback."""

from tycana_installer.deploy.engine import DeploymentEngine, UpdateCheck
from tycana_installer.deploy.workspace import check_executable_dir, deployment_workspace, workspace_base

__all__ = [
    "DeploymentEngine",
    "UpdateCheck",
    "check_executable_dir",
    "deployment_workspace",
    "workspace_base",
]
