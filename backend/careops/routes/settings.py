from fastapi import APIRouter, Depends, HTTPException
from careops.schemas.auth import SessionContext
from careops.schemas.workspace import WorkspaceSettingsUpdate
from careops.routes.deps import get_gateway, get_workspace_session
from careops.utils.slug import slugify

router = APIRouter()


def _workspace_dict(workspace) -> dict:
    return {
        "id": workspace.id,
        "name": workspace.name,
        "slug": workspace.slug,
        "address": workspace.address,
        "timezone": workspace.timezone,
        "contact_email": workspace.contact_email,
        "status": workspace.status.value,
        "onboarding_step": workspace.onboarding_step,
        "created_at": workspace.created_at.isoformat() if workspace.created_at else None
    }


@router.get("")
async def get_workspace_settings(
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Get workspace settings"""
    workspace = await gateway.get_workspace(session.workspace_id)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    return {"workspace": _workspace_dict(workspace)}


@router.patch("")
async def update_workspace_settings(
    data: WorkspaceSettingsUpdate,
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Update workspace name, address and contact email (last write wins)"""
    fields = data.model_dump(exclude_unset=True)
    if "name" in fields and not (fields["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Workspace name cannot be empty")
    if "name" in fields:
        # Public contact links follow the current name
        fields["slug"] = slugify(fields["name"])

    if fields:
        workspace = await gateway.update_workspace(session.workspace_id, fields)
    else:
        workspace = await gateway.get_workspace(session.workspace_id)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    return {"success": True, "message": "Settings saved", "workspace": _workspace_dict(workspace)}
