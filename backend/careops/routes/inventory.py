import logging
from fastapi import APIRouter, Depends, HTTPException
from careops.core.inventory import present_item
from careops.schemas.auth import SessionContext
from careops.schemas.inventory import AddInventoryItem, InventoryItemCreate, UpdateInventoryQuantity
from careops.routes.deps import get_gateway, get_workspace_session, require_admin

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_all_inventory(
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Get all inventory items for the caller's workspace"""
    items = await gateway.list_inventory(session.workspace_id)
    return [present_item(item) for item in items]


@router.post("")
async def add_inventory_item(
    data: AddInventoryItem,
    session: SessionContext = Depends(require_admin),
    gateway=Depends(get_gateway)
):
    """Add an inventory item (admins only)"""
    item = await gateway.insert_inventory_item(
        InventoryItemCreate(workspace_id=session.workspace_id, **data.model_dump())
    )
    logger.info("Inventory item %s added to workspace %s", item.id, session.workspace_id)
    return {"success": True, "item": present_item(item)}


@router.patch("/{item_id}/quantity")
async def update_inventory_quantity(
    item_id: int,
    update: UpdateInventoryQuantity,
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Update inventory quantity"""
    item = await gateway.update_inventory_item(item_id, session.workspace_id, {"quantity": update.quantity})
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    presented = present_item(item)
    return {
        "success": True,
        "item_id": item.id,
        "quantity": item.quantity,
        "is_low_stock": presented["is_low_stock"],
        "stock_percentage": presented["stock_percentage"]
    }


@router.delete("/{item_id}")
async def delete_inventory_item(
    item_id: int,
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway)
):
    """Delete inventory item"""
    if not await gateway.delete_inventory_item(item_id, session.workspace_id):
        raise HTTPException(status_code=404, detail="Item not found")

    return {"success": True, "message": "Item deleted"}
