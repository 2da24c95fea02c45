from careops.schemas.inventory import InventoryItemRecord


def is_low_stock(quantity: int, low_stock_threshold: int) -> bool:
    return quantity <= low_stock_threshold


def stock_percentage(quantity: int, low_stock_threshold: int) -> float:
    """Fill level for the stock bar; three times the threshold counts as full"""
    return min(100.0, quantity / max(low_stock_threshold * 3, 1) * 100)


def present_item(item: InventoryItemRecord) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "low_stock_threshold": item.low_stock_threshold,
        "unit": item.unit or "units",
        "is_low_stock": is_low_stock(item.quantity, item.low_stock_threshold),
        "stock_percentage": round(stock_percentage(item.quantity, item.low_stock_threshold), 1),
        "created_at": item.created_at.isoformat() if item.created_at else None
    }
