"""
Menu router: menus, their entries, ordering and analytics.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from backoffice.routers.deps import get_actor, get_menu_service
from backoffice.schemas.menu import (
    ActiveMenu,
    BulkMenuItemUpdate,
    BulkUpdateResult,
    MenuCreate,
    MenuDetail,
    MenuEntryResponse,
    MenuItemCreate,
    MenuItemUpdate,
    MenuListResponse,
    MenuReorderRequest,
    MenuStats,
    MenuUpdate,
    Recommendation,
    ReorderResult,
)
from backoffice.services.menu_assembly import MenuAssemblyService


router = APIRouter(prefix="/menus", tags=["menus"])


# ============ Analytics ============

@router.get("/active", response_model=List[ActiveMenu])
def list_active_menus(service: MenuAssemblyService = Depends(get_menu_service)):
    """Menus that are active and inside their time window right now."""
    return service.list_active_menus()


@router.get("/stats", response_model=MenuStats)
def get_menu_stats(service: MenuAssemblyService = Depends(get_menu_service)):
    return service.get_menu_stats()


@router.get("/recommendations", response_model=List[Recommendation])
def get_menu_recommendations(service: MenuAssemblyService = Depends(get_menu_service)):
    return service.get_menu_recommendations()


# ============ Menu entries ============

@router.patch("/items/bulk", response_model=BulkUpdateResult)
def bulk_update_menu_items(
    payload: BulkMenuItemUpdate,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    """
    Apply one patch to many entries.

    Unknown ids are returned under `failed`; the rest are still updated.
    """
    return service.bulk_update_menu_items(payload.menu_item_ids, payload.updates, actor=actor)


@router.get("/items/{menu_item_id}", response_model=MenuEntryResponse)
def get_menu_item(menu_item_id: int, service: MenuAssemblyService = Depends(get_menu_service)):
    return service.get_menu_item(menu_item_id)


@router.patch("/items/{menu_item_id}", response_model=MenuEntryResponse)
def update_menu_item(
    menu_item_id: int,
    payload: MenuItemUpdate,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    return service.update_menu_item(menu_item_id, payload, actor=actor)


@router.delete("/items/{menu_item_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_menu_item(
    menu_item_id: int,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    service.remove_menu_item(menu_item_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============ Menus ============

@router.get("", response_model=MenuListResponse)
def list_menus(
    search: Optional[str] = Query(None, description="Match on either name or the description"),
    is_active: Optional[bool] = Query(None),
    current_only: bool = Query(False, description="Only menus whose time window contains now"),
    include_items: bool = Query(False),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: MenuAssemblyService = Depends(get_menu_service),
):
    return service.list_menus(
        search=search,
        is_active=is_active,
        current_only=current_only,
        include_items=include_items,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=MenuDetail, status_code=status.HTTP_201_CREATED)
def create_menu(
    payload: MenuCreate,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    return service.create_menu(payload, actor=actor)


@router.get("/{menu_id}", response_model=MenuDetail)
def get_menu(
    menu_id: int,
    include_items: bool = Query(True),
    service: MenuAssemblyService = Depends(get_menu_service),
):
    return service.get_menu(menu_id, include_items=include_items)


@router.patch("/{menu_id}", response_model=MenuDetail)
def update_menu(
    menu_id: int,
    payload: MenuUpdate,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    return service.update_menu(menu_id, payload, actor=actor)


@router.delete("/{menu_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_menu(
    menu_id: int,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    service.delete_menu(menu_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{menu_id}/items", response_model=MenuEntryResponse, status_code=status.HTTP_201_CREATED)
def add_menu_item(
    menu_id: int,
    payload: MenuItemCreate,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    """Add an item, recipe or meal to a menu. Exactly one reference must be set."""
    return service.add_menu_item(menu_id, payload, actor=actor)


@router.put("/{menu_id}/items/reorder", response_model=ReorderResult)
def reorder_menu_items(
    menu_id: int,
    payload: MenuReorderRequest,
    service: MenuAssemblyService = Depends(get_menu_service),
    actor: Optional[str] = Depends(get_actor),
):
    """Set display orders for several entries at once. All or nothing."""
    return service.reorder_menu_items(menu_id, payload.items, actor=actor)
