"""
Recipe router: recipe CRUD, costing detail and statistics.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from backoffice.routers.deps import get_actor, get_recipe_service
from backoffice.schemas.recipe import (
    RecipeCreate,
    RecipeDetail,
    RecipeListResponse,
    RecipeStats,
    RecipeUpdate,
)
from backoffice.services.recipe_costing import RecipeCostingService


router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.get("", response_model=RecipeListResponse)
def list_recipes(
    search: Optional[str] = Query(None, description="Match on code or either name"),
    is_available: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: RecipeCostingService = Depends(get_recipe_service),
):
    return service.list_recipes(search=search, is_available=is_available, limit=limit, offset=offset)


@router.get("/stats", response_model=RecipeStats)
def get_recipe_stats(service: RecipeCostingService = Depends(get_recipe_service)):
    return service.get_recipe_stats()


@router.post("", response_model=RecipeDetail, status_code=status.HTTP_201_CREATED)
def create_recipe(
    payload: RecipeCreate,
    service: RecipeCostingService = Depends(get_recipe_service),
    actor: Optional[str] = Depends(get_actor),
):
    """
    Create a recipe from item lines.

    Cost and calories are computed from current item data and the selling
    price starts at cost × recipe markup.
    """
    return service.create_recipe(payload, actor=actor)


@router.get("/{recipe_id}", response_model=RecipeDetail)
def get_recipe(recipe_id: int, service: RecipeCostingService = Depends(get_recipe_service)):
    return service.get_recipe(recipe_id)


@router.patch("/{recipe_id}", response_model=RecipeDetail)
def update_recipe(
    recipe_id: int,
    payload: RecipeUpdate,
    service: RecipeCostingService = Depends(get_recipe_service),
    actor: Optional[str] = Depends(get_actor),
):
    """Partial update. Supplying `lines` replaces the whole line set."""
    return service.update_recipe(recipe_id, payload, actor=actor)


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recipe(
    recipe_id: int,
    service: RecipeCostingService = Depends(get_recipe_service),
    actor: Optional[str] = Depends(get_actor),
):
    service.delete_recipe(recipe_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
