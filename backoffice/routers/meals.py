"""
Meal router: meal CRUD, costing detail and statistics.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from backoffice.routers.deps import get_actor, get_meal_service
from backoffice.schemas.meal import (
    MealCreate,
    MealDetail,
    MealListResponse,
    MealStats,
    MealUpdate,
)
from backoffice.services.meal_composition import MealCompositionService


router = APIRouter(prefix="/meals", tags=["meals"])


@router.get("", response_model=MealListResponse)
def list_meals(
    search: Optional[str] = Query(None),
    is_available: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: MealCompositionService = Depends(get_meal_service),
):
    return service.list_meals(search=search, is_available=is_available, limit=limit, offset=offset)


@router.get("/stats", response_model=MealStats)
def get_meal_stats(service: MealCompositionService = Depends(get_meal_service)):
    return service.get_meal_stats()


@router.post("", response_model=MealDetail, status_code=status.HTTP_201_CREATED)
def create_meal(
    payload: MealCreate,
    service: MealCompositionService = Depends(get_meal_service),
    actor: Optional[str] = Depends(get_actor),
):
    return service.create_meal(payload, actor=actor)


@router.get("/{meal_id}", response_model=MealDetail)
def get_meal(meal_id: int, service: MealCompositionService = Depends(get_meal_service)):
    return service.get_meal(meal_id)


@router.patch("/{meal_id}", response_model=MealDetail)
def update_meal(
    meal_id: int,
    payload: MealUpdate,
    service: MealCompositionService = Depends(get_meal_service),
    actor: Optional[str] = Depends(get_actor),
):
    return service.update_meal(meal_id, payload, actor=actor)


@router.delete("/{meal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meal(
    meal_id: int,
    service: MealCompositionService = Depends(get_meal_service),
    actor: Optional[str] = Depends(get_actor),
):
    service.delete_meal(meal_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
