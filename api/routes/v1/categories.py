"""
api/routes/v1/categories.py -- Blog-category tree CRUD endpoints.

Routes:
  GET    /api/v1/blog-categories        -- list all category trees (public)
  GET    /api/v1/blog-categories/{id}   -- one category tree (public)
  POST   /api/v1/blog-categories        -- create a category tree (requires auth)
  PUT    /api/v1/blog-categories/{id}   -- rename / replace subtree (requires auth)
  DELETE /api/v1/blog-categories/{id}   -- delete a category tree (requires auth)

A tree referenced by any blog is "in use": PUT and DELETE return 400.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import (
    CategoryCreate,
    CategoryListResponse,
    CategoryNodeOut,
    CategoryResponse,
    CategoryUpdate,
    SubCategoryIn,
)
from auth.dependencies import get_current_session
from categories.models import CategoryNode
from categories.store import CategoryInUse, CategoryNotFound, CategoryStore, DuplicateCategory

router = APIRouter(prefix="/blog-categories")


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def _to_nodes(items: list[SubCategoryIn]) -> list[CategoryNode]:
    return [CategoryNode(name=i.name, children=_to_nodes(i.sub_categories)) for i in items]


def _to_out(node: CategoryNode) -> CategoryNodeOut:
    return CategoryNodeOut(id=node.id, name=node.name, sub_categories=[_to_out(c) for c in node.children])


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Blog category not found")


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=CategoryListResponse)
def list_categories(request: Request) -> CategoryListResponse:
    store: CategoryStore = request.app.state.categories
    return CategoryListResponse(data=[_to_out(c) for c in store.list_categories()])


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, category_id: int) -> CategoryResponse:
    store: CategoryStore = request.app.state.categories
    category = store.get_category(category_id)
    if category is None:
        raise _not_found()
    return CategoryResponse(data=_to_out(category))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=CategoryResponse, status_code=201, dependencies=[Depends(get_current_session)])
def create_category(request: Request, body: CategoryCreate) -> CategoryResponse:
    store: CategoryStore = request.app.state.categories
    try:
        category_id = store.create_category(CategoryNode(name=body.name, children=_to_nodes(body.sub_categories)))
    except DuplicateCategory as exc:
        raise HTTPException(status_code=409, detail="A blog category with that name already exists") from exc
    created = store.get_category(category_id)
    if created is None:
        raise HTTPException(status_code=500, detail="Blog category not found after write")
    return CategoryResponse(data=_to_out(created))


@router.put("/{category_id}", response_model=CategoryResponse, dependencies=[Depends(get_current_session)])
def update_category(request: Request, category_id: int, body: CategoryUpdate) -> CategoryResponse:
    store: CategoryStore = request.app.state.categories
    children = _to_nodes(body.sub_categories) if body.sub_categories is not None else None
    try:
        updated = store.update_category(category_id, name=body.name, children=children)
    except CategoryNotFound as exc:
        raise _not_found() from exc
    except CategoryInUse as exc:
        raise HTTPException(status_code=400, detail="Blog category is in use") from exc
    except DuplicateCategory as exc:
        raise HTTPException(status_code=409, detail="A blog category with that name already exists") from exc
    return CategoryResponse(data=_to_out(updated))


@router.delete("/{category_id}", status_code=204, dependencies=[Depends(get_current_session)])
def delete_category(request: Request, category_id: int) -> Response:
    store: CategoryStore = request.app.state.categories
    try:
        store.delete_category(category_id)
    except CategoryNotFound as exc:
        raise _not_found() from exc
    except CategoryInUse as exc:
        raise HTTPException(status_code=400, detail="Blog category is in use") from exc
    return Response(status_code=204)
