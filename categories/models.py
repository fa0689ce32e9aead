"""
categories/models.py -- Domain dataclasses for the blog-category tree.

Pure data containers with zero logic. The tree is persisted as a flat arena of
nodes (categories/store.py): every node stores parent_id and root_id as id
references, and the store rebuilds `children` lists on read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CategoryNode:
    """A category (parent_id None) or one of its nested sub-categories.

    id is None before the node is written to the database.
    """

    name: str
    id: Optional[int] = None
    parent_id: Optional[int] = None
    children: list[CategoryNode] = field(default_factory=list)
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Blog:
    """A published post filed under one node of a category tree.

    Only the category reference matters here: a tree that any blog points
    into is "in use" and cannot be updated or deleted.
    """

    title: str
    category_id: int
    id: Optional[int] = None
    created_at: str = ""
