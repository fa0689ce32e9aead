"""
categories/store.py -- SQLAlchemy-backed persistence for the blog-category tree.

Uses SQLAlchemy Core (not ORM) so the dataclasses in categories/models.py
remain the authoritative domain representation.

Pattern: Repository + Data Mapper, arena layout. A category tree of any depth
is stored as flat rows in blog_categories:
  - parent_id  -- the enclosing node (NULL for a top-level category)
  - root_id    -- the top-level category the node belongs to (NULL for roots)
  - position   -- order among siblings
Fetching a whole tree is one query on root_id; the nesting is rebuilt in
memory from parent_id references.

Rules enforced here:
  - Top-level names are unique. Checked in code because SQLite treats NULL
    parent_ids as distinct in a UNIQUE(parent_id, name) constraint.
  - A tree is "in use" when any blog references any of its nodes. In-use
    trees cannot be updated or deleted.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CategoryStore("sqlite:///:memory:")
    cat_id = store.create_category(CategoryNode(name="Tech", children=[CategoryNode(name="Python")]))
    tree = store.get_category(cat_id)
    store.delete_category(cat_id)
    store.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine

from categories.models import Blog, CategoryNode

logger = logging.getLogger("codegate.categories")

_DEFAULT_DB_URL = "sqlite:///codegate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_categories = Table(
    "blog_categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("parent_id", Integer, index=True),
    Column("root_id", Integer, index=True),
    Column("position", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_blogs = Table(
    "blogs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False, unique=True),
    Column("category_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CategoryNotFound(LookupError):
    pass


class CategoryInUse(Exception):
    pass


class DuplicateCategory(Exception):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per-connection: PRAGMAs are not inherited."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CategoryStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, category: CategoryNode) -> int:
        """Insert a top-level category with its whole subtree; return the root id.

        Raises DuplicateCategory if a top-level category with that name exists.
        """
        with self.engine.connect() as conn:
            if _root_name_taken(conn, category.name):
                raise DuplicateCategory(category.name)
            now = _now_iso()
            result = conn.execute(_categories.insert().values(name=category.name, created_at=now))
            root_id = result.inserted_primary_key[0]
            _insert_children(conn, category.children, parent_id=root_id, root_id=root_id, now=now)
            conn.commit()
        logger.info("Created category %d (%s)", root_id, category.name)
        return root_id

    def list_categories(self) -> list[CategoryNode]:
        """Return every top-level category with its nested tree, oldest first."""
        with self.engine.connect() as conn:
            roots = conn.execute(
                _categories.select().where(_categories.c.parent_id.is_(None)).order_by(_categories.c.id)
            ).fetchall()
            descendants = conn.execute(
                _categories.select()
                .where(_categories.c.root_id.is_not(None))
                .order_by(_categories.c.position, _categories.c.id)
            ).fetchall()
        by_root: dict[int, list] = {}
        for row in descendants:
            by_root.setdefault(row.root_id, []).append(row)
        return [_build_tree(root, by_root.get(root.id, [])) for root in roots]

    def get_category(self, category_id: int) -> Optional[CategoryNode]:
        """Return a top-level category with its tree, or None if not found."""
        with self.engine.connect() as conn:
            return _load_tree(conn, category_id)

    def update_category(
        self,
        category_id: int,
        name: Optional[str] = None,
        children: Optional[list[CategoryNode]] = None,
    ) -> CategoryNode:
        """Rename a category and/or replace its subtree. Returns the updated tree.

        Raises CategoryNotFound, CategoryInUse, or DuplicateCategory.
        """
        with self.engine.connect() as conn:
            current = _load_tree(conn, category_id)
            if current is None:
                raise CategoryNotFound(category_id)
            if _tree_in_use(conn, category_id):
                raise CategoryInUse(category_id)
            if name is not None and name != current.name:
                if _root_name_taken(conn, name):
                    raise DuplicateCategory(name)
                conn.execute(_categories.update().where(_categories.c.id == category_id).values(name=name))
            if children is not None:
                conn.execute(_categories.delete().where(_categories.c.root_id == category_id))
                _insert_children(conn, children, parent_id=category_id, root_id=category_id, now=_now_iso())
            conn.commit()
            return _load_tree(conn, category_id)

    def delete_category(self, category_id: int) -> None:
        """Delete a category and its whole subtree.

        Raises CategoryNotFound or CategoryInUse.
        """
        with self.engine.connect() as conn:
            if _load_root_row(conn, category_id) is None:
                raise CategoryNotFound(category_id)
            if _tree_in_use(conn, category_id):
                raise CategoryInUse(category_id)
            conn.execute(
                _categories.delete().where(
                    (_categories.c.id == category_id) | (_categories.c.root_id == category_id)
                )
            )
            conn.commit()
        logger.info("Deleted category %d", category_id)

    # ------------------------------------------------------------------
    # Blogs
    # ------------------------------------------------------------------

    def create_blog(self, blog: Blog) -> int:
        """Insert a blog referencing a category node and return its id.

        Raises CategoryNotFound if category_id names no node.
        """
        with self.engine.connect() as conn:
            exists = conn.execute(select(_categories.c.id).where(_categories.c.id == blog.category_id)).first()
            if exists is None:
                raise CategoryNotFound(blog.category_id)
            result = conn.execute(
                _blogs.insert().values(title=blog.title, category_id=blog.category_id, created_at=_now_iso())
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _root_name_taken(conn: Connection, name: str) -> bool:
    row = conn.execute(
        select(_categories.c.id).where(_categories.c.parent_id.is_(None) & (_categories.c.name == name))
    ).first()
    return row is not None


def _load_root_row(conn: Connection, category_id: int):
    return conn.execute(
        _categories.select().where((_categories.c.id == category_id) & _categories.c.parent_id.is_(None))
    ).fetchone()


def _load_tree(conn: Connection, category_id: int) -> Optional[CategoryNode]:
    root = _load_root_row(conn, category_id)
    if root is None:
        return None
    rows = conn.execute(
        _categories.select()
        .where(_categories.c.root_id == category_id)
        .order_by(_categories.c.position, _categories.c.id)
    ).fetchall()
    return _build_tree(root, rows)


def _tree_in_use(conn: Connection, category_id: int) -> bool:
    """True if any blog references the root or any node beneath it."""
    node_ids = select(_categories.c.id).where(
        (_categories.c.id == category_id) | (_categories.c.root_id == category_id)
    )
    count = conn.execute(select(func.count()).select_from(_blogs).where(_blogs.c.category_id.in_(node_ids))).scalar()
    return (count or 0) > 0


def _insert_children(
    conn: Connection, children: list[CategoryNode], parent_id: int, root_id: int, now: str
) -> None:
    # Iterative walk; submitted trees have no depth limit.
    pending = [(parent_id, children)]
    while pending:
        parent, nodes = pending.pop()
        for position, node in enumerate(nodes):
            result = conn.execute(
                _categories.insert().values(
                    name=node.name,
                    parent_id=parent,
                    root_id=root_id,
                    position=position,
                    created_at=now,
                )
            )
            if node.children:
                pending.append((result.inserted_primary_key[0], node.children))


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_node(row) -> CategoryNode:
    return CategoryNode(
        id=row.id,
        name=row.name,
        parent_id=row.parent_id,
        created_at=row.created_at,
    )


def _build_tree(root_row, descendant_rows) -> CategoryNode:
    """Rebuild nesting from parent_id references.

    descendant_rows must be ordered by sibling position so children lists
    come out in submission order.
    """
    nodes = {root_row.id: _row_to_node(root_row)}
    for row in descendant_rows:
        nodes[row.id] = _row_to_node(row)
    for row in descendant_rows:
        parent = nodes.get(row.parent_id)
        if parent is not None:
            parent.children.append(nodes[row.id])
    return nodes[root_row.id]
