"""
Hierarchy resolution, root-ward walks and per-variant hierarchy management.
"""
from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, func, update
from sqlalchemy.orm import Session

from mcqbank.core.config import settings
from mcqbank.core.errors import NotFoundError, BadRequestError, StoreError
from mcqbank.models.variants import HierarchyVariant, RESOLUTION_ORDER
from mcqbank.services.store import HierarchyStore, OrderUpdate

logger = logging.getLogger(__name__)

MIN_LEVEL, MAX_LEVEL = 1, 5
PATH_KEYS = ("year", "subject", "part", "section", "chapter")


@dataclass(frozen=True)
class ResolvedNode:
    """A hierarchy node together with the variant that owns it."""

    node: object
    variant: HierarchyVariant

    @property
    def variant_id(self) -> str:
        return self.node.id

    @property
    def level(self) -> int:
        return self.node.level


class HierarchyResolver:
    """Finds which hierarchy variant owns a node id.

    Variants are tried in a fixed order and the first hit wins. A lookup
    that fails at the store level is skipped, since a variant's table may
    not exist yet while schemas are being migrated.
    """

    def __init__(self, store: HierarchyStore, order: Sequence[HierarchyVariant] = RESOLUTION_ORDER):
        self.store = store
        self.order = tuple(order)

    def resolve(self, node_id: str) -> ResolvedNode:
        for variant in self.order:
            try:
                node = self.store.get_by_id(variant, node_id)
            except StoreError as e:
                logger.debug("Skipping %s while resolving %s: %s", variant.value, node_id, e)
                continue
            if node is not None:
                return ResolvedNode(node=node, variant=variant)
        raise NotFoundError(f"Hierarchy item with ID {node_id} not found")


def walk_to_root(store: HierarchyStore, resolved: ResolvedNode, max_depth: Optional[int] = None) -> list:
    """Return the path from the root down to the resolved node.

    Parents are fetched from the resolved node's own variant. The walk stops
    at a node without a parent, at a parent that cannot be found, at a node
    already visited, or after `max_depth` nodes.
    """
    max_depth = max_depth or settings.MAX_HIERARCHY_DEPTH
    path = [resolved.node]
    seen = {resolved.node.id}
    current = resolved.node
    for _ in range(max_depth - 1):
        if current.parent_id is None:
            break
        parent = store.get_by_id(resolved.variant, current.parent_id)
        if parent is None or parent.id in seen:
            break
        path.insert(0, parent)
        seen.add(parent.id)
        current = parent
    return path


def hierarchy_path(nodes: list) -> Dict[str, Optional[str]]:
    """Map a root-first node path to year/subject/part/section/chapter names."""
    path = dict.fromkeys(PATH_KEYS)
    for node in nodes:
        if MIN_LEVEL <= node.level <= MAX_LEVEL:
            path[PATH_KEYS[node.level - 1]] = node.name
    return path


def node_to_dict(node, children: Optional[list] = None) -> dict:
    return {
        "id": node.id,
        "name": node.name,
        "level": node.level,
        "type": node.type,
        "color": node.color,
        "order": node.order,
        "parent_id": node.parent_id,
        "question_count": node.question_count,
        "is_published": node.is_published,
        "children": children or [],
    }


class HierarchyService:
    """CRUD, ordering and publishing for one hierarchy variant."""

    def __init__(self, db: Session, variant: HierarchyVariant):
        self.db = db
        self.variant = variant
        self.model = variant.model
        self.store = HierarchyStore(db)

    def _get(self, node_id: str):
        node = self.store.get_by_id(self.variant, node_id)
        if node is None:
            raise NotFoundError(f"{self.variant.item_label} with ID {node_id} not found")
        return node

    def _subtrees(self, roots: list, only_published: bool = False, depth: Optional[int] = None) -> List[dict]:
        # breadth-first, one query per level, bounded by the hierarchy depth
        depth = depth or settings.MAX_HIERARCHY_DEPTH
        children_map = defaultdict(list)
        frontier = [r.id for r in roots]
        seen = set(frontier)
        for _ in range(depth - 1):
            if not frontier:
                break
            stmt = select(self.model).where(self.model.parent_id.in_(frontier)).order_by(self.model.order)
            if only_published:
                stmt = stmt.where(self.model.is_published.is_(True))
            next_frontier = []
            for row in self.db.scalars(stmt):
                if row.id in seen:
                    continue
                seen.add(row.id)
                children_map[row.parent_id].append(row)
                next_frontier.append(row.id)
            frontier = next_frontier

        def build(node) -> dict:
            return node_to_dict(node, [build(c) for c in children_map.get(node.id, [])])

        return [build(r) for r in roots]

    # ---------- queries ----------

    def find_all(self) -> List[dict]:
        roots = self.db.scalars(
            select(self.model).where(self.model.level == MIN_LEVEL).order_by(self.model.order)
        ).all()
        return self._subtrees(list(roots))

    def find_one(self, node_id: str) -> dict:
        return self._subtrees([self._get(node_id)])[0]

    def find_by_level(self, level: int) -> list:
        if level < MIN_LEVEL or level > MAX_LEVEL:
            raise BadRequestError("Level must be between 1 and 5")
        return list(self.db.scalars(
            select(self.model).where(self.model.level == level).order_by(self.model.order)
        ))

    def find_by_parent(self, parent_id: str) -> list:
        return self.store.children_of(self.variant, parent_id)

    def find_published(self) -> List[dict]:
        """Published level 1 and level 2 items, each with its published children."""
        published = []
        for level in (1, 2):
            stmt = (
                select(self.model)
                .where(self.model.is_published.is_(True), self.model.level == level)
                .order_by(self.model.order)
            )
            published.extend(self._subtrees(list(self.db.scalars(stmt)), only_published=True, depth=2))
        return published

    def stats(self) -> List[dict]:
        stmt = (
            select(self.model.level, func.count(self.model.id), func.sum(self.model.question_count))
            .group_by(self.model.level)
            .order_by(self.model.level)
        )
        return [
            {"level": level, "type": self.variant.level_type(level), "count": count, "total_questions": total or 0}
            for level, count, total in self.db.execute(stmt).all()
        ]

    def path(self, node_id: str) -> Dict[str, Optional[str]]:
        resolved = ResolvedNode(node=self._get(node_id), variant=self.variant)
        return hierarchy_path(walk_to_root(self.store, resolved))

    # ---------- mutations ----------

    def create(self, name: str, level: int, parent_id: Optional[str] = None, color: Optional[str] = None,
               question_count: int = 0, node_id: Optional[str] = None):
        if level < MIN_LEVEL or level > MAX_LEVEL:
            raise BadRequestError("Level must be between 1 and 5")
        if parent_id:
            parent = self.store.get_by_id(self.variant, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent with ID {parent_id} not found")
            if parent.level != level - 1:
                raise BadRequestError(
                    f"Invalid level hierarchy. Parent level is {parent.level}, "
                    f"child level should be {parent.level + 1}"
                )
        elif level != MIN_LEVEL:
            raise BadRequestError(
                f"Only level 1 items ({self.variant.level_type(MIN_LEVEL)}s) can have no parent"
            )

        node = self.model(
            name=name,
            level=level,
            parent_id=parent_id or None,
            color=color,
            question_count=question_count,
            order=self.store.max_order(self.variant, level, parent_id or None) + 1,
            type=self.variant.level_type(level),
        )
        if node_id:
            node.id = node_id
        self.db.add(node)
        self.db.commit()
        logger.info("Created %s %s (level %d)", self.variant.value, node.id, level)
        return node

    def update(self, node_id: str, name: Optional[str] = None, color: Optional[str] = None,
               order: Optional[int] = None, question_count: Optional[int] = None):
        node = self._get(node_id)
        if name is not None:
            node.name = name
        if color is not None:
            node.color = color
        if order is not None:
            node.order = order
        if question_count is not None:
            node.question_count = question_count
        self.db.commit()
        return node

    def delete(self, node_id: str) -> bool:
        node = self._get(node_id)
        if self.store.children_of(self.variant, node.id):
            raise BadRequestError("Cannot delete item with children")
        self.db.delete(node)
        self.db.commit()
        logger.info("Deleted %s %s", self.variant.value, node_id)
        return True

    def reorder(self, items: Sequence[OrderUpdate]) -> list:
        if not items:
            raise BadRequestError("Reorder requires at least one item")
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise BadRequestError("Reorder items must have unique ids")
        if any(item.order < 0 for item in items):
            raise BadRequestError("Order must be a non-negative integer")
        return self.store.batch_update_order(self.variant, items)

    def set_question_count(self, node_id: str, count: int):
        node = self._get(node_id)
        if node.level != MAX_LEVEL:
            raise BadRequestError("Only chapters (level 5) can have question counts")
        node.question_count = count
        self.db.commit()
        return node

    def publish(self, node_id: str):
        node = self._get(node_id)
        if node.level > MIN_LEVEL and node.parent_id is not None:
            parent = self.store.get_by_id(self.variant, node.parent_id)
            if parent is not None and not parent.is_published:
                raise BadRequestError("Please publish the parent first to proceed")
        node.is_published = True
        self.db.commit()
        return node

    def unpublish(self, node_id: str):
        node = self._get(node_id)
        self.db.execute(
            update(self.model).where(self.model.parent_id == node.id).values(is_published=False)
        )
        node.is_published = False
        self.db.commit()
        return node
