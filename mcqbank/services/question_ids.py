"""
Structured public identifiers for questions.

A human id reads ``{PREFIX}-{level code}-{sequence}``, e.g. ``QB-02030-0000451``:

* the prefix is ``QB`` or ``PP`` depending on the hierarchy variant,
* the level code packs one digit per hierarchy level (Year..Chapter),
* the sequence is a 7 digit number drawn from a shared counter.

Generation never raises. When anything goes wrong a degraded id is returned
and flagged so the caller can decide whether to accept it.
"""
from dataclasses import dataclass
import logging
import random
import re
import time
from typing import NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mcqbank.models.orm import SequenceCounter
from mcqbank.services.hierarchy import ResolvedNode, walk_to_root
from mcqbank.services.store import HierarchyStore

logger = logging.getLogger(__name__)

LEVEL_CODE_WIDTH = 5
EMPTY_LEVEL_CODE = "0" * LEVEL_CODE_WIDTH
SEQUENCE_WIDTH = 7
SEQUENCE_MODULUS = 10 ** SEQUENCE_WIDTH
HUMAN_ID_COUNTER = "question_human_id"
HUMAN_ID_PATTERN = re.compile(r"^(QB|PP)-\d{5}-\d{7}$")


def level_digit(level: int, order: int) -> int:
    """Digit stored for one hierarchy level.

    An unordered node (order 0) falls back to its level number; orders up to
    9 are used as-is and larger orders contribute their tens digit.
    """
    if order == 0:
        return level % 10
    if order <= 9:
        return order % 10
    return (order // 10) % 10


def encode_level_code(store: HierarchyStore, resolved: ResolvedNode) -> str:
    """Pack the resolved node's root-ward path into a 5 digit code.

    Levels that cannot be reached (missing parents) stay ``0``.
    """
    try:
        digits = [0] * LEVEL_CODE_WIDTH
        for node in walk_to_root(store, resolved, max_depth=LEVEL_CODE_WIDTH):
            if 1 <= node.level <= LEVEL_CODE_WIDTH:
                digits[node.level - 1] = level_digit(node.level, node.order)
        return "".join(str(d) for d in digits)
    except Exception:
        logger.warning("Level code for %s fell back to %s", resolved.variant_id, EMPTY_LEVEL_CODE, exc_info=True)
        return EMPTY_LEVEL_CODE


class Allocation(NamedTuple):
    value: str
    fallback: bool = False


def fallback_sequence(now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return str((millis + random.randint(0, 999)) % SEQUENCE_MODULUS).zfill(SEQUENCE_WIDTH)


class SequenceAllocator:
    """Allocates question sequence numbers from a counter row.

    Each allocation is a single ``UPDATE ... SET value = value + 1`` in the
    caller's transaction, so concurrent creators serialize on the row
    instead of reading the same question count.
    """

    def __init__(self, db: Session, counter: str = HUMAN_ID_COUNTER):
        self.db = db
        self.counter = counter

    def ensure_counter(self) -> SequenceCounter:
        """Create the counter row if missing, seeded from the active question count."""
        row = self.db.get(SequenceCounter, self.counter)
        if row is None:
            seed = HierarchyStore(self.db).count_active_questions()
            row = SequenceCounter(name=self.counter, value=seed)
            self.db.add(row)
            self.db.flush()
            logger.info("Seeded sequence counter %s at %d", self.counter, seed)
        return row

    def next_value(self) -> int:
        self.ensure_counter()
        self.db.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == self.counter)
            .values(value=SequenceCounter.value + 1)
        )
        return self.db.scalar(select(SequenceCounter.value).where(SequenceCounter.name == self.counter))

    def allocate(self) -> Allocation:
        # a savepoint keeps the caller's own pending writes if the counter fails
        try:
            with self.db.begin_nested():
                value = self.next_value()
            return Allocation(str(value % SEQUENCE_MODULUS).zfill(SEQUENCE_WIDTH))
        except SQLAlchemyError:
            logger.warning("Sequence counter %s unavailable, using time-based fallback", self.counter, exc_info=True)
            return Allocation(fallback_sequence(), fallback=True)

    def next(self) -> str:
        return self.allocate().value


@dataclass(frozen=True)
class HumanId:
    value: str
    degraded: bool = False
    reason: Optional[str] = None


def degraded_human_id(now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return f"QB-{EMPTY_LEVEL_CODE}-{millis % 10000:04d}"


class HumanIdGenerator:
    def __init__(self, store: HierarchyStore, allocator: Optional[SequenceAllocator] = None):
        self.store = store
        self.allocator = allocator or SequenceAllocator(store.db)

    def generate(self, resolved: ResolvedNode) -> HumanId:
        try:
            prefix = resolved.variant.id_prefix(resolved.node)
            level_code = encode_level_code(self.store, resolved)
            allocation = self.allocator.allocate()
            value = f"{prefix}-{level_code}-{allocation.value}"
            if allocation.fallback:
                return HumanId(value, degraded=True, reason="sequence counter unavailable")
            return HumanId(value)
        except Exception as e:
            value = degraded_human_id()
            logger.warning("Human id generation failed for %s, degraded to %s: %s", resolved, value, e)
            return HumanId(value, degraded=True, reason=str(e) or type(e).__name__)
