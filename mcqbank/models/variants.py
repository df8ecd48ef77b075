import enum

from mcqbank.models.orm import HierarchyItem, QuestionBankHierarchy, PreviousPapersHierarchy

DEFAULT_LEVEL_TYPES = {1: "Year", 2: "Subject", 3: "Part", 4: "Section", 5: "Chapter"}
PREVIOUS_PAPERS_LEVEL_TYPES = {1: "Exam", 2: "Year", 3: "Subject", 4: "Section", 5: "Chapter"}

# substrings in a legacy node name that mark it as previous-papers content
PREVIOUS_PAPERS_MARKERS = ("previous", "neet", "aiims")


class HierarchyVariant(enum.Enum):
    """The three separately stored hierarchy schemas.

    Each member knows its table, its level labels and how it prefixes the
    human ids of questions filed under it.
    """

    QUESTION_BANK = "question-bank"
    PREVIOUS_PAPERS = "previous-papers"
    LEGACY = "legacy"

    @property
    def model(self):
        return _MODELS[self]

    @property
    def item_label(self) -> str:
        return _ITEM_LABELS[self]

    def level_type(self, level: int) -> str:
        types = PREVIOUS_PAPERS_LEVEL_TYPES if self is HierarchyVariant.PREVIOUS_PAPERS else DEFAULT_LEVEL_TYPES
        return types.get(level, "Item")

    def id_prefix(self, node) -> str:
        if self is HierarchyVariant.QUESTION_BANK:
            return "QB"
        if self is HierarchyVariant.PREVIOUS_PAPERS:
            return "PP"
        name = (node.name or "").lower()
        return "PP" if any(marker in name for marker in PREVIOUS_PAPERS_MARKERS) else "QB"


# lookup order used by the resolver
RESOLUTION_ORDER = (
    HierarchyVariant.QUESTION_BANK,
    HierarchyVariant.PREVIOUS_PAPERS,
    HierarchyVariant.LEGACY,
)

_MODELS = {
    HierarchyVariant.QUESTION_BANK: QuestionBankHierarchy,
    HierarchyVariant.PREVIOUS_PAPERS: PreviousPapersHierarchy,
    HierarchyVariant.LEGACY: HierarchyItem,
}

_ITEM_LABELS = {
    HierarchyVariant.QUESTION_BANK: "Main Bank hierarchy item",
    HierarchyVariant.PREVIOUS_PAPERS: "Previous Papers hierarchy item",
    HierarchyVariant.LEGACY: "Hierarchy item",
}
