"""Branch types offered from every concept."""

from enum import Enum


class BranchType(str, Enum):
    """
    Kind of exploration an edge represents.

    Purely descriptive: traversal treats every type the same.
    """

    CONSTRUCTIVE = "constructive"
    CRITIQUE = "critique"
    AUTHOR = "author"
    WILDCARD = "wildcard"


BRANCH_TYPE_VALUES = tuple(t.value for t in BranchType)
