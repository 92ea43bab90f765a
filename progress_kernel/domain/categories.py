"""Milestone categories used for earned-value reporting."""

from enum import Enum


class MilestoneCategory(str, Enum):
    """
    Coarse reporting bucket of a milestone.

    Independent of template weight: a delta report normalizes each category
    against its own budget share.
    """

    RECEIVE = "receive"
    INSTALL = "install"
    PUNCH = "punch"
    TEST = "test"
    RESTORE = "restore"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


# Category of well-known milestone names, used when a template entry omits one.
DEFAULT_MILESTONE_CATEGORIES: dict[str, MilestoneCategory] = {
    "Receive": MilestoneCategory.RECEIVE,
    "Erect": MilestoneCategory.INSTALL,
    "Connect": MilestoneCategory.INSTALL,
    "Install": MilestoneCategory.INSTALL,
    "Fit-Up": MilestoneCategory.INSTALL,
    "Weld Made": MilestoneCategory.INSTALL,
    "Fabricate": MilestoneCategory.INSTALL,
    "Support": MilestoneCategory.INSTALL,
    "Punch": MilestoneCategory.PUNCH,
    "Test": MilestoneCategory.TEST,
    "Restore": MilestoneCategory.RESTORE,
}


def category_for(milestone_name: str) -> MilestoneCategory | None:
    """Return the default category for a milestone name, or None if unknown."""
    return DEFAULT_MILESTONE_CATEGORIES.get(milestone_name)
