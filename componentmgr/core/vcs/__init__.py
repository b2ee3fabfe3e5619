from componentmgr.core.vcs.git import GitVersionControl, RecurseSubmodules

__all__ = ["GitVersionControl", "RecurseSubmodules"]
