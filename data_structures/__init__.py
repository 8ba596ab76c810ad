"""
Data structures for tree-based models.

Trees are stored as index-addressed node arenas so that fitted models hold
no parent/child object references and serialize to plain, acyclic lists.
"""
from data_structures.tree_arena import ROOT, TreeArena, TreeNode

__all__ = ["ROOT", "TreeArena", "TreeNode"]
