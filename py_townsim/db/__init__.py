"""
Persistence for town state.

The town manager only calls ``save``/``load``/``mark_dirty``; these stores
implement that contract in memory and as a JSON file.
"""

from .persistence import InMemoryTownPersistence, JsonFileTownPersistence, TownPersistence

__all__ = ['TownPersistence', 'InMemoryTownPersistence', 'JsonFileTownPersistence']
