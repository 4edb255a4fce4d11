"""
Static content catalogs: resources, production recipes and upgrade nodes.
"""

from .parsers import (
    ContentError,
    Effect,
    ResourceAmount,
    parse_effects,
    parse_item_stack,
    parse_resource_amounts,
)
from .resources import ResourceRegistry, ResourceType
from .production import ProductionRecipe, ProductionRegistry
from .upgrades import STORAGE_CAP_ALL, STORAGE_CAP_PREFIX, UpgradeNode, UpgradeRegistry
from .content import ContentRegistry, write_default_content

__all__ = ['ContentError', 'Effect', 'ResourceAmount', 'parse_effects', 'parse_item_stack',
           'parse_resource_amounts',
           'ResourceRegistry', 'ResourceType', 'ProductionRecipe', 'ProductionRegistry',
           'STORAGE_CAP_ALL', 'STORAGE_CAP_PREFIX', 'UpgradeNode', 'UpgradeRegistry',
           'ContentRegistry', 'write_default_content']
