"""
Core settlement simulation functionality.
"""

from .results import (
    ClaimError, ClaimErrorCode, PlacementError, PlacementErrorCode, Result, StorageError,
    ValidationError,
)
from .storage import StockLedger
from .economy import TownEconomyComponent
from .payment_board import (
    ClaimDestination, ClaimStatus, RewardEntry, RewardItem, RewardSource, TownPaymentBoard,
)
from .boundary import TownBoundaryService, boundary_radius, distance_between
from .town_state import TownState, TownStateSnapshot
from .research_ai import (
    calculate_priorities, calculate_score, find_candidates, select_next_research, select_with_bias,
)
from .tourism import MilestoneResult, calculate_fare, check_milestones
from .platforms import Platform, PlatformList
from .town import Town, VisitHistoryRecord
from .town_manager import TownManager, TownStatistics

__all__ = ['ClaimError', 'ClaimErrorCode', 'PlacementError', 'PlacementErrorCode', 'Result',
           'StorageError', 'ValidationError', 'StockLedger', 'TownEconomyComponent',
           'ClaimDestination', 'ClaimStatus', 'RewardEntry', 'RewardItem', 'RewardSource',
           'TownPaymentBoard', 'TownBoundaryService', 'boundary_radius', 'distance_between',
           'TownState', 'TownStateSnapshot', 'calculate_priorities', 'calculate_score',
           'find_candidates', 'select_next_research', 'select_with_bias',
           'MilestoneResult', 'calculate_fare', 'check_milestones', 'Platform',
           'PlatformList', 'Town', 'VisitHistoryRecord', 'TownManager', 'TownStatistics']
