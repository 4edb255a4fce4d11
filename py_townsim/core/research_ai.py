"""
Research prioritization for towns.

Scoring and selection are split:

- ``calculate_score`` is a pure function of a ``TownState`` and a node. Its
  values are the ones shown to players.
- ``select_with_bias`` adds a uniform random bias in ``[0, bias_range)`` to
  every candidate and returns the arg-max, so near-ties do not always resolve
  to the same node.
"""

from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

import numpy as np
import structlog

from ..registry import STORAGE_CAP_ALL, STORAGE_CAP_PREFIX, ContentRegistry, UpgradeNode
from .town_state import TownState

if TYPE_CHECKING:
    from .town import Town

logger = structlog.get_logger()

# Storage cap scoring
GLOBAL_FULLNESS_THRESHOLD = 0.8
GLOBAL_FULLNESS_BONUS = 10.0
CRITICAL_FULLNESS_THRESHOLD = 0.9
CRITICAL_FULLNESS_BONUS = 20.0
HIGH_FULLNESS_THRESHOLD = 0.75
HIGH_FULLNESS_BONUS = 10.0
FULLNESS_WEIGHT = 5.0

# Production scoring
DEFICIT_BASE = 15.0
DEFICIT_WEIGHT = 2.0
SURPLUS_SCORE = 1.0
LOW_STOCK_RATIO = 0.2
LOW_STOCK_BONUS = 5.0

DEFAULT_BIAS_RANGE = 2.0


def _fullness(state: TownState, resource_id: str) -> Optional[float]:
    cap = state.get_storage_cap(resource_id)
    if cap <= 0:
        return None
    return state.get_stock(resource_id) / cap


def _score_global_cap(state: TownState, content: ContentRegistry) -> float:
    ratios = [
        ratio
        for ratio in (_fullness(state, rid) for rid in content.resources.ids())
        if ratio is not None
    ]
    if not ratios:
        return 0.0

    average = float(np.mean(ratios))
    score = average * FULLNESS_WEIGHT
    if average > GLOBAL_FULLNESS_THRESHOLD:
        score += GLOBAL_FULLNESS_BONUS
    return score


def _score_resource_cap(state: TownState, resource_id: str) -> float:
    fullness = _fullness(state, resource_id)
    if fullness is None:
        return 0.0

    score = fullness * FULLNESS_WEIGHT
    if fullness > CRITICAL_FULLNESS_THRESHOLD:
        score += CRITICAL_FULLNESS_BONUS
    elif fullness > HIGH_FULLNESS_THRESHOLD:
        score += HIGH_FULLNESS_BONUS
    return score


def _score_recipe(state: TownState, recipe_id: str, content: ContentRegistry) -> float:
    recipe = content.productions.get(recipe_id)
    score = 0.0
    for resource_id in recipe.output_ids():
        production = state.get_production_rate(resource_id)
        consumption = state.get_consumption_rate(resource_id)
        if consumption > production:
            score += DEFICIT_BASE + (consumption - production) * DEFICIT_WEIGHT
        else:
            score += SURPLUS_SCORE

        cap = state.get_storage_cap(resource_id)
        if cap > 0 and state.get_stock(resource_id) / cap < LOW_STOCK_RATIO:
            score += LOW_STOCK_BONUS
    return score


def calculate_score(state: TownState, node: UpgradeNode, content: ContentRegistry) -> float:
    """
    Un-biased priority of ``node`` for a town, summed over its effects.

    Args:
        state: Stock, cap and rate lookups for the town
        node: Upgrade node to score
        content: Registries used to resolve resources and recipes

    Returns:
        Deterministic score; identical inputs give identical values
    """
    score = 0.0
    for effect in node.effects:
        target = effect.target
        if target == STORAGE_CAP_ALL:
            score += _score_global_cap(state, content)
        elif target.startswith(STORAGE_CAP_PREFIX):
            score += _score_resource_cap(state, target[len(STORAGE_CAP_PREFIX):])
        elif target in content.productions:
            score += _score_recipe(state, target, content)
    return score


def _prerequisites_met(node: UpgradeNode, unlocked: Iterable[str]) -> bool:
    unlocked = set(unlocked)
    return all(prereq in unlocked for prereq in node.prereq_nodes)


def calculate_priorities(
    state: TownState,
    unlocked: Iterable[str],
    content: ContentRegistry,
    levels: Optional[Dict[str, int]] = None,
) -> Dict[str, float]:
    """
    Scores for every node whose prerequisites are met and that is not maxed.

    Affordability is ignored so displays can show what a town is saving for.
    """
    unlocked = set(unlocked)
    levels = levels or {}
    scores = {}
    for node in content.upgrades:
        level = levels.get(node.id, 1 if node.id in unlocked else 0)
        if node.is_maxed(level):
            continue
        if _prerequisites_met(node, unlocked):
            scores[node.id] = calculate_score(state, node, content)
    return scores


def find_candidates(town: "Town", content: ContentRegistry) -> List[UpgradeNode]:
    """Nodes the town could start researching right now."""
    upgrades = town.upgrades
    return [node for node in content.upgrades if upgrades.can_research(node)]


def select_with_bias(
    scores: Dict[str, float],
    rng: np.random.Generator,
    bias_range: float = DEFAULT_BIAS_RANGE,
) -> Optional[str]:
    """
    Pick the candidate with the highest biased score.

    Args:
        scores: Node id -> un-biased score
        rng: Random generator supplying the bias
        bias_range: Exclusive upper bound of the uniform bias

    Returns:
        Selected node id, or None when there are no candidates
    """
    if not scores:
        return None

    node_ids = list(scores)
    biased = np.array([scores[n] for n in node_ids], dtype=float)
    biased += rng.uniform(0.0, bias_range, size=len(node_ids))
    return node_ids[int(np.argmax(biased))]


def select_next_research(
    town: "Town",
    content: ContentRegistry,
    rng: np.random.Generator,
    bias_range: float = DEFAULT_BIAS_RANGE,
) -> Optional[str]:
    """Score the town's candidates and pick one with a random bias."""
    candidates = find_candidates(town, content)
    if not candidates:
        return None

    scores = {node.id: calculate_score(town, node, content) for node in candidates}
    selected = select_with_bias(scores, rng, bias_range)
    logger.debug(
        "Research selected",
        town_id=town.id,
        node_id=selected,
        score=scores[selected],
        candidates=len(candidates),
    )
    return selected
