"""
Provider chain construction.

Every model under the primary provider is exhausted before paying for a
provider switch: same-provider fallback is assumed cheaper and faster than
cross-provider. The chain is built fresh for each request and never stored.
"""

import logging
from typing import Dict, List, Mapping

from graph.config import FALLBACK_MODELS, PRIMARY, REG, ROUTING_POLICY, SECONDARY, Settings
from graph.models import SelectedModel

logger = logging.getLogger("tutor-router.chain")


def available_credentials(settings: Settings) -> Dict[str, bool]:
    return {
        PRIMARY: settings.has_credentials(PRIMARY),
        SECONDARY: settings.has_credentials(SECONDARY),
    }


def build_chain(category: str, available: Mapping[str, bool]) -> List[SelectedModel]:
    """
    Ordered candidates for a category, filtered by configured credentials.

    fast/balanced     -> primary balanced, primary light, secondary fallback
    reasoning/coding  -> primary expert, balanced, legacy, light, secondary fallback

    Returns [] when no credentials are present; the caller must surface a
    configuration error rather than retry.
    """
    chain: List[SelectedModel] = []

    if available.get(PRIMARY):
        keys = ROUTING_POLICY.get(category) or ROUTING_POLICY.get("balanced", [])
        chain.extend(REG[k] for k in keys if k in REG)

    if available.get(SECONDARY):
        chain.extend(REG[k] for k in FALLBACK_MODELS if k in REG)

    logger.debug(f"Built chain for {category}: {[m.key for m in chain]}")
    return chain
