from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from hypebiscus.config import get_settings
from hypebiscus.errors import GatewayError
from hypebiscus.http import HttpClient
from hypebiscus.models import ApiPool, PoolGroup, PoolGroupResponse

logger = logging.getLogger(__name__)


def _parse_pairs(raw_pairs: List[Any]) -> List[ApiPool]:
    pairs: List[ApiPool] = []
    for raw in raw_pairs or []:
        try:
            pairs.append(ApiPool.model_validate(raw))
        except PydanticValidationError as e:
            logger.debug(f"Skipping malformed pair: {e.error_count()} errors")
    return pairs


async def fetch_pools(http: HttpClient, search_term: str, base_url: str | None = None) -> PoolGroupResponse:
    """Fetch DLMM pair groups matching ``search_term`` from the Meteora index.

    Docs: https://dlmm-api.meteora.ag/swagger-ui/
    """
    base = (base_url or get_settings().METEORA_API_BASE).rstrip("/")
    url = f"{base}/pair/all_by_groups"
    resp = await http.get(url, params={"search_term": search_term})
    try:
        data: Dict[str, Any] = resp.json()
    except ValueError as e:
        raise GatewayError(f"Failed to fetch {search_term} pools: invalid JSON") from e
    if not isinstance(data, dict) or not isinstance(data.get("groups", []), list):
        raise GatewayError(f"Failed to fetch {search_term} pools: unexpected payload")

    groups: List[PoolGroup] = []
    for g in data.get("groups") or []:
        if not isinstance(g, dict):
            continue
        groups.append(PoolGroup(name=str(g.get("name") or ""), pairs=_parse_pairs(g.get("pairs"))))
    total = data.get("total")
    return PoolGroupResponse(groups=groups, total=int(total) if isinstance(total, (int, float)) else len(groups))
