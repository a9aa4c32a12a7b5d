from __future__ import annotations
import json
import logging
import time
from typing import Dict, Any, Optional

from hypebiscus.config import get_settings
from hypebiscus.http import HttpClient
from hypebiscus.utils.logging import mask_ip, sanitize

logger = logging.getLogger(__name__)


async def loki_log(
    http: Optional[HttpClient],
    level: str,
    message: str,
    labels: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Push one sanitized log line to Loki. Best-effort: never raises into the request path.
    """
    settings = get_settings()
    if not settings.ENABLE_LOKI or http is None:
        return
    fields = dict(extra or {})
    if "client_ip" in fields:
        fields["client_ip"] = mask_ip(fields["client_ip"])
    ts_ns = str(int(time.time() * 1_000_000_000))
    stream = labels or {"service": "hypebiscus", "env": settings.ENV, "level": level}
    payload = {
        "streams": [
            {
                "stream": stream,
                "values": [
                    [ts_ns, json.dumps({"message": message, **sanitize(fields)})]
                ],
            }
        ]
    }
    url = f"{settings.LOKI_URL.rstrip('/')}/loki/api/v1/push"
    try:
        await http.post(url, json=payload, headers={"Content-Type": "application/json"})
    except Exception as e:
        logger.debug(f"Loki push failed: {e}")


def rate_limit_severity(attempt_count: int) -> str:
    if attempt_count > 20:
        return "HIGH"
    if attempt_count > 10:
        return "MEDIUM"
    return "LOW"


async def log_rate_limit_event(http: Optional[HttpClient], client_ip: str, path: str, attempt_count: int) -> None:
    severity = rate_limit_severity(attempt_count)
    logger.warning(f"Rate limit hit on {path} from {mask_ip(client_ip)} (attempts={attempt_count}, severity={severity})")
    await loki_log(
        http,
        "WARN",
        "rate_limit_hit",
        extra={
            "path": path,
            "client_ip": client_ip,
            "attempt_count": attempt_count,
            "severity": severity,
            "potential_abuse": attempt_count > 20,
        },
    )
