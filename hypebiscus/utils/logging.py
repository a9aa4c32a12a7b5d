import logging
import re
import sys
from typing import Any

SENSITIVE_KEYS = (
    "password", "secret", "key", "token", "private", "seed", "mnemonic",
    "authorization", "auth", "signature",
)

SENSITIVE_PATTERNS = [
    re.compile(r"sk-ant-[A-Za-z0-9_\-]+"),
    re.compile(r"\b(?:api|secret|private)[_\s]*key\s*[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"\bBearer\s+[A-Za-z0-9._\-]+", re.IGNORECASE),
]
PII_PATTERNS = [
    re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b"),
]


def redact(text: str) -> str:
    for pattern in SENSITIVE_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    for pattern in PII_PATTERNS:
        text = pattern.sub("[PII_REDACTED]", text)
    return text


def sanitize(data: Any) -> Any:
    """Recursively redact secrets in strings and values under sensitive keys."""
    if isinstance(data, str):
        return redact(data)
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if any(s in str(k).lower() for s in SENSITIVE_KEYS):
                out[k] = "[REDACTED]"
            else:
                out[k] = sanitize(v)
        return out
    if isinstance(data, (list, tuple)):
        return [sanitize(v) for v in data]
    return data


def mask_ip(ip: str | None) -> str | None:
    if not ip:
        return None
    if "." in ip:
        return ".".join(ip.split(".")[:3]) + ".xxx"
    return ip.rsplit(":", 1)[0] + ":xxxx" if ":" in ip else "xxx"


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if record.args:
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args) \
                if isinstance(record.args, tuple) else record.args
        return True


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    handler.addFilter(RedactingFilter())

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers if reload
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)
