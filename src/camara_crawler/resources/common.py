import hashlib
import json
from datetime import datetime
from typing import Any, Dict, Optional

CAMARA_SITE = "https://www.camara.leg.br"


def as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


def as_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def as_datetime(v: Any) -> Optional[datetime]:
    s = as_str(v)
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def obj(d: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = d.get(key)
    return v if isinstance(v, dict) else {}


def as_list(v: Any) -> list:
    if v is None or v == "":
        return []
    if isinstance(v, list):
        return v
    return [v]


def id_from_uri(uri: Any, collection: str) -> Optional[int]:
    """.../api/v2/deputados/204554 -> 204554 (only for the given collection)."""
    s = as_str(uri)
    if not s:
        return None
    parts = s.rstrip("/").split("/")
    if len(parts) < 2 or parts[-2] != collection:
        return None
    return as_int(parts[-1])


def deputy_link(deputy_id: int) -> str:
    return f"{CAMARA_SITE}/deputados/{deputy_id}"


def proposition_link(proposition_id: int) -> str:
    return f"{CAMARA_SITE}/proposicoesWeb/fichadetramitacao?idProposicao={proposition_id}"


def sha256_hex(value: Any) -> str:
    data = json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
