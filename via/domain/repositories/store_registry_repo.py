# via/domain/repositories/store_registry_repo.py

from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional
import json
import logging

from via.domain.errors import RegistryError
from via.domain.models.offer import SellerEndpoint
from via.domain.services.constants import (
    CATEGORY_SNEAKERS,
    CATEGORY_OUTDOOR,
    CATEGORY_CYCLING,
    CATEGORY_PET,
    DEFAULT_WEIGHT,
)

logger = logging.getLogger(__name__)


def normalise_category(raw: Any) -> Optional[str]:
    """Map loose registry spellings ("Sneakers", "bike", "pets") to a category."""
    c = str(raw or "").lower().strip()

    if c in {"sneakers", "sneaker"}:
        return CATEGORY_SNEAKERS
    if c in {"outdoor", "outdoors"}:
        return CATEGORY_OUTDOOR
    if c in {"cycling", "cycle", "bike"}:
        return CATEGORY_CYCLING
    if c in {"pet", "pets", "pet supplies"}:
        return CATEGORY_PET

    if "sneak" in c:
        return CATEGORY_SNEAKERS
    if "outdoor" in c:
        return CATEGORY_OUTDOOR
    if "cycl" in c:
        return CATEGORY_CYCLING
    if "pet" in c:
        return CATEGORY_PET
    return None


def _coerce_store(s: Any) -> Optional[SellerEndpoint]:
    if not isinstance(s, dict):
        return None
    sid = str(s.get("id") or "").strip()
    name = str(s.get("name") or "").strip()
    mcp_url = str(s.get("mcpUrl") or "").strip()
    enabled = bool(s.get("enabled"))
    category = normalise_category(s.get("category"))
    if not sid or not name or not mcp_url or not enabled or not category:
        return None

    weight = s.get("weight")
    tags = s.get("tags")
    return SellerEndpoint(
        id=sid,
        name=name,
        category=category,
        domain=str(s.get("domain") or "").strip() or None,
        mcp_url=mcp_url,
        enabled=enabled,
        weight=int(weight) if isinstance(weight, (int, float)) and not isinstance(weight, bool) else DEFAULT_WEIGHT,
        tags=[str(x) for x in tags] if isinstance(tags, list) else [],
    )


class StoreRegistryRepo:
    """
    Read-only seller registry backed by a JSON file: {"stores": [...]}.
    Entries missing id/name/mcpUrl, disabled, or with an unknown category are skipped.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> List[SellerEndpoint]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise RegistryError(f"Store registry not found: {self.path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryError(f"Store registry unreadable: {e}") from e

        raw = data.get("stores") if isinstance(data, dict) else None
        stores = [st for st in (_coerce_store(s) for s in (raw if isinstance(raw, list) else [])) if st]
        logger.debug("registry loaded path=%s usable=%s", self.path, len(stores))
        return stores
