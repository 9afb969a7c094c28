"""
Maintenance Intake — Asset Catalog

Read-only lookup of assets and their component hierarchy. The workflow
only needs get_asset(); anything satisfying AssetCatalog can be passed
to the validator and coordinator.

YAML catalog format:

    assets:
      - id: 7
        name: Hydraulic press 7
        criticality: critical
        components:
          - id: 70
            name: Main pump
            subcomponents:
              - id: 701
                name: Shaft seal
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import yaml

logger = logging.getLogger("maintenance_intake.catalog")


@dataclass
class Component:
    component_id: int
    name: str
    parent_id: int | None = None

    @property
    def is_subcomponent(self) -> bool:
        return self.parent_id is not None


@dataclass
class Asset:
    asset_id: int
    name: str
    criticality: str = "normal"
    components: dict[int, Component] = field(default_factory=dict)

    @property
    def is_critical(self) -> bool:
        return self.criticality == "critical"

    def foreign_components(self, ids: list[int]) -> list[int]:
        """Ids that are not top-level components of this asset."""
        return [i for i in ids
                if i not in self.components or self.components[i].is_subcomponent]

    def foreign_subcomponents(self, ids: list[int]) -> list[int]:
        """Ids that are not subcomponents of this asset."""
        return [i for i in ids
                if i not in self.components or not self.components[i].is_subcomponent]


class AssetCatalog(Protocol):
    def get_asset(self, asset_id: int) -> Asset | None: ...


class InMemoryAssetCatalog:
    """Dict-backed catalog used by the CLI, the API and tests."""

    def __init__(self, assets: list[Asset] | None = None):
        self._assets: dict[int, Asset] = {a.asset_id: a for a in (assets or [])}

    def add(self, asset: Asset) -> None:
        self._assets[asset.asset_id] = asset

    def get_asset(self, asset_id: int) -> Asset | None:
        return self._assets.get(asset_id)

    def __len__(self) -> int:
        return len(self._assets)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> InMemoryAssetCatalog:
        catalog = InMemoryAssetCatalog()
        for entry in data.get("assets", []) or []:
            asset = Asset(
                asset_id=int(entry["id"]),
                name=entry.get("name", f"Asset {entry['id']}"),
                criticality=entry.get("criticality", "normal"),
            )
            for comp in entry.get("components", []) or []:
                cid = int(comp["id"])
                asset.components[cid] = Component(cid, comp.get("name", ""))
                for sub in comp.get("subcomponents", []) or []:
                    sid = int(sub["id"])
                    asset.components[sid] = Component(sid, sub.get("name", ""), parent_id=cid)
            catalog.add(asset)
        return catalog


def load_catalog(path: str) -> InMemoryAssetCatalog:
    """Load an asset catalog from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    catalog = InMemoryAssetCatalog.from_dict(data)
    logger.info("Loaded asset catalog: %s (%d assets)", path, len(catalog))
    return catalog
