"""
Media catalog interface.

The processors only need three things from a catalog: a filtered, windowed
query for assets missing alt text, a single-asset read, and an alt text
write. Any storage (in-memory, CSV, SQL, remote) can sit behind it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional


class CatalogError(Exception):
    """Raised when the catalog cannot be queried, read or written."""
    pass


@dataclass(frozen=True)
class MediaAsset:
    """An image asset as stored in the catalog."""
    id: int
    title: str = ''
    filename: str = ''
    mime_type: str = ''
    alt_text: Optional[str] = None
    alt_generated: bool = False

    @property
    def has_alt_text(self) -> bool:
        return bool(self.alt_text and self.alt_text.strip())

    def in_scan_window(self) -> bool:
        """Whether a scan window counts this asset (missing alt, or alt we wrote)."""
        return not self.has_alt_text or self.alt_generated


def alt_status(asset: MediaAsset) -> str:
    """Status label shown next to an asset: "Present" or "Missing"."""
    return 'Present' if asset.has_alt_text else 'Missing'


class MediaCatalog(ABC):
    """Storage for media assets."""

    @abstractmethod
    def query_missing_alt(self, mime_types: Iterable[str], offset: int, limit: int) -> List[MediaAsset]:
        """
        Get assets with an allowed MIME type and empty or absent alt text.

        Assets whose alt text was written through set_alt_text since the last
        clear_generated_marks() stay in the result set, so writes made during
        a run don't shift later windows. Callers re-check each asset before
        writing.

        Args:
            mime_types: Allowed MIME types
            offset: Number of matching assets to skip
            limit: Maximum number of assets to return

        Returns:
            Matching assets in ascending id order, windowed to [offset, offset+limit)

        Raises:
            CatalogError: If the query fails
        """

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        """Get the current state of one asset, or None if it doesn't exist."""

    @abstractmethod
    def set_alt_text(self, asset_id: int, alt_text: str) -> None:
        """
        Write an asset's alt text and mark it as generated.

        Raises:
            CatalogError: If the asset doesn't exist or the write fails
        """

    @abstractmethod
    def clear_generated_marks(self) -> None:
        """
        Forget which alt text was generated, so a new run starts from
        assets that are actually missing alt text.

        Raises:
            CatalogError: If the write fails
        """

    @abstractmethod
    def add_asset(self, asset: MediaAsset) -> MediaAsset:
        """Store a new asset; an id of 0 or less assigns the next id."""

    @abstractmethod
    def all_assets(self) -> List[MediaAsset]:
        """All assets in ascending id order."""


class InMemoryCatalog(MediaCatalog):
    """Catalog held in a dict; used for tests and embedding."""

    def __init__(self, assets: Optional[Iterable[MediaAsset]] = None):
        self._assets: Dict[int, MediaAsset] = {}
        for asset in assets or []:
            self.add_asset(asset)

    def query_missing_alt(self, mime_types: Iterable[str], offset: int, limit: int) -> List[MediaAsset]:
        allowed = set(mime_types)
        matches = [
            asset for asset in self.all_assets()
            if asset.mime_type in allowed and asset.in_scan_window()
        ]
        return matches[offset:offset + limit]

    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        return self._assets.get(asset_id)

    def set_alt_text(self, asset_id: int, alt_text: str) -> None:
        if asset_id not in self._assets:
            raise CatalogError(f"Asset not found: {asset_id}")
        self._assets[asset_id] = replace(self._assets[asset_id], alt_text=alt_text, alt_generated=True)

    def clear_generated_marks(self) -> None:
        for asset_id, asset in list(self._assets.items()):
            if asset.alt_generated:
                self._assets[asset_id] = replace(asset, alt_generated=False)

    def add_asset(self, asset: MediaAsset) -> MediaAsset:
        if asset.id <= 0:
            asset = replace(asset, id=max(self._assets, default=0) + 1)
        if asset.id in self._assets:
            raise CatalogError(f"Asset already exists: {asset.id}")
        self._assets[asset.id] = asset
        return asset

    def all_assets(self) -> List[MediaAsset]:
        return [self._assets[k] for k in sorted(self._assets)]
