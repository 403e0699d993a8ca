"""
CSV Handler for Alt Text Generator
Stores a media catalog in a CSV file with one row per asset.
"""

import os
import pandas as pd
from typing import Iterable, List, Optional
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from media_catalog import CatalogError, MediaAsset, MediaCatalog


class CSVCatalog(MediaCatalog):
    """Media catalog backed by a CSV file, loaded into a DataFrame."""

    COLUMNS = ['id', 'title', 'filename', 'mime_type', 'alt_text', 'alt_generated']
    REQUIRED_COLUMNS = ['id', 'filename', 'mime_type']

    def __init__(self, csv_path: str):
        """
        Initialize CSV catalog.

        Args:
            csv_path: Path to the CSV file (created on first save if missing)
        """
        self.csv_path = str(csv_path)
        self.df: Optional[pd.DataFrame] = None

    def load(self) -> pd.DataFrame:
        """
        Load the CSV file and add optional columns if they don't exist.

        Returns:
            DataFrame sorted by id

        Raises:
            CatalogError: If the file can't be read or required columns are missing
        """
        if not os.path.exists(self.csv_path):
            self.df = pd.DataFrame(columns=self.COLUMNS)
            self.df['id'] = self.df['id'].astype(int)
            return self.df

        try:
            df = pd.read_csv(self.csv_path, dtype=str, keep_default_na=False)
        except (OSError, ValueError) as e:
            raise CatalogError(f"Could not read catalog {self.csv_path}: {e}") from e

        missing_columns = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing_columns:
            raise CatalogError(f"CSV missing required columns: {missing_columns}")

        for col in self.COLUMNS:
            if col not in df.columns:
                df[col] = ''

        try:
            df['id'] = df['id'].astype(int)
        except ValueError as e:
            raise CatalogError(f"Catalog has non-integer ids: {e}") from e

        extra_columns = [col for col in df.columns if col not in self.COLUMNS]
        self.df = df[self.COLUMNS + extra_columns].sort_values('id').reset_index(drop=True)
        return self.df

    def _frame(self) -> pd.DataFrame:
        if self.df is None:
            self.load()
        return self.df

    def save(self):
        """Save the DataFrame back to the CSV file."""
        if self.df is None:
            raise CatalogError("No data loaded. Call load() first.")

        try:
            self._write()
        except OSError as e:
            raise CatalogError(f"Could not write catalog {self.csv_path}: {e}") from e

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=2),
        reraise=True
    )
    def _write(self):
        self.df.to_csv(self.csv_path, index=False)

    @staticmethod
    def _row_to_asset(row) -> MediaAsset:
        alt_text = row['alt_text']
        return MediaAsset(
            id=int(row['id']),
            title=str(row['title']),
            filename=str(row['filename']),
            mime_type=str(row['mime_type']),
            alt_text=str(alt_text) if alt_text != '' else None,
            alt_generated=str(row['alt_generated']).strip().lower() in ('1', 'true')
        )

    def query_missing_alt(self, mime_types: Iterable[str], offset: int, limit: int) -> List[MediaAsset]:
        df = self._frame()

        missing = df['alt_text'].astype(str).str.strip() == ''
        generated = df['alt_generated'].astype(str).str.strip().str.lower().isin(['1', 'true'])
        rows = df[df['mime_type'].isin(list(mime_types)) & (missing | generated)]

        window = rows.iloc[offset:offset + limit]
        return [self._row_to_asset(row) for _, row in window.iterrows()]

    def get_asset(self, asset_id: int) -> Optional[MediaAsset]:
        df = self._frame()
        rows = df[df['id'] == asset_id]
        if rows.empty:
            return None
        return self._row_to_asset(rows.iloc[0])

    def set_alt_text(self, asset_id: int, alt_text: str):
        df = self._frame()
        matches = df.index[df['id'] == asset_id]
        if len(matches) == 0:
            raise CatalogError(f"Asset not found: {asset_id}")

        row = matches[0]
        previous = (df.at[row, 'alt_text'], df.at[row, 'alt_generated'])

        df.at[row, 'alt_text'] = str(alt_text)
        df.at[row, 'alt_generated'] = '1'
        try:
            self.save()
        except CatalogError:
            # Leave the row as it is on disk
            df.at[row, 'alt_text'], df.at[row, 'alt_generated'] = previous
            raise

    def clear_generated_marks(self):
        df = self._frame()
        marked = df['alt_generated'].astype(str).str.strip().str.lower().isin(['1', 'true'])
        if not marked.any():
            return

        previous = df['alt_generated'].copy()
        df['alt_generated'] = ''
        try:
            self.save()
        except CatalogError:
            df['alt_generated'] = previous
            raise

    def add_asset(self, asset: MediaAsset) -> MediaAsset:
        df = self._frame()

        asset_id = asset.id
        if asset_id <= 0:
            asset_id = int(df['id'].max()) + 1 if not df.empty else 1
        elif (df['id'] == asset_id).any():
            raise CatalogError(f"Asset already exists: {asset_id}")

        row = {
            'id': asset_id,
            'title': asset.title or '',
            'filename': asset.filename or '',
            'mime_type': asset.mime_type or '',
            'alt_text': asset.alt_text or '',
            'alt_generated': '1' if asset.alt_generated else ''
        }
        updated = pd.concat([df, pd.DataFrame([row])], ignore_index=True)
        updated['id'] = updated['id'].astype(int)
        self.df = updated.sort_values('id').reset_index(drop=True)
        try:
            self.save()
        except CatalogError:
            self.df = df
            raise

        return self._row_to_asset(row)

    def all_assets(self) -> List[MediaAsset]:
        return [self._row_to_asset(row) for _, row in self._frame().iterrows()]
