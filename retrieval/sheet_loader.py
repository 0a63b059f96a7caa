"""Sheet loader with parsing and cleaning logic."""

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union, List

import pandas as pd
import yaml

from schemas.knowledge import KnowledgeItem, KnowledgeSourceType

logger = logging.getLogger(__name__)


class SheetLoader:
    """Load tenant knowledge sheets (CSV exports) and turn rows into knowledge items."""

    ENCODINGS = ['utf-8-sig', 'utf-16', 'latin-1']
    DELIMITERS = [',', '\t', ';']
    NULL_VALUES = ["Null", "null", "NULL", "", "nan", "NaN", "NAN", "N/A", "n/a"]

    def __init__(self, columns_config_path: Optional[str] = None):
        """
        Initialize sheet loader.

        Args:
            columns_config_path: Path to knowledge_columns.yaml config
        """
        if columns_config_path is None:
            base_path = Path(__file__).parent.parent
            columns_config_path = base_path / "config" / "knowledge_columns.yaml"

        with open(columns_config_path, 'r', encoding='utf-8') as f:
            self.column_aliases = yaml.safe_load(f) or {}

    def load_csv(self, csv_path: Union[str, Path]) -> pd.DataFrame:
        """
        Load a CSV file with proper cleaning.

        Args:
            csv_path: Path to CSV file

        Returns:
            Cleaned DataFrame
        """
        with open(csv_path, 'rb') as f:
            return self.parse_bytes(f.read())

    def parse_bytes(self, content: bytes) -> pd.DataFrame:
        """
        Parse raw CSV bytes, trying several encodings and delimiters.

        Raises:
            ValueError: If no encoding/delimiter combination yields a table
        """
        df = None
        has_bom = content[:2] in (b"\xff\xfe", b"\xfe\xff")
        for encoding in self.ENCODINGS:
            if encoding == "utf-16" and not has_bom:
                continue
            try:
                text = content.decode(encoding)
            except (UnicodeDecodeError, UnicodeError):
                continue
            df = self._read_text(text)
            if df is not None:
                break

        if df is None:
            raise ValueError(
                f"Could not read sheet with any supported encoding/delimiter: {self.ENCODINGS}/{self.DELIMITERS}"
            )

        return self._clean_dataframe(df)

    def _read_text(self, text: str) -> Optional[pd.DataFrame]:
        single_column = None
        for delimiter in self.DELIMITERS:
            try:
                df = pd.read_csv(io.StringIO(text), delimiter=delimiter, dtype=str, keep_default_na=False)
            except (pd.errors.ParserError, pd.errors.EmptyDataError):
                continue
            if len(df.columns) > 1:
                return df
            if single_column is None:
                single_column = df
        return single_column

    def _clean_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Clean DataFrame with normalization rules.

        Headers are lowercased with whitespace removed, string cells are
        stripped, null markers become None and fully empty rows are dropped.
        """
        df = df.copy()
        df.columns = ["".join(str(c).lower().split()) for c in df.columns]
        df = df.apply(lambda col: col.map(self._clean_cell))
        df = df.dropna(how="all")
        return df

    def _clean_cell(self, value):
        if isinstance(value, str):
            value = value.strip()
            if value in self.NULL_VALUES:
                return None
        return value

    def find_column(self, df: pd.DataFrame, logical_name: str) -> Optional[str]:
        """
        Get actual column name for a logical field ('key' or 'value').

        Returns:
            Column name or None
        """
        for alias in self.column_aliases.get(logical_name) or []:
            alias = "".join(str(alias).lower().split())
            if alias in df.columns:
                return alias
        return None

    def to_items(self, df: pd.DataFrame, tenant_id: str, loaded_at: Optional[datetime] = None) -> List[KnowledgeItem]:
        """
        Convert sheet rows to knowledge items.

        Uses the configured key/value columns when present. Otherwise the
        first column is the key and the remaining columns are joined as
        "column: value" pairs.
        """
        loaded_at = loaded_at or datetime.now()
        if df.empty or len(df.columns) == 0:
            return []

        key_col = self.find_column(df, "key") or df.columns[0]
        value_col = self.find_column(df, "value")
        other_cols = [c for c in df.columns if c != key_col]

        items = []
        for _, row in df.iterrows():
            key = row[key_col]
            if key is None or pd.isna(key):
                continue
            if value_col and value_col != key_col:
                value = row[value_col]
                value = "" if value is None or pd.isna(value) else str(value)
            else:
                value = "; ".join(
                    f"{c}: {row[c]}" for c in other_cols
                    if row[c] is not None and not pd.isna(row[c])
                )
            if not value:
                continue
            items.append(KnowledgeItem(
                tenant_id=tenant_id,
                key=str(key),
                value=value,
                source=KnowledgeSourceType.SYNCED,
                last_updated=loaded_at,
            ))

        logger.debug(f"Parsed {len(items)} knowledge items for tenant {tenant_id}")
        return items
