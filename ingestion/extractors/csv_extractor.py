"""
CSV file extractor with offset-based resume
"""

import asyncio
import pandas as pd
from typing import List, Dict, Any
from pathlib import Path
from ingestion.base import DataSource, ExtractResult
from models.base import SourceType
from core.exceptions import CSVExtractionError
import logging

logger = logging.getLogger(__name__)


class CSVExtractor(DataSource):
    """
    Extract rows from a header-delimited CSV file.

    Supports:
    - Resume via row offset (rows with index < offset are skipped)
    - Header normalization
    - Raw string cells (no type inference, no NA coercion)

    The file is re-scanned in full on every call; there is no persistent
    cursor into the file.
    """

    resumable = True

    def __init__(self, file_path: str, encoding: str = "utf-8"):
        super().__init__(SourceType.CSV)
        self.file_path = Path(file_path)
        self.encoding = encoding

    async def extract(self, offset: int = 0) -> ExtractResult:
        """
        Read the CSV file starting at ``offset``.

        Args:
            offset: Number of data rows already consumed
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")

        if not self.file_path.exists():
            raise CSVExtractionError(
                "CSV file not found",
                context={"file_path": str(self.file_path), "offset": offset}
            )

        logger.info(f"Reading CSV from {self.file_path} (offset {offset})")

        df = await asyncio.to_thread(self._read)

        headers = list(df.columns)
        total_rows = len(df)
        records: List[Dict[str, Any]] = df.iloc[offset:].to_dict(orient="records")

        logger.info(f"Read {len(records)} of {total_rows} rows from CSV")
        return ExtractResult(
            source=self.source_type,
            records=records,
            headers=headers,
            start_offset=min(offset, total_rows),
            next_offset=max(offset, total_rows)
        )

    def _read(self) -> pd.DataFrame:
        try:
            df = pd.read_csv(
                self.file_path,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                encoding=self.encoding
            )
        except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            raise CSVExtractionError(
                "Failed to read CSV file",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )

        # Normalize column names (strip whitespace, lowercase)
        df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')
        return df
