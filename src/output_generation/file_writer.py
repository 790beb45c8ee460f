"""
File Writer Module
Writes record snapshots to CSV or Excel.
"""

import pandas as pd
import logging
from pathlib import Path
from typing import Any, Dict, List
from datetime import datetime

logger = logging.getLogger(__name__)

# Excel sheet names are limited to 31 characters
MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 50


class FileWriter:
    """Handles writing output files."""

    def __init__(self, outputs_dir: str = "outputs"):
        self.outputs_dir = Path(outputs_dir)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    def prepare_dataframe(self, records: List[Dict[str, Any]]) -> pd.DataFrame:
        """Flatten records into a DataFrame with id first and lists joined."""
        if not records:
            return pd.DataFrame()

        df = pd.json_normalize(records, sep='.')
        for col in df.columns:
            if df[col].map(lambda v: isinstance(v, list)).any():
                df[col] = df[col].map(
                    lambda v: ', '.join(str(item) for item in v) if isinstance(v, list) else v
                )

        if 'id' in df.columns:
            df = df[['id'] + [c for c in df.columns if c != 'id']]

        # Clean up null values for better output
        return df.fillna('')

    @staticmethod
    def _autosize_columns(worksheet) -> None:
        for column in worksheet.columns:
            column_letter = column[0].column_letter
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            worksheet.column_dimensions[column_letter].width = min(max_length + 2, MAX_COLUMN_WIDTH)

    def write_snapshot(self, records: List[Dict[str, Any]], name: str, fmt: str = "csv") -> str:
        """Write one record set to a timestamped file.

        Args:
            records: Records to write
            name: Base file name, e.g. the entity type
            fmt: "csv" or "excel"

        Returns:
            str: Path to the written file
        """
        if fmt not in ("csv", "excel"):
            raise ValueError(f"Unsupported export format: {fmt}")

        df = self.prepare_dataframe(records)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name_safe = name.lower().replace(' ', '_')

        if fmt == "csv":
            path = self.outputs_dir / f"{name_safe}_{timestamp}.csv"
            df.to_csv(path, index=False)
        else:
            path = self.outputs_dir / f"{name_safe}_{timestamp}.xlsx"
            with pd.ExcelWriter(path, engine='openpyxl') as writer:
                sheet_name = name_safe[:MAX_SHEET_NAME] or 'Sheet1'
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                self._autosize_columns(writer.sheets[sheet_name])

        logger.info(f"Written {len(df)} {name} records to {path}")
        return str(path)

    def write_workbook(self, snapshots: Dict[str, List[Dict[str, Any]]], name: str = "reconciliation") -> str:
        """Write several record sets to one Excel file, one sheet each.

        Args:
            snapshots: Records keyed by sheet name

        Returns:
            str: Path to the created Excel file
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        excel_path = self.outputs_dir / f"{name}_{timestamp}.xlsx"

        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            for sheet, records in snapshots.items():
                sheet_name = sheet.replace(' ', '_')[:MAX_SHEET_NAME]
                self.prepare_dataframe(records).to_excel(writer, sheet_name=sheet_name, index=False)
                self._autosize_columns(writer.sheets[sheet_name])

        total = sum(len(records) for records in snapshots.values())
        logger.info(f"Created Excel workbook with {len(snapshots)} sheets and {total} records at {excel_path}")
        return str(excel_path)
