"""
Obligation ledger CSV parser.
Reads the session system's export of payment obligations into Obligation models.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional
import logging

import pandas as pd

from ..models.transaction import Obligation, ObligationStatus
from ..config import ReconConfig
from ..utils.exceptions import ObligationParseError

logger = logging.getLogger(__name__)


class ObligationParser:
    """
    Parser for obligation ledger exports.

    Column names are taken from ``input.obligations.column_mappings`` so
    exports with different headers can be read without code changes.
    """

    def __init__(self, config: ReconConfig):
        """
        Initialize the parser with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config
        self.input_config = config.input.obligations
        self.column_mappings = self.input_config.column_mappings
        self.tag_prefix = config.matching.obligation_tag_prefix

    def parse_file(self, file_path: Path) -> list[Obligation]:
        """
        Parse an obligation CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            List of obligations in file order

        Raises:
            ObligationParseError: If the file cannot be read
        """
        logger.info(f"Parsing obligation ledger: {file_path}")

        try:
            df = pd.read_csv(
                file_path,
                encoding=self.input_config.encoding,
                delimiter=self.input_config.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except Exception as e:
            logger.error(f"Failed to read obligation CSV: {e}")
            raise ObligationParseError(f"Failed to read obligation CSV: {e}") from e

        missing = [
            self.column_mappings.get(key, key)
            for key in ("id", "amount", "owing_party")
            if self.column_mappings.get(key, key) not in df.columns
        ]
        if missing:
            raise ObligationParseError(
                f"Obligation CSV is missing required columns: {', '.join(missing)}"
            )

        obligations = self._process_dataframe(df)
        logger.info(f"Loaded {len(obligations)} obligations")

        return obligations

    def _process_dataframe(self, df: pd.DataFrame) -> list[Obligation]:
        obligations: list[Obligation] = []

        for idx, row in df.iterrows():
            obligation = self._normalize_row(row, int(idx))
            if obligation:
                obligations.append(obligation)

        return obligations

    def _normalize_row(self, row: pd.Series, idx: int) -> Optional[Obligation]:
        """
        Convert a DataFrame row to an Obligation.

        Args:
            row: Pandas Series representing a row
            idx: Row index

        Returns:
            Obligation or None if the row is invalid
        """
        obligation_id = self._cell(row, "id")
        if not obligation_id:
            logger.warning(f"Row {idx}: Missing obligation id, skipping")
            return None

        amount = self._parse_amount(self._cell(row, "amount"))
        if amount is None or amount < 0:
            logger.warning(f"Row {idx}: Invalid amount, skipping")
            return None

        owing_party = self._cell(row, "owing_party")
        if not owing_party:
            logger.warning(f"Row {idx}: Missing owing party, skipping")
            return None

        status_value = (self._cell(row, "status") or ObligationStatus.PENDING.value).lower()
        try:
            status = ObligationStatus(status_value)
        except ValueError:
            logger.warning(f"Row {idx}: Unknown status {status_value!r}, skipping")
            return None

        return Obligation(
            id=obligation_id,
            amount=amount,
            owing_party=owing_party,
            status=status,
            correlation_tag=self._cell(row, "correlation_tag")
            or f"{self.tag_prefix}{obligation_id}",
            session_id=self._cell(row, "session_id"),
        )

    def _cell(self, row: pd.Series, key: str) -> Optional[str]:
        column = self.column_mappings.get(key, key)
        value = row.get(column)
        if value is None or pd.isna(value):
            return None
        value = str(value).strip()
        return value or None

    def _parse_amount(self, amount_value: Optional[str]) -> Optional[Decimal]:
        """
        Parse an amount value from the CSV.

        Args:
            amount_value: Amount text such as "$1,234.56"

        Returns:
            Decimal amount or None
        """
        if not amount_value:
            return None

        try:
            amount = Decimal(amount_value.replace("$", "").replace(",", "").strip())
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None
