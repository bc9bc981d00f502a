"""
File-backed field store for order configuration tokens.

Stands in for the host table field: one JSON file per table mapping
record ids to the stored token list.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from order_config.contracts import Target

logger = logging.getLogger(__name__)


class JsonFieldStore:
    """
    Reads and writes the order configuration field of host records.

    Layout:
        outputs/field_store/
            TABLE-tbl123.json   {"rec001": ["首单", "需要打板", ...], ...}
            TABLE-tbl456.json

    Contract (used by SubmissionFlow):
    - read_tokens(target) -> list of tokens, or None when the field is empty
    - write_tokens(target, tokens) -> None; tokens None clears the field
    - Failures raise; the caller decides how to report them
    """

    def __init__(self, base_dir: str = "outputs/field_store"):
        """
        Initialize field store.

        Args:
            base_dir: Directory holding one JSON file per table
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFieldStore initialized: {self.base_dir}")

    def _table_path(self, table_id: str) -> Path:
        return self.base_dir / f"TABLE-{table_id}.json"

    def _load_table(self, table_id: str) -> dict:
        path = self._table_path(table_id)
        if not path.exists():
            return {}

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Corrupt field store file: {path}")

        return data

    def read_tokens(self, target: Target) -> Optional[List[str]]:
        """
        Read the stored token list for a record.

        Args:
            target: Table and record to read

        Returns:
            List of tokens, or None if nothing is stored
        """
        value = self._load_table(target.table_id).get(target.record_id)

        if value is None:
            return None

        if not isinstance(value, list):
            logger.warning(f"Ignoring non-list value for {target.record_id}: {value!r}")
            return None

        return list(value)

    def write_tokens(self, target: Target, tokens: Optional[List[str]]) -> None:
        """
        Store (or clear) the token list for a record.

        The value is read back after writing to verify the save.

        Args:
            target: Table and record to write
            tokens: Final token list; None or empty clears the field

        Raises:
            ValueError: If target is None
            IOError: If the read-back does not match what was written
        """
        if target is None:
            raise ValueError("No target record")

        table = self._load_table(target.table_id)

        if tokens:
            table[target.record_id] = list(tokens)
        else:
            table.pop(target.record_id, None)

        path = self._table_path(target.table_id)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(table, f, indent=2, ensure_ascii=False)

        saved = self.read_tokens(target)
        if saved != (list(tokens) if tokens else None):
            raise IOError(f"Saved value mismatch for {target.record_id}: {saved!r}")

        logger.info(f"Saved {len(tokens) if tokens else 0} tokens for {target.table_id}/{target.record_id}")
