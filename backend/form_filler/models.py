"""
Plain data containers shared by the parsers, the extractor and the service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping

from .errors import InvalidSelectionError


class DataSourceKind(str, Enum):
    CSV = "csv"
    PDF = "pdf"
    TEXT = "text"


@dataclass
class TabularResult:
    """Headers plus ordered rows; every cell is a string."""

    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @classmethod
    def single_row(cls, fields: Mapping[str, str]) -> "TabularResult":
        row = dict(fields)
        return cls(headers=list(row.keys()), rows=[row])

    def select(self, row_index: int) -> Dict[str, str]:
        if row_index < 0 or row_index >= len(self.rows):
            raise InvalidSelectionError(
                f"Invalid row index {row_index}: data has {len(self.rows)} row(s)"
            )
        return self.rows[row_index]

    def to_dict(self) -> Dict:
        return {
            "headers": list(self.headers),
            "rows": [dict(row) for row in self.rows],
            "row_count": self.row_count,
        }


@dataclass(frozen=True)
class FieldDescriptor:
    value: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"value": self.value, "description": self.description}


@dataclass(frozen=True)
class StoredFile:
    """An uploaded or generated file sitting in the file store."""

    filename: str
    original_name: str
    path: str
    size: int

    def to_dict(self) -> Dict:
        return {
            "filename": self.filename,
            "original_name": self.original_name,
            "path": self.path,
            "size": self.size,
        }
