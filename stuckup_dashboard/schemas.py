"""Request and response bodies for the HTTP API, camelCase on the wire."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceModel(_CamelModel):
    spreadsheet_id: Optional[str] = None
    range: Optional[str] = None
    ranges: List[str] = Field(default_factory=list)
    import_range: Optional[str] = None
    gid: Optional[Union[int, str]] = None
    sheet_name: Optional[str] = None


class DestinationModel(_CamelModel):
    spreadsheet_id: Optional[str] = None
    sheet_name: Optional[str] = None
    gid: Optional[Union[int, str]] = None
    start_cell: str = "A1"
    clear_range: Optional[str] = None
    dashboard: Optional[Union[bool, Dict[str, Any]]] = None
    dashboard_sheet_name: Optional[str] = None


class ImportRequest(_CamelModel):
    source: Optional[SourceModel] = None
    destination: Optional[DestinationModel] = None
    remove_columns: List[Any] = Field(default_factory=list)
    keep_columns: List[str] = Field(default_factory=list)
    header_row_index: int = 0
    clear_destination: bool = True


class ImportResponse(_CamelModel):
    ok: bool = True
    updated_range: Optional[str] = None
    updated_rows: Optional[int] = None
    updated_columns: Optional[int] = None
    updated_cells: Optional[int] = None


class PivotResponse(BaseModel):
    ok: bool = True
    headers: List[Any]
    rows: List[List[Any]]
    range: str
