import dataclasses
import pathlib
import typing

import pandas as pd
from stairval.notepad import Notepad

from .procedure import ProcedureRecord, is_blank
from .ranges import parse_valve_type

# Normalized headers that need renaming → target dataclass fields
RENAME_MAP = {
    "pre-dilatazione": "pre_dilatazione",
    "post-dilatazione": "post_dilatazione",
    "anulus": "anulus_aortico",
    "data_di_nascita": "data_nascita",
    "data_della_procedura": "data_procedura",
}

# A sheet without these columns cannot describe a procedure
REQUIRED_COLUMNS = {"nome", "cognome", "data_procedura", "tipo_valvola", "modello_valvola"}


def normalize_headers(df: pd.DataFrame) -> pd.DataFrame:
    """
    - strip, drop any "(…)" unit suffix, spaces → underscore, lowercase
    - apply renames from RENAME_MAP
    """
    df = df.copy()
    df.columns = (
        df.columns.astype(str).str.strip()
        .str.replace(r"\s*\(.*?\)", "", regex=True)  # drop any "(…)"
        .str.replace(r"\s+", "_", regex=True)  # spaces → underscore
        .str.replace(":", "", regex=False)  # drop colons
        .str.lower()
    )
    return df.rename(
        columns={
            orig: target
            for orig, target in RENAME_MAP.items()
            if orig in df.columns
        }
    )


def load_registry_table(path: typing.Union[str, pathlib.Path], sheet_name: typing.Union[str, int] = 0) -> pd.DataFrame:
    """
    Read a registry export into a DataFrame with normalized headers:
      - .csv files are read with pandas' CSV reader
      - anything else is read as an Excel workbook (first sheet by default)
    """
    path = pathlib.Path(path)
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, header=0)
    else:
        df = pd.read_excel(path, sheet_name=sheet_name, header=0, engine="openpyxl")
    return normalize_headers(df)


def _normalize_id(value: typing.Any) -> typing.Any:
    # spreadsheets hand integer ids back as floats (3 -> 3.0)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def records_from_frame(df: pd.DataFrame, notepad: Notepad) -> list[ProcedureRecord]:
    """
    Map each row of a normalized registry table to a ProcedureRecord.
    Recognised valve-type spellings are rewritten to the canonical label.
    Missing required columns are reported on the notepad and yield no records.
    """
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        notepad.add_error(f"Registry table: missing required columns: {sorted(missing)}")
        return []

    records: list[ProcedureRecord] = []
    for index, row in df.iterrows():
        try:
            record = ProcedureRecord.from_mapping(row.to_dict())
        except (ValueError, TypeError) as exception:
            notepad.add_error(f"Row {index}: {exception}")
            continue
        if not is_blank(record.id):
            record = record.with_id(_normalize_id(record.id))
        valve_type = parse_valve_type(record.tipo_valvola)
        if valve_type is not None and record.tipo_valvola != valve_type.value:
            # e.g. "Balloon-Expandable" -> "Balloon Expandable"
            record = dataclasses.replace(record, tipo_valvola=valve_type.value)
        records.append(record)
    return records
