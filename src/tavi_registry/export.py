"""
Export adapter.

Turns records and statistics snapshots into labelled pandas DataFrames for
the spreadsheet writer. Values stay locale-neutral (dot decimals, ISO dates);
formatting and file layout are left to whoever writes the frames out.
"""

import datetime
import typing

import pandas as pd

from .procedure import ProcedureRecord, parse_date, to_bool
from .statistics import Statistics

# Record field → column label
EXPORT_COLUMNS = {
    "id": "ID",
    "nome": "Nome",
    "cognome": "Cognome",
    "data_nascita": "Data Nascita",
    "altezza": "Altezza (cm)",
    "peso": "Peso (kg)",
    "fe": "FE (%)",
    "vmax": "Vmax (m/s)",
    "gmax": "Gmax (mmHg)",
    "gmed": "Gmed (mmHg)",
    "ava": "AVA (cm²)",
    "anulus_aortico": "Anulus Aortico (mm)",
    "valvola_protesica": "Valvola Protesica",
    "protesica_modello": "Protesica Modello",
    "protesica_dimensione": "Protesica Dimensione",
    "data_procedura": "Data Procedura",
    "ora_inizio": "Ora Inizio",
    "ora_fine": "Ora Fine",
    "tipo_valvola": "Tipo Valvola",
    "modello_valvola": "Modello Valvola",
    "dimensione_valvola": "Dimensione Valvola (mm)",
    "pre_dilatazione": "Pre-dilatazione",
    "post_dilatazione": "Post-dilatazione",
}

# Derived columns, inserted after the column named in the value
DERIVED_COLUMNS = {
    "Età": "Data Nascita",
    "BMI": "Peso (kg)",
    "Durata (min)": "Ora Fine",
}

_BOOLEAN_FIELDS = {"valvola_protesica", "pre_dilatazione", "post_dilatazione"}
_DATE_FIELDS = {"data_nascita", "data_procedura"}


def _export_value(field_name: str, value: typing.Any) -> typing.Any:
    if field_name in _BOOLEAN_FIELDS:
        return "Sì" if to_bool(value) else "No"
    if field_name in _DATE_FIELDS:
        parsed = parse_date(value)
        return parsed.isoformat() if parsed else value
    return value


def procedures_to_frame(
        records: typing.Sequence[ProcedureRecord],
        columns: typing.Optional[typing.Mapping[str, str]] = None,
        today: typing.Optional[datetime.date] = None,
) -> pd.DataFrame:
    """One row per record, labelled with `columns` (default EXPORT_COLUMNS) plus age, BMI and duration."""
    columns = EXPORT_COLUMNS if columns is None else columns
    derived = {label: after for label, after in DERIVED_COLUMNS.items() if after in columns.values()}

    rows: list[dict[str, typing.Any]] = []
    for record in records:
        row: dict[str, typing.Any] = {}
        extras = {
            "Età": record.age(today),
            "BMI": record.bmi,
            "Durata (min)": record.duration_minutes,
        }
        for field_name, label in columns.items():
            row[label] = _export_value(field_name, getattr(record, field_name, None))
            for derived_label, after in derived.items():
                if after == label:
                    row[derived_label] = extras[derived_label]
        rows.append(row)

    ordered: list[str] = []
    for label in columns.values():
        ordered.append(label)
        ordered.extend(d for d, after in derived.items() if after == label)
    return pd.DataFrame(rows, columns=ordered)


def statistics_to_frames(statistics: Statistics) -> dict[str, pd.DataFrame]:
    """Three tables keyed by sheet name: general figures, hemodynamic means, top valve models."""
    general = pd.DataFrame(
        [
            ("Totale Procedure", statistics.total_procedures),
            ("Durata Media (minuti)", statistics.average_duration_minutes),
            ("Pre-dilatazione (%)", statistics.pre_dilatazione_percentage),
            ("Post-dilatazione (%)", statistics.post_dilatazione_percentage),
            ("Balloon Expandable", statistics.balloon_expandable_count),
            ("Self Expandable", statistics.self_expandable_count),
        ],
        columns=["Metrica", "Valore"],
    )
    hemodynamic = pd.DataFrame(
        [
            ("FE (%)", statistics.average_fe),
            ("Vmax (m/s)", statistics.average_vmax),
            ("Gmax (mmHg)", statistics.average_gmax),
            ("Gmed (mmHg)", statistics.average_gmed),
            ("AVA (cm²)", statistics.average_ava),
        ],
        columns=["Parametro", "Media"],
    )
    models = pd.DataFrame(list(statistics.top_valve_models), columns=["Modello", "Numero Procedure"])
    return {
        "Statistiche Generali": general,
        "Parametri Emodinamici": hemodynamic,
        "Top Modelli Valvole": models,
    }


def write_workbook(frames: typing.Mapping[str, pd.DataFrame], path: str) -> None:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, frame in frames.items():
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
