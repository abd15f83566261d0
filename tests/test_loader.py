import pandas as pd
import pytest
from stairval.notepad import create_notepad

from tavi_registry.errors import InvalidChoice
from tavi_registry.export import procedures_to_frame
from tavi_registry.filters import FilterState, apply_filters
from tavi_registry.loader import load_registry_table, normalize_headers, records_from_frame
from tavi_registry.statistics import compute_statistics
from tavi_registry.validators import validate_choice


@pytest.fixture
def registry_workbook(tmp_path, registry):
    # an export written by the export adapter, with labelled columns
    path = tmp_path / "registro.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as w:
        procedures_to_frame(registry).to_excel(w, sheet_name="Procedure TAVI", index=False)
    return str(path)


def test_normalize_headers():
    df = pd.DataFrame(columns=["  Nome ", "FE (%)", "Pre-dilatazione", "Anulus Aortico (mm)", "Data di nascita"])
    assert list(normalize_headers(df).columns) == [
        "nome", "fe", "pre_dilatazione", "anulus_aortico", "data_nascita",
    ]


def test_workbook_round_trip(registry_workbook, registry):
    table = load_registry_table(registry_workbook)
    notepad = create_notepad("loader")
    records = records_from_frame(table, notepad)

    assert not notepad.has_errors(include_subsections=True)
    assert [r.id for r in records] == [1, 2, 3, 4]
    first = records[0]
    assert first.nome == "Mario"
    assert first.data_procedura == "2024-06-01"
    assert first.ora_inizio == "09:00"
    assert first.pre_dilatazione is True
    assert first.valvola_protesica is False
    assert first.protesica_modello is None
    assert records[1].fe is None
    assert records[1].tipo_valvola == "Self Expandable"


def test_csv_is_supported(tmp_path, registry):
    path = tmp_path / "registro.csv"
    procedures_to_frame(registry).to_csv(path, index=False)

    records = records_from_frame(load_registry_table(path), create_notepad("loader"))

    assert [r.cognome for r in records] == ["Rossi", "Bianchi", "Verdi", "Sapienza"]
    assert float(records[2].fe) == 70


def test_missing_required_columns_errors():
    note = create_notepad("loader")
    df = pd.DataFrame({"nome": ["Mario"], "cognome": ["Rossi"]})
    records = records_from_frame(df, note)
    assert records == []
    assert note.has_errors(include_subsections=True)


def test_float_ids_become_integers():
    df = pd.DataFrame({
        "id": [3.0, None],
        "nome": ["Mario", "Anna"],
        "cognome": ["Rossi", "Bianchi"],
        "data_procedura": ["2024-01-01", "2024-01-02"],
        "tipo_valvola": ["Self Expandable", "Self Expandable"],
        "modello_valvola": ["Portico", "Portico"],
    })
    records = records_from_frame(df, create_notepad("loader"))
    assert records[0].id == 3 and isinstance(records[0].id, int)
    assert records[1].id is None


def test_valve_type_spellings_are_normalized(now):
    df = pd.DataFrame({
        "nome": ["Mario", "Anna", "Luca"],
        "cognome": ["Rossi", "Bianchi", "Verdi"],
        "data_procedura": ["2024-05-01", "2024-05-02", "2024-05-03"],
        "tipo_valvola": ["Balloon-Expandable", "self", "Mechanical"],
        "modello_valvola": ["Edwards SAPIEN 3", "Portico", "Portico"],
    })
    records = records_from_frame(df, create_notepad("loader"))

    assert [r.tipo_valvola for r in records] == ["Balloon Expandable", "Self Expandable", "Mechanical"]
    assert validate_choice(records[0].tipo_valvola) is None
    assert isinstance(validate_choice(records[2].tipo_valvola), InvalidChoice)
    assert compute_statistics(records).balloon_expandable_count == 1
    kept = apply_filters(records, FilterState(tipo_valvola="Balloon Expandable"), now)
    assert [r.cognome for r in kept] == ["Rossi"]
