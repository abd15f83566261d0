import dataclasses
import datetime

import pytest

from tavi_registry.procedure import ProcedureRecord
from tavi_registry.ranges import RANGES_FILE_ENV


TODAY = datetime.date(2024, 6, 15)
NOW = datetime.datetime(2024, 6, 15, 12, 0)


def base_procedure() -> ProcedureRecord:
    """
    A complete, valid procedure record.
    Individual tests override fields as needed.
    """
    return ProcedureRecord(
        nome="Mario",
        cognome="Rossi",
        data_nascita="1945-03-12",
        altezza=170,
        peso=72,
        fe=55,
        vmax=4.2,
        gmax=70,
        gmed=45,
        ava=0.7,
        anulus_aortico=23,
        valvola_protesica=False,
        data_procedura="2024-05-20",
        ora_inizio="09:00",
        ora_fine="10:15",
        tipo_valvola="Balloon Expandable",
        modello_valvola="Edwards SAPIEN 3",
        dimensione_valvola=26,
        pre_dilatazione=True,
        post_dilatazione=False,
    )


@pytest.fixture(autouse=True)
def no_range_override(monkeypatch):
    """Tests use the built-in range table unless they set TAVI_RANGES_FILE themselves."""
    monkeypatch.delenv(RANGES_FILE_ENV, raising=False)


@pytest.fixture(scope="session")
def today() -> datetime.date:
    """Fixed 'current date' for date validation."""
    return TODAY


@pytest.fixture(scope="session")
def now() -> datetime.datetime:
    """Fixed 'current instant' for period filters."""
    return NOW


@pytest.fixture
def make_procedure():
    """Factory: base_procedure() with keyword overrides."""
    def _make(**overrides) -> ProcedureRecord:
        return dataclasses.replace(base_procedure(), **overrides)
    return _make


@pytest.fixture
def registry(make_procedure) -> list[ProcedureRecord]:
    """A small registry spanning both valve types and several dates."""
    return [
        make_procedure(id=1, nome="Mario", cognome="Rossi", data_procedura="2024-06-01",
                       modello_valvola="Edwards SAPIEN 3", fe=50, pre_dilatazione=True),
        make_procedure(id=2, nome="Anna", cognome="Bianchi", data_procedura="2024-02-10",
                       tipo_valvola="Self Expandable", modello_valvola="Medtronic CoreValve Evolut PRO",
                       fe=None, ora_inizio="08:30", ora_fine="09:30", pre_dilatazione=False,
                       post_dilatazione=True),
        make_procedure(id=3, nome="Luca", cognome="Verdi", data_procedura="2023-03-05",
                       modello_valvola="Edwards SAPIEN 3", fe=70, ora_inizio="14:00", ora_fine="14:45",
                       pre_dilatazione=False),
        make_procedure(id=4, nome="Giulia", cognome="Sapienza", data_procedura="2024-04-18",
                       tipo_valvola="Self Expandable", modello_valvola="Portico", fe=60,
                       pre_dilatazione=True),
    ]
