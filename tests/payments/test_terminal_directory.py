import pytest

from application.services.terminal_directory import TerminalDirectory, default_terminal_name
from domain.payment.entity import OperatingMode
from infrastructure.adapters.terminal_config import StaticTerminalConfig
from tests.fakes import StubGateway


DEVICES = [
    {"id": "PAX_A910__SMARTPOS1495357742", "operating_mode": "PDV", "pos_id": 47792476, "store_id": "58203"},
    {"id": "NEWLAND_N950__NN0001", "operating_mode": "STANDALONE", "external_pos_id": "CAJA2"},
    {"id": "GERTEC__GT77", "operating_mode": "PDV"},
]


@pytest.mark.asyncio
async def test_only_enabled_terminals_are_offered():
    gw = StubGateway(devices=DEVICES)
    config = StaticTerminalConfig(enabled={
        "PAX_A910__SMARTPOS1495357742": True,
        "NEWLAND_N950__NN0001": False,
    })
    directory = TerminalDirectory(gw, config, enabled_by_default=False)

    terminals = await directory.list_enabled_terminals()
    assert [t.id for t in terminals] == ["PAX_A910__SMARTPOS1495357742"]


@pytest.mark.asyncio
async def test_missing_flag_follows_default():
    gw = StubGateway(devices=DEVICES)
    config = StaticTerminalConfig(enabled={"NEWLAND_N950__NN0001": False})
    directory = TerminalDirectory(gw, config)  # enabled unless marked False

    ids = {t.id for t in await directory.list_enabled_terminals()}
    assert ids == {"PAX_A910__SMARTPOS1495357742", "GERTEC__GT77"}


@pytest.mark.asyncio
async def test_names_locations_and_ordering():
    gw = StubGateway(devices=DEVICES)
    config = StaticTerminalConfig(names={"GERTEC__GT77": "Bar"})
    terminals = await TerminalDirectory(gw, config).list_enabled_terminals()

    assert [t.name for t in terminals] == ["Bar", "Terminal NN0001", "Terminal SMARTPOS1495357742"]
    bar, standalone, pax = terminals
    assert bar.location == "Punto de Venta"
    assert standalone.location == "Standalone"
    assert standalone.operating_mode == OperatingMode.STANDALONE
    assert standalone.external_id == "CAJA2"
    assert pax.pos_id == "47792476"


@pytest.mark.asyncio
async def test_empty_directory_is_not_an_error():
    gw = StubGateway(devices=[])
    assert await TerminalDirectory(gw, StaticTerminalConfig()).list_enabled_terminals() == []


def test_default_name_without_separator():
    assert default_terminal_name("ABC") == "Terminal ABC"
    assert default_terminal_name("PAX__123") == "Terminal 123"
