"""Pytest bootstrap configuration.

Environment is pinned before application settings are imported; flows are
built around the fakes in tests/fakes.py.
"""
import os
from decimal import Decimal
from typing import Optional

import pytest

# Keep tests independent of a developer's .env / shell
os.environ.setdefault("DEBUG", "true")
os.environ.pop("PROVIDER__ACCESS_TOKEN", None)

from application.services.intent_submitter import PaymentIntentSubmitter
from application.services.outcome_poller import OutcomePoller
from application.services.payment_flow import PaymentFlowController
from application.services.terminal_directory import TerminalDirectory
from infrastructure.adapters.terminal_config import StaticTerminalConfig
from tests.fakes import FakeClock, StubGateway


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def make_flow(fake_clock):
    """Build a flow controller around a gateway with the fake clock."""

    def _make(
        gateway: StubGateway,
        *,
        enabled: Optional[dict] = None,
        names: Optional[dict] = None,
        order_id: str = "ORD-123",
        amount: Decimal = Decimal("250.00"),
        timeout: float = 60.0,
        unknown_status_policy: str = "error",
        **kwargs,
    ) -> PaymentFlowController:
        directory = TerminalDirectory(
            gateway,
            StaticTerminalConfig(enabled=enabled, names=names if names is not None else {"T1": "Front"}),
        )
        poller = OutcomePoller(
            gateway,
            interval=1.0,
            timeout=timeout,
            unknown_status_policy=unknown_status_policy,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )
        return PaymentFlowController(
            flow_id="flow-1",
            order_id=order_id,
            amount=amount,
            directory=directory,
            submitter=PaymentIntentSubmitter(gateway),
            poller=poller,
            **kwargs,
        )

    return _make
