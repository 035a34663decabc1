"""Session boundary of the command layer."""

import pytest
from sqlalchemy import func, select

from fleet_kernel.db import engine as db_engine
from fleet_kernel.db.engine import get_session, session_scope
from fleet_kernel.exceptions import TripClosedError
from fleet_kernel.models.truck import Truck
from fleet_kernel.services import TruckService


def _truck_count() -> int:
    with session_scope() as session:
        return session.execute(select(func.count()).select_from(Truck)).scalar_one()


class TestSessionScope:

    def test_commits_on_exit(self, engine):
        with session_scope() as session:
            TruckService(session).register_truck("KA01XY0001")

        assert _truck_count() == 1

    def test_rolls_back_and_logs_code(self, engine, captured_logs):
        with pytest.raises(TripClosedError):
            with session_scope() as session:
                TruckService(session).register_truck("KA01XY0002")
                raise TripClosedError("trip-1")

        assert _truck_count() == 0
        rolled_back = [r for r in captured_logs() if r["message"] == "transaction_rolled_back"]
        assert rolled_back[0]["error_code"] == "TRIP_CLOSED"

    def test_session_before_init(self, monkeypatch):
        monkeypatch.setattr(db_engine, "_SessionFactory", None)
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_session()
