from datetime import date

import pytest

from clinic_crm.models import Cancellation, CancellationStatus, DepartmentGoal, RevenueRecord
from clinic_crm.services.goal_tracker import get_procedures_goal_progress, normalize_department_name

TODAY = date(2025, 3, 10)


@pytest.mark.parametrize(
    "department, expected",
    [
        ("Consultas Cirurgia Plástica", "Consultas Cirurgia"),
        ("CIRURGIA PLÁSTICA", "Cirurgia Plástica"),
        ("Pós-Operatório", "Pós Operatório"),
        ("Nutrição Funcional", "Soroterapia"),
        ("Nutrologia", "Nutrologia"),
        ("Harmonização", "Harmonização"),
        ("Estética Corporal", "Spa & Estética"),
        ("Unique Travel", "Unique Travel"),
        ("LUXSKIN", "Luxskin"),
        ("Odontologia", "Odontologia"),
        (None, "Outros"),
    ],
)
def test_normalize_department_name(department, expected):
    assert normalize_department_name(department) == expected


@pytest.fixture
def march_data(session):
    session.add_all([
        DepartmentGoal(department_name="Soroterapia", month=3, year=2025,
                       meta1_goal=100_000, meta2_goal=120_000, meta3_goal=150_000),
        DepartmentGoal(department_name="Harmonização Facial", month=3, year=2025, meta1_goal=200_000),
        DepartmentGoal(department_name="Spa", month=3, year=2025, meta1_goal=0),
        DepartmentGoal(department_name="Soroterapia", month=4, year=2025, meta1_goal=999_999),
        RevenueRecord(amount=30_000, date=date(2025, 3, 2), department="04 - SOROTERAPIA"),
        RevenueRecord(amount=30_000, date=date(2025, 3, 5), department="04 - SOROTERAPIA"),
        RevenueRecord(amount=50_000, date=date(2025, 3, 7), department="Harmonização"),
        RevenueRecord(amount=10_000, date=date(2025, 3, 31), department=None),
        RevenueRecord(amount=70_000, date=date(2025, 4, 1), department="04 - SOROTERAPIA"),
        Cancellation(contract_value=20_000, cancellation_request_date=date(2025, 3, 3),
                     status=CancellationStatus.CANCELLED_WITH_FINE),
        Cancellation(contract_value=5_000, cancellation_request_date=date(2025, 3, 4),
                     status=CancellationStatus.RETAINED),
        Cancellation(contract_value=1_000, cancellation_request_date=date(2025, 3, 4)),
    ])
    session.commit()


class TestProceduresGoalProgress:
    def test_totals_and_tiers(self, session, march_data):
        progress = get_procedures_goal_progress(session, month=3, year=2025, today=TODAY)

        assert progress["total_sold"] == 120_000
        assert progress["total_cancelled"] == 20_000
        assert progress["net_sold"] == 100_000
        assert progress["procedure_count"] == 4
        assert progress["avg_ticket"] == 30_000
        assert progress["days_remaining"] == 21
        assert progress["business_days_remaining"] == 16
        assert progress["is_current_month"] is True

        meta1 = progress["tiers"]["meta1"]
        assert meta1["goal"] == 300_000
        assert meta1["remaining"] == 200_000
        assert meta1["required_units"] == 7
        assert meta1["per_business_day"] == 12_500
        assert progress["tiers"]["meta2"]["goal"] == 120_000
        assert progress["tiers"]["meta3"]["goal"] == 150_000

    def test_department_breakdown_sorted_by_progress(self, session, march_data):
        progress = get_procedures_goal_progress(session, month=3, year=2025, today=TODAY)

        departments = progress["departments"]
        assert [d["name"] for d in departments] == ["Harmonização Facial", "Soroterapia"]
        harmonizacao, soroterapia = departments
        assert harmonizacao["revenue"] == 50_000
        assert harmonizacao["percent"] == 25
        assert harmonizacao["short_name"] == "Harmonização Facial"
        assert soroterapia["revenue"] == 60_000
        assert soroterapia["count"] == 2
        assert soroterapia["procedures_needed"] == 2

    def test_defaults_without_goals_or_revenue(self, session):
        progress = get_procedures_goal_progress(session, month=3, year=2025, today=TODAY)

        assert progress["net_sold"] == 0
        assert progress["avg_ticket"] == 15_000
        assert progress["tiers"]["meta1"]["goal"] == 3_000_000
        assert progress["tiers"]["meta2"]["goal"] == 3_500_000
        assert progress["tiers"]["meta3"]["goal"] == 4_000_000
        assert progress["tiers"]["meta1"]["required_units"] == 200
        assert progress["departments"] == []

    def test_cancellations_above_revenue_keep_progress_at_zero(self, session):
        session.add_all([
            RevenueRecord(amount=10_000, date=date(2025, 3, 2), department="04 - SOROTERAPIA"),
            Cancellation(contract_value=40_000, cancellation_request_date=date(2025, 3, 3),
                         status=CancellationStatus.CANCELLED_NO_FINE),
        ])
        session.commit()

        progress = get_procedures_goal_progress(session, month=3, year=2025, today=TODAY)

        assert progress["net_sold"] == -30_000
        for tier in progress["tiers"].values():
            assert tier["percent_complete"] == 0
