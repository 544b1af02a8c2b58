import csv
import io
from datetime import date, timedelta

import pytest
from sqlmodel import Session, select

from clinic_crm.database import engine
from clinic_crm.models import CrmLead, CrmPipeline, CrmStage, RecurrentProcedure, RevenueRecord, UserRole

from conftest import auth_headers, make_lead, make_user, stage_id


@pytest.fixture
def recurrence_leads(session, sellers):
    critical = stage_id(session, "Vencido Crítico")
    return [
        make_lead(session, "Maria Souza", 75, phone="11988887777", cpf="111",
                  last_procedure_name="Botox", recurrence_group="01 - INJETÁVEIS", stage_id=critical),
        make_lead(session, "João Lima", 30, phone="21977776666", last_procedure_name="Implante Hormonal",
                  recurrence_group="04 - SOROTERAPIA", assigned_to=sellers[0].id),
        make_lead(session, "Paula Reis", -10, whatsapp="31966665555", last_procedure_name="Morpheus 8",
                  recurrence_group="02 - TECNOLOGIAS"),
        make_lead(session, "Sem Telefone", 5, recurrence_group="01 - INJETÁVEIS"),
    ]


def fresh_lead(lead_id):
    with Session(engine) as session:
        return session.get(CrmLead, lead_id)


class TestListLeads:
    def test_requires_authentication(self, client):
        response = client.get("/api/recurrence/leads")
        assert response.status_code == 401

    def test_lists_by_days_overdue(self, client, admin_headers, recurrence_leads):
        response = client.get("/api/recurrence/leads", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "4"
        data = response.json()
        assert [lead["name"] for lead in data] == ["Maria Souza", "João Lima", "Sem Telefone", "Paula Reis"]
        assert data[0]["urgency"] == "critical"
        assert data[0]["stage"]["name"] == "Recorrência - Vencido Crítico"
        assert data[3]["urgency"] == "upcoming"
        assert data[3]["stage"] is None

    def test_filters(self, client, admin_headers, recurrence_leads):
        response = client.get(
            "/api/recurrence/leads",
            params={"group": "01 - INJETÁVEIS", "assignment": "unassigned", "urgency": "critical"},
            headers=admin_headers,
        )
        assert [lead["name"] for lead in response.json()] == ["Maria Souza"]

        response = client.get("/api/recurrence/leads", params={"search": "morpheus"}, headers=admin_headers)
        assert [lead["name"] for lead in response.json()] == ["Paula Reis"]
        assert response.headers["X-Total-Count"] == "1"

    def test_pagination(self, client, admin_headers, recurrence_leads):
        response = client.get("/api/recurrence/leads", params={"page": 2, "page_size": 3}, headers=admin_headers)

        assert response.headers["X-Total-Count"] == "4"
        assert response.headers["X-Total-Pages"] == "2"
        assert [lead["name"] for lead in response.json()] == ["Paula Reis"]

    def test_page_beyond_last_is_clamped(self, client, admin_headers, recurrence_leads):
        response = client.get("/api/recurrence/leads", params={"page": 9, "page_size": 3}, headers=admin_headers)
        assert response.headers["X-Page"] == "2"

    def test_invalid_urgency_is_rejected(self, client, admin_headers):
        response = client.get("/api/recurrence/leads", params={"urgency": "soon"}, headers=admin_headers)
        assert response.status_code == 422


class TestAssignment:
    def test_auto_assign_unassigned_filtered_leads(self, client, admin_headers, recurrence_leads, sellers):
        response = client.post("/api/recurrence/auto-assign", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"assignedCount": 3, "total": 3, "failedCount": 0}
        maria, joao, paula, sem_telefone = (fresh_lead(lead.id) for lead in recurrence_leads)
        # Ordem da lista: Maria (75), Sem Telefone (5), Paula (-10)
        assert maria.assigned_to == sellers[0].id
        assert sem_telefone.assigned_to == sellers[1].id
        assert paula.assigned_to == sellers[0].id
        assert joao.assigned_to == sellers[0].id

    def test_auto_assign_respects_filter(self, client, admin_headers, recurrence_leads):
        response = client.post("/api/recurrence/auto-assign", params={"urgency": "upcoming"}, headers=admin_headers)
        assert response.json()["assignedCount"] == 1
        assert fresh_lead(recurrence_leads[0].id).assigned_to is None

    def test_auto_assign_without_sellers(self, client, admin_headers, session):
        make_lead(session, "Maria", 70)
        response = client.post("/api/recurrence/auto-assign", headers=admin_headers)
        assert response.json() == {"assignedCount": 0, "total": 1, "failedCount": 0}

    def test_auto_assign_is_restricted_to_managers(self, client, session, sellers):
        response = client.post("/api/recurrence/auto-assign", headers=auth_headers(sellers[0]))
        assert response.status_code == 403

    def test_assign_single_lead(self, client, admin_headers, recurrence_leads, sellers):
        lead = recurrence_leads[2]
        response = client.patch(
            f"/api/recurrence/leads/{lead.id}/assign",
            json={"user_id": sellers[1].id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["assigned_to"] == sellers[1].id

        response = client.patch(f"/api/recurrence/leads/{lead.id}/assign", json={"user_id": None}, headers=admin_headers)
        assert response.json()["assigned_to"] is None

    def test_assign_unknown_lead_or_user(self, client, admin_headers, recurrence_leads):
        response = client.patch("/api/recurrence/leads/nao-existe/assign", json={"user_id": None}, headers=admin_headers)
        assert response.status_code == 404

        response = client.patch(
            f"/api/recurrence/leads/{recurrence_leads[0].id}/assign",
            json={"user_id": "nao-existe"},
            headers=admin_headers,
        )
        assert response.status_code == 400


class TestWhatsApp:
    def test_dispatch_builds_links_for_selected_leads(self, client, admin_headers, recurrence_leads):
        ids = [recurrence_leads[2].id, recurrence_leads[3].id, recurrence_leads[0].id]
        response = client.post("/api/recurrence/whatsapp-dispatch", json={"lead_ids": ids}, headers=admin_headers)

        data = response.json()
        assert data["total"] == 3
        assert data["skipped"] == [recurrence_leads[3].id]
        assert [link["lead_id"] for link in data["links"]] == [recurrence_leads[2].id, recurrence_leads[0].id]
        assert data["links"][0]["url"].startswith("https://wa.me/5531966665555?text=")

    def test_dispatch_requires_selection(self, client, admin_headers):
        response = client.post("/api/recurrence/whatsapp-dispatch", json={"lead_ids": []}, headers=admin_headers)
        assert response.status_code == 400

    def test_script_uses_procedure_template(self, client, admin_headers, recurrence_leads):
        response = client.get(f"/api/recurrence/leads/{recurrence_leads[0].id}/script", headers=admin_headers)

        data = response.json()
        assert data["script"].startswith("Oi Maria! ✨")
        assert data["whatsapp_url"].startswith("https://wa.me/5511988887777?text=")

    def test_script_with_custom_template(self, client, admin_headers, session):
        session.add(RecurrentProcedure(group_name="04 - SOROTERAPIA", procedure_name="Soro Vitamina",
                                       recurrence_days=30, script_whatsapp="Oi {nome}, seu soro venceu!"))
        session.commit()
        lead = make_lead(session, "Lia Campos", 3, last_procedure_name="Soro Vitamina C")

        data = client.get(f"/api/recurrence/leads/{lead.id}/script", headers=admin_headers).json()

        assert data["script"] == "Oi Lia, seu soro venceu!"
        assert data["whatsapp_url"] is None


class TestStatsAndIdentify:
    def test_stats_are_cached_until_identify(self, client, admin_headers, session):
        session.add(RecurrentProcedure(group_name="01 - INJETÁVEIS", procedure_name="Botox", recurrence_days=120))
        session.add(RevenueRecord(amount=1500, date=date.today() - timedelta(days=200), procedure_name="Botox",
                                  patient_name="Maria", patient_cpf="111"))
        session.commit()

        stats = client.get("/api/recurrence/stats", params={"year_from": 2000}, headers=admin_headers).json()
        assert stats["total_pending"] == 0

        response = client.post("/api/recurrence/identify", json={"daysAhead": 30, "yearFrom": 2000}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "1 criados, 0 atualizados"

        stats = client.get("/api/recurrence/stats", params={"year_from": 2000}, headers=admin_headers).json()
        assert stats["total_pending"] == 1
        assert stats["overdue_critical"] == 1
        assert stats["by_procedure_group"] == {"01 - INJETÁVEIS": 1}

    def test_identify_without_pipeline_returns_422(self, client, admin_headers, session):
        for model in (CrmStage, CrmPipeline):
            for row in session.exec(select(model)).all():
                session.delete(row)
        session.commit()

        response = client.post("/api/recurrence/identify", json={}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["detail"] == "Pipeline Farmer não encontrado"

    def test_identify_is_restricted_to_managers(self, client, session):
        seller = make_user(session, "seller@clinica.com", "Vendedor", role=UserRole.SELLER)
        response = client.post("/api/recurrence/identify", json={}, headers=auth_headers(seller))
        assert response.status_code == 403


def test_export_csv(client, admin_headers, recurrence_leads):
    response = client.get("/api/recurrence/export", params={"group": "01 - INJETÁVEIS"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(response.content.decode("utf-8-sig"))))
    assert [row["Nome"] for row in rows] == ["Maria Souza", "Sem Telefone"]
    assert rows[0]["Urgência"] == "critical"
    assert rows[0]["Dias em atraso"] == "75"
