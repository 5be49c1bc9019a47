"""
Tests for leadcapture/services/leads.py - persistence and read paths.
"""
import csv
import io
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import select

from leadcapture.models.lead_activity import LeadActivity
from leadcapture.schemas.form_schema import parse_form_schema
from leadcapture.services.field_keys import build_structured_data
from leadcapture.services.leads import (
    SourceAttribution,
    create_lead,
    export_leads_csv,
    get_lead,
    lead_table_row,
    leads_for_export,
    list_leads,
    record_activity,
)


class TestCreateLead:
    async def test_persists_data_and_attribution(self, db, make_tenant):
        tenant = await make_tenant()
        form_id = uuid.uuid4()

        lead = await create_lead(
            db,
            form_id=form_id,
            tenant_id=tenant.id,
            structured_data={"email": "jane@example.com"},
            attribution=SourceAttribution(utm_source="google", utm_campaign="spring"),
            ip_address="203.0.113.7",
            user_agent="pytest",
        )
        await db.commit()

        assert lead.id is not None
        stored = await get_lead(db, lead.id, tenant.id)
        assert stored.data == {"email": "jane@example.com"}
        assert stored.utm_source == "google"
        assert stored.utm_campaign == "spring"
        assert stored.ip_address == "203.0.113.7"
        assert stored.stage_id is None

    async def test_get_lead_is_tenant_scoped(self, db, make_tenant):
        tenant = await make_tenant()
        other = await make_tenant()
        lead = await create_lead(db, uuid.uuid4(), tenant.id, {})
        await db.commit()

        assert await get_lead(db, lead.id, other.id) is None


class TestRecordActivity:
    async def test_writes_activity(self, db, make_tenant):
        tenant = await make_tenant()
        lead = await create_lead(db, uuid.uuid4(), tenant.id, {})
        await db.commit()

        await record_activity(db, lead.id, "created", {"form_id": "f"})

        result = await db.execute(select(LeadActivity).where(LeadActivity.lead_id == lead.id))
        activities = result.scalars().all()
        assert [a.type for a in activities] == ["created"]

    async def test_failure_is_swallowed(self):
        db = AsyncMock()
        db.add = MagicMock()
        db.commit = AsyncMock(side_effect=RuntimeError("db down"))

        await record_activity(db, uuid.uuid4(), "created")

        db.rollback.assert_awaited_once()


class TestListLeads:
    async def test_newest_first_and_paginated(self, db, make_tenant):
        tenant = await make_tenant()
        form_id = uuid.uuid4()
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for i in range(5):
            lead = await create_lead(db, form_id, tenant.id, {"n": i})
            lead.created_at = base + timedelta(minutes=i)
        await db.commit()

        page1, total = await list_leads(db, tenant.id, form_id, page=1, per_page=2)
        page3, _ = await list_leads(db, tenant.id, form_id, page=3, per_page=2)

        assert total == 5
        assert [l.data["n"] for l in page1] == [4, 3]
        assert [l.data["n"] for l in page3] == [0]

    async def test_filters_by_form(self, db, make_tenant):
        tenant = await make_tenant()
        form_a, form_b = uuid.uuid4(), uuid.uuid4()
        await create_lead(db, form_a, tenant.id, {})
        await create_lead(db, form_b, tenant.id, {})
        await db.commit()

        leads, total = await list_leads(db, tenant.id, form_a)
        assert total == 1
        assert leads[0].form_id == form_a

    async def test_per_page_clamped(self, db, make_tenant):
        tenant = await make_tenant()
        leads, total = await list_leads(db, tenant.id, per_page=1000, page=0)
        assert total == 0
        assert leads == []


class TestReadPaths:
    async def test_table_row_reads_what_ingestion_wrote(self, db, make_tenant, sample_fields):
        tenant = await make_tenant()
        fields = parse_form_schema({"fields": sample_fields}).fields
        raw = {
            "f_name": "Jane Doe",
            "f_email": "jane@example.com",
            "f_phone": "5125550100",
            "f_company": "Acme",
            "f_ref": "partner-7",
        }
        lead = await create_lead(db, uuid.uuid4(), tenant.id, build_structured_data(raw, fields))
        await db.commit()

        row = lead_table_row(lead, fields)

        assert row == {
            "f_name": "Jane Doe",
            "email": "jane@example.com",
            "phone_number": "5125550100",
            "company": "Acme",
        }

    async def test_csv_export(self, db, make_tenant, sample_fields):
        tenant = await make_tenant()
        form_id = uuid.uuid4()
        fields = parse_form_schema({"fields": sample_fields}).fields
        await create_lead(
            db, form_id, tenant.id,
            build_structured_data({"f_name": "Jane Doe", "f_email": "jane@example.com"}, fields),
            attribution=SourceAttribution(utm_source="  "),
        )
        await db.commit()

        leads = await leads_for_export(db, tenant.id, form_id)
        rows = list(csv.reader(io.StringIO(export_leads_csv(leads, fields))))

        assert rows[0] == ["Full Name", "Email", "Phone", "Company", "Stage", "Source", "Created At"]
        assert rows[1][:6] == ["Jane Doe", "jane@example.com", "", "", "New", "Direct"]
        assert rows[1][6] != ""
