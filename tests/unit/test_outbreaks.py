"""Unit tests for outbreak clustering, escalation and alerting."""

import pytest

from agriadvisor.core.database import db_service
from agriadvisor.core.models import DiseaseOutbreakDB, OutbreakSeverity, OutbreakStatus, build_cluster_key
from agriadvisor.core.notification_engine import (
    NotificationChannel,
    NotificationEngine,
    OutbreakAlertDispatcher,
)
from agriadvisor.core.outbreaks import OutbreakNotFoundError, OutbreakService

PUNE = {"latitude": 18.52, "longitude": 73.85, "address": "Hadapsar, Pune", "region": "Maharashtra"}


class RecordingChannel(NotificationChannel):
    def __init__(self):
        self.notifications = []

    async def send(self, notification) -> bool:
        self.notifications.append(notification)
        return True

    @property
    def channel_name(self) -> str:
        return "recording"


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def dispatcher(setup_test_db, channel):
    engine = NotificationEngine()
    engine.add_channel(channel)
    return OutbreakAlertDispatcher(engine)


@pytest.fixture
def service(setup_test_db, dispatcher):
    return OutbreakService(dispatcher=dispatcher)


async def _report(service, user_id="farmer-1", disease="Late Blight", crop="Tomato",
                  location=None, severity=OutbreakSeverity.LOW, area=0.0):
    return await service.report_outbreak(
        user_id=user_id,
        disease=disease,
        crop=crop,
        location=location or PUNE,
        severity=severity,
        affected_area=area,
    )


class TestClustering:
    @pytest.mark.asyncio
    async def test_first_report_seeds_cluster(self, service):
        outcome = await _report(service, area=3.0)

        outbreak = outcome["outbreak"]
        assert outcome["is_new"] is True
        assert outcome["alerts_sent"] is False
        assert outbreak["confirmedCases"] == 1
        assert outbreak["affectedArea"] == 3.0
        assert outbreak["status"] == "active"
        assert outbreak["severity"] == "low"
        assert outbreak["location"]["country"] == "India"

    @pytest.mark.asyncio
    async def test_nearby_report_merges_case_insensitively(self, service):
        first = await _report(service)
        nearby = dict(PUNE, latitude=18.55, longitude=73.88)

        second = await _report(service, user_id="farmer-2", disease="late blight", crop="TOMATO", location=nearby)

        assert second["is_new"] is False
        assert second["outbreak"]["id"] == first["outbreak"]["id"]
        assert second["outbreak"]["confirmedCases"] == 2
        assert [r["userId"] for r in second["outbreak"]["reportedBy"]] == ["farmer-1", "farmer-2"]

    @pytest.mark.asyncio
    async def test_far_or_different_reports_start_new_clusters(self, service):
        first = await _report(service)
        far = dict(PUNE, latitude=19.07, longitude=72.88, address="Mumbai")

        other_place = await _report(service, location=far)
        other_crop = await _report(service, crop="Potato")

        ids = {first["outbreak"]["id"], other_place["outbreak"]["id"], other_crop["outbreak"]["id"]}
        assert len(ids) == 3

    @pytest.mark.asyncio
    async def test_resolved_outbreak_is_not_reused(self, service):
        first = await _report(service)
        await service.update_status(first["outbreak"]["id"], OutbreakStatus.RESOLVED, "officer")

        second = await _report(service)

        assert second["is_new"] is True
        assert second["outbreak"]["id"] != first["outbreak"]["id"]

    @pytest.mark.asyncio
    async def test_cluster_key_collision_joins_existing_cluster(self, service):
        # Existing cluster holds the key but sits outside the lookup box
        key = build_cluster_key("Late Blight", "Tomato", PUNE["latitude"], PUNE["longitude"])
        async with db_service.get_session() as session:
            existing = DiseaseOutbreakDB(
                disease="Late Blight", crop="Tomato", latitude=0.0, longitude=0.0,
                address="elsewhere", region="Maharashtra", severity="low",
                cluster_key=key, reports=[], treatment_recommendations=[], alerts_sent=[],
            )
            session.add(existing)
        existing_id = existing.id

        outcome = await _report(service)

        assert outcome["is_new"] is False
        assert outcome["outbreak"]["id"] == existing_id
        assert outcome["outbreak"]["confirmedCases"] == 1


class TestEscalation:
    @pytest.mark.asyncio
    async def test_fifth_report_escalates_to_medium(self, service):
        for i in range(4):
            outcome = await _report(service, user_id=f"f{i}")
            assert outcome["outbreak"]["severity"] == "low"

        outcome = await _report(service, user_id="f4")

        assert outcome["outbreak"]["severity"] == "medium"

    @pytest.mark.asyncio
    async def test_reported_high_is_kept(self, service):
        await _report(service, severity=OutbreakSeverity.HIGH)
        outcome = await _report(service, severity=OutbreakSeverity.LOW)

        assert outcome["outbreak"]["severity"] == "high"


class TestAlerting:
    @pytest.mark.asyncio
    async def test_tenth_case_alerts_nearby_farmers(self, service, dispatcher, channel, user_factory):
        near = await user_factory()
        far = await user_factory(latitude=28.6, longitude=77.2, address="Delhi")
        inactive = await user_factory(is_active=False)

        for i in range(9):
            outcome = await _report(service, user_id=f"f{i}")
            assert outcome["alerts_sent"] is False

        outcome = await _report(service, user_id="f9")
        await dispatcher.wait_for_pending()

        assert outcome["alerts_sent"] is True
        assert len(channel.notifications) == 1
        notification = channel.notifications[0]
        assert near.id in notification.recipients
        assert far.id not in notification.recipients
        assert inactive.id not in notification.recipients
        assert notification.message.startswith("DISEASE ALERT: 10 farmers reported Late Blight in Tomato")

        async with db_service.get_session() as session:
            stored = await session.get(DiseaseOutbreakDB, outcome["outbreak"]["id"])
            assert len(stored.alerts_sent) == 1
            assert stored.alerts_sent[0].alert_type == "app"
            assert stored.alerts_sent[0].recipients == len(notification.recipients)

    @pytest.mark.asyncio
    async def test_critical_report_alerts_immediately(self, service, dispatcher, channel):
        outcome = await _report(service, severity=OutbreakSeverity.CRITICAL)
        await dispatcher.wait_for_pending()

        assert outcome["alerts_sent"] is True
        assert len(channel.notifications) == 1

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_fail_report(self, setup_test_db):
        class BrokenChannel(RecordingChannel):
            async def send(self, notification) -> bool:
                raise RuntimeError("gateway down")

        engine = NotificationEngine()
        engine.add_channel(BrokenChannel())
        dispatcher = OutbreakAlertDispatcher(engine)
        service = OutbreakService(dispatcher=dispatcher)

        outcome = await _report(service, severity=OutbreakSeverity.CRITICAL)
        await dispatcher.wait_for_pending()

        assert outcome["alerts_sent"] is True


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_unknown_outbreak(self, service):
        with pytest.raises(OutbreakNotFoundError):
            await service.update_status("missing", OutbreakStatus.CONTAINED)
        with pytest.raises(OutbreakNotFoundError):
            await service.add_treatment("missing", {"treatment": "Copper spray"})

    @pytest.mark.asyncio
    async def test_add_treatment(self, service):
        outcome = await _report(service)

        data = await service.add_treatment(
            outcome["outbreak"]["id"], {"treatment": "Copper oxychloride", "dosage": "3 g/L"}, "officer"
        )

        assert data["treatmentRecommendations"][0]["treatment"] == "Copper oxychloride"
        assert data["treatmentRecommendations"][0]["dosage"] == "3 g/L"

    @pytest.mark.asyncio
    async def test_list_filters(self, service):
        await _report(service)
        far = dict(PUNE, latitude=26.85, longitude=80.95, address="Lucknow", region="Uttar Pradesh")
        await _report(service, disease="Wheat Rust", crop="Wheat", location=far)

        assert len(await service.list_outbreaks()) == 2
        assert [o["disease"] for o in await service.list_outbreaks(region="uttar")] == ["Wheat Rust"]
        assert [o["crop"] for o in await service.list_outbreaks(crop="tomato")] == ["Tomato"]
        nearby = await service.list_outbreaks(latitude=18.5, longitude=73.8, radius_km=20)
        assert [o["disease"] for o in nearby] == ["Late Blight"]
        assert await service.list_outbreaks(status="contained") == []

    @pytest.mark.asyncio
    async def test_regional_stats(self, service):
        await _report(service, area=2.0)
        await _report(service, area=3.0)
        await _report(service, disease="Leaf Curl")

        stats = await service.regional_stats()

        summary = stats["summary"][0]
        assert summary["region"] == "Maharashtra"
        assert summary["totalOutbreaks"] == 2
        assert summary["affectedFarmers"] == 3
        assert summary["diseases"] == ["Late Blight", "Leaf Curl"]

        detailed = await service.regional_stats("Maharashtra")
        late_blight = next(entry for entry in detailed["detailed"] if entry["disease"] == "Late Blight")
        assert late_blight == {
            "disease": "Late Blight",
            "count": 1,
            "totalAffectedArea": 5.0,
            "totalReporters": 2,
            "severities": ["low"],
        }
