from unittest.mock import MagicMock

from vorleser.services import scheduler as scheduler_module
from vorleser.services.scheduler import SchedulerService, scheduler_service


def trigger_fields(trigger) -> dict:
    return {field.name: str(field) for field in trigger.fields}


def test_interval_to_trigger_mapping():
    daily = trigger_fields(SchedulerService._get_trigger_for_interval("daily", hour=4))
    assert daily["hour"] == "4"
    assert daily["minute"] == "0"
    assert daily["day_of_week"] == "*"

    weekly = trigger_fields(SchedulerService._get_trigger_for_interval("weekly", hour=2))
    assert weekly["day_of_week"] == "mon"
    assert weekly["hour"] == "2"

    hourly = trigger_fields(SchedulerService._get_trigger_for_interval("hourly", hour=2))
    assert hourly["hour"] == "*"
    assert hourly["minute"] == "0"


def test_reschedule_registers_scan_job():
    scheduler_service.reschedule_jobs(interval="daily", hour=3)
    jobs = scheduler_service._scheduler.get_jobs()

    assert [job.id for job in jobs] == ["scan"]
    scheduler_service._scheduler.remove_all_jobs()


def test_disabled_interval_removes_scan_job():
    scheduler_service.reschedule_jobs(interval="daily", hour=3)
    scheduler_service.reschedule_jobs(interval="disabled")

    assert scheduler_service._scheduler.get_jobs() == []


def test_scheduled_job_scans_all_libraries(monkeypatch):
    fake_manager = MagicMock()
    fake_manager.scan_all.return_value = [{"library": "lib-1", "status": "completed"}]
    monkeypatch.setattr(scheduler_module, "scan_manager", fake_manager)

    results = SchedulerService.run_scan_job()

    fake_manager.scan_all.assert_called_once_with()
    assert results[0]["status"] == "completed"
