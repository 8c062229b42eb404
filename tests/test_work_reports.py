"""Tests for work reports over logs and tasks."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from farmbook.board.reports import (
    UNASSIGNED_NAME,
    UNTAGGED_FIELD_NAME,
    completed_tasks_by_assignee,
    daily_work_hours,
    heatmap,
    heatmap_level,
    round_hours,
    total_hours,
    work_hours_by_field,
    work_log_csv,
    work_log_rows,
)
from farmbook.models.base import local_zone
from farmbook.models.board import FarmField, Profile, Task, TaskStatus, WorkLog


def make_log(task_id, day, hours, notes=None):
    start = datetime(day.year, day.month, day.day, 8, 0, tzinfo=timezone.utc)
    return WorkLog(
        task_id=task_id,
        started_at=start,
        ended_at=start + timedelta(hours=hours),
        notes=notes,
    )


class TestRounding:
    """Tests for hour rounding."""

    def test_half_rounds_up(self):
        """0.25 shows as 0.3, not banker's 0.2."""
        assert round_hours(0.25) == 0.3
        assert round_hours(1.04) == 1.0
        assert round_hours(2.0) == 2.0

    def test_total_hours(self):
        """Totals are rounded once at the end."""
        task_id = uuid4()
        logs = [make_log(task_id, date(2024, 5, 1), 1.25), make_log(task_id, date(2024, 5, 2), 1.0)]
        assert total_hours(logs) == 2.3


class TestHoursByField:
    """Tests for the field breakdown."""

    def test_grouping_and_order(self):
        """Busiest field first, untagged work grouped, empty fields dropped."""
        east = FarmField(name="East")
        west = FarmField(name="West")
        t_east = Task(title="Plough", field_id=east.id)
        t_west = Task(title="Note only", field_id=west.id)
        t_none = Task(title="Fix fence")
        t_gone = Task(title="Old", field_id=uuid4())
        day = date(2024, 5, 1)

        logs = [
            make_log(t_east.id, day, 2.0),
            make_log(t_east.id, day, 1.5),
            make_log(t_none.id, day, 0.5),
            make_log(t_gone.id, day, 0.5),
            WorkLog(task_id=t_west.id, notes="photo only"),
        ]
        result = work_hours_by_field(logs, [t_east, t_west, t_none, t_gone], [east, west])

        assert [(r.name, r.hours) for r in result] == [("East", 3.5), (UNTAGGED_FIELD_NAME, 1.0)]
        assert result[0].field_id == east.id
        assert result[1].field_id is None


class TestCompletedByAssignee:
    """Tests for the per-person completion chart."""

    def test_counts(self):
        """Only done tasks count; unknown assignees are grouped."""
        hanako = Profile(display_name="Hanako")
        tasks = [
            Task(title="a", status=TaskStatus.DONE, assignee_id=hanako.id),
            Task(title="b", status=TaskStatus.DONE, assignee_id=hanako.id),
            Task(title="c", status=TaskStatus.DONE),
            Task(title="d", status=TaskStatus.TODO, assignee_id=hanako.id),
        ]
        result = completed_tasks_by_assignee(tasks, [hanako])
        assert [(r.name, r.count) for r in result] == [("Hanako", 2), (UNASSIGNED_NAME, 1)]


class TestHeatmap:
    """Tests for the daily heatmap."""

    def test_levels(self):
        """Cell color steps."""
        assert [heatmap_level(h) for h in (0, 0.5, 2, 4, 6, 10)] == [0, 1, 2, 3, 4, 4]

    def test_daily_hours_window(self):
        """Days outside the range are ignored."""
        task_id = uuid4()
        logs = [
            make_log(task_id, date(2024, 5, 1), 1.0),
            make_log(task_id, date(2024, 5, 1), 2.0),
            make_log(task_id, date(2024, 4, 1), 5.0),
        ]
        assert daily_work_hours(logs, date(2024, 4, 30), date(2024, 5, 2)) == {date(2024, 5, 1): 3.0}

    def test_one_cell_per_day(self):
        """The map covers the window inclusive of today."""
        today = date(2024, 5, 10)
        logs = [make_log(uuid4(), date(2024, 5, 9), 4.5)]
        cells = heatmap(logs, today, days=3)
        assert [c.day for c in cells] == [date(2024, 5, d) for d in (7, 8, 9, 10)]
        assert cells[2].hours == 4.5
        assert cells[2].level == 3
        assert cells[0].level == 0


class TestWorkLogExport:
    """Tests for the work log table and CSV."""

    def test_rows_oldest_first(self):
        """Rows carry field and task names."""
        field = FarmField(name="East")
        task = Task(title="Plough", field_id=field.id)
        logs = [
            make_log(task.id, date(2024, 5, 2), 1.5, notes="wet soil"),
            make_log(task.id, date(2024, 5, 1), 2.0),
        ]
        rows = work_log_rows(logs, [task], [field])
        assert rows[0] == {
            "Date": "2024-05-01",
            "Field": "East",
            "Task": "Plough",
            "Duration": "2.0 h",
            "Notes": "",
        }
        assert rows[1]["Notes"] == "wet soil"

    def test_missing_task_shows_dash(self):
        """Logs on deleted tasks still export."""
        rows = work_log_rows([make_log(uuid4(), date(2024, 5, 1), 1.0)], [], [])
        assert rows[0]["Task"] == "-"
        assert rows[0]["Field"] == "-"

    def test_csv(self):
        """CSV has a header and one line per log."""
        task = Task(title="Plough")
        csv_text = work_log_csv([make_log(task.id, date(2024, 5, 1), 1.5)], [task], [])
        assert csv_text == "Date,Field,Task,Duration,Notes\n2024-05-01,-,Plough,1.5 h,\n"


class TestLocalDays:
    """Tests for which calendar day a log belongs to."""

    def test_early_morning_counts_for_local_day(self):
        """07:00 in Tokyo is still the previous day in UTC."""
        start = datetime(2024, 6, 9, 22, 0, tzinfo=timezone.utc)
        log = WorkLog(task_id=uuid4(), started_at=start, ended_at=start + timedelta(hours=1))

        assert log.work_date == date(2024, 6, 10)
        assert daily_work_hours([log], date(2024, 6, 9), date(2024, 6, 10)) == {date(2024, 6, 10): 1.0}
        cells = heatmap([log], today=date(2024, 6, 10), days=1)
        assert [(c.day, c.level) for c in cells] == [(date(2024, 6, 9), 0), (date(2024, 6, 10), 1)]

    def test_other_zone(self, monkeypatch):
        """The zone comes from settings."""
        monkeypatch.setenv("LOCAL_TIMEZONE", "UTC")
        local_zone.cache_clear()
        start = datetime(2024, 6, 9, 22, 0, tzinfo=timezone.utc)
        log = WorkLog(task_id=uuid4(), started_at=start, ended_at=start + timedelta(hours=1))
        assert log.work_date == date(2024, 6, 9)

    def test_naive_times_are_local(self):
        """Wall-clock times without a zone keep their date."""
        log = WorkLog(task_id=uuid4(), started_at=datetime(2024, 6, 9, 23, 30))
        assert log.work_date == date(2024, 6, 9)
