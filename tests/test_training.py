import pytest

from members.errors import InvalidInput, NotFound, Unauthorized
from state.models import TrainingStatus
from tests.fixtures import FIXED_TODAY
from training.tracker import set_training_status, training_matrix


def test_matrix_has_row_per_approved_member(ctx):
    rows = training_matrix(ctx)
    assert [r["member_id"] for r in rows] == ["p5", "p8", "p3", "p1", "p2", "p4"]
    by_id = {r["member_id"]: r["modules"] for r in rows}
    assert by_id["p1"] == {"EGPR": "Completed", "T4T": "In Progress"}
    assert by_id["p3"] == {"EGPR": "Not Started", "T4T": "Completed"}


def test_unknown_module_defaults_to_not_started(ctx):
    rows = training_matrix(ctx, modules=["Discipleship 101"])
    assert all(r["modules"] == {"Discipleship 101": "Not Started"} for r in rows)


def test_admin_records_completion(ctx, member):
    rec = set_training_status(ctx, member("p1"), "p2", "T4T", "Completed")
    assert rec.status == TrainingStatus.COMPLETED
    assert rec.completion_date == FIXED_TODAY
    again = set_training_status(ctx, member("p1"), "p2", "T4T", TrainingStatus.IN_PROGRESS)
    assert again.id == rec.id
    assert again.completion_date is None


def test_training_updates_checked(ctx, member):
    with pytest.raises(Unauthorized):
        set_training_status(ctx, member("p2"), "p3", "EGPR", "Completed")
    with pytest.raises(InvalidInput):
        set_training_status(ctx, member("p1"), "p3", "EGPR", "Done")
    with pytest.raises(NotFound):
        set_training_status(ctx, member("p1"), "ghost", "EGPR", "Completed")
