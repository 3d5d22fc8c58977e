from __future__ import annotations

from app.workflow.crew import crew_member_ids, is_crew_member


def test_member_ids_cover_every_seat():
    crew = {
        "id": "crew-1",
        "captain": {"id": "cap-1"},
        "first_officer": {"id": "fo-1"},
        "cabin_crew": [{"id": "cc-1"}, {"id": "cc-2"}],
    }
    assert crew_member_ids(crew) == ["crew-1", "cap-1", "fo-1", "cc-1", "cc-2"]


def test_member_ids_are_deduplicated_across_types():
    crew = {"id": 7, "captain": {"id": "7"}, "cabin_crew": [{"id": 7}, {"id": 8}, None]}
    assert crew_member_ids(crew) == ["7", "8"]


def test_missing_members_are_skipped():
    assert crew_member_ids(None) == []
    assert crew_member_ids({"id": "", "first_officer": None, "cabin_crew": []}) == []


def test_membership():
    crew = {"id": "crew-1", "cabin_crew": [{"id": "crew-2"}]}
    assert is_crew_member(crew, "crew-2")
    assert not is_crew_member(crew, "crew-99")
    assert not is_crew_member(crew, "")
