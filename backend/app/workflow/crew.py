# backend/app/workflow/crew.py
from typing import Any, Mapping


def crew_member_ids(crew: Mapping[str, Any] | None) -> list[str]:
    """Every member id on a crew snapshot, primary member first, without duplicates."""
    if not crew:
        return []
    ids = [crew.get("id")]
    for key in ("captain", "first_officer"):
        member = crew.get(key) or {}
        ids.append(member.get("id"))
    ids.extend((m or {}).get("id") for m in crew.get("cabin_crew") or [])

    out: list[str] = []
    for i in ids:
        if i is None or i == "":
            continue
        i = str(i)
        if i not in out:
            out.append(i)
    return out


def is_crew_member(crew: Mapping[str, Any] | None, user_id: str) -> bool:
    return bool(user_id) and user_id in crew_member_ids(crew)
