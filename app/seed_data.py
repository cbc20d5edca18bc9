"""Starter checklist used to seed an empty data directory."""

from __future__ import annotations

from app.checklist_model import Checklist, Dropdown, Task, TaskContent


def _task(title: str, subheader: str, body: str) -> Task:
    return Task(id="", title=title, content=TaskContent(subheader=subheader, body=body))


def default_checklist() -> Checklist:
    """Return a fresh draft of the bereavement checklist; ids are unset."""
    return Checklist(
        id="",
        title="Bereavement Checklist",
        dropdowns=[
            Dropdown(
                id="",
                title="Immediate Steps",
                tasks=[
                    _task(
                        "Notify close family and friends",
                        "How to notify loved ones",
                        "Consider making a list of people to contact. Ask a friend "
                        "or family member to help make calls. For distant friends "
                        "or colleagues, an email might be appropriate.",
                    ),
                    _task(
                        "Contact funeral home",
                        "Selecting a funeral home",
                        "Research funeral homes in your area. Ask about their "
                        "services and pricing. Consider if your loved one had any "
                        "pre-arrangements.",
                    ),
                ],
            ),
            Dropdown(
                id="",
                title="Documentation",
                tasks=[
                    _task(
                        "Obtain death certificates",
                        "Death certificates",
                        "Order multiple certified copies (typically 10-15). You'll "
                        "need these for banks, insurance companies, and government "
                        "agencies.",
                    ),
                    _task(
                        "Locate important documents",
                        "Important documents to locate",
                        "Look for: will, trust documents, insurance policies, bank "
                        "statements, property deeds, vehicle titles, and tax "
                        "returns.",
                    ),
                ],
                dropdowns=[
                    Dropdown(
                        id="",
                        title="Legal Documents",
                        tasks=[
                            _task(
                                "Find the will",
                                "Locating the will",
                                "Check safe deposit boxes, home offices, and with "
                                "the deceased's attorney. If no will exists, "
                                "consult with a probate attorney about next steps.",
                            )
                        ],
                    )
                ],
            ),
        ],
    )
