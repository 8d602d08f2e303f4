from __future__ import annotations

from libs.core.models import DEFAULT_EXPERIENCE_BUDGET, SectionTag
from libs.tools.template_fingerprint import (
    collect_bullets,
    estimate_entry_count,
    experience_block,
    fingerprint,
)

REFERENCE = "\n".join(
    [
        "Jane Doe",
        "Professional Summary",
        "Engineer focused on data platforms.",
        "",
        "Experience",
        "Senior Engineer, Acme (2020 - 2023)",
        "• " + "a" * 60,
        "• " + "b" * 80,
        "Engineer, Beta (2016 - 2020)",
        "- " + "c" * 70,
        "* " + "d" * 50,
        "",
        "Skills",
        "Python, SQL",
        "",
        "Education",
        "BSc Computer Science",
    ]
)


def test_fingerprint_of_reference_resume() -> None:
    result = fingerprint(REFERENCE)

    assert result.has_summary is True
    assert result.section_order == [
        SectionTag.summary,
        SectionTag.experience,
        SectionTag.skills,
        SectionTag.education,
    ]
    assert len(result.experience_budgets) == 2
    for budget in result.experience_budgets:
        assert budget.bullet_count == 2
        assert budget.bullet_char_budgets == [65, 65]
    assert result.total_char_budget == int(0.8 * len(REFERENCE))


def test_section_order_is_canonical_not_physical() -> None:
    text = "Certifications\nAWS\nEducation\nBSc\nSkills\nGo\nExperience\nWork\nObjective\nGrow"
    result = fingerprint(text)
    assert result.section_order == [
        SectionTag.summary,
        SectionTag.experience,
        SectionTag.skills,
        SectionTag.education,
        SectionTag.certifications,
    ]


def test_no_bullets_falls_back_to_default_budget() -> None:
    result = fingerprint("Jane Doe\nExperience\nEngineer at Acme 2019 - 2023\nSkills\nPython")
    assert result.experience_budgets == [DEFAULT_EXPERIENCE_BUDGET]
    assert result.has_summary is False


def test_empty_and_whitespace_text_yield_defaults() -> None:
    for text in ("", "   \n\t  \n"):
        result = fingerprint(text)
        assert result.has_summary is False
        assert result.section_order == []
        assert result.experience_budgets == [DEFAULT_EXPERIENCE_BUDGET]
        assert result.total_char_budget == 0


def test_bullet_count_never_drops_below_two() -> None:
    text = "Experience\n2010 2011 2012 2013 2014 2015\n• one bullet only here"
    result = fingerprint(text)
    assert len(result.experience_budgets) == 3
    assert result.experience_budgets[0].bullet_count == 2
    assert result.experience_budgets[0].bullet_char_budgets == [len("one bullet only here")] * 2


def test_experience_block_stops_at_next_capitalised_block() -> None:
    block = experience_block(REFERENCE)
    assert block.startswith("Experience")
    assert "Skills" not in block
    assert experience_block("no work history here") == ""


def test_collect_bullets_strips_markers() -> None:
    bullets = collect_bullets("Role\n• alpha\n● beta\n◦ gamma\n▪ delta\n‣ eps\n- zeta\n* eta\nplain")
    assert bullets == ["alpha", "beta", "gamma", "delta", "eps", "zeta", "eta"]


def test_estimate_entry_count_halves_year_tokens_rounding_up() -> None:
    assert estimate_entry_count("") == 1
    assert estimate_entry_count("2019") == 1
    assert estimate_entry_count("1999 - 2004, 2004 - 2010") == 2
    assert estimate_entry_count("2001 2002 2003") == 2
    assert estimate_entry_count("phone 12019 and 3020") == 1


def test_fingerprint_is_deterministic() -> None:
    assert fingerprint(REFERENCE) == fingerprint(REFERENCE)


def test_serializes_with_camel_case_keys() -> None:
    payload = fingerprint(REFERENCE).to_json_dict()
    assert set(payload) == {"hasSummary", "sectionOrder", "experience", "totalCharBudget"}
    assert payload["experience"][0] == {"bulletCount": 2, "bulletCharBudgets": [65, 65]}
