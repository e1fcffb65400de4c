"""Candidate record normalization.

Candidate data arrives in several shapes: flat profiles, API payloads with a
nested ``personal`` section, camelCase or snake_case keys. Everything is
flattened into one ``NormalizedCandidate`` before mapping so the pattern rules
only have to know one vocabulary.
"""
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DOB_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y")

# normalized field -> raw keys accepted for it, first non-empty wins
KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "full_name", "fullName"),
    "first_name": ("first_name", "firstName"),
    "last_name": ("last_name", "lastName"),
    "email": ("email", "email_address", "emailAddress"),
    "phone": ("phone", "phone_number", "phoneNumber", "mobile"),
    "location": ("location", "address"),
    "city": ("city",),
    "state": ("state", "province", "region"),
    "country": ("country",),
    "zip_code": ("zip_code", "zipCode", "zip", "postal_code", "postalCode"),
    "dob": ("dob", "date_of_birth", "dateOfBirth", "birth_date", "birthDate"),
    "gender": ("gender",),
    "linkedin": ("linkedin", "linkedin_url", "linkedinUrl"),
    "github": ("github", "github_url", "githubUrl"),
    "portfolio": ("portfolio", "portfolio_url", "portfolioUrl", "website"),
    "cover_letter": ("cover_letter", "coverLetter"),
    "current_title": ("current_title", "currentTitle", "title"),
    "years_experience": ("years_experience", "yearsExperience", "yearsOfExperience"),
    "summary": ("summary",),
}


class NormalizedCandidate(BaseModel):
    """Flat candidate record with derived fields filled in.

    Every field is a string; missing data is an empty string.
    """

    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip_code: str = ""
    dob: str = ""
    age: str = ""
    gender: str = ""
    experience: str = ""
    years_experience: str = ""
    current_title: str = ""
    skills: str = ""
    education: str = ""
    university: str = ""
    linkedin: str = ""
    github: str = ""
    portfolio: str = ""
    cover_letter: str = ""
    summary: str = ""

    def as_prompt_dict(self) -> dict[str, str]:
        """Non-empty fields, for handing to the inference backend."""
        return {k: v for k, v in self.model_dump().items() if v}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _flatten(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Merge nested ``personal`` sections into the top level without overwriting."""
    flat: dict[str, Any] = {}
    for key in ("personal", "personal_info", "personalInfo", "contact"):
        section = raw.get(key)
        if isinstance(section, Mapping):
            flat.update(section)
    for key, value in raw.items():
        if key not in flat or not _text(flat[key]):
            flat[key] = value
    return flat


def _lookup(flat: Mapping[str, Any], field: str) -> str:
    for key in KEY_ALIASES.get(field, (field,)):
        value = flat.get(key)
        if isinstance(value, (list, tuple, Mapping)):
            continue
        if _text(value):
            return _text(value)
    return ""


def split_name(name: str) -> tuple[str, str]:
    """First token and the rest joined by a space; empties when no name."""
    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def split_location(location: str) -> tuple[str, str, str]:
    """Split a comma separated location into (city, state, country).

    One component is a city, two are city and country, three or more are
    city, state and the last component as country.
    """
    parts = [p.strip() for p in location.split(",") if p.strip()]
    if not parts:
        return "", "", ""
    if len(parts) == 1:
        return parts[0], "", ""
    if len(parts) == 2:
        return parts[0], "", parts[1]
    return parts[0], parts[1], parts[-1]


def parse_date(value: str) -> Optional[date]:
    value = value.strip()
    if not value:
        return None
    # ISO timestamps carry a time part
    value = value.split("T")[0]
    for fmt in DOB_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def compute_age(dob: str, today: date) -> str:
    """Whole years between ``dob`` and ``today`` using 365.25-day years.

    Returns an empty string when the date cannot be parsed or lies in the future.
    """
    born = parse_date(dob)
    if born is None:
        if dob:
            logger.debug(f"Unparsable date of birth: {dob!r}")
        return ""
    days = (today - born).days
    if days < 0:
        return ""
    return str(math.floor(days / 365.25))


def _join_skills(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        names = []
        for item in value:
            if isinstance(item, Mapping):
                item = item.get("name") or item.get("skill") or ""
            if _text(item):
                names.append(_text(item))
        return ", ".join(names)
    return _text(value)


def _summarize_education(value: Any) -> tuple[str, str]:
    """Education text plus the first institution name."""
    if not isinstance(value, (list, tuple)):
        return _text(value), ""
    entries = []
    institutions = []
    for item in value:
        if not isinstance(item, Mapping):
            if _text(item):
                entries.append(_text(item))
            continue
        degree = _text(item.get("degree"))
        field_of_study = _text(item.get("field") or item.get("fieldOfStudy"))
        institution = _text(
            item.get("institution") or item.get("school") or item.get("university")
        )
        if institution:
            institutions.append(institution)
        title = " in ".join(p for p in (degree, field_of_study) if p)
        entry = ", ".join(p for p in (title, institution) if p)
        if entry:
            entries.append(entry)
    return "; ".join(entries), institutions[0] if institutions else ""


def _summarize_experience(value: Any) -> tuple[str, str]:
    """Work history text plus the most recent title."""
    if not isinstance(value, (list, tuple)):
        return _text(value), ""
    entries = []
    titles = []
    for item in value:
        if not isinstance(item, Mapping):
            if _text(item):
                entries.append(_text(item))
            continue
        title = _text(item.get("title") or item.get("position"))
        company = _text(item.get("company") or item.get("employer"))
        if title:
            titles.append(title)
        entry = " at ".join(p for p in (title, company) if p)
        if entry:
            entries.append(entry)
    return "; ".join(entries), titles[0] if titles else ""


def normalize_candidate(
    raw: Mapping[str, Any], today: Optional[date] = None
) -> NormalizedCandidate:
    """Flatten ``raw`` and derive name parts, location parts and age.

    ``raw`` is not modified. Explicit first/last name, city, state and country
    values take precedence over the derived ones. ``today`` pins the age
    computation; it defaults to the current date.

    Args:
        raw: Candidate record in any supported shape.
        today: Reference date for the age computation.

    Returns:
        NormalizedCandidate with every field as a string.
    """
    today = today or date.today()
    flat = _flatten(raw)
    fields = {field: _lookup(flat, field) for field in KEY_ALIASES}

    first, last = split_name(fields["name"])
    if fields["name"]:
        fields["first_name"] = first
        fields["last_name"] = last
    elif fields["first_name"] or fields["last_name"]:
        fields["name"] = " ".join(p for p in (fields["first_name"], fields["last_name"]) if p)

    city, state, country = split_location(fields["location"])
    fields["city"] = fields["city"] or city
    fields["state"] = fields["state"] or state
    fields["country"] = fields["country"] or country

    fields["age"] = _text(flat.get("age")) or compute_age(fields["dob"], today)
    fields["skills"] = _join_skills(flat.get("skills"))

    education, university = _summarize_education(flat.get("education"))
    fields["education"] = education
    fields["university"] = _text(flat.get("university")) or university

    history, recent_title = _summarize_experience(flat.get("experience"))
    fields["current_title"] = fields["current_title"] or recent_title
    if fields["years_experience"]:
        fields["experience"] = f"{fields['years_experience']} years"
    elif re.fullmatch(r"\d+(\.\d+)?", history):
        fields["experience"] = f"{history} years"
    else:
        fields["experience"] = history

    return NormalizedCandidate(**fields)
