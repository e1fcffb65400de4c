"""Field name rules for deterministic candidate mapping.

Rules are tried in two passes over a field's name, then its label: first an
exact pass across every rule, then a containment pass in rule order. A rule
matches a name through ``contains`` (substring of the compacted name),
``tokens`` (whole words of the spaced name) or ``exact`` (compacted name only).
"""
import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FieldRule:
    """Maps a family of field names to candidate attributes."""

    key: str
    attributes: tuple[str, ...]
    confidence: float
    reason: str
    contains: tuple[str, ...] = ()
    tokens: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()

    def matches_exactly(self, name: "FieldName") -> bool:
        return name.compact in self.contains + self.tokens + self.exact

    def matches_partially(self, name: "FieldName") -> bool:
        if any(pattern in name.compact for pattern in self.contains):
            return True
        return any(token in name.tokens for token in self.tokens)


@dataclass(frozen=True)
class SemanticRule:
    """Keyword hints for question-style labels."""

    keywords: tuple[str, ...]
    attributes: tuple[str, ...]
    confidence: float
    reason: str

    def matches(self, name: "FieldName") -> bool:
        return any(
            (keyword in name.spaced) if " " in keyword else (keyword in name.tokens)
            for keyword in self.keywords
        )


@dataclass(frozen=True)
class FieldName:
    """A field name in the three forms rules compare against."""

    spaced: str
    compact: str
    tokens: frozenset[str]

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["FieldName"]:
        if not raw or not raw.strip():
            return None
        text = re.sub(r"([a-z])([A-Z])", r"\1 \2", raw.strip())
        spaced = re.sub(r"[^a-z0-9]+", " ", text.lower()).strip()
        if not spaced:
            return None
        return cls(
            spaced=spaced,
            compact=spaced.replace(" ", ""),
            tokens=frozenset(spaced.split()),
        )


PATTERN_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        "first_name", ("first_name",), 0.9, "Pattern match: first name",
        contains=("firstname", "givenname", "forename"),
        tokens=("first", "given"),
        exact=("fname",),
    ),
    FieldRule(
        "last_name", ("last_name",), 0.9, "Pattern match: last name",
        contains=("lastname", "surname", "familyname"),
        tokens=("last", "family"),
        exact=("lname",),
    ),
    FieldRule(
        "full_name", ("name",), 0.95, "Pattern match: full name",
        contains=("fullname", "yourname", "legalname", "candidatename", "applicantname"),
        exact=("name",),
    ),
    FieldRule(
        "email", ("email",), 0.95, "Pattern match: email",
        contains=("email",),
        tokens=("mail",),
    ),
    FieldRule(
        "phone", ("phone",), 0.9, "Pattern match: phone",
        contains=("phone", "mobile", "telephone", "contactnumber"),
        tokens=("tel", "cell"),
    ),
    FieldRule(
        "zip", ("zip_code",), 0.9, "Pattern match: postal code",
        contains=("zipcode", "postalcode", "postcode"),
        tokens=("zip", "postal"),
    ),
    FieldRule(
        "city", ("city",), 0.8, "Pattern match: city",
        tokens=("city", "town"),
    ),
    FieldRule(
        "state", ("state",), 0.8, "Pattern match: state",
        tokens=("state", "province", "region"),
    ),
    FieldRule(
        "country", ("country",), 0.8, "Pattern match: country",
        tokens=("country",),
    ),
    FieldRule(
        "location", ("location",), 0.85, "Pattern match: location",
        contains=("location", "address"),
    ),
    FieldRule(
        "dob", ("dob",), 0.95, "Pattern match: date of birth",
        contains=("dateofbirth", "birthdate", "birthday"),
        tokens=("dob",),
    ),
    FieldRule(
        "age", ("age",), 0.9, "Pattern match: age",
        tokens=("age",),
    ),
    FieldRule(
        "gender", ("gender",), 0.9, "Pattern match: gender",
        tokens=("gender", "sex"),
    ),
    FieldRule(
        "experience", ("experience",), 0.8, "Pattern match: experience",
        contains=("experience",),
        tokens=("yoe",),
    ),
    FieldRule(
        "skills", ("skills",), 0.7, "Pattern match: skills",
        contains=("skill",),
    ),
    FieldRule(
        "university", ("university",), 0.8, "Pattern match: university",
        contains=("university", "college", "school", "institution"),
    ),
    FieldRule(
        "education", ("education",), 0.8, "Pattern match: education",
        contains=("education", "degree", "qualification"),
    ),
    FieldRule(
        "cover_letter", ("cover_letter",), 0.9, "Pattern match: cover letter",
        contains=("coverletter", "motivation"),
    ),
    FieldRule(
        "linkedin", ("linkedin",), 0.9, "Pattern match: LinkedIn",
        contains=("linkedin",),
    ),
    FieldRule(
        "github", ("github",), 0.9, "Pattern match: GitHub",
        contains=("github",),
    ),
    FieldRule(
        "portfolio", ("portfolio",), 0.9, "Pattern match: portfolio",
        contains=("portfolio", "website", "personalsite"),
    ),
    FieldRule(
        "contact", ("email", "phone"), 0.7, "Pattern match: contact",
        contains=("contact",),
    ),
)

SEMANTIC_RULES: tuple[SemanticRule, ...] = (
    SemanticRule(
        ("name", "full", "complete"), ("name",), 0.7,
        "Semantic match: name",
    ),
    SemanticRule(
        ("contact", "reach", "touch"), ("email", "phone"), 0.6,
        "Semantic match: contact",
    ),
    SemanticRule(
        ("where", "place", "based", "reside", "live"), ("location", "city"), 0.6,
        "Semantic match: location",
    ),
    SemanticRule(
        ("how long", "duration", "years", "time"), ("experience",), 0.6,
        "Semantic match: experience",
    ),
    SemanticRule(
        ("expertise", "technologies", "proficient", "proficiency", "stack"), ("skills",), 0.5,
        "Semantic match: skills",
    ),
)
