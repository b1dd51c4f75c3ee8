"""
Data model for the opt-out tool.

Records are plain dataclasses with hand-written validation and explicit
to_dict()/from_dict() converters. The JSON key names are the on-disk format
shared with existing user.json / brokers.json / removal-session.json files.
"""

import re
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .exceptions import ProfileValidationError


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STATE_RE = re.compile(r"^[A-Z]{2}$")
ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
DOB_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DOB_FLOOR = date(1900, 1, 1)

# Legacy free-text annotation written into broker notes by older runs
LEGACY_LEARNED_RE = re.compile(r"AI Analysis \((\d+)/10\): (.+)")
# Phrases that mark notes as step-by-step manual instructions
MANUAL_STEP_MARKERS = ("Enter your email", "Click the")

# attribute name -> JSON key
USER_FIELDS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "address": "address",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "phone": "phone",
    "date_of_birth": "dateOfBirth",
}

USER_LABELS = {
    "first_name": "First name",
    "last_name": "Last name",
    "email": "Email",
    "address": "Address",
    "city": "City",
    "state": "State",
    "zip": "ZIP code",
    "phone": "Phone number",
    "date_of_birth": "Date of birth",
}


def _now() -> datetime:
    return datetime.now()


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def validate_user_field(name: str, value: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """
    Validate one user profile field.

    Returns:
        None when valid, otherwise a human readable problem description
    """
    value = (value or "").strip()
    label = USER_LABELS.get(name, name)
    if name == "additional_notes":
        return None
    if not value:
        return f"{label} is required"
    if name == "email" and not EMAIL_RE.match(value):
        return "Please enter a valid email address"
    if name == "state" and not STATE_RE.match(value.upper()):
        return "Please enter a valid 2-letter state code"
    if name == "zip" and not ZIP_RE.match(value):
        return "Please enter a valid ZIP code"
    if name == "phone" and not PHONE_RE.match(re.sub(r"[\s\-\(\)]", "", value)):
        return "Please enter a valid phone number"
    if name == "date_of_birth":
        if not DOB_RE.match(value):
            return "Please enter date in YYYY-MM-DD format"
        try:
            dob = date.fromisoformat(value)
        except ValueError:
            return "Please enter a valid date of birth"
        if dob > (today or date.today()):
            return "Date of birth cannot be in the future"
        if dob < DOB_FLOOR:
            return "Please enter a valid date of birth"
    return None


@dataclass(frozen=True)
class UserProfile:
    """Identifying information used as fill-in values. Read-only during a run."""

    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    state: str
    zip: str
    phone: str
    date_of_birth: str
    additional_notes: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def full_address(self) -> str:
        return f"{self.address}, {self.city}, {self.state} {self.zip}"

    def problems(self, today: Optional[date] = None) -> List[str]:
        out = []
        for name in USER_FIELDS:
            problem = validate_user_field(name, getattr(self, name), today=today)
            if problem:
                out.append(problem)
        return out

    def validate(self, today: Optional[date] = None) -> "UserProfile":
        problems = self.problems(today=today)
        if problems:
            raise ProfileValidationError(problems)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = {key: getattr(self, attr) for attr, key in USER_FIELDS.items()}
        if self.additional_notes is not None:
            data["additionalNotes"] = self.additional_notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        if not isinstance(data, dict):
            raise ProfileValidationError(["User profile must be a JSON object"])
        missing = [key for key in USER_FIELDS.values() if not isinstance(data.get(key), str)]
        if missing:
            raise ProfileValidationError([f"Missing or non-string field: {k}" for k in missing])
        values = {attr: data[key].strip() for attr, key in USER_FIELDS.items()}
        values["state"] = values["state"].upper()
        notes = data.get("additionalNotes")
        return cls(additional_notes=notes if isinstance(notes, str) else None, **values)


@dataclass(frozen=True)
class LearnedInstruction:
    """Replayable guidance produced by a high-confidence failure diagnosis."""

    text: str
    confidence: int
    learned_at: datetime = field(default_factory=_now)
    problem: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "learned_at": _iso(self.learned_at),
            "problem": self.problem,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedInstruction":
        return cls(
            text=str(data.get("text", "")),
            confidence=int(data.get("confidence", 0)),
            learned_at=_parse_ts(data.get("learned_at")) or _now(),
            problem=str(data.get("problem", "")),
        )


@dataclass(frozen=True)
class BrokerDefinition:
    """
    A data broker entry from the catalog.

    notes is static documentation. instructions holds explicit manual steps
    and learned holds the analyzer's appended guidance, newest last.
    """

    name: str
    url: str
    opt_out_url: str
    requires_id_upload: bool = False
    notes: str = ""
    instructions: Optional[str] = None
    learned: tuple = ()

    def problems(self) -> List[str]:
        out = []
        if not isinstance(self.name, str) or not self.name.strip():
            out.append("name must be a non-empty string")
        for key in ("url", "opt_out_url"):
            value = getattr(self, key)
            parsed = urlparse(value) if isinstance(value, str) else None
            if not parsed or parsed.scheme not in ("http", "https") or not parsed.netloc:
                out.append(f"{key} must be an absolute http(s) URL")
        if not isinstance(self.requires_id_upload, bool):
            out.append("requires_id_upload must be a boolean")
        if not isinstance(self.notes, str):
            out.append("notes must be a string")
        return out

    @property
    def latest_learned(self) -> Optional[LearnedInstruction]:
        return self.learned[-1] if self.learned else None

    def replay_instructions(self) -> Optional[str]:
        """Instruction text to execute before filling: newest learned fix, else manual steps."""
        latest = self.latest_learned
        if latest and latest.text.strip():
            return latest.text.strip()
        if self.instructions and self.instructions.strip():
            return self.instructions.strip()
        return None

    def with_learned(self, entry: LearnedInstruction) -> "BrokerDefinition":
        return replace(self, learned=tuple(self.learned) + (entry,))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "url": self.url,
            "opt_out_url": self.opt_out_url,
            "requires_id_upload": self.requires_id_upload,
            "notes": self.notes,
        }
        if self.instructions is not None:
            data["instructions"] = self.instructions
        if self.learned:
            data["learned_instructions"] = [entry.to_dict() for entry in self.learned]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrokerDefinition":
        notes = data.get("notes", "")
        learned = [LearnedInstruction.from_dict(e) for e in data.get("learned_instructions") or []
                   if isinstance(e, dict)]
        legacy = []
        if isinstance(notes, str) and not learned:
            # Migrate annotations appended to notes by older versions
            legacy = list(LEGACY_LEARNED_RE.finditer(notes))
            if legacy:
                learned = [LearnedInstruction(text=m.group(2).strip(), confidence=int(m.group(1)))
                           for m in legacy]
                notes = LEGACY_LEARNED_RE.sub("", notes).strip()
        instructions = data.get("instructions")
        if "instructions" not in data and not legacy and isinstance(notes, str) \
                and any(marker in notes for marker in MANUAL_STEP_MARKERS):
            # Older catalogs kept manual steps in notes
            instructions = notes.strip()
        return cls(
            name=data.get("name"),
            url=data.get("url"),
            opt_out_url=data.get("opt_out_url"),
            requires_id_upload=data.get("requires_id_upload"),
            notes=notes,
            instructions=instructions if isinstance(instructions, str) else None,
            learned=tuple(learned),
        )


@dataclass
class Diagnosis:
    """Structured post-failure analysis. confidence 0 means analysis failed."""

    problem: str
    suggested_fix: str
    next_steps: List[str] = field(default_factory=list)
    special_instructions: str = ""
    confidence: int = 0

    @classmethod
    def placeholder(cls, problem: str = "Analysis failed") -> "Diagnosis":
        return cls(
            problem=problem,
            suggested_fix="Manual review required",
            next_steps=["Check screenshot manually"],
            special_instructions="",
            confidence=0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Diagnosis":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class PageStructuralAnalysis:
    """Advisory structural reading of an opt-out page."""

    steps: List[str] = field(default_factory=list)
    page_type: str = "unknown"
    form_fields: List[str] = field(default_factory=list)
    required_actions: List[str] = field(default_factory=list)
    confidence: int = 0

    @classmethod
    def placeholder(cls) -> "PageStructuralAnalysis":
        return cls(steps=["Fill form fields", "Check required checkboxes", "Submit form"])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RemovalResult:
    """Outcome of one broker attempt."""

    broker: BrokerDefinition
    success: bool = False
    error: Optional[str] = None
    details: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)
    phase: str = "start"
    evidence: Optional[str] = None
    diagnosis: Optional[Diagnosis] = None

    @property
    def reason(self) -> str:
        return self.error or self.details or "Unknown error"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "broker": self.broker.to_dict(),
            "success": self.success,
            "timestamp": _iso(self.timestamp),
            "phase": self.phase,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.details is not None:
            data["details"] = self.details
        if self.evidence is not None:
            data["evidence"] = self.evidence
        if self.diagnosis is not None:
            data["diagnosis"] = self.diagnosis.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemovalResult":
        diagnosis = data.get("diagnosis")
        return cls(
            broker=BrokerDefinition.from_dict(data["broker"]),
            success=bool(data.get("success")),
            error=data.get("error"),
            details=data.get("details"),
            timestamp=_parse_ts(data.get("timestamp")) or _now(),
            phase=data.get("phase", "start"),
            evidence=data.get("evidence"),
            diagnosis=Diagnosis.from_dict(diagnosis) if isinstance(diagnosis, dict) else None,
        )


@dataclass
class RemovalSession:
    """One run: a user snapshot and the ordered broker results."""

    user: UserProfile
    results: List[RemovalResult] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None

    @property
    def successful(self) -> List[RemovalResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[RemovalResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "user": self.user.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "startTime": _iso(self.start_time),
        }
        if self.end_time is not None:
            data["endTime"] = _iso(self.end_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemovalSession":
        return cls(
            user=UserProfile.from_dict(data["user"]),
            results=[RemovalResult.from_dict(r) for r in data.get("results", [])],
            start_time=_parse_ts(data.get("startTime")) or _now(),
            end_time=_parse_ts(data.get("endTime")),
        )
