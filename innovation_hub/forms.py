"""Form state and validation rules for the challenge pages.

``SubmissionDraft`` is what the user is editing: it holds the raw uploads and
supports the in-form edits (team toggle, discarding an attachment).
``SubmissionForm`` carries the validation rules; attachment limits come from
the file security service through the pydantic validation context.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator, model_validator
from pydantic_core import PydanticCustomError

from innovation_hub.models import ChallengeStatus, as_utc, utcnow
from innovation_hub.services.file_security import FileSecurityService, detect_mime_type, file_extension, format_bytes

MAX_ATTACHMENTS = 10

SUBMISSION_LABELS = {
    "title": "submission title",
    "description": "submission description",
    "solution_approach": "solution approach",
    "implementation_plan": "implementation plan",
    "attachments": "attachments",
    "team_members": "team members",
}

CHALLENGE_LABELS = {
    "title": "challenge title",
    "description": "challenge description",
    "category": "category",
    "status": "status",
    "deadline": "deadline",
    "prize_description": "prize description",
    "requirements": "requirements",
}


class FormValidationError(Exception):
    def __init__(self, errors: Dict[str, List[str]]):
        super().__init__("; ".join(m for msgs in errors.values() for m in msgs))
        self.errors = errors


def _fail(message: str):
    return PydanticCustomError("form", message)


def _text_rule(value: str, label: str, min_length: int = 0, max_length: Optional[int] = None) -> str:
    value = (value or "").strip()
    if not value:
        raise _fail(f"The {label} field is required.")
    if len(value) < min_length:
        raise _fail(f"The {label} must be at least {min_length} characters.")
    if max_length is not None and len(value) > max_length:
        raise _fail(f"The {label} must not be greater than {max_length} characters.")
    return value


def errors_by_field(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = err.get("loc") or ("__all__",)
        errors.setdefault(str(loc[0]), []).append(err["msg"])
    return errors


def attachment_limits(file_security: FileSecurityService) -> dict:
    return {
        "max_file_size": file_security.max_file_size("documents"),
        "allowed_mime_types": file_security.allowed_mime_types(),
        "allowed_extensions": file_security.allowed_extensions(),
    }


class AttachmentInput(BaseModel):
    filename: str
    content_type: Optional[str] = None
    size: int = 0

    @model_validator(mode="after")
    def check_limits(self, info: ValidationInfo):
        limits = info.context or {}
        max_size = limits.get("max_file_size")
        if max_size is not None and self.size > max_size:
            raise _fail(f"The attachment {self.filename} must not be greater than {format_bytes(max_size)}.")
        extensions = limits.get("allowed_extensions")
        if extensions is not None and file_extension(self.filename) not in extensions:
            raise _fail(f"The attachment {self.filename} must be a file of type: {', '.join(extensions)}.")
        mime_types = limits.get("allowed_mime_types")
        if mime_types is not None and self.content_type and self.content_type not in mime_types:
            raise _fail(f"The attachment {self.filename} has a file type that is not allowed ({self.content_type}).")
        return self


class SubmissionForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, validate_default=True)

    title: str = ""
    description: str = ""
    solution_approach: str = ""
    implementation_plan: str = ""
    attachments: List[AttachmentInput] = []
    team_submission: bool = False
    team_members: str = ""

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        return _text_rule(v, SUBMISSION_LABELS["title"], min_length=10, max_length=255)

    @field_validator("description")
    @classmethod
    def check_description(cls, v):
        return _text_rule(v, SUBMISSION_LABELS["description"], min_length=50)

    @field_validator("solution_approach")
    @classmethod
    def check_solution_approach(cls, v):
        return _text_rule(v, SUBMISSION_LABELS["solution_approach"], min_length=100)

    @field_validator("implementation_plan")
    @classmethod
    def check_implementation_plan(cls, v):
        return _text_rule(v, SUBMISSION_LABELS["implementation_plan"], min_length=50)

    @field_validator("attachments")
    @classmethod
    def check_attachment_count(cls, v):
        if len(v) > MAX_ATTACHMENTS:
            raise _fail(f"The attachments must not have more than {MAX_ATTACHMENTS} items.")
        return v

    @field_validator("team_members")
    @classmethod
    def check_team_members(cls, v, info: ValidationInfo):
        if info.data.get("team_submission"):
            return _text_rule(v, SUBMISSION_LABELS["team_members"], max_length=1000)
        if len(v) > 1000:
            raise _fail("The team members must not be greater than 1000 characters.")
        return v


def upload_size(upload: Any) -> int:
    size = getattr(upload, "size", None)
    if size is not None:
        return size
    f = upload.file
    position = f.tell()
    f.seek(0, 2)
    size = f.tell()
    f.seek(position)
    return size


@dataclass
class SubmissionDraft:
    title: str = ""
    description: str = ""
    solution_approach: str = ""
    implementation_plan: str = ""
    attachments: List[Any] = field(default_factory=list)
    team_submission: bool = False
    team_members: str = ""

    def toggle_team_submission(self, enabled: bool) -> None:
        self.team_submission = enabled
        if not enabled:
            self.team_members = ""

    def remove_attachment(self, index: int) -> None:
        if 0 <= index < len(self.attachments):
            self.attachments = self.attachments[:index] + self.attachments[index + 1:]

    def remove_attachments(self, indices) -> None:
        # highest first so earlier positions stay valid
        for index in sorted(set(indices), reverse=True):
            self.remove_attachment(index)

    def values(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "solution_approach": self.solution_approach,
            "implementation_plan": self.implementation_plan,
            "team_submission": self.team_submission,
            "team_members": self.team_members,
        }

    def validate(self, limits: dict) -> SubmissionForm:
        data = self.values()
        data["attachments"] = [
            {"filename": a.filename or "", "content_type": detect_mime_type(a.filename or "", a.content_type), "size": upload_size(a)}
            for a in self.attachments
        ]
        try:
            return SubmissionForm.model_validate(data, context=limits)
        except ValidationError as exc:
            raise FormValidationError(errors_by_field(exc)) from exc


class ChallengeForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, validate_default=True)

    title: str = ""
    description: str = ""
    category: str = ""
    status: str = ChallengeStatus.DRAFT
    deadline: Optional[datetime] = None
    prize_description: Optional[str] = None
    requirements: List[str] = []

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        return _text_rule(v, CHALLENGE_LABELS["title"], min_length=10, max_length=255)

    @field_validator("description")
    @classmethod
    def check_description(cls, v):
        return _text_rule(v, CHALLENGE_LABELS["description"], min_length=50)

    @field_validator("category")
    @classmethod
    def check_category(cls, v):
        return _text_rule(v, CHALLENGE_LABELS["category"], max_length=64).lower()

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in {s.value for s in ChallengeStatus}:
            raise _fail("The selected status is invalid.")
        return v

    @field_validator("deadline", mode="before")
    @classmethod
    def blank_deadline(cls, v):
        return v or None

    @field_validator("deadline")
    @classmethod
    def check_deadline(cls, v, info: ValidationInfo):
        if v is None:
            return v
        v = as_utc(v)
        now = as_utc((info.context or {}).get("now")) or utcnow()
        if info.data.get("status") == ChallengeStatus.ACTIVE and v <= now:
            raise _fail("The deadline must be a date after now.")
        return v

    @field_validator("prize_description", mode="before")
    @classmethod
    def blank_prize(cls, v):
        return (v or "").strip() or None

    @field_validator("requirements", mode="before")
    @classmethod
    def split_requirements(cls, v):
        if isinstance(v, str):
            return [line.strip() for line in v.splitlines() if line.strip()]
        return v or []

    @classmethod
    def parse(cls, data: dict, now: Optional[datetime] = None) -> "ChallengeForm":
        try:
            return cls.model_validate(data, context={"now": now})
        except ValidationError as exc:
            raise FormValidationError(errors_by_field(exc)) from exc
