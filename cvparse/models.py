"""Domain models for cvparse.

Core entities:
- DocumentReference: the one active uploaded CV of an owner
- StructuredRecord: the five rendered sections extracted from that CV
- ExtractionAttempt: retry state of one call to the extraction service
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


NO_INFORMATION = "No information available"


class Base(DeclarativeBase):
    pass


# === Enums ===


class SectionType(str, enum.Enum):
    """A section of the extraction payload, keyed by its payload name."""

    EDUCATION = "education"
    EXPERIENCE = "experience"
    SKILLS = "skills"
    LANGUAGES = "languages"
    CERTIFICATIONS = "certifications"

    @property
    def field_name(self) -> str:
        """Name of the StructuredRecord field this section renders into."""
        if self is SectionType.EXPERIENCE:
            return "work_experience"
        return self.value


class IngestionStage(str, enum.Enum):
    RESOLVING = "resolving"
    EXTRACTING = "extracting"
    SUBMITTING = "submitting"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# === Value objects ===


@dataclass(frozen=True)
class DocumentReference:
    """Pointer to the active uploaded document of an owner."""

    owner_id: str
    storage_locator: str
    display_name: str


@dataclass
class StructuredRecord:
    """Canonical, display-ready CV sections. All five are always non-empty."""

    education: str = NO_INFORMATION
    work_experience: str = NO_INFORMATION
    skills: str = NO_INFORMATION
    languages: str = NO_INFORMATION
    certifications: str = NO_INFORMATION

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ExtractionAttempt:
    """One failed call to the extraction service."""

    number: int
    error: str
    status_code: int | None = None
    delay: float = 0.0


# === Tables ===


class CVDocument(Base):
    """Stored form of a DocumentReference."""

    __tablename__ = "cv_documents"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    file_url: Mapped[str] = mapped_column(String(2048))
    file_name: Mapped[str] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_reference(self) -> DocumentReference:
        return DocumentReference(
            owner_id=self.owner_id,
            storage_locator=self.file_url,
            display_name=self.file_name,
        )


class ParsedCV(Base):
    """Stored form of a StructuredRecord, one row per owner."""

    __tablename__ = "cv_parsed_data"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    education: Mapped[str] = mapped_column(Text)
    work_experience: Mapped[str] = mapped_column(Text)
    skills: Mapped[str] = mapped_column(Text)
    languages: Mapped[str] = mapped_column(Text)
    certifications: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_record(self) -> StructuredRecord:
        return StructuredRecord(
            education=self.education,
            work_experience=self.work_experience,
            skills=self.skills,
            languages=self.languages,
            certifications=self.certifications,
        )
