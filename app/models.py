import enum
import json
from dataclasses import asdict, dataclass, field
from typing import Any


class BatchStatus(str, enum.Enum):
    ONGOING = "ongoing"
    UPCOMING = "upcoming"
    COMPLETED = "completed"

    @property
    def badge(self) -> str:
        """Color token for the status badge on a batch card."""
        return _BADGE_COLORS[self]


_BADGE_COLORS = {
    BatchStatus.ONGOING: "green",
    BatchStatus.UPCOMING: "accent",
    BatchStatus.COMPLETED: "muted",
}


class ExamType(str, enum.Enum):
    JEE = "JEE"
    NEET = "NEET"
    BOARDS = "Boards"
    FOUNDATION = "Foundation"
    CLASS_9_10 = "9-10"
    CLASS_11_12 = "11-12"


class VideoType(str, enum.Enum):
    LIVE = "live"
    RECORDED = "recorded"


class AppRole(str, enum.Enum):
    ADMIN = "admin"
    STUDENT = "student"


class AdminGate(str, enum.Enum):
    """Role check lifecycle: LOADING resolves to exactly one of the others."""

    LOADING = "loading"
    ADMIN = "admin"
    NOT_ADMIN = "not_admin"


class NotificationPermission(str, enum.Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class Batch:
    id: int
    name: str
    description: str | None
    target_exam: str
    status: BatchStatus
    tags: list[str]
    start_date: str | None
    thumbnail_url: str | None
    visibility: str

    @classmethod
    def from_row(cls, row) -> "Batch":
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            target_exam=row["target_exam"],
            status=BatchStatus(row["status"]),
            tags=json.loads(row["tags_json"] or "[]"),
            start_date=row["start_date"],
            thumbnail_url=row["thumbnail_url"],
            visibility=row["visibility"],
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["badge"] = self.status.badge
        return data


@dataclass
class Lecture:
    id: int
    batch_id: int
    title: str
    subject: str
    teacher_name: str
    date_time: str | None
    duration_minutes: int
    video_type: VideoType
    video_url: str | None
    notes_url: str | None
    dpp_url: str | None
    special_module_url: str | None
    thumbnail_url: str | None
    topic_tags: list[str]
    is_locked: bool

    @classmethod
    def from_row(cls, row) -> "Lecture":
        return cls(
            id=row["id"],
            batch_id=row["batch_id"],
            title=row["title"],
            subject=row["subject"],
            teacher_name=row["teacher_name"],
            date_time=row["date_time"],
            duration_minutes=row["duration_minutes"],
            video_type=VideoType(row["video_type"]),
            video_url=row["video_url"],
            notes_url=row["notes_url"],
            dpp_url=row["dpp_url"],
            special_module_url=row["special_module_url"],
            thumbnail_url=row["thumbnail_url"],
            topic_tags=json.loads(row["topic_tags_json"] or "[]"),
            is_locked=bool(row["is_locked"]),
        )

    def to_dict(self, *, has_access: bool = False) -> dict[str, Any]:
        """Serialize for a viewer. Locked playback URLs are withheld
        unless the viewer holds an active grant."""
        data = asdict(self)
        data["video_type"] = self.video_type.value
        data["can_play"] = not self.is_locked or has_access
        if not data["can_play"]:
            data["video_url"] = None
        return data


@dataclass
class AccessGrant:
    id: int
    user_id: str
    granted_at: str  # ISO-8601 UTC
    expires_at: str  # ISO-8601 UTC


@dataclass
class AccessStatus:
    has_access: bool = False
    expires_at: str | None = None
    remaining_hours: float = 0
    source: str | None = None  # jwt | database | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasAccess": self.has_access,
            "expiresAt": self.expires_at,
            "remainingHours": self.remaining_hours,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccessStatus":
        return cls(
            has_access=bool(data.get("hasAccess")),
            expires_at=data.get("expiresAt"),
            remaining_hours=data.get("remainingHours") or 0,
            source=data.get("source"),
        )


@dataclass
class Notification:
    id: int
    user_id: str | None  # None = broadcast
    type: str
    title: str
    message: str
    is_read: bool
    batch_id: int | None
    lecture_id: int | None
    created_at: str

    @classmethod
    def from_row(cls, row) -> "Notification":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            title=row["title"],
            message=row["message"],
            is_read=bool(row["is_read"]),
            batch_id=row["batch_id"],
            lecture_id=row["lecture_id"],
            created_at=row["created_at"],
        )

    def is_visible_to(self, user_id: str) -> bool:
        return self.user_id is None or self.user_id == user_id


@dataclass
class ChangeEvent:
    """A row-level change on the notifications table."""

    type: ChangeType
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)


class AnswerOption(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


@dataclass
class Subject:
    id: int
    name: str
    icon: str | None
    sort_order: int

    @classmethod
    def from_row(cls, row) -> "Subject":
        return cls(
            id=row["id"], name=row["name"], icon=row["icon"], sort_order=row["sort_order"]
        )


@dataclass
class PracticeTest:
    id: int
    batch_id: int | None
    subject: str
    title: str
    description: str | None
    pdf_url: str | None
    duration_minutes: int
    is_active: bool
    created_at: str

    @classmethod
    def from_row(cls, row) -> "PracticeTest":
        return cls(
            id=row["id"],
            batch_id=row["batch_id"],
            subject=row["subject"],
            title=row["title"],
            description=row["description"],
            pdf_url=row["pdf_url"],
            duration_minutes=row["duration_minutes"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )


@dataclass
class TestQuestion:
    id: int
    test_id: int
    question: str
    question_image_url: str | None
    options: dict[str, str]
    option_images: dict[str, str | None]
    correct_answer: AnswerOption
    explanation: str | None
    sort_order: int

    __test__ = False  # not a pytest class

    @classmethod
    def from_row(cls, row) -> "TestQuestion":
        letters = [option.value for option in AnswerOption]
        return cls(
            id=row["id"],
            test_id=row["test_id"],
            question=row["question"],
            question_image_url=row["question_image_url"],
            options={k: row[f"option_{k.lower()}"] for k in letters},
            option_images={k: row[f"option_{k.lower()}_image_url"] for k in letters},
            correct_answer=AnswerOption(row["correct_answer"]),
            explanation=row["explanation"],
            sort_order=row["sort_order"],
        )

    def to_dict(self, *, reveal: bool = False) -> dict[str, Any]:
        """Serialize; the answer key is only included when *reveal* is set."""
        data = asdict(self)
        data["correct_answer"] = self.correct_answer.value
        if not reveal:
            del data["correct_answer"]
            del data["explanation"]
        return data


@dataclass
class PersonalMessage:
    id: int
    from_user_id: str
    to_user_id: str
    message: str
    is_read: bool
    is_admin_message: bool
    created_at: str

    @classmethod
    def from_row(cls, row) -> "PersonalMessage":
        return cls(
            id=row["id"],
            from_user_id=row["from_user_id"],
            to_user_id=row["to_user_id"],
            message=row["message"],
            is_read=bool(row["is_read"]),
            is_admin_message=bool(row["is_admin_message"]),
            created_at=row["created_at"],
        )
