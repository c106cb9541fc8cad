"""Data models for Meta Business Record exports."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from metarecord.core.archive import MediaBlob

# message bodies that carry no user-authored content
PLACEHOLDER_PATTERNS = (
    re.compile(r"^liked a message$", re.IGNORECASE),
    re.compile(r"^reacted .{1,16} to (?:your|a) message$", re.IGNORECASE),
    re.compile(r"^you are now connected on messenger\.?$", re.IGNORECASE),
    re.compile(r"^you can now message and call each other", re.IGNORECASE),
    re.compile(r"^say hi to your new (?:facebook|instagram) friend", re.IGNORECASE),
)


def is_placeholder_body(body: str) -> bool:
    """checks whether a message body is a known non-content placeholder."""
    text = body.strip()
    return bool(text) and any(p.search(text) for p in PLACEHOLDER_PATTERNS)


@dataclass
class DateRange:
    """covered date range of a request."""

    start: Optional[datetime]
    end: Optional[datetime]

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValueError(f"date range start {self.start} is after end {self.end}")


@dataclass
class RequestParameters:
    """request metadata at the top of the record."""

    service: str = ""
    internal_ticket_number: str = ""
    target: str = ""
    account_identifier: str = ""
    account_type: str = ""
    generated: Optional[datetime] = None
    date_range: Optional[DateRange] = None


@dataclass(frozen=True)
class Participant:
    """thread participant, unique by platform id."""

    username: str
    platform_id: str


@dataclass
class Attachment:
    """media attached to a message."""

    type: str
    size: Optional[int] = None
    source_path: Optional[str] = None
    filename: Optional[str] = None
    photo_id: Optional[str] = None
    url: Optional[str] = None
    resolved_blob: Optional[MediaBlob] = None
    resolved_url: Optional[str] = None
    dimensions: Optional[tuple[int, int]] = None

    @property
    def media_family(self) -> Optional[str]:
        """returns 'image', 'video' or 'audio' from the MIME type, if any."""
        lowered = self.type.lower()
        for family in ("image", "video", "audio"):
            if family in lowered:
                return family
        return None


@dataclass
class Share:
    """shared link or post."""

    date_created: Optional[datetime] = None
    text: Optional[str] = None
    url: Optional[str] = None


@dataclass
class CallRecord:
    """audio or video call logged in a thread."""

    call_type: str = "audio"
    missed: bool = False
    duration: int = 0


@dataclass
class Message:
    """single message in a thread."""

    id: str
    thread_id: str
    author: Optional[Participant]
    sent: Optional[datetime]
    body: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    share: Optional[Share] = None
    call_record: Optional[CallRecord] = None
    removed_by_sender: bool = False

    @property
    def type(self) -> str:
        """
        classifies the message from its extracted evidence.

        precedence: call record, share with url, first attachment's media
        family (unknown families are links), plain text.
        """
        if self.call_record is not None:
            return "call"
        if self.share is not None and self.share.url:
            return "share"
        if self.attachments:
            return self.attachments[0].media_family or "link"
        return "text"

    @property
    def sender(self) -> Optional[str]:
        """author username, if known."""
        return self.author.username if self.author else None

    @property
    def is_placeholder(self) -> bool:
        """True when the body is a system placeholder rather than content."""
        return is_placeholder_body(self.body)

    @property
    def content(self) -> str:
        """body text with placeholders blanked out."""
        return "" if self.is_placeholder else self.body


@dataclass
class Conversation:
    """thread reconstructed from the unified messages section."""

    thread_id: str
    participants: list[Participant]
    messages: list[Message]
    parsed_at: datetime
    participants_updated_at: Optional[datetime] = None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def attachments_count(self) -> int:
        return sum(len(m.attachments) for m in self.messages)

    @property
    def shares_count(self) -> int:
        return sum(1 for m in self.messages if m.share is not None)

    @property
    def calls_count(self) -> int:
        return sum(1 for m in self.messages if m.call_record is not None)

    @property
    def created_at(self) -> datetime:
        """earliest sent timestamp, or parse time when none is known."""
        dated = [m.sent for m in self.messages if m.sent is not None]
        return min(dated) if dated else self.parsed_at

    @property
    def last_activity(self) -> datetime:
        """latest sent timestamp, or parse time when none is known."""
        dated = [m.sent for m in self.messages if m.sent is not None]
        return max(dated) if dated else self.parsed_at


@dataclass
class MediaReference:
    """reference to a media file such as the profile picture."""

    path: str
    filename: str
    resolved_blob: Optional[MediaBlob] = None
    resolved_url: Optional[str] = None


@dataclass
class Photo:
    """entry of the photos section."""

    id: str
    path: Optional[str] = None
    filename: Optional[str] = None
    taken: Optional[datetime] = None
    caption: Optional[str] = None
    upload_ip: Optional[str] = None
    resolved_blob: Optional[MediaBlob] = None
    resolved_url: Optional[str] = None


@dataclass
class Profile:
    """main subject of the record."""

    username: str
    display_name: str
    emails: list[str] = field(default_factory=list)
    phone_numbers: list[str] = field(default_factory=list)
    registration_ip: Optional[str] = None
    registration_date: Optional[datetime] = None
    account_status: str = "active"
    verification_status: str = "unverified"
    business_account: bool = False
    profile_picture: Optional[MediaReference] = None

    def display_emails(self, cap: int = 5) -> list[str]:
        """returns at most cap e-mails for display."""
        return self.emails[:cap]


@dataclass
class UserEntry:
    """Record-wide directory entry keyed by platform id."""

    platform_id: str
    username: str
    display_name: str
    conversation_ids: list[str] = field(default_factory=list)
    message_count: int = 0


@dataclass
class FollowEntry:
    """following or followers entry."""

    username: str
    platform_id: str
    display_name: str
    direction: str


@dataclass
class Device:
    """device registered on the account."""

    uuid: str
    device_type: str = "unknown"
    model: Optional[str] = None
    os: Optional[str] = None
    app_version: Optional[str] = None
    status: str = "active"
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    ip_addresses: list[str] = field(default_factory=list)


@dataclass
class Login:
    """discrete login event."""

    timestamp: Optional[datetime]
    ip: str
    success: bool = True
    device: Optional[str] = None
    device_id: Optional[str] = None
    location: Optional[str] = None


@dataclass
class IpAddressEntry:
    """entry of the ip addresses section."""

    ip: str
    time: Optional[datetime] = None


@dataclass
class NcmecMedia:
    """media item listed in an NCMEC report."""

    id: str
    upload_time: Optional[datetime] = None
    ncmec_file_id: Optional[str] = None


@dataclass
class NcmecReport:
    """NCMEC CyberTip report."""

    cybertip_id: Optional[str] = None
    time: Optional[datetime] = None
    responsible_id: Optional[str] = None
    media_uploaded: list[NcmecMedia] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)


@dataclass
class ThreadsPost:
    """Threads post or reply."""

    id: str
    post_author_id: Optional[str] = None
    post_content_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    post_setting: Optional[str] = None
    reply_to_author: Optional[str] = None
    reply_to_post_id: Optional[str] = None
    quoting_post_author: Optional[str] = None
    quoting_id: Optional[str] = None
    reposting_author_id: Optional[str] = None
    reposting_id: Optional[str] = None


@dataclass
class DisappearingMessage:
    """reported disappearing message."""

    participants: list[str] = field(default_factory=list)
    reporter: Optional[str] = None
    time_reported: Optional[datetime] = None
    thread_id: Optional[str] = None
    sender: Optional[str] = None
    sent: Optional[datetime] = None
    message: str = ""
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class Record:
    """complete parsed export."""

    parsed_at: datetime
    request_parameters: Optional[RequestParameters] = None
    profile: Optional[Profile] = None
    conversations: list[Conversation] = field(default_factory=list)
    users: list[UserEntry] = field(default_factory=list)
    following: list[FollowEntry] = field(default_factory=list)
    followers: list[FollowEntry] = field(default_factory=list)
    devices: list[Device] = field(default_factory=list)
    logins: list[Login] = field(default_factory=list)
    ip_addresses: list[IpAddressEntry] = field(default_factory=list)
    profile_picture: Optional[MediaReference] = None
    photos: list[Photo] = field(default_factory=list)
    ncmec_reports: list[NcmecReport] = field(default_factory=list)
    threads_posts: list[ThreadsPost] = field(default_factory=list)
    disappearing_messages: list[DisappearingMessage] = field(default_factory=list)
    other_sections: dict[str, list[str]] = field(default_factory=dict)
    sections_found: list[str] = field(default_factory=list)
    empty_sections: list[str] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    source_name: str = ""
    total_files: int = 0

    def iter_attachments(self) -> list[Attachment]:
        """returns every attachment in conversations and disappearing messages."""
        found = [
            a for c in self.conversations for m in c.messages for a in m.attachments
        ]
        found.extend(a for d in self.disappearing_messages for a in d.attachments)
        return found
