"""BatchRecord entity - one Airtable row per user-submitted batch."""

from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class BatchStatus(str, Enum):
    """Batch lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid batch state transition."""

    pass


class OrderedIdSet:
    """Insertion-ordered set of provider job ids.

    Serialized as a comma-joined string. Parsing strips whitespace and drops
    empty entries and repeats, so ``"a, b,,a"`` reads back as ``["a", "b"]``.
    """

    SEPARATOR = ","

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: dict[str, None] = {}
        for job_id in ids:
            self.add(job_id)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "OrderedIdSet":
        if not raw:
            return cls()
        return cls(part.strip() for part in str(raw).split(cls.SEPARATOR))

    def add(self, job_id: str) -> bool:
        """Add job_id, returning False if it was empty or already present."""
        job_id = job_id.strip()
        if not job_id or job_id in self._ids:
            return False
        self._ids[job_id] = None
        return True

    def serialize(self) -> str:
        return self.SEPARATOR.join(self._ids)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, OrderedIdSet):
            return list(self._ids) == list(other._ids)
        return NotImplemented

    def __repr__(self) -> str:
        return f"OrderedIdSet({list(self._ids)!r})"


class FailureLog:
    """Insertion-ordered failure entries keyed by job id (or submission slot).

    Serialized one ``key: message`` entry per line. A second entry for a key
    that is already logged is dropped.
    """

    SEPARATOR = ": "

    def __init__(self, entries: Iterable[tuple[str, str]] = ()):
        self._entries: dict[str, str] = {}
        for key, message in entries:
            self.add(key, message)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FailureLog":
        log = cls()
        for line in (raw or "").splitlines():
            line = line.strip()
            if not line:
                continue
            key, _, message = line.partition(cls.SEPARATOR)
            log.add(key, message)
        return log

    def add(self, key: str, message: str = "") -> bool:
        """Add an entry, returning False if key was empty or already logged."""
        key = key.strip()
        if not key or key in self._entries:
            return False
        # Newlines would split one entry into several on the next parse
        self._entries[key] = " ".join(message.split())
        return True

    def serialize(self) -> str:
        return "\n".join(
            f"{key}{self.SEPARATOR}{message}" if message else key
            for key, message in self._entries.items()
        )

    def messages(self) -> list[str]:
        return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"FailureLog({list(self._entries.items())!r})"


# Attribute name -> Airtable column name
COLUMNS: dict[str, str] = {
    "prompt": "Prompt",
    "subject_images": "Subject",
    "reference_images": "References",
    "model": "Model",
    "provider": "Provider",
    "size": "Size",
    "run_id": "Run ID",
    "status": "Status",
    "request_ids": "Request IDs",
    "failures": "Failed IDs",
    "outputs": "Output",
    "output_url": "Output URL",
    "seen_ids": "Seen IDs",
    "note": "Note",
    "created_at": "Created At",
    "last_update": "Last Update",
    "completed_at": "Completed At",
}

_ATTACHMENT_ATTRS = ("subject_images", "reference_images", "outputs")


class Attachment(BaseModel):
    """Airtable attachment cell entry.

    New attachments are written by URL; ones already stored are written back
    by id so Airtable keeps them instead of downloading them again.
    """

    url: str
    id: Optional[str] = None

    def to_cell(self) -> dict[str, str]:
        return {"id": self.id} if self.id else {"url": self.url}


def _attachments(value: Any) -> list[Attachment]:
    if not isinstance(value, list):
        return []
    return [
        Attachment(url=item["url"], id=item.get("id"))
        for item in value
        if isinstance(item, dict) and item.get("url")
    ]


class BatchRecord(BaseModel):
    """BatchRecord mirrors one batch row with lifecycle status tracking.

    The record store is the only persistence. A BatchRecord is a snapshot read
    from it; changes are written back with ``to_fields()`` for the attributes
    that were touched.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    record_id: Optional[str] = None
    prompt: str = ""
    subject_images: list[Attachment] = Field(default_factory=list)
    reference_images: list[Attachment] = Field(default_factory=list)
    model: str = ""
    provider: str = ""
    size: str = ""
    run_id: str = ""
    status: BatchStatus = BatchStatus.PENDING
    request_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    failures: FailureLog = Field(default_factory=FailureLog)
    outputs: list[Attachment] = Field(default_factory=list)
    output_url: Optional[str] = None
    seen_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    note: str = ""
    created_at: Optional[str] = None
    last_update: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], record_id: Optional[str] = None) -> "BatchRecord":
        """Build a record from an Airtable ``fields`` mapping.

        Missing columns fall back to defaults (Airtable omits empty cells).
        """
        return cls(
            record_id=record_id,
            prompt=fields.get(COLUMNS["prompt"]) or "",
            subject_images=_attachments(fields.get(COLUMNS["subject_images"])),
            reference_images=_attachments(fields.get(COLUMNS["reference_images"])),
            model=fields.get(COLUMNS["model"]) or "",
            provider=fields.get(COLUMNS["provider"]) or "",
            size=fields.get(COLUMNS["size"]) or "",
            run_id=fields.get(COLUMNS["run_id"]) or "",
            status=BatchStatus(fields.get(COLUMNS["status"]) or BatchStatus.PENDING.value),
            request_ids=OrderedIdSet.parse(fields.get(COLUMNS["request_ids"])),
            failures=FailureLog.parse(fields.get(COLUMNS["failures"])),
            outputs=_attachments(fields.get(COLUMNS["outputs"])),
            output_url=fields.get(COLUMNS["output_url"]),
            seen_ids=OrderedIdSet.parse(fields.get(COLUMNS["seen_ids"])),
            note=fields.get(COLUMNS["note"]) or "",
            created_at=fields.get(COLUMNS["created_at"]),
            last_update=fields.get(COLUMNS["last_update"]),
            completed_at=fields.get(COLUMNS["completed_at"]),
        )

    def to_fields(self, *attrs: str) -> dict[str, Any]:
        """Serialize the named attributes (all of them if none given) to Airtable columns."""
        names = attrs or tuple(COLUMNS)
        fields: dict[str, Any] = {}
        for name in names:
            value = getattr(self, name)
            if name in _ATTACHMENT_ATTRS:
                value = [attachment.to_cell() for attachment in value]
            elif isinstance(value, (OrderedIdSet, FailureLog)):
                value = value.serialize()
            elif isinstance(value, BatchStatus):
                value = value.value
            fields[COLUMNS[name]] = value
        return fields

    @property
    def is_complete(self) -> bool:
        """All submitted jobs have reported an output."""
        return len(self.request_ids) > 0 and len(self.seen_ids) >= len(self.request_ids)

    def mark_processing(self) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != BatchStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. Batch must be pending."
            )
        self.status = BatchStatus.PROCESSING

    def mark_failed(self) -> None:
        """Transition from pending to failed (nothing was submitted).

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != BatchStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark failed from {self.status.value}. Batch must be pending."
            )
        self.status = BatchStatus.FAILED

    def mark_completed(self, completed_at: str) -> None:
        """Transition from processing to completed.

        Args:
            completed_at: ISO timestamp stored in Completed At

        Raises:
            InvalidStateTransition: If current status is not processing
        """
        if self.status != BatchStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. Batch must be processing."
            )
        self.status = BatchStatus.COMPLETED
        self.completed_at = completed_at

    def record_output(self, job_id: str, output_url: str) -> bool:
        """Count job_id as seen and keep its output.

        Returns:
            False if job_id was already seen (nothing changes)
        """
        if not self.seen_ids.add(job_id):
            return False
        self.outputs.append(Attachment(url=output_url))
        self.output_url = output_url
        return True
