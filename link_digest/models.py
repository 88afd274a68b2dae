from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class UserLinkQueue:
    email: str
    links: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"email": self.email, "links": list(self.links)}

    @staticmethod
    def from_dict(raw: dict, email: str) -> "UserLinkQueue":
        links = raw.get("links") or []
        return UserLinkQueue(
            email=raw.get("email") or email,
            links=[link for link in links if isinstance(link, str)],
        )


@dataclass
class SummaryResult:
    link: str
    status: str  # "success" | "failed"
    summary: Optional[str] = None
    error: Optional[str] = None

    def is_success(self) -> bool:
        return self.status == "success"

    def to_entry(self) -> str:
        """Outcome string consumed by the digest renderer."""
        if self.is_success() and self.summary:
            return f"{self.link}\n{self.summary}"
        return f"{self.link}\nError summarizing: {self.error or 'unknown error'}"


@dataclass(frozen=True)
class TextSpan:
    text: str


@dataclass(frozen=True)
class LinkSpan:
    text: str
    url: str


Span = Union[TextSpan, LinkSpan]


@dataclass(frozen=True)
class SourceLink:
    text: str
    url: str


@dataclass
class SourcesSection:
    title: str
    links: List[SourceLink] = field(default_factory=list)


@dataclass
class DigestBlock:
    url: str
    summary: List[Span] = field(default_factory=list)
    sources: Optional[SourcesSection] = None
