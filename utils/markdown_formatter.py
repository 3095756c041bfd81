"""Markdown composition for notification emails, rendered to sanitized HTML."""
import re
from typing import Dict, List

import bleach
from markdown_it import MarkdownIt

# Raw HTML disabled; all markup comes from the markdown source.
_md = MarkdownIt("commonmark", {"linkify": True, "typographer": True, "html": False}).enable(["linkify", "table"])

EMAIL_ALLOWED_TAGS = [
    "p",
    "ul",
    "ol",
    "li",
    "strong",
    "em",
    "h2",
    "h3",
    "blockquote",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "hr",
    "a",
    "br",
]

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
}


def _normalize_whitespace(text: str) -> str:
    cleaned = re.sub(r"[\r\t]+", " ", text or "")
    cleaned = re.sub(r" +", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def markdown_to_html(md_text: str) -> str:
    rendered = _md.render(_normalize_whitespace(md_text))
    return bleach.clean(rendered, tags=EMAIL_ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def markdown_to_email_html(md_text: str) -> str:
    return (
        "<div style=\"font-family: 'Segoe UI', Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #0f172a;\">"
        f"{markdown_to_html(md_text)}"
        "</div>"
    )


def markdown_to_plaintext(md_text: str) -> str:
    text_only = bleach.clean(markdown_to_html(md_text), tags=[], attributes={}, strip=True)
    return re.sub(r"\s+", " ", text_only).strip()


def format_sections(sections: List[Dict[str, object]]) -> str:
    """Build markdown from an ordered list of ``{title, bullets, body}`` sections."""
    parts: List[str] = []
    for section in sections:
        title = _normalize_whitespace(str(section.get("title", "") or ""))
        if title:
            parts.append(f"## {title}")
        for bullet in section.get("bullets") or []:
            if bullet is None:
                continue
            bullet_text = _normalize_whitespace(str(bullet))
            if bullet_text:
                parts.append(f"- {bullet_text}")
        body = section.get("body") or ""
        if body:
            parts.append(_normalize_whitespace(str(body)))
        parts.append("")
    return "\n".join([p for p in parts if p.strip()])


_EVENT_HEADLINES = {
    "submitted": "Your complaint has been received.",
    "verified": "Your complaint has been verified and forwarded to the responsible office.",
    "rejected": "Your complaint could not be accepted.",
    "in_progress": "The responsible office has started working on your complaint.",
    "resolved": "Your complaint has been marked as resolved.",
    "closed": "Your complaint is now closed.",
    "disputed": "Your dispute of the resolution has been recorded.",
}


def format_status_markdown(complaint: Dict[str, object], track_url: str | None = None, window_days: int | None = None) -> str:
    status = str(complaint.get("status") or "")
    details = [
        f"Reference: **{complaint.get('reference_number', '')}**",
        f"Category: {complaint.get('category', '')}",
        f"Status: {status.replace('_', ' ').title()}",
        f"Office: {complaint['department_label']}" if complaint.get("department_label") else None,
    ]
    sections: List[Dict[str, object]] = [
        {"title": "Complaint Update", "body": _EVENT_HEADLINES.get(status, "Your complaint was updated.")},
        {"title": "Details", "bullets": details},
    ]
    if status == "rejected" and complaint.get("admin_remarks"):
        sections.append({"title": "Reason", "body": complaint["admin_remarks"]})
    if status == "resolved":
        sections.append({"title": "Resolution", "body": complaint.get("resolution_details")})
        if window_days is not None:
            sections.append(
                {
                    "title": "Next Steps",
                    "body": (
                        f"Please confirm or dispute the resolution within {window_days} day(s). "
                        "After that the complaint closes automatically."
                    ),
                }
            )
    if track_url:
        sections.append({"title": "Track Your Complaint", "body": track_url})
    return format_sections(sections)
