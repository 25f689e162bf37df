"""
Tracking link value objects and HTML injection.

A tracking link is an opaque URL generated by the caller, one per recipient.
Masking decouples the visible anchor text from the underlying href.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional

DEFAULT_PLACEHOLDER = "{{LINK_TEXT}}"

BUTTON_STYLE = (
    "background: #2563eb; color: white; padding: 0.75rem 1.5rem; "
    "text-decoration: none; border-radius: 6px; display: inline-block; "
    "font-weight: 600;"
)
APPENDED_WRAPPER_STYLE = "margin-top: 2rem; text-align: center;"


@dataclass(frozen=True)
class LinkMasking:
    """Rendering policy for tracking links."""
    enabled: bool = False
    display_text: str = ""

    def visible_text(self, url: str) -> str:
        if self.enabled and self.display_text:
            return self.display_text
        return url


@dataclass(frozen=True)
class TrackingLink:
    """A per-recipient tracking URL with an optional masking policy."""
    url: str
    masking: Optional[LinkMasking] = None

    @property
    def visible_text(self) -> str:
        if self.masking is None:
            return self.url
        return self.masking.visible_text(self.url)

    def render(self) -> str:
        """Render the call-to-action anchor for this link."""
        return (
            f'<a href="{html.escape(self.url, quote=True)}" style="{BUTTON_STYLE}">'
            f"{html.escape(self.visible_text)}</a>"
        )


def inject_link(
    body: str,
    link: Optional[TrackingLink],
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> str:
    """Place the rendered link into ``body``.

    Replaces every placeholder occurrence when present, otherwise appends the
    fragment in its own paragraph. Without a link the body is returned with
    any placeholder tokens removed.
    """
    if link is None:
        return body.replace(placeholder, "")

    fragment = link.render()
    if placeholder in body:
        return body.replace(placeholder, fragment)
    return f'{body}<p style="{APPENDED_WRAPPER_STYLE}">{fragment}</p>'
