"""Reply descriptors handed back to the transport layer."""

from dataclasses import dataclass
from typing import Literal, Union


@dataclass
class ImageDirective:
    """Instructs the transport to send a stored attachment."""

    ref: str
    type: Literal["image"] = "image"


# A single text, a mixed list of texts and attachments, or nothing to send
Reply = Union[str, list[Union[str, ImageDirective]], None]


def reply_text(reply: Reply) -> str:
    """Flatten the text parts of a reply for logging and tracing."""
    if reply is None:
        return ""
    if isinstance(reply, str):
        return reply
    return "\n".join(part for part in reply if isinstance(part, str))
