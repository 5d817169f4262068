from __future__ import annotations

"""Comment extraction and merging.

Comments may live inline in ``markup.bcf``, in a sibling ``comments.bcf``,
or in both with overlapping identifiers. The markup document is read first
and wins every identifier collision. Output keeps extraction order; sort
explicitly if chronological order is needed.
"""

import logging
import uuid
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from lxml import etree as ET

from bcfsleuth.core.custom_fields import scan_scope
from bcfsleuth.core.fields import COMMENT_SCOPE, resolve_record
from bcfsleuth.core.models import Comment
from bcfsleuth.core.xml_utils import get_attribute, iter_elements, local_name

logger = logging.getLogger(__name__)

__all__ = ["COMMENT_TAGS", "iter_comment_elements", "parse_comment", "merge_comments"]

COMMENT_TAGS = frozenset({"Comment", "Note", "Remark"})

_ID_ATTRIBUTES = ("Guid", "Id")


def _inside_comment(element: ET._Element) -> bool:
    return any(local_name(ancestor) in COMMENT_TAGS for ancestor in element.iterancestors())


def iter_comment_elements(root: Optional[ET._Element]) -> Iterator[ET._Element]:
    """Yield comment records in document order.

    A ``<Comment>`` nested in another comment is that comment's text, not a
    record of its own.
    """
    if root is None:
        return
    for element in iter_elements(root):
        if local_name(element) in COMMENT_TAGS and not _inside_comment(element):
            yield element


def _fingerprint(topic_id: str, date: str, author: str, text: str) -> str:
    # Stable across both source documents so identical id-less copies collapse
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"bcf-comment:{topic_id}|{date}|{author}|{text}"))


def parse_comment(element: ET._Element, topic_id: str = "") -> Comment:
    fields = resolve_record(element, COMMENT_SCOPE)
    if not fields["text"] and len(element) == 0:
        # Bare <Note>text</Note> written by some exporters
        fields["text"] = (element.text or "").strip()

    identifier = ""
    for attr in _ID_ATTRIBUTES:
        identifier = get_attribute(element, attr)
        if identifier:
            break
    if not identifier:
        identifier = _fingerprint(topic_id, fields["date"], fields["author"], fields["text"])
        logger.debug("Comment without Guid/Id in topic %s; using content id %s",
                     topic_id, identifier)

    return Comment(
        identifier=identifier,
        date=fields["date"],
        author=fields["author"],
        text=fields["text"],
        modified_date=fields["modified_date"],
        modified_author=fields["modified_author"],
        custom_fields=scan_scope(element, COMMENT_SCOPE),
    )


def _collect(root: Optional[ET._Element], topic_id: str, seen: Set[str],
             source: str) -> List[Comment]:
    collected: List[Comment] = []
    for element in iter_comment_elements(root):
        comment = parse_comment(element, topic_id)
        if comment.identifier in seen:
            logger.debug("Skipping duplicate comment %s from %s (topic %s)",
                         comment.identifier, source, topic_id)
            continue
        seen.add(comment.identifier)
        collected.append(comment)
    return collected


def merge_comments(topic_id: str, primary: Optional[ET._Element],
                   secondary: Optional[ET._Element] = None,
                   sources: Iterable[str] = ("markup.bcf", "comments.bcf")) -> Tuple[Comment, ...]:
    """Return the de-duplicated comments of one topic, primary document first."""
    primary_name, secondary_name = tuple(sources)
    seen: Set[str] = set()
    comments = _collect(primary, topic_id, seen, primary_name)
    inline = len(comments)
    comments.extend(_collect(secondary, topic_id, seen, secondary_name))
    logger.debug("Topic %s: %d inline comments, %d from %s", topic_id, inline,
                 len(comments) - inline, secondary_name)
    return tuple(comments)
