from __future__ import annotations

"""Field tables and alias resolution.

Authoring tools disagree on what a field is called and on whether it is
written as an attribute or as a child element. Every logical field of a
topic or comment therefore has an ordered alias list here; the first alias
that yields trimmed, non-empty text wins.

The same table defines which child tags count as *standard* for each scope,
which is what the custom field scanner uses to decide what is custom.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from lxml import etree as ET

from bcfsleuth.core.xml_utils import get_attribute, iter_descendants, element_text

__all__ = [
    "FieldSpec",
    "TOPIC_SCOPE",
    "COMMENT_SCOPE",
    "TOPIC_FIELDS",
    "COMMENT_FIELDS",
    "FIELD_TABLE",
    "STANDARD_FIELDS",
    "NESTED_RECORDS",
    "resolve_text",
    "resolve_field",
    "resolve_record",
]

TOPIC_SCOPE = "topic"
COMMENT_SCOPE = "comment"


@dataclass(frozen=True)
class FieldSpec:
    """Ordered aliases for one logical field.

    ``attributes`` are tried (in order) before any of ``elements``; fields
    that tools only ever write as elements leave it empty.
    """

    elements: Tuple[str, ...]
    attributes: Tuple[str, ...] = ()


TOPIC_FIELDS: Mapping[str, FieldSpec] = {
    "title": FieldSpec(("Title", "Subject", "Name")),
    "status": FieldSpec(("TopicStatus", "Status", "State", "CurrentStatus"),
                        attributes=("TopicStatus", "Status", "State")),
    "type": FieldSpec(("TopicType", "Type", "Category", "Kind", "IssueType"),
                      attributes=("TopicType", "Type", "Category", "Kind")),
    "priority": FieldSpec(("Priority", "Importance", "Severity")),
    "description": FieldSpec(("Description", "Details", "Notes")),
    "creation_date": FieldSpec(("CreationDate", "Created", "DateCreated")),
    "creation_author": FieldSpec(("CreationAuthor", "Author", "CreatedBy", "Creator")),
    "modified_date": FieldSpec(("ModifiedDate", "Modified", "LastModified", "DateModified")),
    "modified_author": FieldSpec(("ModifiedAuthor", "ModifiedBy", "LastModifiedBy")),
    "due_date": FieldSpec(("DueDate", "Due", "Deadline", "TargetDate")),
    "assigned_to": FieldSpec(("AssignedTo", "Assigned", "Owner", "Responsible")),
    "stage": FieldSpec(("Stage", "Phase", "Step", "Milestone")),
}

COMMENT_FIELDS: Mapping[str, FieldSpec] = {
    "date": FieldSpec(("Date", "Created", "CreationDate", "Timestamp")),
    "author": FieldSpec(("Author", "CreatedBy", "User", "Creator")),
    "text": FieldSpec(("Comment", "Text", "Description", "Content", "Message")),
    "modified_date": FieldSpec(("ModifiedDate", "Modified", "LastModified")),
    "modified_author": FieldSpec(("ModifiedAuthor", "ModifiedBy", "LastModifiedBy")),
}

FIELD_TABLE: Mapping[str, Mapping[str, FieldSpec]] = {
    TOPIC_SCOPE: TOPIC_FIELDS,
    COMMENT_SCOPE: COMMENT_FIELDS,
}

# Structural children that are read by dedicated extractors rather than
# through an alias, per scope.
_STRUCTURAL_TAGS: Mapping[str, Tuple[str, ...]] = {
    TOPIC_SCOPE: (
        "Labels", "TopicLabels", "Comments", "Viewpoints", "ReferenceLink",
        "ReferenceLinks", "DocumentReference", "DocumentReferences", "Index",
        "BimSnippet", "RelatedTopic", "RelatedTopics", "Header",
    ),
    COMMENT_SCOPE: ("Viewpoint", "ReplyToComment", "Topic", "VerbalStatus"),
}


def _standard_tags() -> FrozenSet[str]:
    tags = set()
    for scope, fields in FIELD_TABLE.items():
        for field_spec in fields.values():
            tags.update(field_spec.elements)
        tags.update(_STRUCTURAL_TAGS[scope])
    return frozenset(tags)


# One allow-list shared by every scope: a tag that is standard anywhere is
# never reported as custom.
STANDARD_FIELDS: FrozenSet[str] = _standard_tags()

# Subtrees that belong to a nested record and must not answer a lookup made
# on behalf of the enclosing scope (a comment's Author is not the topic's).
NESTED_RECORDS: Mapping[str, FrozenSet[str]] = {
    TOPIC_SCOPE: frozenset({
        "Comment", "Comments", "Viewpoints", "ViewPoint", "DocumentReference",
        "DocumentReferences", "BimSnippet", "RelatedTopic", "RelatedTopics", "Header",
    }),
    COMMENT_SCOPE: frozenset({"Viewpoint", "ReplyToComment", "Topic"}),
}


def resolve_text(scope: Optional[ET._Element], names: Iterable[str], *,
                 attributes: Iterable[str] = (),
                 exclude: Iterable[str] = ()) -> str:
    """Return the first trimmed, non-empty value for any alias of a field.

    *attributes* are consulted first, in order, on *scope* itself; then each
    name in *names* is looked up as a descendant element of *scope* in
    document order, skipping subtrees listed in *exclude*. Returns ``""``
    when nothing matches; no default is ever invented.
    """
    if scope is None:
        return ""
    for attr in attributes:
        value = get_attribute(scope, attr)
        if value:
            return value
    pruned = tuple(exclude)
    for name in names:
        for element in iter_descendants(scope, (name,), pruned):
            value = element_text(element)
            if value:
                return value
    return ""


def resolve_field(scope: Optional[ET._Element], scope_name: str, field_name: str) -> str:
    """Resolve one named field of *scope_name* using the shared alias table."""
    field_spec = FIELD_TABLE[scope_name][field_name]
    return resolve_text(scope, field_spec.elements, attributes=field_spec.attributes,
                        exclude=NESTED_RECORDS.get(scope_name, ()))


def resolve_record(scope: Optional[ET._Element], scope_name: str) -> Dict[str, str]:
    """Resolve every field of *scope_name* at once."""
    return {name: resolve_field(scope, scope_name, name) for name in FIELD_TABLE[scope_name]}
