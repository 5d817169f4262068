from __future__ import annotations

"""Shared data structures used across the bcfsleuth core.

This module is intentionally free of I/O code so that the contained objects
can be reused in any context (unit-tests, CLI, export collaborators, etc.).
Records are built once per parse and never hold references into the XML
trees they were read from.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from bcfsleuth.core.images import ImageSource

__all__ = [
    "FormatVersion",
    "DetectionSignal",
    "FormatDetection",
    "Project",
    "CameraType",
    "Vector3",
    "ViewpointImage",
    "Viewpoint",
    "Comment",
    "DocumentReference",
    "HeaderFile",
    "Topic",
    "ExtensionsSchema",
    "DocumentEntry",
    "DocumentsManifest",
    "CustomFieldInfo",
    "CustomFieldRegistry",
    "ArchiveStructure",
    "BcfDocument",
    "UNKNOWN_PROJECT_NAME",
]

UNKNOWN_PROJECT_NAME = "Unknown Project"

Vector3 = Tuple[float, float, float]


class FormatVersion(Enum):
    """The three supported schema generations, oldest to newest."""

    G0 = "2.0"
    G1 = "2.1"
    G2 = "3.0"

    @property
    def label(self) -> str:
        return f"BCF {self.value}"


class DetectionSignal(Enum):
    """Structural evidence that settled the format version."""

    DECLARED = "declared"
    DOCUMENTS_MANIFEST = "documents_manifest"
    PROJECT_INFO_LAYOUT = "project_info_layout"
    PROJECT_EXTENSION_LAYOUT = "project_extension_layout"
    TOPIC_MARKERS = "topic_markers"
    EXTENSION_SCHEMA = "extension_schema"
    EXTENSIONS_FILE = "extensions_file"
    DEFAULT = "default"


@dataclass(frozen=True)
class FormatDetection:
    version: FormatVersion
    declared_version: str = ""
    signal: DetectionSignal = DetectionSignal.DEFAULT
    demoted: bool = False


@dataclass(frozen=True)
class Project:
    name: str = UNKNOWN_PROJECT_NAME
    identifier: str = ""
    format_version: FormatVersion = FormatVersion.G1
    has_extension_schema: bool = False


class CameraType(Enum):
    PERSPECTIVE = "Perspective"
    ORTHOGONAL = "Orthogonal"
    NONE = "None"


@dataclass(frozen=True)
class ViewpointImage:
    data: bytes
    mime_type: str
    filename: str
    size: Optional[Tuple[int, int]] = None


@dataclass
class Viewpoint:
    """A saved camera state plus an optional snapshot.

    ``legacy_position`` and ``legacy_target`` are presentation conveniences
    derived from ``view_point`` and ``direction``; the target sits a nominal
    10 world units along the view direction and carries no geometric
    meaning. Never feed them back into camera math.

    ``image`` is the only field written after parse (see
    :func:`bcfsleuth.core.images.extract_images`).
    """

    identifier: str
    source_file_name: Optional[str] = None
    snapshot_reference: Optional[str] = None
    order_index: int = 0
    camera_type: CameraType = CameraType.NONE
    view_point: Optional[Vector3] = None
    direction: Optional[Vector3] = None
    up_vector: Optional[Vector3] = None
    field_of_view: Optional[float] = None
    view_to_world_scale: Optional[float] = None
    legacy_position: Optional[Vector3] = None
    legacy_target: Optional[Vector3] = None
    image: Optional[ViewpointImage] = None

    @property
    def has_camera(self) -> bool:
        return self.camera_type is not CameraType.NONE

    @property
    def has_image(self) -> bool:
        return self.image is not None


@dataclass(frozen=True)
class Comment:
    identifier: str
    date: str = ""
    author: str = ""
    text: str = ""
    modified_date: str = ""
    modified_author: str = ""
    custom_fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentReference:
    identifier: str = ""
    document_guid: str = ""
    url: str = ""
    description: str = ""


@dataclass(frozen=True)
class HeaderFile:
    ifc_project: str = ""
    ifc_spatial_structure_element: str = ""
    is_external: bool = False
    filename: str = ""
    date: str = ""
    reference: str = ""


@dataclass(frozen=True)
class Topic:
    """One collaboration issue, keyed by the GUID of its archive folder."""

    identifier: str
    format_version: FormatVersion
    title: str = ""
    status: str = ""
    type: str = ""
    priority: str = ""
    description: str = ""
    stage: str = ""
    labels: Tuple[str, ...] = ()
    creation_date: str = ""
    creation_author: str = ""
    modified_date: str = ""
    modified_author: str = ""
    due_date: str = ""
    assigned_to: str = ""
    server_assigned_id: str = ""
    reference_links: Tuple[str, ...] = ()
    document_references: Tuple[DocumentReference, ...] = ()
    header_files: Tuple[HeaderFile, ...] = ()
    comments: Tuple[Comment, ...] = ()
    viewpoints: Tuple[Viewpoint, ...] = ()
    custom_fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ExtensionsSchema:
    """Enumerated values an archive declares for its topic fields."""

    topic_statuses: Tuple[str, ...] = ()
    topic_types: Tuple[str, ...] = ()
    priorities: Tuple[str, ...] = ()
    topic_labels: Tuple[str, ...] = ()
    stages: Tuple[str, ...] = ()
    user_id_types: Tuple[str, ...] = ()
    source_file: str = ""

    @property
    def is_empty(self) -> bool:
        return not any((self.topic_statuses, self.topic_types, self.priorities,
                        self.topic_labels, self.stages, self.user_id_types))


@dataclass(frozen=True)
class DocumentEntry:
    guid: str = ""
    filename: str = ""
    description: str = ""


@dataclass(frozen=True)
class DocumentsManifest:
    documents: Tuple[DocumentEntry, ...] = ()

    @property
    def total(self) -> int:
        return len(self.documents)


@dataclass
class CustomFieldInfo:
    display_name: str
    category: str
    values: List[str] = field(default_factory=list)
    count: int = 0


@dataclass
class CustomFieldRegistry:
    """Archive-wide index of every custom field key seen on topics and comments."""

    topic_fields: Dict[str, CustomFieldInfo] = field(default_factory=dict)
    comment_fields: Dict[str, CustomFieldInfo] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.topic_fields) + len(self.comment_fields)


@dataclass(frozen=True)
class ArchiveStructure:
    root_files: Tuple[str, ...] = ()
    topic_folders: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    image_files: Tuple[str, ...] = ()
    other_files: Tuple[str, ...] = ()


@dataclass
class BcfDocument:
    """Normalised result of parsing one archive.

    Attributes
    ----------
    filename
        Name the archive was supplied under.
    project
        Project metadata (falls back to ``"Unknown Project"``).
    topics
        One record per topic folder, sorted by identifier.
    custom_field_registry
        Every custom field key discovered on topics and comments.
    image_source
        Capability handle for lazy snapshot extraction; ``None`` once images
        were read eagerly and the archive was released.
    """

    filename: str
    project: Project
    topics: List[Topic] = field(default_factory=list)
    custom_field_registry: CustomFieldRegistry = field(default_factory=CustomFieldRegistry)
    detection: Optional[FormatDetection] = None
    extensions: Optional[ExtensionsSchema] = None
    documents: Optional[DocumentsManifest] = None
    structure: ArchiveStructure = field(default_factory=ArchiveStructure)
    image_source: Optional["ImageSource"] = None

    @property
    def format_version(self) -> FormatVersion:
        return self.project.format_version

    def find_topic(self, identifier: str) -> Optional[Topic]:
        for topic in self.topics:
            if topic.identifier == identifier:
                return topic
        return None

    def extract_images(self) -> None:
        """Attach snapshot bytes to every viewpoint still lacking one."""
        if self.image_source is None:
            return
        from bcfsleuth.core.images import extract_images

        extract_images(self.topics, self.image_source)
