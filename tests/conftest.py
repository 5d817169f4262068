"""Shared fixtures for the bcfsleuth test-suite.

Archives are assembled in memory with :mod:`zipfile` from the literal XML
documents below, so every test states exactly which entries exist. Snapshot
images are generated with Pillow.
"""

import io
import logging
import struct
import zipfile
from typing import Dict, Union

import pytest
from PIL import Image

from bcfsleuth.config import ConfigManager

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TOPIC_G0 = "0b6b3f2e-8f4c-4c1a-9e3d-2a7f5c6d8e90"
TOPIC_G1 = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"
TOPIC_G1_B = "6ba7b810-9dad-41d1-80b4-00c04fd430c8"
TOPIC_G2 = "a1b2c3d4-e5f6-4789-8abc-def012345678"
VIEWPOINT_G1 = "b1c2d3e4-f5a6-4b7c-9d8e-0f1a2b3c4d5e"
VIEWPOINT_G2 = "c0ffee00-1234-4abc-8def-0123456789ab"


def make_archive(entries: Dict[str, Union[str, bytes]]) -> bytes:
    """Zip *entries* (path -> text or bytes) into an in-memory archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, content in entries.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(path, content)
    return buffer.getvalue()


def make_damaged_archive(entries: Dict[str, Union[str, bytes]], damaged: str) -> bytes:
    """Store *entries* uncompressed, then flip the first payload byte of *damaged*.

    The member stays listed in the central directory but fails its CRC check
    when read.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as zf:
        for path, content in entries.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(path, content)
    data = bytearray(buffer.getvalue())
    with zipfile.ZipFile(io.BytesIO(bytes(data))) as zf:
        offset = zf.getinfo(damaged).header_offset
    name_length, extra_length = struct.unpack("<HH", bytes(data[offset + 26:offset + 30]))
    data[offset + 30 + name_length + extra_length] ^= 0xFF
    return bytes(data)


def png_bytes(size=(4, 3), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def version_xml(version_id: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<Version VersionId="{version_id}"><DetailedVersion>{version_id}</DetailedVersion></Version>'
    )


def perspective_bcfv(view_point=(1, 2, 3), direction=(0, 0, -1), up=(0, 1, 0), fov=60) -> str:
    def triple(tag, values):
        x, y, z = values
        return f"<{tag}><X>{x}</X><Y>{y}</Y><Z>{z}</Z></{tag}>"

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<VisualizationInfo><PerspectiveCamera>'
        f'{triple("CameraViewPoint", view_point)}'
        f'{triple("CameraDirection", direction)}'
        f'{triple("CameraUpVector", up)}'
        f'<FieldOfView>{fov}</FieldOfView>'
        '</PerspectiveCamera></VisualizationInfo>'
    )


PROJECT_G0 = """<?xml version="1.0" encoding="UTF-8"?>
<ProjectExtension>
  <Project ProjectId="p-0"><Name>Old Depot</Name></Project>
</ProjectExtension>
"""

PROJECT_G1 = """<?xml version="1.0" encoding="UTF-8"?>
<ProjectExtension>
  <Project ProjectId="p-1"><Name>Tower</Name></Project>
  <ExtensionSchema>extensions.xsd</ExtensionSchema>
</ProjectExtension>
"""

PROJECT_G2 = """<?xml version="1.0" encoding="UTF-8"?>
<ProjectInfo>
  <Project ProjectId="p-3" Name="Bridge"/>
</ProjectInfo>
"""

MARKUP_G0 = f"""<?xml version="1.0" encoding="UTF-8"?>
<Markup>
  <Topic Guid="{TOPIC_G0}" TopicType="Remark" TopicStatus="Closed">
    <ReferenceLink>http://old.example/1</ReferenceLink>
    <Title>Door swing</Title>
    <CreationDate>2013-05-01T08:00:00Z</CreationDate>
    <CreationAuthor>eve@example.com</CreationAuthor>
  </Topic>
  <Comment Guid="c-0">
    <VerbalStatus>Closed</VerbalStatus>
    <Status>Unknown</Status>
    <Date>2013-05-02T08:00:00Z</Date>
    <Author>eve@example.com</Author>
    <Comment>Resolved on site</Comment>
  </Comment>
</Markup>
"""

MARKUP_G1 = f"""<?xml version="1.0" encoding="UTF-8"?>
<Markup>
  <Header>
    <File IfcProject="0J$yPqHBD12v72y4qF6XcD">
      <Filename>tower.ifc</Filename>
    </File>
  </Header>
  <Topic Guid="{TOPIC_G1}" TopicType="Clash" TopicStatus="Open">
    <ReferenceLink>http://tower.example/a</ReferenceLink>
    <ReferenceLink>http://tower.example/b</ReferenceLink>
    <Title>Pipe clash</Title>
    <Priority>High</Priority>
    <Labels>MEP</Labels>
    <Labels>Level 2</Labels>
    <CreationDate>2024-01-01T10:00:00Z</CreationDate>
    <CreationAuthor>alice@example.com</CreationAuthor>
    <AssignedTo>bob@example.com</AssignedTo>
    <Description>Duct hits sprinkler main</Description>
  </Topic>
  <Comment Guid="c-1">
    <Date>2024-01-02T09:00:00Z</Date>
    <Author>bob@example.com</Author>
    <Comment>Looking into it</Comment>
    <Viewpoint Guid="{VIEWPOINT_G1}"/>
  </Comment>
  <Viewpoints Guid="{VIEWPOINT_G1}">
    <Viewpoint>viewpoint.bcfv</Viewpoint>
    <Snapshot>snapshot.png</Snapshot>
  </Viewpoints>
</Markup>
"""

MARKUP_G2 = f"""<?xml version="1.0" encoding="UTF-8"?>
<Markup>
  <Header>
    <Files>
      <File IfcProject="2XQ$n5SLP5MBLyL442paFx" IsExternal="true">
        <Filename>bridge.ifc</Filename>
        <Date>2024-03-01T12:00:00Z</Date>
      </File>
    </Files>
  </Header>
  <Topic Guid="{TOPIC_G2}" ServerAssignedId="ISSUE-7" TopicType="Issue" TopicStatus="Active">
    <ReferenceLinks>
      <ReferenceLink>http://bridge.example/a</ReferenceLink>
      <ReferenceLink>http://bridge.example/b</ReferenceLink>
    </ReferenceLinks>
    <Title>Rebar cover</Title>
    <Priority>Normal</Priority>
    <Labels>
      <Label>Structure</Label>
      <Label>QA</Label>
    </Labels>
    <CreationDate>2024-03-02T08:00:00Z</CreationDate>
    <CreationAuthor>carol@example.com</CreationAuthor>
    <DocumentReferences>
      <DocumentReference Guid="d-1">
        <DocumentGuid>doc-9</DocumentGuid>
        <Description>Spec sheet</Description>
      </DocumentReference>
    </DocumentReferences>
    <Comments>
      <Comment Guid="c-3">
        <Date>2024-03-03T08:00:00Z</Date>
        <Author>dave@example.com</Author>
        <Comment>Cover increased to 40mm</Comment>
      </Comment>
    </Comments>
    <Viewpoints>
      <ViewPoint Guid="{VIEWPOINT_G2}">
        <Viewpoint>{VIEWPOINT_G2}.bcfv</Viewpoint>
        <Snapshot>{VIEWPOINT_G2}.png</Snapshot>
      </ViewPoint>
    </Viewpoints>
  </Topic>
</Markup>
"""

DOCUMENTS_G2 = """<?xml version="1.0" encoding="UTF-8"?>
<DocumentInfo>
  <Documents>
    <Document Guid="doc-9">
      <Filename>spec.pdf</Filename>
      <Description>Concrete spec</Description>
    </Document>
  </Documents>
</DocumentInfo>
"""


def g0_entries() -> Dict[str, Union[str, bytes]]:
    return {
        "bcf.version": version_xml("2.0"),
        "project.bcfp": PROJECT_G0,
        f"{TOPIC_G0}/markup.bcf": MARKUP_G0,
    }


def g1_entries() -> Dict[str, Union[str, bytes]]:
    return {
        "bcf.version": version_xml("2.1"),
        "project.bcfp": PROJECT_G1,
        f"{TOPIC_G1}/markup.bcf": MARKUP_G1,
        f"{TOPIC_G1}/viewpoint.bcfv": perspective_bcfv(),
        f"{TOPIC_G1}/snapshot.png": png_bytes(),
    }


def g2_entries() -> Dict[str, Union[str, bytes]]:
    return {
        "bcf.version": version_xml("3.0"),
        "project.bcfp": PROJECT_G2,
        "documents.xml": DOCUMENTS_G2,
        f"{TOPIC_G2}/markup.bcf": MARKUP_G2,
        f"{TOPIC_G2}/{VIEWPOINT_G2}.bcfv": perspective_bcfv((10, 0, 5), (1, 0, 0)),
        f"{TOPIC_G2}/{VIEWPOINT_G2}.png": png_bytes((8, 6)),
    }


@pytest.fixture
def g0_archive() -> bytes:
    return make_archive(g0_entries())


@pytest.fixture
def g1_archive() -> bytes:
    return make_archive(g1_entries())


@pytest.fixture
def g2_archive() -> bytes:
    return make_archive(g2_entries())


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Give every test a fresh ConfigManager that ignores the real user directory."""
    ConfigManager.reset()
    ConfigManager(user_config_dir=tmp_path / "user-config")
    yield
    ConfigManager.reset()
