import logging

import pytest

from bcfsleuth.core.archive import BcfArchive
from bcfsleuth.core.exceptions import ParseError
from bcfsleuth.core.format_detector import (
    ProjectLayout,
    classify_declared,
    detect_format,
    inspect_project_layout,
    read_declared_version,
)
from bcfsleuth.core.models import DetectionSignal, FormatVersion
from bcfsleuth.core.xml_utils import parse_xml

from conftest import (
    PROJECT_G0,
    PROJECT_G1,
    PROJECT_G2,
    TOPIC_G1,
    make_archive,
    version_xml,
)


def _detect(entries, project=None):
    archive = BcfArchive(make_archive(entries))
    declared = read_declared_version(archive)
    root = parse_xml(project, "project.bcfp") if project else None
    return detect_format(archive, declared, root)


class TestDeclaredVersion:
    """Reading and classifying bcf.version."""

    def test_missing_descriptor_is_fatal(self):
        """A missing bcf.version raises ParseError."""
        archive = BcfArchive(make_archive({"project.bcfp": PROJECT_G1}))
        with pytest.raises(ParseError):
            read_declared_version(archive)

    def test_detailed_version_fallback(self):
        """DetailedVersion is used when VersionId is empty."""
        archive = BcfArchive(make_archive({
            "bcf.version": "<Version><DetailedVersion>2.1 KUBUS</DetailedVersion></Version>",
        }))
        assert read_declared_version(archive) == "2.1 KUBUS"

    @pytest.mark.parametrize("declared, expected", [
        ("3.0", FormatVersion.G2),
        ("3", FormatVersion.G2),
        ("2.1", FormatVersion.G1),
        ("2.1 KUBUS", FormatVersion.G1),
        ("2.0", FormatVersion.G0),
        ("", None),
        ("1.0", None),
    ])
    def test_classify(self, declared, expected):
        """Declared strings map to their generation."""
        assert classify_declared(declared) is expected


class TestProjectLayout:
    def test_layouts(self):
        """Project documents are classified by layout."""
        assert inspect_project_layout(parse_xml(PROJECT_G2)).layout is ProjectLayout.PROJECT_INFO
        shape = inspect_project_layout(parse_xml(PROJECT_G1))
        assert shape.layout is ProjectLayout.PROJECT_EXTENSION
        assert shape.has_extension_schema
        assert not inspect_project_layout(parse_xml(PROJECT_G0)).has_extension_schema
        assert inspect_project_layout(None).layout is ProjectLayout.NONE


class TestDetectFormat:
    """Structural confirmation and fallbacks."""

    def test_declared_g2_with_project_info(self):
        """A ProjectInfo layout confirms a 3.0 declaration."""
        detection = _detect({"bcf.version": version_xml("3.0"), "project.bcfp": PROJECT_G2},
                            PROJECT_G2)
        assert detection.version is FormatVersion.G2
        assert not detection.demoted

    def test_declared_g2_confirmed_by_documents_manifest(self):
        """A documents manifest confirms a 3.0 declaration."""
        detection = _detect({"bcf.version": version_xml("3.0"), "documents.xml": "<DocumentInfo/>"})
        assert detection.version is FormatVersion.G2
        assert detection.signal is DetectionSignal.DOCUMENTS_MANIFEST

    def test_declared_g2_with_project_extension_is_demoted(self, caplog):
        """A 2.x project layout demotes a 3.0 declaration with a warning."""
        with caplog.at_level(logging.WARNING, logger="bcfsleuth.core.format_detector"):
            detection = _detect({"bcf.version": version_xml("3.0"), "project.bcfp": PROJECT_G1},
                                PROJECT_G1)
        assert detection.version is FormatVersion.G1
        assert detection.demoted
        assert detection.declared_version == "3.0"
        assert any("declares 3.0" in record.getMessage() for record in caplog.records)

    def test_declared_g2_confirmed_by_topic_markers(self):
        """3.0-only topic markers confirm the declaration."""
        markup = f'<Markup><Topic Guid="{TOPIC_G1}" ServerAssignedId="7"/></Markup>'
        detection = _detect({"bcf.version": version_xml("3.0"),
                             f"{TOPIC_G1}/markup.bcf": markup})
        assert detection.version is FormatVersion.G2
        assert detection.signal is DetectionSignal.TOPIC_MARKERS

    def test_declared_g2_without_any_evidence_is_demoted(self):
        """A 3.0 declaration with no evidence falls back to 2.1."""
        markup = f'<Markup><Topic Guid="{TOPIC_G1}"><Title>t</Title></Topic></Markup>'
        detection = _detect({"bcf.version": version_xml("3.0"),
                             f"{TOPIC_G1}/markup.bcf": markup})
        assert detection.version is FormatVersion.G1
        assert detection.demoted

    def test_declared_g1_without_schema_is_g0(self):
        """A 2.1 declaration without a schema reference is 2.0."""
        detection = _detect({"bcf.version": version_xml("2.1")}, PROJECT_G0)
        assert detection.version is FormatVersion.G0

    def test_declared_g0_with_schema_is_g1(self):
        """A 2.0 declaration with a schema reference is 2.1."""
        detection = _detect({"bcf.version": version_xml("2.0")}, PROJECT_G1)
        assert detection.version is FormatVersion.G1
        assert detection.signal is DetectionSignal.EXTENSION_SCHEMA

    def test_declared_g1_trusted_without_project_document(self):
        """A 2.1 declaration stands when there is no project file."""
        detection = _detect({"bcf.version": version_xml("2.1")})
        assert detection.version is FormatVersion.G1
        assert detection.signal is DetectionSignal.DECLARED

    def test_unknown_declaration_uses_structure(self):
        """Without a usable declaration the layout decides."""
        assert _detect({"bcf.version": "<Version/>"}, PROJECT_G2).version is FormatVersion.G2
        assert _detect({"bcf.version": "<Version/>"}, PROJECT_G0).version is FormatVersion.G0

    def test_unknown_declaration_with_extensions_file(self):
        """An extensions file implies 2.1."""
        detection = _detect({"bcf.version": "<Version/>", "extensions.xsd": "<schema/>"})
        assert detection.version is FormatVersion.G1
        assert detection.signal is DetectionSignal.EXTENSIONS_FILE

    def test_unknown_declaration_defaults_to_g1(self):
        """With no evidence at all the result is 2.1."""
        detection = _detect({"bcf.version": "garbage that is not xml"})
        assert detection.version is FormatVersion.G1
        assert detection.signal is DetectionSignal.DEFAULT

    def test_never_raises(self, monkeypatch):
        """Internal errors fall back to the default generation."""
        def boom(*_args, **_kwargs):
            raise RuntimeError("unexpected")

        monkeypatch.setattr("bcfsleuth.core.format_detector.inspect_project_layout", boom)
        archive = BcfArchive(make_archive({"bcf.version": version_xml("3.0")}))
        detection = detect_format(archive, "3.0", None)
        assert detection.version is FormatVersion.G1
