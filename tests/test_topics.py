from bcfsleuth.core.archive import BcfArchive
from bcfsleuth.core.models import FormatVersion
from bcfsleuth.core.topics import (
    extract_topic,
    read_header_files,
    read_labels,
    read_reference_links,
)
from bcfsleuth.core.xml_utils import parse_xml

from conftest import TOPIC_G1, make_archive


class TestLabels:
    def test_one_label_per_container(self):
        """Repeated label containers are deduplicated in order."""
        topic = parse_xml("<Topic><Labels>A</Labels><Labels>B</Labels><Labels>A</Labels></Topic>")
        assert read_labels(topic) == ("A", "B")

    def test_separated_values(self):
        """Packed label text is split on separators."""
        topic = parse_xml("<Topic><Tags>one, two;three|four</Tags></Topic>")
        assert read_labels(topic) == ("one", "two", "three", "four")

    def test_nested_items_and_attribute(self):
        """Nested label items and value attributes are read."""
        topic = parse_xml(
            '<Topic><TopicLabels><TopicLabel>x</TopicLabel><Tag>y</Tag></TopicLabels>'
            '<Categories value="z"/></Topic>'
        )
        assert read_labels(topic) == ("x", "y", "z")

    def test_labels_inside_comments_are_ignored(self):
        """Labels inside nested records are not topic labels."""
        topic = parse_xml("<Topic><Comments><Comment><Labels>no</Labels></Comment></Comments></Topic>")
        assert read_labels(topic) == ()


class TestReferenceLinks:
    XML = ("<Topic><ReferenceLink>a</ReferenceLink>"
           "<ReferenceLinks><ReferenceLink>b</ReferenceLink><ReferenceLink> </ReferenceLink>"
           "</ReferenceLinks></Topic>")

    def test_first_only_before_g2(self):
        """2.x topics keep only the first reference link."""
        assert read_reference_links(parse_xml(self.XML), FormatVersion.G1) == ("a",)
        assert read_reference_links(parse_xml(self.XML), FormatVersion.G0) == ("a",)

    def test_all_in_g2(self):
        """3.0 topics keep every non-blank link."""
        assert read_reference_links(parse_xml(self.XML), FormatVersion.G2) == ("a", "b")


class TestHeaderFiles:
    def test_flat_file_list(self):
        """Header File elements become header files."""
        markup = parse_xml(
            '<Markup><Header><File IfcProject="p" IfcSpatialStructureElement="s" isExternal="false">'
            "<Filename>m.ifc</Filename><Reference>file:///m.ifc</Reference></File></Header></Markup>"
        )
        (header,) = read_header_files(markup)
        assert header.ifc_project == "p"
        assert header.ifc_spatial_structure_element == "s"
        assert not header.is_external
        assert header.reference == "file:///m.ifc"

    def test_no_header(self):
        """No Header element gives no header files."""
        assert read_header_files(parse_xml("<Markup/>")) == ()


class TestExtractTopic:
    def test_missing_markup(self):
        """A folder without markup gives no topic."""
        archive = BcfArchive(make_archive({f"{TOPIC_G1}/viewpoint.bcfv": "<VisualizationInfo/>"}))
        assert extract_topic(archive, TOPIC_G1, FormatVersion.G1) is None

    def test_unparseable_markup(self):
        """Unparseable markup gives no topic."""
        archive = BcfArchive(make_archive({f"{TOPIC_G1}/markup.bcf": "   "}))
        assert extract_topic(archive, TOPIC_G1, FormatVersion.G1) is None

    def test_untitled_topic_keeps_other_fields(self):
        """A topic without a title still keeps its other fields."""
        archive = BcfArchive(make_archive({
            f"{TOPIC_G1}/markup.bcf": "<Markup><Topic><Priority>Low</Priority><Foo>bar</Foo></Topic></Markup>",
        }))
        topic = extract_topic(archive, TOPIC_G1, FormatVersion.G1)
        assert topic.identifier == TOPIC_G1
        assert topic.title == ""
        assert topic.priority == "Low"
        assert topic.custom_fields == {"topic_element_Foo": "bar"}

    def test_topic_without_topic_element_reads_root(self):
        """Fields are read from the root when there is no Topic element."""
        archive = BcfArchive(make_archive({
            f"{TOPIC_G1}/markup.bcf": "<Issue><Subject>Loose</Subject></Issue>",
        }))
        assert extract_topic(archive, TOPIC_G1, FormatVersion.G1).title == "Loose"

    def test_comments_sidecar(self):
        """Sidecar comments are merged after markup comments."""
        archive = BcfArchive(make_archive({
            f"{TOPIC_G1}/markup.bcf": '<Markup><Topic/><Comment Guid="a"><Comment>x</Comment></Comment></Markup>',
            f"{TOPIC_G1}/comments.bcf": '<Comments><Comment Guid="a"><Comment>y</Comment></Comment>'
                                        '<Comment Guid="b"><Comment>z</Comment></Comment></Comments>',
        }))
        topic = extract_topic(archive, TOPIC_G1, FormatVersion.G1)
        assert [(c.identifier, c.text) for c in topic.comments] == [("a", "x"), ("b", "z")]
