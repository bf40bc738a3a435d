"""Tests for the RSS/Atom feed parsers."""

from datetime import datetime, timezone

from conftest import rss, rss_item

from regintel.ingestion.dedup import fingerprint
from regintel.ingestion.errors import ParseError
from regintel.ingestion.feed_parser import FeedParser, RegexFeedParser
from regintel.ingestion.normalize import parse_published_at

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>MHRA</title>
  <id>tag:www.gov.uk,2005:/government/organisations/mhra</id>
  <updated>2024-03-01T10:00:00Z</updated>
  <entry>
    <id>tag:www.gov.uk,2005:/drug-device-alerts/infusion-pumps</id>
    <updated>2024-03-01T10:00:00Z</updated>
    <link rel="alternate" type="text/html" href="https://www.gov.uk/drug-device-alerts/infusion-pumps"/>
    <title>Medical device alert: infusion pumps</title>
    <summary>Manufacturers must update pump software.</summary>
    <author><name>MHRA Devices</name></author>
    <category term="Medical devices"/>
  </entry>
</feed>
"""


class TestFeedParser:
    """Tests for the feedparser-backed parser."""

    def test_parses_rss_items(self):
        """Test title, link, guid, description and date are extracted."""
        body = rss(
            rss_item(
                "FDA clears new pacemaker",
                link="https://www.fda.gov/news/pacemaker",
                guid="fda-001",
                description="The agency granted 510(k) clearance.",
                pub_date="Tue, 05 Mar 2024 14:30:00 GMT",
            ),
            rss_item("Second press release", link="https://www.fda.gov/news/second"),
        )
        items = FeedParser().parse(body)

        assert len(items) == 2
        first = items[0]
        assert first.title == "FDA clears new pacemaker"
        assert first.link == "https://www.fda.gov/news/pacemaker"
        assert first.guid == "fda-001"
        assert first.description == "The agency granted 510(k) clearance."
        assert first.published_at_raw == "Tue, 05 Mar 2024 14:30:00 GMT"

    def test_decodes_cdata_and_entities(self):
        """Test CDATA sections are unwrapped and entities unescaped."""
        body = rss(rss_item(
            "<![CDATA[Guidance on MDR & IVDR transition]]>",
            description="<![CDATA[<p>Notified bodies &amp; manufacturers</p>]]>",
        ))
        items = FeedParser().parse(body)

        assert len(items) == 1
        assert items[0].title == "Guidance on MDR & IVDR transition"
        assert "<p>" not in items[0].description
        assert items[0].description == "Notified bodies & manufacturers"

    def test_escaped_angle_brackets_kept_in_title(self):
        """Test text between escaped < and > survives parsing."""
        items = FeedParser().parse(rss(rss_item("Dose &lt; 5 mg and &gt; 2 mg recall", guid="dose-1")))

        assert [i.title for i in items] == ["Dose < 5 mg and > 2 mg recall"]

    def test_rss_pub_date_parsed_by_feed_library(self):
        items = FeedParser().parse(rss(rss_item("Dated notice", pub_date="Tue, 05 Mar 2024 14:30:00 GMT")))

        assert items[0].published_at == datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)

    def test_item_without_title_is_dropped(self):
        """Test items lacking a title are skipped."""
        body = rss(
            "<item><link>https://example.com/untitled</link></item>",
            rss_item("Titled item", link="https://example.com/titled"),
        )
        items = FeedParser().parse(body)

        assert [i.title for i in items] == ["Titled item"]

    def test_missing_date_falls_back_to_now(self):
        """Test a missing pubDate does not fail the item."""
        items = FeedParser().parse(rss(rss_item("Undated announcement")))

        assert len(items) == 1
        assert items[0].published_at_raw == ""
        published = parse_published_at(items[0].published_at_raw)
        assert abs((datetime.now(timezone.utc) - published).total_seconds()) < 5

    def test_parses_atom_entries(self):
        """Test Atom entries with href links, ids and terms."""
        items = FeedParser().parse(ATOM_FEED)

        assert len(items) == 1
        entry = items[0]
        assert entry.title == "Medical device alert: infusion pumps"
        assert entry.link == "https://www.gov.uk/drug-device-alerts/infusion-pumps"
        assert entry.guid == "tag:www.gov.uk,2005:/drug-device-alerts/infusion-pumps"
        assert entry.published_at_raw == "2024-03-01T10:00:00Z"
        assert entry.published_at == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert entry.categories == ["Medical devices"]
        assert entry.author == "MHRA Devices"

    def test_empty_and_garbage_bodies_return_empty(self):
        """Test malformed input degrades to an empty list."""
        parser = FeedParser()

        assert parser.parse("") == []
        assert parser.parse("this is not xml at all") == []
        assert parser.parse("<rss><channel></channel></rss>") == []

    def test_fingerprint_stable_across_parses(self):
        """Test byte-identical content yields identical fingerprints."""
        body = rss(
            rss_item("With guid", guid="uuid-123"),
            rss_item("With link only", link="https://example.com/a"),
            rss_item("Title only"),
        )
        first = [fingerprint(i) for i in FeedParser().parse(body)]
        second = [fingerprint(i) for i in FeedParser().parse(body)]

        assert first == second
        assert len(set(first)) == 3


class TestRegexFeedParser:
    """Tests for the pattern-based fallback parser."""

    def test_parses_rss_block(self):
        """Test all fields are pulled from an item block."""
        body = (
            "<rss><channel><item>"
            "<title><![CDATA[Recall: Infusion Pump]]></title>"
            "<link>https://example.com/recall</link>"
            "<description>Stop &lt;immediately&gt; &amp; return</description>"
            "<pubDate>Mon, 04 Mar 2024 09:00:00 GMT</pubDate>"
            "<guid>abc-1</guid>"
            "<category>Recalls</category>"
            "<dc:creator>Device Safety Team</dc:creator>"
            "</item></channel></rss>"
        )
        items = RegexFeedParser().parse(body)

        assert len(items) == 1
        item = items[0]
        assert item.title == "Recall: Infusion Pump"
        assert item.link == "https://example.com/recall"
        assert item.description == "Stop <immediately> & return"
        assert item.published_at_raw == "Mon, 04 Mar 2024 09:00:00 GMT"
        assert item.guid == "abc-1"
        assert item.categories == ["Recalls"]
        assert item.author == "Device Safety Team"

    def test_escaped_angle_brackets_kept(self):
        body = "<rss><channel><item><title>Dose &lt; 5 mg and &gt; 2 mg recall</title></item></channel></rss>"

        assert [i.title for i in RegexFeedParser().parse(body)] == ["Dose < 5 mg and > 2 mg recall"]

    def test_atom_href_link(self):
        """Test links given as href attributes are used."""
        body = (
            '<feed><entry><title>Atom entry title</title>'
            '<link href="https://example.com/atom"/>'
            "<updated>2024-03-01T10:00:00Z</updated>"
            "<author><name>Jane Reviewer</name></author>"
            "</entry></feed>"
        )
        items = RegexFeedParser().parse(body)

        assert items[0].link == "https://example.com/atom"
        assert items[0].published_at_raw == "2024-03-01T10:00:00Z"
        assert items[0].author == "Jane Reviewer"

    def test_truncated_document(self):
        """Test complete items are kept from a truncated body."""
        body = (
            "<rss><channel>"
            "<item><title>Complete item</title></item>"
            "<item><title>Cut off"
        )
        items = RegexFeedParser().parse(body)

        assert [i.title for i in items] == ["Complete item"]

    def test_feed_parser_uses_fallback(self, monkeypatch):
        """Test FeedParser delegates to its fallback when feedparser finds nothing."""

        class RecordingFallback(RegexFeedParser):
            called = False

            def parse(self, raw_body):
                RecordingFallback.called = True
                return super().parse(raw_body)

        def broken(raw_body):
            raise ParseError("mismatched tag")

        parser = FeedParser(fallback=RecordingFallback())
        monkeypatch.setattr(parser, "_parse", broken)
        items = parser.parse("<item><title>Salvaged item</title></item>")

        assert RecordingFallback.called
        assert [i.title for i in items] == ["Salvaged item"]
