"""Tests for the HTML newsletter scraper."""

from regintel.ingestion.html_parser import HtmlParser

BASE_URL = "https://www.medtechdive.com/"

LISTING_PAGE = """
<html><body>
  <nav><a href="/">Home</a></nav>
  <ul>
    <li class="feed__item">
      <h3><a href="/news/fda-clears-ai-imaging/701234/">FDA clears AI imaging software for stroke triage</a></h3>
      <span class="date">Published: March 4, 2024</span>
      <p class="summary">The 510(k) clearance covers a deep learning triage tool.</p>
      <span class="author">Nick Paul Taylor</span>
    </li>
    <li class="feed__item">
      <h3><a href="https://other.example.com/story">Insulin pump maker issues field safety notice</a></h3>
      <time datetime="2024-03-03T08:00:00Z">Mar 3</time>
    </li>
    <li class="feed__item">
      <h3><a href="/short">Brief</a></h3>
    </li>
  </ul>
  <article>
    <h2>An article block that must be ignored</h2>
  </article>
</body></html>
"""


class TestHtmlParser:
    """Tests for HtmlParser selector handling and extraction."""

    def test_first_matching_selector_wins(self):
        """Test only the first selector with matches is used."""
        parser = HtmlParser(BASE_URL)
        items = parser.parse(LISTING_PAGE)

        assert parser.matched_selector == ".feed__item"
        titles = [i.title for i in items]
        assert "An article block that must be ignored" not in titles
        assert len(items) == 2

    def test_extracts_fields(self):
        """Test title, link, date, summary and author are extracted."""
        items = HtmlParser(BASE_URL).parse(LISTING_PAGE)
        first = items[0]

        assert first.title == "FDA clears AI imaging software for stroke triage"
        assert first.link == "https://www.medtechdive.com/news/fda-clears-ai-imaging/701234/"
        assert first.published_at_raw == "Published: March 4, 2024"
        assert first.description == "The 510(k) clearance covers a deep learning triage tool."
        assert first.author == "Nick Paul Taylor"

    def test_time_datetime_attribute_preferred(self):
        """Test machine-readable time attributes win over display text."""
        items = HtmlParser(BASE_URL).parse(LISTING_PAGE)

        assert items[1].published_at_raw == "2024-03-03T08:00:00Z"
        assert items[1].link == "https://other.example.com/story"

    def test_short_titles_dropped(self):
        """Test titles below the minimum length are treated as boilerplate."""
        items = HtmlParser(BASE_URL).parse(LISTING_PAGE)

        assert all(i.title != "Brief" for i in items)

    def test_min_title_length_configurable(self):
        """Test a per-source minimum title length is honoured."""
        items = HtmlParser(BASE_URL, min_title_length=50).parse(LISTING_PAGE)

        assert items == []

    def test_no_matching_selector_returns_empty(self):
        """Test a page with no article-like containers yields no items."""
        parser = HtmlParser(BASE_URL, selectors=[".news-item", ".story-item"])
        items = parser.parse("<html><body><p>Maintenance page</p></body></html>")

        assert items == []
        assert parser.matched_selector is None

    def test_invalid_selector_skipped(self):
        """Test a malformed selector is skipped and the next one tried."""
        parser = HtmlParser(BASE_URL, selectors=["[[invalid", "article"])
        items = parser.parse(LISTING_PAGE)

        assert parser.matched_selector == "article"
        assert [i.title for i in items] == ["An article block that must be ignored"]

    def test_max_items(self):
        """Test extraction stops at the item cap."""
        blocks = "".join(
            f'<div class="news-item"><h2><a href="/n/{n}">Regulatory news item number {n}</a></h2></div>'
            for n in range(20)
        )
        items = HtmlParser(BASE_URL, max_items=5).parse(f"<html><body>{blocks}</body></html>")

        assert len(items) == 5
        assert items[0].link == "https://www.medtechdive.com/n/0"

    def test_escaped_angle_brackets_kept(self):
        """Test decoded text with < and > is not mistaken for markup."""
        page = (
            "<html><body><article>"
            "<h2>Dose &lt; 5 mg and &gt; 2 mg recall notice</h2>"
            "<p class=\"summary\">Lots with &lt;b&gt; markings affected</p>"
            "</article></body></html>"
        )
        [item] = HtmlParser(BASE_URL, selectors=["article"]).parse(page)

        assert item.title == "Dose < 5 mg and > 2 mg recall notice"
        assert item.description == "Lots with <b> markings affected"

    def test_empty_body(self):
        """Test an empty body is not an error."""
        assert HtmlParser(BASE_URL).parse("") == []
