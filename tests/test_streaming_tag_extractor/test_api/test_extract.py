"""Tests for the simple extraction functions."""

import json
import math
from datetime import datetime

from streaming_tag_extractor.api import build_extractor, extract_file, extract_string, to_jsonable
from streaming_tag_extractor.engine import Extractor
from streaming_tag_extractor.schema import INVALID_DATE, Date, Float
from streaming_tag_extractor.shared import ExtractorConfig, SchemaMismatchError

RSS_XML = """<rss version="2.0">
  <channel>
    <title>Release notes</title>
    <item>
      <title>1.0</title>
      <pubDate>Mon, 15 Jan 2024 10:30:00 +0000</pubDate>
      <category>stable</category>
    </item>
    <item>
      <title>1.1-rc</title>
      <pubDate>soon</pubDate>
      <category>preview</category>
      <category>testing</category>
    </item>
  </channel>
</rss>"""


def rss_schema(extractor: Extractor) -> None:
    extractor.element_type("item").extract("title", "title").extract(
        "pubDate", "published", Date
    ).extract_many("category", "categories")
    (
        extractor.element_type("rss")
        .extract_attribute("rss", "version", "version")
        .find("channel")
        .extract("title", "channel_title")
        .extract_many("item", "items", "item")
        .end()
    )


class TestExtractString:
    """extract_string with callable and mapping schemas."""

    def test_callable_schema(self) -> None:
        result = extract_string(RSS_XML, rss_schema)

        assert result.success
        feed = result.result
        assert feed["version"] == "2.0"
        assert feed["channel_title"] == "Release notes"
        assert [item["title"] for item in feed["items"]] == ["1.0", "1.1-rc"]
        assert feed["items"][0]["published"].year == 2024
        assert feed["items"][1]["published"] is INVALID_DATE
        assert feed["items"][1]["categories"] == ["preview", "testing"]

    def test_item_title_does_not_leak_into_channel_title(self) -> None:
        """Test that nested contexts own the events below them."""
        result = extract_string(RSS_XML, rss_schema)
        assert result.result["channel_title"] == "Release notes"

    def test_mapping_schema(self) -> None:
        schema = {"types": {"point": [
            {"tag": "x", "type": "Float"},
            {"tag": "y", "type": "Float"},
            {"tag": "point", "attribute": "label", "field": "label"},
        ]}}

        result = extract_string('<point label="origin"><x>0</x><y>-1.5</y></point>', schema)

        assert result.result == {"x": 0.0, "y": -1.5, "label": "origin"}

    def test_unknown_root(self) -> None:
        result = extract_string("<atom/>", rss_schema)

        assert not result.success
        assert isinstance(result.error, SchemaMismatchError)

    def test_config_is_applied(self) -> None:
        config = ExtractorConfig(correlation_id="req-7")
        result = extract_string("<rss/>", rss_schema, config)

        assert result.correlation_id == "req-7"
        assert result.results == [None]

    def test_build_extractor(self) -> None:
        extractor = build_extractor(rss_schema)
        assert "rss" in extractor.element_types
        assert "item" in extractor.element_types


class TestExtractFile:
    """extract_file streams a file through the tokenizer."""

    def test_extract_file(self, tmp_path) -> None:
        path = tmp_path / "feed.xml"
        path.write_bytes(RSS_XML.encode("utf-8"))

        result = extract_file(path, rss_schema)

        assert result.success
        assert len(result.result["items"]) == 2


class TestToJsonable:
    """JSON conversion of extracted values."""

    def test_converts_special_values(self) -> None:
        value = {
            "when": datetime(2024, 1, 15, 10, 30),
            "bad_date": INVALID_DATE,
            "nan": math.nan,
            "inf": math.inf,
            "items": [{"price": 2.5}, "text", 3],
        }

        converted = to_jsonable(value)

        assert converted == {
            "when": "2024-01-15T10:30:00",
            "bad_date": None,
            "nan": None,
            "inf": None,
            "items": [{"price": 2.5}, "text", 3],
        }
        json.dumps(converted, allow_nan=False)

    def test_float_leaf_result(self) -> None:
        assert to_jsonable(Float.return_value("1.5")) == 1.5
