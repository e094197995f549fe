#!/usr/bin/env python3
"""
Quick Start Guide for the Streaming Tag Extractor.

Declares a small schema in code, extracts a catalog document, then streams
the same document in chunks and shows the per-result callback.
"""

import json
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from streaming_tag_extractor import ElementType, Extractor, Float, Integer
from streaming_tag_extractor.api import extract_string, to_jsonable

CATALOG = """
<catalog updated="2024-03-01">
  <item id="1">
    <name>Widget</name>
    <details><price>9.99</price><stock>12</stock></details>
  </item>
  <item id="2">
    <name>Gadget</name>
    <details><price>24.50</price><stock>none</stock></details>
  </item>
</catalog>
"""


def declare_catalog(extractor: Extractor) -> None:
    item = ElementType("item")
    item.extract_attribute("item", "id", "id")
    item.extract("name", "name")
    item.find("details").extract("price", "price", Float).extract("stock", "stock", Integer).end()

    catalog = extractor.element_type("catalog")
    catalog.extract_attribute("catalog", "updated", "updated")
    catalog.extract_many("item", "items", item)


def quick_start_example():
    """Extract a whole document at once."""
    print("QUICK START - Streaming Tag Extractor")
    print("=" * 40)

    extractor = Extractor()
    declare_catalog(extractor)

    result = extractor.parse_string(CATALOG)
    print(f"Success: {result.success}")
    print(json.dumps(to_jsonable(result.result), indent=2))
    print(f"Summary: {result.summary()}")


def streaming_example():
    """Feed markup in chunks and receive results as they complete."""
    print("\nSTREAMING")
    print("-" * 40)

    extractor = Extractor(on_result=lambda value: print(f"Result: {to_jsonable(value)}"))
    declare_catalog(extractor)

    for start in range(0, len(CATALOG), 32):
        extractor.feed(CATALOG[start:start + 32])
    extractor.close()


def schema_file_example():
    """Use a JSON schema file, as the tag-extract CLI does."""
    print("\nJSON SCHEMA")
    print("-" * 40)

    schema_path = Path(__file__).parent / "schemas" / "catalog.json"
    schema = json.loads(schema_path.read_text(encoding="utf-8"))

    result = extract_string(CATALOG, schema)
    print(json.dumps(to_jsonable(result.results), indent=2))


if __name__ == "__main__":
    quick_start_example()
    streaming_example()
    schema_file_example()
