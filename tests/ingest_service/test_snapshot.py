"""
Tests for the bundled snapshot generator.
"""

import json
from unittest.mock import patch

from conftest import make_row
from ingest_service.snapshot import generate_snapshot, load_snapshot


@patch('ingest_service.snapshot.iter_pages')
def test_generate_snapshot_writes_consolidated_restaurants(mock_iter_pages, tmp_path):
    mock_iter_pages.return_value = iter([
        (0, [make_row("1", inspection_date="2023-01-01"), make_row("2")]),
        (2, [make_row("2", dba="Renamed", inspection_date="2025-01-01"), make_row("3", latitude="0")]),
    ])
    output = tmp_path / "data" / "restaurants_data.json"

    restaurants = generate_snapshot(output, page_size=2)

    assert [r.id for r in restaurants] == ["1", "2"]
    saved = json.loads(output.read_text())
    assert [item["id"] for item in saved] == ["1", "2"]
    assert saved[1]["name"] == "Renamed"
    assert load_snapshot(output) == restaurants
