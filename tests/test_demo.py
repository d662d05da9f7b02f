"""
Tests for demo data generation and seeding.
"""

import importlib.util
from pathlib import Path

from travelbio.demo import build_demo_gateway, generate_demo_data
from travelbio.models import RATING_MAX, RATING_MIN
from travelbio.validators import find_out_of_range_ratings

SEED_SCRIPT = Path(__file__).parent.parent / "scripts" / "seed_demo_data.py"


def load_seed_script():
    spec = importlib.util.spec_from_file_location("seed_demo_data", SEED_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestGenerateDemoData:
    """Tests for the demo data generator."""

    def test_deterministic(self):
        assert generate_demo_data(seed=3) == generate_demo_data(seed=3)

    def test_seed_changes_data(self):
        _, _, first = generate_demo_data(seed=1)
        _, _, second = generate_demo_data(seed=2)
        assert first != second

    def test_ratings_in_range(self):
        _, _, records = generate_demo_data()
        assert records
        assert all(find_out_of_range_ratings(r) == [] for r in records)
        present = [r.overall_rating for r in records if r.overall_rating is not None]
        assert min(present) >= RATING_MIN
        assert max(present) <= RATING_MAX

    def test_records_reference_known_entities(self):
        countries, profiles, records = generate_demo_data()
        country_ids = {c.id for c in countries}
        user_ids = {p.id for p in profiles}
        assert {r.country_id for r in records} <= country_ids
        assert {r.user_id for r in records} <= user_ids

    def test_demo_gateway(self):
        gateway = build_demo_gateway()
        assert gateway.fetch_country_by_code("JP").name == "Japan"
        assert gateway.fetch_all_records()


class TestSeedScript:
    """Tests for scripts/seed_demo_data.py."""

    def test_seed(self, tmp_path):
        seed_script = load_seed_script()
        db_path = tmp_path / "seeded.db"

        counts = seed_script.seed(db_path, 42)
        assert counts["countries"] == 12
        assert counts["profiles"] == 8
        assert counts["records"] > 0

        # Reseeding with reset replaces rather than appends
        again = seed_script.seed(db_path, 42, reset=True)
        assert again == counts
