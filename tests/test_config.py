"""
Tests for configuration loading: crabscore.yml and the profile registry.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from crabscore.core.config.loader import (
    ConfigError,
    find_run_config,
    load_run_config,
    validate_run_config,
)
from crabscore.core.config.profiles import (
    BUILTIN_PROFILES,
    ProfileRegistry,
    build_registry,
    default_registry,
    load_profile_registry,
    normalize_name,
)
from crabscore.core.models import Certification


def _builtin_data() -> dict:
    return yaml.safe_load(BUILTIN_PROFILES.read_text())


# ── Run config ───────────────────────────────────────────────────────


class TestLoadRunConfig:
    def test_flat(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text(textwrap.dedent("""\
            profile: financial
            min_score: 75
            exclude_patterns:
              - benches
        """))
        config = load_run_config(path)
        assert config.profile == "financial"
        assert config.min_score == 75
        assert "benches" in config.exclude_patterns

    def test_wrapped(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("crabscore:\n  profile: gaming\n")
        assert load_run_config(path).profile == "gaming"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("")
        assert load_run_config(path).min_score == 0.0

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_run_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("profile: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_run_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_run_config(path)

    def test_invalid_gate(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("min_score: 250\n")
        with pytest.raises(ConfigError, match="Invalid run configuration"):
            load_run_config(path)

    def test_misspelled_timeout_category(self, tmp_path: Path):
        path = tmp_path / "crabscore.yml"
        path.write_text("timeouts:\n  energi: 5\n")
        with pytest.raises(ConfigError, match="energi"):
            load_run_config(path)

    def test_validate_mapping(self):
        assert validate_run_config({"profile": "iot-embedded"}).profile == "iot-embedded"

    def test_find_walks_up(self, tmp_path: Path):
        (tmp_path / "crabscore.yml").write_text("profile: gaming\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_run_config(nested) == (tmp_path / "crabscore.yml").resolve()

    def test_find_stops_at_repository_top(self, tmp_path: Path):
        (tmp_path / "crabscore.yml").write_text("profile: gaming\n")
        repo = tmp_path / "repo"
        (repo / ".git").mkdir(parents=True)
        nested = repo / "src"
        nested.mkdir()
        assert find_run_config(nested) is None

    def test_find_alternate_names(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".crabscore.yml").write_text("profile: gaming\n")
        assert find_run_config(tmp_path) == (tmp_path / ".crabscore.yml").resolve()


# ── Profile registry ─────────────────────────────────────────────────


class TestNormalizeName:
    def test_variants(self):
        assert normalize_name("Web_Services") == "web-services"
        assert normalize_name("  iot embedded ") == "iot-embedded"
        assert normalize_name("gaming") == "gaming"


class TestBuiltinProfiles:
    def test_all_present(self):
        registry = load_profile_registry()
        assert set(registry) == {"web-services", "iot-embedded", "financial", "gaming", "enterprise"}

    def test_default_is_web_services(self):
        assert default_registry().default.name == "web-services"
        assert default_registry().get_profile(None).name == "web-services"

    def test_weights_sum_to_one(self):
        for name in default_registry():
            assert default_registry()[name].weights.balanced, name

    def test_lookup_normalizes(self):
        assert default_registry().get_profile("IoT_Embedded").name == "iot-embedded"
        assert "Financial" in default_registry()

    def test_unknown_profile(self):
        with pytest.raises(ConfigError, match="Nonexistent"):
            default_registry().get_profile("Nonexistent")

    def test_tables_are_shared(self):
        registry = default_registry()
        assert registry["gaming"].bonus_table is registry["enterprise"].bonus_table

    def test_financial_uses_strict_penalties(self):
        assert default_registry()["financial"].penalty_table.name == "strict"

    def test_control_flow_penalty_rules(self):
        registry = default_registry()
        for profile, expected in (("web-services", 1.0), ("financial", 2.0)):
            rules = registry[profile].penalty_table.rules
            assert [r.dimension for r in rules] == ["control_flow"]
            assert rules[0].tiers[-1].metric == "avg_cyclomatic"
            assert rules[0].tiers[-1].points == expected

    def test_ladder_attached(self):
        ladder = default_registry()["gaming"].certification
        assert ladder[0].tier == Certification.PIONEER
        assert ladder[-1].min_score == 0

    def test_cached(self):
        assert default_registry() is default_registry()


class TestRegistryValidation:
    def test_bad_weights_rejected(self):
        data = _builtin_data()
        data["profiles"]["gaming"]["weights"]["safety"] = 0.5
        with pytest.raises(ConfigError, match="gaming"):
            build_registry(data)

    def test_unknown_bonus_table(self):
        data = _builtin_data()
        data["profiles"]["gaming"]["bonus_table"] = "generous"
        with pytest.raises(ConfigError, match="generous"):
            build_registry(data)

    def test_invalid_ladder(self):
        data = _builtin_data()
        data["certification"] = [{"tier": "verified", "min_score": 70}, {"tier": "elite", "min_score": 90}]
        with pytest.raises(ConfigError, match="certification ladder"):
            build_registry(data)

    def test_invalid_bonus_tier(self):
        data = _builtin_data()
        data["bonus_tables"]["standard"]["rules"][0]["tiers"][0]["op"] = "approximately"
        with pytest.raises(ConfigError):
            build_registry(data)

    def test_negative_penalty_weight(self):
        data = _builtin_data()
        data["penalty_tables"]["standard"]["weights"][0]["weight"] = -1
        with pytest.raises(ConfigError):
            build_registry(data)

    def test_unknown_penalty_rule_metric(self):
        data = _builtin_data()
        data["penalty_tables"]["standard"]["rules"][0]["tiers"][0]["metric"] = "avg_cyclo"
        with pytest.raises(ConfigError):
            build_registry(data)

    def test_unknown_default(self):
        data = _builtin_data()
        data["default_profile"] = "aerospace"
        with pytest.raises(ConfigError, match="aerospace"):
            build_registry(data)

    def test_no_profiles(self):
        with pytest.raises(ConfigError, match="No profiles"):
            build_registry({"certification": [{"tier": "none", "min_score": 0}]})

    def test_custom_file(self, tmp_path: Path):
        data = _builtin_data()
        data["profiles"] = {"embedded-rt": {
            "weights": {"performance": 0.4, "energy": 0.4, "cost": 0.1, "safety": 0.1},
        }}
        data["default_profile"] = "embedded-rt"
        path = tmp_path / "profiles.yml"
        path.write_text(yaml.safe_dump(data))
        registry = load_profile_registry(path)
        assert isinstance(registry, ProfileRegistry)
        assert registry.default.bonus_table.name == "standard"
