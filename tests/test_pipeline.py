"""
End-to-end tests: project on disk → RunResult.
"""

import asyncio
import json
import threading

import pytest

from crabscore.core.config.loader import ConfigError
from crabscore.core.models import AuditKind, Category, CategoryMetrics, RunConfig
from crabscore.core.services import pipeline
from crabscore.core.services.analysis.analyzer import SafetyAnalyzer
from crabscore.core.services.analysis.walker import SourceRootError
from crabscore.core.services.pipeline import build_default_providers, run_score, score_project
from crabscore.core.services.scoring.engine import InvariantViolation
from crabscore.providers import OutcomeStatus, ProviderRegistry
from crabscore.providers.mock import StaticProvider
from crabscore.providers.safety import SafetyProvider

SMALL_MAIN = """\
// Prints a greeting.
fn main() {
    let name = "crab";
    let count = 3;
    for i in 0..count {
        println!("{i}: hello {name}");
    }
    println!("done");
}
"""


def _providers(*extra):
    registry = ProviderRegistry()
    registry.register(SafetyProvider(SafetyAnalyzer(workers=1)))
    registry.register(StaticProvider(Category.COST, score=100))
    for provider in extra:
        registry.register(provider)
    return registry


def _risky_main(unsafe_blocks: int, unwraps: int, lines: int = 0) -> str:
    body = ["fn main() {", "    let v: Option<u32> = Some(1);"]
    body += ["    unsafe { noop(); }"] * unsafe_blocks
    body += ["    let _ = v.unwrap();"] * unwraps
    body += ["}", "", "fn noop() {}"]
    body += ["// padding"] * (lines - len(body))
    return "\n".join(body) + "\n"


class TestSmallProject:
    @pytest.fixture
    def result(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        return run_score(root, RunConfig(), _providers())

    def test_complexity(self, result):
        c = result.complexity
        assert c.file_count == 1
        assert c.total_lines == 9
        assert c.function_count == 1
        assert c.doc_lines == 0
        assert c.dependency_count == 0

    def test_clean_safety(self, result):
        assert result.safety.findings == ()
        assert result.breakdown.safety == 100.0
        assert result.breakdown.penalty_total == 0.0

    def test_bonuses(self, result):
        labels = [e.label for e in result.breakdown.entries(AuditKind.BONUS)]
        assert labels == ["Small Project Bonus", "Zero Dependencies"]
        assert result.breakdown.bonus_total == 5.0

    def test_dynamic_categories_estimated(self, result):
        b = result.breakdown
        assert b.degraded_categories == ("performance", "energy")
        assert b.static_analysis_only
        fallbacks = b.entries(AuditKind.FALLBACK)
        assert [e.subject for e in fallbacks] == ["performance", "energy"]
        assert all("missing" in e.detail for e in fallbacks)
        assert result.outcomes[Category.PERFORMANCE].status == OutcomeStatus.MISSING
        assert result.outcomes[Category.COST].ok

    def test_overall(self, result):
        b = result.breakdown
        assert b.profile == "web-services"
        assert b.cost == 100.0
        assert b.overall == pytest.approx(b.base_score + 5.0)
        assert 0.0 <= b.overall <= 100.0

    def test_to_dict_is_json(self, result):
        data = json.loads(json.dumps(result.to_dict()))
        assert data["providers"]["energy"]["status"] == "missing"
        assert data["findings"]["unsafe_block"] == 0


class TestRiskyProject:
    def test_findings_lower_safety(self, rust_project):
        clean_root = rust_project({"clean/src/main.rs": _risky_main(0, 0, lines=50)})
        risky_root = rust_project({"risky/src/main.rs": _risky_main(5, 10, lines=50)})
        clean = run_score(clean_root / "clean", providers=_providers())
        risky = run_score(risky_root / "risky", providers=_providers())

        assert clean.complexity.total_lines == risky.complexity.total_lines == 50
        assert clean.safety.findings == ()
        assert risky.safety.unsafe_blocks == 5
        assert risky.safety.fallible_unwraps == 10
        assert risky.breakdown.safety < clean.breakdown.safety
        assert risky.breakdown.penalty_total > 0
        assert risky.breakdown.overall < clean.breakdown.overall
        subjects = {e.subject for e in risky.breakdown.entries(AuditKind.PENALTY)}
        assert {"unsafe_block", "fallible_unwrap"} <= subjects


class TestFailures:
    def test_unknown_profile(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        provider = StaticProvider(Category.COST)
        registry = ProviderRegistry()
        registry.register(provider)
        with pytest.raises(ConfigError, match="Nonexistent"):
            run_score(root, RunConfig(profile="Nonexistent"), registry)
        assert provider.call_count == 0

    def test_missing_root(self, tmp_path):
        with pytest.raises(SourceRootError):
            run_score(tmp_path / "missing", providers=_providers())

    def test_timeout_falls_back(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        slow = StaticProvider(Category.ENERGY, delay=5.0)
        config = RunConfig(timeouts={"energy": 0.05})
        result = run_score(root, config, _providers(slow))

        assert result.outcomes[Category.ENERGY].status == OutcomeStatus.TIMEOUT
        assert slow.cancelled
        assert "energy" in result.breakdown.degraded_categories
        energy_fallback = [e for e in result.breakdown.entries(AuditKind.FALLBACK) if e.subject == "energy"]
        assert len(energy_fallback) == 1
        assert "timeout" in energy_fallback[0].detail

    def test_failing_safety_provider_estimated(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        broken = StaticProvider(Category.SAFETY)
        broken.set_failure("analyzer crashed")
        registry = _providers()
        registry.register(broken)
        result = run_score(root, providers=registry)
        assert result.safety.estimated
        assert "safety" in result.breakdown.degraded_categories
        assert result.outcomes[Category.SAFETY].status == OutcomeStatus.FAILED
        assert result.safety.findings == ()

    def test_per_category_timeout_overrides_default(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        slow = StaticProvider(Category.ENERGY, delay=0.2)
        config = RunConfig(provider_timeout=0.05, timeouts={"energy": 5, "safety": 30})
        result = run_score(root, config, _providers(slow))
        assert result.outcomes[Category.ENERGY].ok
        assert "energy" not in result.breakdown.degraded_categories

    def test_default_timeout_applies_without_entry(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        slow = StaticProvider(Category.ENERGY, delay=5.0)
        config = RunConfig(provider_timeout=0.05, timeouts={"safety": 30})
        result = run_score(root, config, _providers(slow))
        assert result.outcomes[Category.ENERGY].status == OutcomeStatus.TIMEOUT
        assert result.outcomes[Category.SAFETY].ok

    def test_safety_slot_requires_safety_metrics(self, rust_project, monkeypatch):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        monkeypatch.setattr(
            pipeline, "estimate",
            lambda category, complexity: CategoryMetrics(category=category, score=50.0, estimated=True),
        )
        registry = ProviderRegistry()
        registry.register(StaticProvider(Category.COST, score=100))
        with pytest.raises(InvariantViolation, match="SafetyMetrics"):
            run_score(root, providers=registry)


class _GatedAnalyzer(SafetyAnalyzer):
    """Holds every file until the run's cancel event is set."""

    def __init__(self):
        super().__init__(workers=2)
        self.started = threading.Event()
        self.cancel_events: list[threading.Event | None] = []

    def analyze_files(self, files, cancel_event=None):
        self.cancel_events.append(cancel_event)
        return super().analyze_files(files, cancel_event)

    def analyze_file(self, source, cancel=None):
        self.started.set()
        if cancel is not None:
            cancel.wait(5.0)
        return super().analyze_file(source, cancel)


class TestCancellation:
    def test_cancel_during_analysis(self, rust_project):
        root = rust_project({f"src/m{i}.rs": _risky_main(1, 1) for i in range(4)})
        analyzer = _GatedAnalyzer()
        registry = ProviderRegistry()
        registry.register(SafetyProvider(analyzer))
        results = []

        async def cancel_mid_run():
            task = asyncio.create_task(score_project(root, providers=registry))
            assert await asyncio.to_thread(analyzer.started.wait, 5.0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                results.append(await task)

        asyncio.run(cancel_mid_run())

        assert results == []
        assert len(analyzer.cancel_events) == 1
        assert analyzer.cancel_events[0].is_set()


class TestDeterminism:
    def test_identical_json(self, rust_project):
        root = rust_project({"src/main.rs": _risky_main(2, 3), "src/lib.rs": SMALL_MAIN}, deps=["serde"])
        first = run_score(root, providers=_providers())
        second = run_score(root, providers=_providers())
        assert first.breakdown.to_json() == second.breakdown.to_json()

    def test_worker_count_does_not_matter(self, rust_project):
        files = {f"src/m{i}.rs": _risky_main(i % 3, i % 4) for i in range(8)}
        root = rust_project(files)

        def with_workers(n):
            registry = ProviderRegistry()
            registry.register(SafetyProvider(SafetyAnalyzer(workers=n)))
            return run_score(root, providers=registry)

        assert with_workers(1).breakdown == with_workers(4).breakdown


class TestGate:
    def test_gate(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        low = run_score(root, RunConfig(min_score=10), _providers())
        high = run_score(root, RunConfig(min_score=100), _providers())
        assert low.gate_passed
        assert not high.gate_passed
        assert low.breakdown == high.breakdown


class TestDefaults:
    def test_default_providers(self):
        registry = build_default_providers(RunConfig())
        assert registry.list_providers() == {"safety": "static-analyzer"}

    def test_default_providers_with_cost_table(self):
        config = RunConfig(cost_table={"infrastructure": {"cloud_compute_usd": 50}})
        registry = build_default_providers(config)
        assert registry.list_providers() == {"safety": "static-analyzer", "cost": "static-cost"}

    def test_cache_written_and_reused(self, rust_project, tmp_state_dir):
        root = rust_project({"src/main.rs": _risky_main(1, 1)})
        config = RunConfig(cache_path=tmp_state_dir / "findings.json", workers=1)
        first = run_score(root, config)
        assert config.cache_path.is_file()
        second = run_score(root, config)
        assert first.breakdown == second.breakdown

    def test_async_entry_point(self, rust_project):
        root = rust_project({"src/main.rs": SMALL_MAIN})
        result = asyncio.run(score_project(root, providers=_providers()))
        assert result.breakdown.certification == run_score(root, providers=_providers()).breakdown.certification
