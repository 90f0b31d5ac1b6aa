"""
Tests for the project complexity scan and Cargo manifest parsing.
"""

from crabscore.core.services.analysis.complexity import count_dependencies, measure_complexity
from crabscore.core.services.analysis.walker import walk_sources

LIB = """\
    //! Crate docs.

    /// Adds numbers.
    pub fn add(a: u32, b: u32) -> u32 {
        a + b
    }

    pub(crate) async fn later() {}

    mod inner {
        unsafe extern "C" fn callback() {}
    }

    #[cfg(test)]
    mod tests {
        #[test]
        fn adds() {
            assert_eq!(super::add(1, 2), 3);
        }
    }
"""


class TestMeasureComplexity:
    def test_counts(self, rust_project):
        root = rust_project({"src/lib.rs": LIB}, deps=["serde", "tokio"])
        c = measure_complexity(walk_sources(root), root)
        assert c.file_count == 1
        assert c.total_lines == 20
        assert c.doc_lines == 2
        assert c.function_count == 4
        assert c.module_count == 2
        assert c.test_count == 1
        assert c.dependency_count == 2

    def test_empty_project(self, tmp_path):
        c = measure_complexity([], tmp_path)
        assert c.total_lines == 0
        assert c.dependency_count == 0

    def test_single_file(self, rust_project):
        root = rust_project({"main.rs": "fn main() {}\n"}, deps=["serde"])
        c = measure_complexity(walk_sources(root / "main.rs"), root / "main.rs")
        assert c.function_count == 1
        assert c.dependency_count == 0


class TestCountDependencies:
    def test_missing_manifest(self, tmp_path):
        assert count_dependencies(tmp_path / "Cargo.toml") == 0

    def test_only_runtime_dependencies(self, tmp_path):
        manifest = tmp_path / "Cargo.toml"
        manifest.write_text(
            '[package]\nname = "x"\n\n[dependencies]\nserde = { version = "1", features = ["derive"] }\n'
            'anyhow = "1"\n\n[dev-dependencies]\nproptest = "1"\n'
        )
        assert count_dependencies(manifest) == 2

    def test_malformed_manifest_falls_back(self, tmp_path):
        manifest = tmp_path / "Cargo.toml"
        manifest.write_text('[package\nname = "x"\n[dependencies]\nserde = "1"\nrand = "0.8"\n')
        assert count_dependencies(manifest) == 2
