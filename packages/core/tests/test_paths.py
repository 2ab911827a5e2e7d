"""Tests for glob matching and file selection."""

import pytest

from rulelens_core.utils.paths import is_code_file, is_reviewable, matches_glob


class TestIsCodeFile:
    def test_source_files_are_code(self):
        assert is_code_file("app/services/user.py") is True
        assert is_code_file("src/components/Button.tsx") is True

    def test_binary_assets_are_not_code(self):
        assert is_code_file("assets/logo.png") is False
        assert is_code_file("static/fonts/Inter.woff2") is False

    def test_lock_file_is_not_code(self):
        assert is_code_file("poetry.lock") is False

    def test_case_insensitive(self):
        assert is_code_file("image.PNG") is False


class TestMatchesGlob:
    def test_extension_glob_matches_nested_file(self):
        assert matches_glob("a/b.ts", "*.ts") is True

    def test_extension_glob_rejects_other_extension(self):
        assert matches_glob("a/b.py", "*.ts") is False

    def test_double_star_prefix_matches_root_file(self):
        assert matches_glob("index.ts", "**/*.ts") is True
        assert matches_glob("src/deep/index.ts", "**/*.ts") is True

    def test_directory_glob_matches_everything_beneath(self):
        assert matches_glob("dist/app.js", "dist/**") is True
        assert matches_glob("dist/nested/app.js", "dist/**") is True
        assert matches_glob("src/dist.js", "dist/**") is False

    def test_trailing_slash_directory(self):
        assert matches_glob("migrations/0001.py", "migrations/") is True

    def test_middle_double_star_matches_direct_children(self):
        assert matches_glob("pkg/a.ts", "pkg/**/*.ts") is True
        assert matches_glob("pkg/x/y/a.ts", "pkg/**/*.ts") is True
        assert matches_glob("other/a.ts", "pkg/**/*.ts") is False

    def test_full_path_glob(self):
        assert matches_glob("src/generated/models.py", "src/generated/*.py") is True
        assert matches_glob("lib/generated/models.py", "src/generated/*.py") is False

    def test_single_star_does_not_cross_directories(self):
        assert matches_glob("src/a/b.ts", "src/*.ts") is False
        assert matches_glob("src/deep/x/y.py", "src/*.py") is False
        assert matches_glob("src/a.ts", "src/*.ts") is True

    def test_star_segment_matches_exactly_one_directory(self):
        assert matches_glob("src/api/generated/x.py", "src/*/generated/**") is True
        assert matches_glob("src/generated/x.py", "src/*/generated/**") is False
        assert matches_glob("src/a/b/generated/x.py", "src/*/generated/**") is False

    def test_double_star_must_be_followed_by_rest_of_pattern(self):
        assert matches_glob("pkg/x/y/a.py", "pkg/**/*.ts") is False
        assert matches_glob("lib/pkg/a.ts", "pkg/**/*.ts") is False

    def test_leading_dot_slash_ignored(self):
        assert matches_glob("./src/a.ts", "src/*.ts") is True

    def test_empty_pattern_matches_nothing(self):
        assert matches_glob("a.ts", "") is False


class TestIsReviewable:
    INCLUDE = ["**/*.ts", "**/*.py"]
    EXCLUDE = ["node_modules/**", "*.min.js", "dist/**"]

    @pytest.mark.parametrize("path", ["src/app.ts", "main.py", "pkg/deep/mod.py"])
    def test_included(self, path):
        assert is_reviewable(path, self.INCLUDE, self.EXCLUDE) is True

    @pytest.mark.parametrize("path", ["README.md", "node_modules/x/index.ts", "dist/out.ts", "logo.png"])
    def test_excluded(self, path):
        assert is_reviewable(path, self.INCLUDE, self.EXCLUDE) is False
