"""Tests for file filtering utilities."""

from revlens_core.utils.code import is_code_file, is_excluded, should_review


class TestIsCodeFile:
    def test_python_file_is_code(self):
        assert is_code_file("app/services/user.py") is True

    def test_js_file_is_code(self):
        assert is_code_file("src/components/Button.tsx") is True

    def test_image_is_not_code(self):
        assert is_code_file("assets/logo.png") is False

    def test_font_is_not_code(self):
        assert is_code_file("static/fonts/Inter.woff2") is False

    def test_archive_is_not_code(self):
        assert is_code_file("dist/bundle.tar.gz") is False

    def test_lock_file_is_not_code(self):
        assert is_code_file("poetry.lock") is False
        assert is_code_file("Pipfile.lock") is False

    def test_case_insensitive(self):
        assert is_code_file("image.PNG") is False


class TestIsExcluded:
    def test_full_path_glob(self):
        assert is_excluded("src/generated/api.py", ["src/generated/*.py"]) is True

    def test_basename_glob(self):
        assert is_excluded("web/dist/app.min.js", ["*.min.js"]) is True

    def test_directory_prefix_with_slash(self):
        assert is_excluded("migrations/0001_initial.py", ["migrations/"]) is True

    def test_nested_directory_name(self):
        assert is_excluded("app/migrations/0001_initial.py", ["migrations"]) is True

    def test_partial_directory_name_does_not_match(self):
        assert is_excluded("app/my_migrations_helper.py", ["migrations"]) is False

    def test_no_patterns(self):
        assert is_excluded("src/main.py", []) is False


class TestShouldReview:
    def test_code_file_not_excluded(self):
        assert should_review("src/main.py", ["docs/"]) is True

    def test_excluded_code_file(self):
        assert should_review("docs/conf.py", ["docs/"]) is False

    def test_binary_file(self):
        assert should_review("logo.png", []) is False

    def test_empty_path(self):
        assert should_review("", []) is False
