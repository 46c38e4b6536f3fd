"""Unit tests for commit message trailer parsing."""

from pyjaspr.git.footers import add_footers, get_commit_id, get_footers, get_subject_and_body, trim_footers


class TestGetFooters:
    """Tests for get_footers."""

    def test_single_trailer(self) -> None:
        assert get_footers("Subject\n\ncommit-id: abc12345\n") == {"commit-id": "abc12345"}

    def test_multiple_trailers(self) -> None:
        message = "Subject\n\nBody text\n\ncommit-id: abc12345\nreviewed-by: someone\n"
        assert get_footers(message) == {"commit-id": "abc12345", "reviewed-by": "someone"}

    def test_subject_only_has_no_trailers(self) -> None:
        assert get_footers("commit-id: abc12345") == {}

    def test_trailing_url_is_not_a_trailer(self) -> None:
        message = "Subject\n\nSee https://example.com/some/page\n"
        assert get_footers(message) == {}

    def test_prose_with_colon_is_not_a_trailer(self) -> None:
        message = "Subject\n\nNote: this changes the default behavior\n"
        assert get_footers(message) == {}

    def test_one_bad_line_disqualifies_block(self) -> None:
        message = "Subject\n\ncommit-id: abc12345\nnot a trailer line\n"
        assert get_footers(message) == {}


class TestAddFooters:
    """Tests for add_footers."""

    def test_new_block_is_separated_by_blank_line(self) -> None:
        assert add_footers("Subject\n\nBody", {"commit-id": "abc"}) == "Subject\n\nBody\n\ncommit-id: abc\n"

    def test_joins_existing_block(self) -> None:
        result = add_footers("Subject\n\nreviewed-by: someone\n", {"commit-id": "abc"})
        assert result == "Subject\n\nreviewed-by: someone\ncommit-id: abc\n"

    def test_lines_are_not_indented(self) -> None:
        result = add_footers("Subject", {"commit-id": "abc"})
        assert "\ncommit-id: abc" in result
        assert get_commit_id(result) == "abc"


class TestTrimFooters:
    """Tests for trim_footers."""

    def test_round_trip_restores_subject_and_body(self) -> None:
        message = "Subject line\n\nSome body\nacross lines"
        trimmed = trim_footers(add_footers(message, {"commit-id": "abc"}))
        assert get_subject_and_body(trimmed) == get_subject_and_body(message)

    def test_message_without_trailers_is_untouched(self) -> None:
        message = "Subject\n\nSee https://example.com\n"
        assert trim_footers(message) == message


class TestGetSubjectAndBody:
    """Tests for get_subject_and_body."""

    def test_subject_only(self) -> None:
        assert get_subject_and_body("Just a subject\n") == ("Just a subject", None)

    def test_multi_line_subject_is_folded(self) -> None:
        subject, body = get_subject_and_body("A long subject\nthat wraps\n\nThe body")
        assert subject == "A long subject that wraps"
        assert body == "The body"
