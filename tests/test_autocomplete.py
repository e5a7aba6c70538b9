import pytest

from wui.autocomplete import CompletionKind, detect_completion


def detect(text, cursor=None):
    return detect_completion(text, len(text) if cursor is None else cursor)


@pytest.mark.unit
class TestProjectCompletion:
    @pytest.mark.parametrize("keyword", ["pro", "proj", "proje", "projec", "project"])
    def test_abbreviations(self, keyword):
        context = detect(f"{keyword}:wo")
        assert context.kind == CompletionKind.PROJECT
        assert context.prefix == "wo"
        assert context.insert_pos == len(keyword) + 1

    def test_empty_prefix_after_other_words(self):
        context = detect("fix sink project:")
        assert context.kind == CompletionKind.PROJECT
        assert context.prefix == ""
        assert context.insert_pos == len("fix sink project:")

    def test_keyword_must_start_a_word(self):
        assert detect("reproject:wo") is None
        assert detect("+repro:x").kind == CompletionKind.TAG

    def test_only_text_before_cursor_counts(self):
        text = "project:wo due:"
        context = detect(text, cursor=len("project:wo"))
        assert context.kind == CompletionKind.PROJECT
        assert context.prefix == "wo"


@pytest.mark.unit
class TestTagCompletion:
    def test_tag_prefix(self):
        context = detect("buy milk +ur")
        assert context.kind == CompletionKind.TAG
        assert context.prefix == "ur"
        assert context.insert_pos == len("buy milk +")

    def test_bare_plus(self):
        context = detect("+")
        assert context.kind == CompletionKind.TAG
        assert context.prefix == ""
        assert context.insert_pos == 1

    def test_plus_inside_word_is_not_a_tag(self):
        assert detect("c++") is None


@pytest.mark.unit
class TestDateCompletion:
    @pytest.mark.parametrize(
        "keyword,field",
        [
            ("due", "due"),
            ("sch", "scheduled"),
            ("sched", "scheduled"),
            ("scheduled", "scheduled"),
            ("wait", "wait"),
            ("until", "until"),
        ],
    )
    def test_date_keyword_opens_calendar(self, keyword, field):
        context = detect(f"call bob {keyword}:")
        assert context.kind == CompletionKind.DATE
        assert context.field == field
        assert context.insert_pos == len(f"call bob {keyword}:")

    def test_complete_date_offers_time(self):
        context = detect("due:2025-03-14")
        assert context.kind == CompletionKind.TIME
        assert context.insert_pos == len("due:2025-03-14")
        assert context.field == "due"

    def test_partial_date_offers_nothing(self):
        assert detect("due:2025-03") is None

    def test_keyword_inside_word(self):
        assert detect("overdue:") is None

    def test_plain_text(self):
        assert detect("buy milk") is None
        assert detect("") is None

    def test_cursor_clamped(self):
        assert detect_completion("due:", 99).kind == CompletionKind.DATE
