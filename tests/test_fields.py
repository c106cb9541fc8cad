"""tests for section tokenization."""

from bs4 import BeautifulSoup
from builders import attachments, field

from metarecord.core.fields import (
    Field,
    MediaRef,
    is_linked_media,
    node_text,
    normalize_label,
    split_inline,
    tokenize,
    tokenize_lines,
)


def _root(markup: str):
    soup = BeautifulSoup(f"<div id='root'>{markup}</div>", "html.parser")
    return soup.find(id="root")


def test_normalize_label() -> None:
    """labels are whitespace-collapsed, colon-stripped and canonically cased."""
    assert normalize_label(" Current \n Participants: ") == "Current Participants"
    assert normalize_label("sent") == "Sent"
    assert normalize_label("IP") == "Ip Address"
    assert normalize_label("Photo ID") == "Id"
    assert normalize_label("Something Else") == "Something Else"


def test_split_inline_with_colon() -> None:
    """'Label: value' lines split on the first colon."""
    assert split_inline("Sent: 2024-01-01 10:00:00 UTC") == (
        "Sent",
        "2024-01-01 10:00:00 UTC",
    )
    assert split_inline("Body: hi: there") == ("Body", "hi: there")


def test_split_inline_without_colon_checks_value_shape() -> None:
    """inline labels need a value of the expected shape."""
    assert split_inline("Author alice (Instagram: 111)") == (
        "Author",
        "alice (Instagram: 111)",
    )
    assert split_inline("Thread (1234567890123)") == ("Thread", "(1234567890123)")
    assert split_inline("Sent yesterday") is None
    assert split_inline("Thread about cats") is None
    assert split_inline("random text") is None


def test_is_linked_media() -> None:
    """only relative references to media files count."""
    assert is_linked_media("linked_media/a.jpg") is True
    assert is_linked_media("linked_media/12345") is True
    assert is_linked_media("https://example.com/a.jpg") is False
    assert is_linked_media("//cdn.example.com/a.jpg") is False
    assert is_linked_media("page.html") is False
    assert is_linked_media(None) is False


def test_node_text_breaks_lines_and_skips_nested_labels() -> None:
    """node text keeps one line per break and ignores nested labels."""
    root = _root("first<br>second" + field("Author", "hidden"))

    assert node_text(root) == "first\nsecond"


def test_tokenize_nested_fields_carry_depth() -> None:
    """nested labels get increasing depth."""
    root = _root(field("Share", children=field("Url", "https://example.com")))

    tokens = tokenize(root)

    assert [(t.label, t.value, t.depth) for t in tokens if isinstance(t, Field)] == [
        ("Share", "", 0),
        ("Url", "https://example.com", 1),
    ]


def test_tokenize_emits_media_references_in_order() -> None:
    """media elements become references at their label depth."""
    root = _root(
        field("Author", "alice (Instagram: 111)") + attachments("linked_media/a.jpg")
    )

    tokens = tokenize(root)

    assert isinstance(tokens[0], Field) and tokens[0].label == "Author"
    assert isinstance(tokens[1], Field) and tokens[1].label == "Attachments"
    assert isinstance(tokens[2], MediaRef)
    assert tokens[2].src == "linked_media/a.jpg"
    assert tokens[2].depth == 1


def test_tokenize_video_with_source_is_one_reference() -> None:
    """a video src and its source child count once."""
    root = _root(
        '<video src="linked_media/v.mp4"><source src="linked_media/v.mp4"></video>'
    )

    refs = [t for t in tokenize(root) if isinstance(t, MediaRef)]

    assert len(refs) == 1
    assert refs[0].tag == "video"


def test_tokenize_links_wrapping_images_are_not_duplicated() -> None:
    """an anchor around an image yields only the image."""
    root = _root(
        '<a href="linked_media/a.jpg"><img src="linked_media/a.jpg"></a>'
        '<a href="linked_media/clip.mp4">clip</a>'
        '<a href="https://example.com">site</a>'
    )

    refs = [t for t in tokenize(root) if isinstance(t, MediaRef)]

    assert [(r.tag, r.src) for r in refs] == [
        ("img", "linked_media/a.jpg"),
        ("a", "linked_media/clip.mp4"),
    ]


def test_tokenize_splits_inline_label_text() -> None:
    """labels written as 'Label: value' without a value element are split."""
    root = _root('<div class="t i">Sent: 2024-01-01 10:00:00 UTC</div>')

    tokens = tokenize(root)

    assert len(tokens) == 1
    assert isinstance(tokens[0], Field)
    assert tokens[0].label == "Sent"
    assert tokens[0].value == "2024-01-01 10:00:00 UTC"


def test_tokenize_lines_builds_fields_from_flat_text() -> None:
    """flat layouts open fields at known labels and extend them with other lines."""
    root = _root(
        "<p>Author alice (Instagram: 111)</p><p>Body</p><p>first</p><p>second</p>"
        '<img src="linked_media/a.jpg"><p>Sent: 2024-01-01 10:00:00 UTC</p>'
    )

    tokens = tokenize_lines(root)

    assert isinstance(tokens[0], Field)
    assert (tokens[0].label, tokens[0].value) == ("Author", "alice (Instagram: 111)")
    assert isinstance(tokens[1], Field)
    assert (tokens[1].label, tokens[1].value) == ("Body", "first\nsecond")
    assert isinstance(tokens[2], MediaRef)
    assert isinstance(tokens[3], Field)
    assert (tokens[3].label, tokens[3].value) == ("Sent", "2024-01-01 10:00:00 UTC")


def test_tokenize_lines_recognizes_extra_labels() -> None:
    """extra labels such as section titles open fields too."""
    root = _root("<p>Followers</p><p>bob (Instagram: 222)</p>")

    tokens = tokenize_lines(root, extra_labels=("Followers",))

    assert len(tokens) == 1
    assert isinstance(tokens[0], Field)
    assert tokens[0].label == "Followers"
    assert tokens[0].value == "bob (Instagram: 222)"


def test_tokenize_lines_keeps_label_like_lines_in_body() -> None:
    """body lines shaped like other labels extend the body."""
    root = _root(
        "<p>Body</p><p>Time: to go home</p><p>Status: on my way</p>"
        "<p>Location: the station</p><p>Sent 2024-01-01 10:00:00 UTC</p>"
    )

    tokens = tokenize_lines(root)

    assert [t.label for t in tokens if isinstance(t, Field)] == ["Body", "Sent"]
    body = tokens[0]
    assert isinstance(body, Field)
    assert body.value == "Time: to go home\nStatus: on my way\nLocation: the station"


def test_tokenize_lines_label_lines_outside_body_open_fields() -> None:
    """outside a body, label lines still start fields."""
    root = _root("<p>Uuid: abc</p><p>Status: active</p>")

    tokens = tokenize_lines(root)

    assert [(t.label, t.value) for t in tokens if isinstance(t, Field)] == [
        ("Uuid", "abc"),
        ("Status", "active"),
    ]


def test_deeply_nested_markup_is_tokenized() -> None:
    """nesting far beyond the interpreter recursion limit still tokenizes."""
    depth = 3000
    nested = "<div>" * depth + "Uuid: abc" + "</div>" * depth
    labelled = field("Uuid", children="<span>" * depth + "abc" + "</span>" * depth)

    flat_tokens = tokenize_lines(_root(nested))
    label_tokens = tokenize(_root(labelled))

    assert [(t.label, t.value) for t in flat_tokens if isinstance(t, Field)] == [
        ("Uuid", "abc")
    ]
    assert [(t.label, t.value) for t in label_tokens if isinstance(t, Field)] == [
        ("Uuid", "abc")
    ]
