import pytest

from framegen.errors import ParseError
from framegen.pipeline.envelope import (
    cap_frame_height,
    extract_size,
    parse_html_with_size,
    strip_fences,
    substitute_images,
)

from .conftest import TINY_PNG


def test_fenced_output_with_size_sentinel():
    result = parse_html_with_size("```html\n<!--size:400x300-->\n<div>X</div>\n```")
    assert result.html == "<div>X</div>"
    assert result.width == 400
    assert result.height == 300


def test_untagged_fence_is_stripped():
    assert strip_fences("```\n<div>A</div>\n```") == "<div>A</div>"


def test_prose_around_fenced_block():
    raw = "Here is your design:\n```html\n<section>Hi</section>\n```\nEnjoy!"
    assert parse_html_with_size(raw).html == "<section>Hi</section>"


def test_missing_sentinel_means_unspecified_size():
    result = parse_html_with_size("<div>plain</div>")
    assert result.width is None
    assert result.height is None


def test_clean_html_is_unchanged_except_whitespace():
    html = "<style>.a{color:red}</style>\n<div class=\"a\">\n  <p>Hello</p>\n</div>"
    assert parse_html_with_size(f"\n\n  {html}  \n").html == html


def test_fenced_snippet_inside_markup_is_kept():
    html = '<div class="docs"><h2>Install</h2><pre>```bash\npip install acme\n```</pre><p>Done</p></div>'
    assert parse_html_with_size(html).html == html


def test_fence_inside_pre_after_inline_markup_is_kept():
    html = "<p>Usage</p><pre>```html\n&lt;div&gt;&lt;/div&gt;\n```</pre><div>end</div>"
    assert strip_fences(html) == html


def test_preamble_and_trailing_prose_trimmed():
    raw = "Sure! Here's the design.\n<main><div>Body</div></main>\nLet me know if you want changes."
    assert parse_html_with_size(raw).html == "<main><div>Body</div></main>"


def test_sentinel_removed_from_body():
    body, width, height = extract_size("<!--size:1200x800-->\n<div>x</div>")
    assert body == "<div>x</div>"
    assert (width, height) == (1200, 800)


def test_zero_size_sentinel_treated_as_unspecified():
    body, width, height = extract_size("<!--size:0x800-->\n<div>x</div>")
    assert body == "<div>x</div>"
    assert width is None and height is None


def test_output_without_markup_raises_parse_error():
    with pytest.raises(ParseError):
        parse_html_with_size("I'm sorry, I can't help with that.")


def test_substitute_images_numbers_in_order():
    html = (
        f'<img src="data:image/png;base64,{TINY_PNG}">'
        '<img src="https://example.com/a.png">'
        '<img src="data:image/jpeg;base64,/9j/4AAQSkZJRg==">'
    )
    stripped, restore = substitute_images(html)
    assert 'src="[IMAGE_PLACEHOLDER_0]"' in stripped
    assert 'src="[IMAGE_PLACEHOLDER_1]"' in stripped
    assert "https://example.com/a.png" in stripped
    assert "base64" not in stripped
    assert restore(stripped) == html


def test_restore_survives_model_rewrites():
    html = f'<div><img src="data:image/png;base64,{TINY_PNG}" alt="a"></div>'
    stripped, restore = substitute_images(html)
    rewritten = f'<section class="new"><p>moved</p>{stripped.replace("<div>", "").replace("</div>", "")}</section>'
    restored = restore(rewritten)
    assert f"data:image/png;base64,{TINY_PNG}" in restored
    assert restored.startswith('<section class="new">')


def test_restore_leaves_unknown_tokens():
    _, restore = substitute_images("<div>no images</div>")
    assert restore('<img src="[IMAGE_PLACEHOLDER_3]">') == '<img src="[IMAGE_PLACEHOLDER_3]">'


def test_cap_oversized_px_height():
    html = '<div style="width:400px;height:1200px;background:red">x</div>'
    assert cap_frame_height(html) == '<div style="width:400px;max-height:800px; overflow:hidden;background:red">x</div>'


def test_cap_viewport_height():
    html = '<section style="min-height: 100vh; padding: 20px">x</section>'
    capped = cap_frame_height(html)
    assert "100vh" not in capped
    assert "min-height:auto; max-height:800px; overflow:hidden" in capped


def test_cap_leaves_small_heights_and_other_properties():
    html = '<div style="height:600px;line-height:1200px;max-height:900px">x</div>'
    assert cap_frame_height(html) == html


def test_cap_ignores_style_blocks():
    html = "<style>body{height:100vh}</style><div>x</div>"
    assert cap_frame_height(html) == html
