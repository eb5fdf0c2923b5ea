import base64

from folio import images as images_util

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


def test_captions_are_collected_in_order() -> None:
    html = "<p>[Illustration: The <i>Pequod</i>]</p><p>[Illustration]</p><p>[Illustration: Ahab]</p>"
    assert images_util.extract_illustration_captions(html) == ["The Pequod", "Ahab"]


def test_base64_images_become_placeholders() -> None:
    html = f'<p><img src="data:image/png;base64,{PNG_B64}" alt=""/></p>'
    result, images = images_util.extract_base64_images(html, prefix="ch3")
    assert result == '<p><img src="__BASE64_IMAGE_0__" alt=""/></p>'
    assert len(images) == 1
    assert images[0].data == PNG_BYTES
    assert images[0].media_type == "image/png"
    assert images[0].filename == "ch3-inline-0.png"


def test_jpeg_subtype_maps_to_jpg_extension() -> None:
    html = f'<img src="data:image/jpeg;base64,{PNG_B64}">'
    _result, images = images_util.extract_base64_images(html)
    assert images[0].filename == "inline-0.jpg"


def test_undecodable_payload_is_left_in_place() -> None:
    html = '<img src="data:image/png;base64,@@@">'
    result, images = images_util.extract_base64_images(html)
    assert result == html
    assert images == []


def test_placeholders_are_replaced_with_urls() -> None:
    html = '<img src="__BASE64_IMAGE_0__"><img src="__BASE64_IMAGE_1__">'
    result = images_util.replace_base64_placeholders(html, {0: "https://cdn/a.png"})
    assert result == '<img src="https://cdn/a.png"><img src="__BASE64_IMAGE_1__">'


def test_image_map_covers_prefixed_and_decoded_forms() -> None:
    mapping = images_util.build_image_map([("images/my%20pic.png", "https://cdn/p.png")])
    assert mapping["images/my%20pic.png"] == "https://cdn/p.png"
    assert mapping["images/my pic.png"] == "https://cdn/p.png"
    assert mapping["/images/images/my pic.png"] == "https://cdn/p.png"


def test_resolve_image_url_strips_query_and_matches_on_path_boundary() -> None:
    mapping = images_util.build_image_map(
        [("images/a.png", "https://cdn/a.png"), ("images/banana.png", "https://cdn/b.png")]
    )
    assert images_util.resolve_image_url("/images/images/a.png?v=2", mapping) == "https://cdn/a.png"
    assert images_util.resolve_image_url("../OEBPS/images/banana.png", mapping) == "https://cdn/b.png"
    assert images_util.resolve_image_url("images/na.png", mapping) is None


def test_rewrite_image_paths_sets_urls_and_caption_alt() -> None:
    mapping = images_util.build_image_map([("images/a.png", "https://cdn/a.png")])
    html = '<p><img src="/images/images/a.png"/></p><p><img src="/images/images/a.png" alt="Kept"/></p>'
    result = images_util.rewrite_image_paths(html, mapping, captions=["The whale"])
    assert result == (
        '<p><img src="https://cdn/a.png" alt="The whale" /></p>'
        '<p><img src="https://cdn/a.png" alt="Kept"/></p>'
    )


def test_rewrite_image_paths_handles_svg_image_href() -> None:
    mapping = images_util.build_image_map([("cover.jpg", "https://cdn/cover.jpg")])
    html = '<svg><image xlink:href="/images/cover.jpg" width="10"></image></svg>'
    result = images_util.rewrite_image_paths(html, mapping)
    assert 'xlink:href="https://cdn/cover.jpg"' in result


def test_unknown_images_are_left_alone() -> None:
    html = '<img src="elsewhere.png" alt="x">'
    assert images_util.rewrite_image_paths(html, {}) == html


def test_image_filename_is_sanitized() -> None:
    assert images_util.image_filename("OEBPS/images/My Pic (1).png") == "My_Pic__1_.png"
    assert images_util.image_filename("") == "image.bin"
