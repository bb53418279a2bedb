import pytest

from app.services.tiktok import extract_short_title, normalize_tiktok_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://www.tiktok.com/@chef/video/123?is_from_webapp=1#x", "https://www.tiktok.com/@chef/video/123"),
        ("  www.tiktok.com/@chef/video/123  ", "https://www.tiktok.com/@chef/video/123"),
        ("https://vm.tiktok.com/ZMabc/", "https://vm.tiktok.com/ZMabc/"),
        ("HTTPS://WWW.TIKTOK.COM/@chef/video/1", "https://www.tiktok.com/@chef/video/1"),
        ("https://foo.tiktok.com/x", "https://foo.tiktok.com/x"),
        ("https://www.tiktok.com:443/@chef/video/1", "https://www.tiktok.com/@chef/video/1"),
        ("http://www.tiktok.com:80/@chef/video/1", "http://www.tiktok.com/@chef/video/1"),
        ("https://WWW.TikTok.com:8443/@chef/video/1", "https://www.tiktok.com:8443/@chef/video/1"),
        ("https://User:Pw@www.tiktok.com:443/@chef/video/1", "https://User:Pw@www.tiktok.com/@chef/video/1"),
    ],
)
def test_normalize_accepts_tiktok_links(raw, expected):
    url, err = normalize_tiktok_url(raw)
    assert err is None
    assert url == expected


@pytest.mark.parametrize(
    "raw, message",
    [
        ("", "Enter a TikTok URL"),
        ("   ", "Enter a TikTok URL"),
        (None, "Enter a TikTok URL"),
        ("https://tiktok.com:abc/video", "Enter a valid URL"),
        ("https://www.youtube.com/watch?v=1", "Only TikTok links are supported right now"),
        ("https://nottiktok.com/video/1", "Only TikTok links are supported right now"),
        ("https://www.tiktok.com", "Paste the full TikTok video link"),
        ("https://www.tiktok.com/", "Paste the full TikTok video link"),
    ],
)
def test_normalize_rejects(raw, message):
    url, err = normalize_tiktok_url(raw)
    assert url is None
    assert err == message


def test_short_title_strips_prefix_hashtags_and_emoji():
    caption = "Easy Garlic Butter Salmon 🍋 #dinner #salmon\nIngredients: ..."
    assert extract_short_title(caption, "chef") == "Garlic Butter Salmon"


def test_short_title_truncates_at_natural_break():
    caption = "Creamy tuscan chicken pasta bake, the one-pan dinner my whole family begs me to make every week"
    assert extract_short_title(caption) == "Creamy tuscan chicken pasta bake"


def test_short_title_fallbacks():
    assert extract_short_title("", "chef") == "Recipe by chef"
    assert extract_short_title(None) == "Recipe from TikTok"
    assert extract_short_title("#fyp #food", None) == "Recipe from TikTok"
