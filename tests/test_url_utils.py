from utils import make_pretty_url, page_id_for_url, strip_query_and_fragment


def test_strip_query_and_fragment():
    assert strip_query_and_fragment("https://app.com/checkout?step=2#summary") == "https://app.com/checkout"
    assert strip_query_and_fragment("/settings#profile") == "/settings"
    assert strip_query_and_fragment("") == ""


def test_page_id_ignores_query_and_fragment():
    assert page_id_for_url("/pricing?ref=ad") == page_id_for_url("/pricing#plans") == page_id_for_url("/pricing")


def test_page_id_keeps_similar_urls_apart():
    assert page_id_for_url("/a-b") != page_id_for_url("/a_b")
    assert page_id_for_url("/a/b") != page_id_for_url("/a-b")


def test_page_id_shape():
    page_id = page_id_for_url("https://app.com/")
    assert page_id.startswith("page_")
    assert len(page_id) == len("page_") + 32


def test_make_pretty_url():
    assert make_pretty_url("/") == "home"
    assert make_pretty_url("https://app.com/") == "home"
    assert make_pretty_url("https://app.com/reports/") == "reports"
    assert make_pretty_url("/budget#top") == "budget"
    assert make_pretty_url(None) == ""
