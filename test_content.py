import asyncio

import httpx
import pytest

from sumo_shorts.content import extract_text, fetch_content, is_url
from sumo_shorts.errors import ContentFetchError
from sumo_shorts.reading_lookup import LookupChain, SumoAssociationLookup, parse_reading

ARTICLE = """
<html><head><title>ニュース</title><script>var x = 1;</script></head>
<body>
  <nav>メニュー</nav>
  <article><h1>大相撲初場所</h1>
    <p>横綱が  初日から
    白星。</p></article>
</body></html>
"""


def test_is_url():
    assert is_url("https://www.sumo.or.jp/")
    assert not is_url("大相撲のニュース")


def test_extract_text_prefers_article_and_collapses_whitespace():
    assert extract_text(ARTICLE) == "大相撲初場所 横綱が 初日から 白星。"


def test_extract_text_falls_back_to_body_and_truncates():
    html = "<html><body><div>" + "あ" * 50 + "</div><style>p{}</style></body></html>"
    assert extract_text(html, max_chars=10) == "あ" * 10


def test_plain_text_passes_through():
    assert asyncio.run(fetch_content("横綱が優勝しました")) == "横綱が優勝しました"


def test_fetch_url_content():
    def handler(request):
        assert "Mozilla" in request.headers["user-agent"]
        return httpx.Response(200, html=ARTICLE)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_content("https://news.example/sumo", client=client)

    assert asyncio.run(go()).startswith("大相撲初場所")


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="oops"),
    httpx.Response(200, html="<html><body>   </body></html>"),
])
def test_fetch_url_failures(response):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: response)) as client:
            return await fetch_content("https://news.example/sumo", client=client)

    with pytest.raises(ContentFetchError):
        asyncio.run(go())


def test_parse_reading_selectors_and_title():
    assert parse_reading('<div><span class="shikona-kana"> ほうしょうりゅう </span></div>') == "ほうしょうりゅう"
    assert parse_reading("<ruby>豊昇龍<rt>ほうしょうりゅう</rt></ruby>") == "ほうしょうりゅう"
    assert parse_reading("<html><head><title>豊昇龍（ほうしょうりゅう）</title></head></html>") == "ほうしょうりゅう"
    assert parse_reading("<html><body>no reading</body></html>") is None


def test_association_lookup_tries_each_query_shape():
    tried = []

    def handler(request):
        param = next(iter(request.url.params.keys()))
        tried.append(param)
        if param == "shikona":
            return httpx.Response(404)
        if param == "q":
            return httpx.Response(200, html="<p>no match</p>")
        return httpx.Response(200, html='<span class="furigana">あおにしき</span>')

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await SumoAssociationLookup(client=client).lookup("安青錦")

    assert asyncio.run(go()) == "あおにしき"
    assert tried == ["shikona", "q", "name"]


class Broken:
    name = "broken"

    async def lookup(self, term):
        raise RuntimeError("site down")


class Fixed:
    def __init__(self, name, reading):
        self.name = name
        self.reading = reading

    async def lookup(self, term):
        return self.reading


def test_lookup_chain_first_reading_wins_and_failures_are_skipped():
    chain = LookupChain([Broken(), Fixed("empty", None), Fixed("a", "よみ"), Fixed("b", "ちがう")])
    assert asyncio.run(chain.resolve("語")) == "よみ"
    assert asyncio.run(LookupChain([Broken()]).resolve("語")) is None
