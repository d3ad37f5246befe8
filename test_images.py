import asyncio
import base64
import io
import os

import httpx
import pytest
from PIL import Image

from conftest import png_bytes
from sumo_shorts import gemini_client
from sumo_shorts.errors import ImageSynthesisError
from sumo_shorts.image_prompts import (
    build_image_prompt,
    extract_characters,
    extract_key_phrase,
    extract_location,
)
from sumo_shorts.images import generate_images, to_png
from sumo_shorts.models import Scenario, Scene


def test_to_png_flattens_transparency_onto_white():
    out = to_png(png_bytes(mode="RGBA", color=(0, 0, 0, 0)))
    with Image.open(io.BytesIO(out)) as img:
        assert img.format == "PNG"
        assert img.mode == "RGB"
        assert img.getpixel((0, 0)) == (255, 255, 255)


def test_to_png_converts_jpeg():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (10, 20, 30)).save(buf, format="JPEG")
    with Image.open(io.BytesIO(to_png(buf.getvalue()))) as img:
        assert img.format == "PNG"


def test_payload_carries_reference_and_portrait_config():
    payload = gemini_client.build_payload("a prompt", b"\x89PNG")
    parts = payload["contents"][0]["parts"]
    assert parts[0]["text"].endswith("a prompt")
    assert parts[1]["inline_data"] == {"mime_type": "image/png", "data": base64.b64encode(b"\x89PNG").decode()}
    assert payload["generationConfig"]["responseModalities"] == ["IMAGE"]
    assert payload["generationConfig"]["imageConfig"]["aspectRatio"] == "9:16"


def test_extract_image_finds_first_image_part():
    body = {"candidates": [{"content": {"parts": [
        {"text": "here you go"},
        {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(b"jpg").decode()}},
    ]}}]}
    assert gemini_client.extract_image(body) == (b"jpg", "image/jpeg")
    with pytest.raises(RuntimeError):
        gemini_client.extract_image({"candidates": [{"content": {"parts": [{"text": "refused"}]}}]})
    with pytest.raises(RuntimeError):
        gemini_client.extract_image({})


def test_generate_image_request():
    def handler(request):
        assert request.headers["x-goog-api-key"] == "g-key"
        assert request.url.path.endswith(":generateContent")
        data = base64.b64encode(b"img").decode()
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": data}}]}}]})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await gemini_client.generate_image("p", b"ref", api_key="g-key", client=client)

    assert asyncio.run(go()) == (b"img", "image/png")


def test_generate_image_http_error():
    async def go():
        transport = httpx.MockTransport(lambda r: httpx.Response(429, json={"error": "quota"}))
        async with httpx.AsyncClient(transport=transport) as client:
            return await gemini_client.generate_image("p", b"ref", api_key="g-key", client=client)

    with pytest.raises(RuntimeError, match="429"):
        asyncio.run(go())


def scenario(n=3):
    return Scenario(title="t", scenes=[Scene(text=f"場面{i}の話", imagePrompt=f"direction {i}") for i in range(n)])


def test_generate_images_in_scene_order(tmp_path, reference_png):
    prompts = []

    async def generator(prompt, reference):
        assert Image.open(io.BytesIO(reference)).format == "PNG"
        prompts.append(prompt)
        return png_bytes(mode="RGBA", color=(1, 2, 3, 255)), "image/png"

    progress = []

    async def on_scene(done, total):
        progress.append((done, total))

    paths = asyncio.run(generate_images(scenario(), str(tmp_path), reference_png, generator=generator, on_scene=on_scene))
    assert [os.path.basename(p) for p in paths] == ["scene_0.png", "scene_1.png", "scene_2.png"]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert "direction 1" in prompts[1]
    with Image.open(paths[0]) as img:
        assert img.mode == "RGB"


def test_generate_images_stops_at_first_failure(tmp_path, reference_png):
    calls = []

    async def generator(prompt, reference):
        calls.append(prompt)
        if len(calls) == 2:
            raise RuntimeError("safety block")
        return png_bytes(), "image/png"

    with pytest.raises(ImageSynthesisError, match="scene 2"):
        asyncio.run(generate_images(scenario(), str(tmp_path), reference_png, generator=generator))
    assert len(calls) == 2
    assert not os.path.exists(tmp_path / "scene_1.png")


def test_missing_reference_image(tmp_path):
    async def generator(prompt, reference):
        raise AssertionError("should not be called")

    with pytest.raises(ImageSynthesisError):
        asyncio.run(generate_images(scenario(), str(tmp_path), str(tmp_path / "none.png"), generator=generator))


def test_key_phrase():
    assert extract_key_phrase("横綱が優勝") == "横綱が優勝"
    assert extract_key_phrase("新大関が誕生しました。これからの活躍に期待が集まっています。") == "新大関が誕生しました"
    long_text = "あ" * 30
    assert extract_key_phrase(long_text) == "あ" * 15 + "…"


def test_characters_and_location():
    assert extract_characters("横綱、大関、関脇、小結") == ["横綱", "大関", "関脇"]
    assert extract_characters("今日は晴れ") == ["力士"]
    assert extract_location("両国国技館で開幕") == "両国国技館"
    assert extract_location("稽古に励む") == "稽古場"
    assert extract_location("ニュース") == "相撲の会場"


def test_build_image_prompt():
    prompt = build_image_prompt("横綱が優勝した", 0, "trophy close-up")
    assert "Scene 1" in prompt
    assert "「横綱が優勝した」" in prompt
    assert "優勝杯" in prompt
    assert prompt.endswith("Scene direction: trophy close-up")
    # Concepts rotate with the scene index
    assert "重要ポイントを指差し確認している" in build_image_prompt("話", 1)
    assert "視聴者に語りかけている" in build_image_prompt("話", 5)
