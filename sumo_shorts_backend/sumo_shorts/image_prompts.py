"""Builds hand-drawn style illustration prompts from scene narration."""
import re
from dataclasses import dataclass, field
from typing import List

# Rotated by scene index: (action, emotion, keyword)
SCENE_CONCEPTS = [
    ("視聴者に語りかけている", "楽しげな、笑顔の", "はじまり"),
    ("重要ポイントを指差し確認している", "真剣な、集中した", "ポイント"),
    ("驚いた表情で両手を挙げている", "驚いた、興味深い", "注目"),
    ("考え込んでいる様子で首をかしげている", "思慮深い、考え中の", "考察"),
    ("喜びの表情で拳を上げている", "嬉しい、満足した", "まとめ"),
]

RANK_PATTERNS = [re.compile(p + r"[^\s、。！？]*") for p in ("横綱", "大関", "関脇", "小結", "前頭", "力士")]
NAME_PATTERN = re.compile(r"[一-龯]{3,4}(?=が|は|も|と|の|、)")

# First keyword found decides the location
LOCATIONS = [
    ("国技館", "両国国技館"),
    ("土俵", "大相撲の土俵"),
    ("稽古", "稽古場"),
    ("場所", "本場所の会場"),
    ("巡業", "巡業先"),
    ("部屋", "相撲部屋"),
]
DEFAULT_LOCATION = "相撲の会場"

LOCATION_FEATURES = {
    "両国国技館": "吊り屋根、満員の観客席（簡略化）、土俵",
    "大相撲の土俵": "円形の土俵、俵、四隅の房（青・赤・白・黒）",
    "稽古場": "シンプルな土俵、タオル、水桶",
    "本場所の会場": "土俵、観客席の雰囲気、幕",
    "巡業先": "地方の会場、観客との距離が近い雰囲気",
    "相撲部屋": "稽古場、神棚、土俵",
}

VISUAL_ELEMENTS = [
    ("稽古", "稽古道具や汗のエフェクト"),
    ("取組", "土俵の俵や行司の軍配"),
    ("優勝", "優勝杯やトロフィー、紙吹雪"),
    ("表彰", "賞状や花束"),
    ("勝", "上昇する矢印や星マーク"),
    ("番", "数字カウンターや対戦表"),
]
DEFAULT_ELEMENT = "相撲に関連する手描きのアイコン"

PROMPT_TEMPLATE = """# Hand-Drawn Vertical Video Asset - Scene {number}

## Global Style
- Art Style: グラフィックレコーディング / 手描きのスケッチ / 絵本風イラスト
- Texture: 紙に描いたマーカーペン、クレヨン、色鉛筆の温かい質感
- Background: きれいな白、クリーム色、または薄い紙のテクスチャ背景
- Aspect Ratio: **9:16 (縦長・縦型)**

## Character Reference & Layout
- Base Character: the sumo wrestler in the reference image; every character keeps that design
- Character Count: {count} sumo wrestlers
- Labels: {labels}

## Scene Content
「{text}」というシーンを手書き風イラストで表現する。
キャラクターは{action}。表情は{emotion}。

### Background & Location
「{location}」を手書き風の背景として描く。特徴: {features}。雰囲気: {atmosphere}

### Supporting Visual Elements
{elements}

### Text Elements (Japanese, part of the illustration)
- Main Text (画面上部20%): "{key_phrase}" 手描きの太字、蛍光ペン風の強調背景
- Supporting Labels: {keyword}、{labels}
- Bottom Note: 「{location}」

Generate a warm, hand-drawn illustration with the Japanese text "{key_phrase}" clearly readable at the top."""


@dataclass
class SceneAnalysis:
    characters: List[str] = field(default_factory=list)
    location: str = DEFAULT_LOCATION
    elements: List[str] = field(default_factory=list)
    action: str = ""
    emotion: str = ""
    keyword: str = ""


def extract_key_phrase(text: str) -> str:
    clean = re.sub(r"\s+", "", text)
    if len(clean) <= 20:
        return clean
    first_sentence = re.split(r"[。！？]", text)[0].strip()
    if len(first_sentence) <= 20:
        return first_sentence
    return clean[:15] + "…"


def extract_characters(text: str) -> List[str]:
    found: List[str] = []
    for pattern in RANK_PATTERNS:
        found.extend(pattern.findall(text))
    found.extend(NAME_PATTERN.findall(text)[:2])
    unique = list(dict.fromkeys(found))[:3]
    return unique or ["力士"]


def extract_location(text: str) -> str:
    for keyword, location in LOCATIONS:
        if keyword in text:
            return location
    return DEFAULT_LOCATION


def extract_elements(text: str) -> List[str]:
    elements = [element for keyword, element in VISUAL_ELEMENTS if keyword in text]
    return elements or [DEFAULT_ELEMENT]


def analyze_scene(text: str, index: int) -> SceneAnalysis:
    action, emotion, keyword = SCENE_CONCEPTS[index % len(SCENE_CONCEPTS)]
    return SceneAnalysis(
        characters=extract_characters(text),
        location=extract_location(text),
        elements=extract_elements(text),
        action=action,
        emotion=emotion,
        keyword=keyword,
    )


def build_image_prompt(text: str, index: int, image_prompt: str = "") -> str:
    analysis = analyze_scene(text, index)
    prompt = PROMPT_TEMPLATE.format(
        number=index + 1,
        count=len(analysis.characters),
        labels="、".join(analysis.characters),
        text=text,
        action=analysis.action,
        emotion=analysis.emotion,
        location=analysis.location,
        features=LOCATION_FEATURES.get(analysis.location, "相撲らしい雰囲気の背景"),
        atmosphere="熱気溢れる" if ("熱戦" in text or "激" in text) else "落ち着いた",
        elements="、".join(analysis.elements),
        key_phrase=extract_key_phrase(text),
        keyword=analysis.keyword,
    )
    # The scenario's own image direction, when given, is appended verbatim
    if image_prompt:
        prompt += f"\n\nScene direction: {image_prompt}"
    return prompt
