import asyncio
import os

import pytest

from sumo_shorts import media, settings
from sumo_shorts.assembler import VideoAssembler, NARRATION_FILENAME, WITH_BGM_FILENAME
from sumo_shorts.errors import AssemblyError, AssetCountMismatchError, BgmMixError


class FakeFFmpeg:
    def __init__(self, fail_mix=False, fail_clip=False):
        self.calls = []
        self.fail_mix = fail_mix
        self.fail_clip = fail_clip

    def scene_clip(self, img, audio, out):
        self.calls.append(("clip", img, audio, out))
        if self.fail_clip:
            raise RuntimeError("FFmpeg failed: bad input")
        open(out, "wb").close()

    def concat(self, chunks, out):
        self.calls.append(("concat", list(chunks), out))
        open(out, "wb").close()

    def mix_bgm(self, video, bgm, out):
        self.calls.append(("mix", video, bgm, out))
        if self.fail_mix:
            raise RuntimeError("FFmpeg failed: no audio stream")
        open(out, "wb").close()

    def assembler(self, output_dir, bgm_path=None):
        return VideoAssembler(output_dir, bgm_path, scene_clip=self.scene_clip, concat=self.concat, mix_bgm=self.mix_bgm)


def test_count_mismatch_raised_before_any_ffmpeg_call(tmp_path):
    ff = FakeFFmpeg()
    asm = ff.assembler(str(tmp_path))
    with pytest.raises(AssetCountMismatchError) as exc:
        asyncio.run(asm.assemble(["a.png", "b.png"], ["a.mp3"]))
    assert (exc.value.image_count, exc.value.audio_count) == (2, 1)
    assert ff.calls == []


def test_chunks_concatenated_in_scene_order(tmp_path):
    ff = FakeFFmpeg()
    asm = ff.assembler(str(tmp_path))
    images = [f"scene_{i}.png" for i in range(3)]
    audio = [f"scene_{i}.mp3" for i in range(3)]
    out = asyncio.run(asm.assemble(images, audio))
    assert out == os.path.join(str(tmp_path), NARRATION_FILENAME)
    clips = [c for c in ff.calls if c[0] == "clip"]
    assert [(c[1], c[2]) for c in clips] == list(zip(images, audio))
    concat = ff.calls[-1]
    assert concat[0] == "concat"
    assert [os.path.basename(p) for p in concat[1]] == ["chunk_0.mp4", "chunk_1.mp4", "chunk_2.mp4"]


def test_ffmpeg_failure_becomes_assembly_error(tmp_path):
    ff = FakeFFmpeg(fail_clip=True)
    with pytest.raises(AssemblyError):
        asyncio.run(ff.assembler(str(tmp_path)).assemble(["a.png"], ["a.mp3"]))


def test_missing_bgm_returns_narration_video(tmp_path):
    ff = FakeFFmpeg()
    asm = ff.assembler(str(tmp_path), bgm_path=str(tmp_path / "nope.mp3"))
    assert asyncio.run(asm.add_background_music("narration.mp4")) == "narration.mp4"
    assert ff.calls == []


def test_bgm_mixed_into_separate_file(tmp_path):
    bgm = tmp_path / "bgm.mp3"
    bgm.write_bytes(b"ID3")
    ff = FakeFFmpeg()
    asm = ff.assembler(str(tmp_path), bgm_path=str(bgm))
    out = asyncio.run(asm.add_background_music("narration.mp4"))
    assert out == os.path.join(str(tmp_path), WITH_BGM_FILENAME)
    assert ff.calls == [("mix", "narration.mp4", str(bgm), out)]


def test_bgm_failure_is_recoverable(tmp_path):
    bgm = tmp_path / "bgm.mp3"
    bgm.write_bytes(b"ID3")
    ff = FakeFFmpeg(fail_mix=True)
    asm = ff.assembler(str(tmp_path), bgm_path=str(bgm))
    with pytest.raises(BgmMixError):
        asyncio.run(asm.add_background_music("narration.mp4"))
    assert asyncio.run(asm.add_background_music_or_fallback("narration.mp4")) == "narration.mp4"


def test_scene_clip_scales_to_output_frame(monkeypatch):
    commands = []
    monkeypatch.setattr(media, "_run", commands.append)
    media.ffmpeg_scene_clip("scene 0.png", "scene_0.mp3", "chunk_0.mp4", width=1080, height=1920, fps=30)
    cmd = commands[0]
    assert "scale=1080:1920:force_original_aspect_ratio=decrease" in cmd
    assert "pad=1080:1920" in cmd
    assert " -r 30 " in cmd
    assert "'scene 0.png'" in cmd


def test_scene_clip_defaults_follow_settings(monkeypatch):
    commands = []
    monkeypatch.setattr(media, "_run", commands.append)
    media.ffmpeg_scene_clip("a.png", "a.mp3", "a.mp4")
    assert f"scale={settings.VIDEO_WIDTH}:{settings.VIDEO_HEIGHT}" in commands[0]
    assert f" -r {settings.FPS} " in commands[0]
