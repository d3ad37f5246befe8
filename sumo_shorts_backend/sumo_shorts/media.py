import os, subprocess, shlex, logging
from typing import List
from .settings import BGM_VOLUME, VIDEO_WIDTH, VIDEO_HEIGHT, FPS

logger = logging.getLogger(__name__)

def write_bytes(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)

def write_text(path: str, text: str):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)

def ffmpeg_scene_clip(img_path: str, audio_path: str, out_path: str,
                      width: int = VIDEO_WIDTH, height: int = VIDEO_HEIGHT, fps: int = FPS):
    # Still image held for exactly the narration's length, letterboxed to the output frame
    vf = (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:white,setsar=1"
    )
    cmd = (
        f"ffmpeg -y -loop 1 -i {shlex.quote(img_path)} -i {shlex.quote(audio_path)} "
        f"-vf {shlex.quote(vf)} -r {fps} "
        f"-c:v libx264 -c:a aac -shortest -pix_fmt yuv420p {shlex.quote(out_path)}"
    )
    _run(cmd)

def ffmpeg_concat(scene_files: List[str], out_path: str):
    list_path = out_path.replace(".mp4", "_concat.txt")
    with open(list_path, "w") as f:
        for p in scene_files:
            f.write(f"file '{os.path.abspath(p)}'\n")
    cmd = f"ffmpeg -y -f concat -safe 0 -i {shlex.quote(list_path)} -c copy {shlex.quote(out_path)}"
    _run(cmd)

def ffmpeg_mix_bgm(video_path: str, bgm_path: str, out_path: str, volume: float = BGM_VOLUME):
    filter_complex = (
        f"[1:a]volume={volume}[bgm];"
        "[0:a][bgm]amix=inputs=2:duration=first:dropout_transition=0[aout]"
    )
    cmd = (
        f"ffmpeg -y -i {shlex.quote(video_path)} -i {shlex.quote(bgm_path)} "
        f"-filter_complex {shlex.quote(filter_complex)} "
        f"-map 0:v -map {shlex.quote('[aout]')} -c:v copy -c:a aac -shortest {shlex.quote(out_path)}"
    )
    _run(cmd)

def _run(cmd: str):
    logger.info(f"Running FFmpeg command: {cmd}")
    proc = subprocess.run(cmd, shell=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    if proc.returncode != 0:
        error_msg = proc.stderr.decode("utf-8", errors="ignore")
        logger.error(f"FFmpeg command failed with return code {proc.returncode}")
        logger.error(f"Error output: {error_msg}")
        raise RuntimeError(f"FFmpeg failed: {error_msg}")
    else:
        logger.info("FFmpeg command completed successfully")
