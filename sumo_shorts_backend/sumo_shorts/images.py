import io, os, logging
from typing import Awaitable, Callable, List, Optional, Tuple

from PIL import Image

from .errors import ImageSynthesisError
from .gemini_client import generate_image
from .image_prompts import build_image_prompt
from .media import write_bytes
from .models import Scenario

logger = logging.getLogger(__name__)

ImageGenerator = Callable[[str, bytes], Awaitable[Tuple[bytes, str]]]


def to_png(data: bytes) -> bytes:
    """Re-encode any Pillow-readable image as RGB PNG so ffmpeg gets a uniform input."""
    with Image.open(io.BytesIO(data)) as img:
        if img.format == "PNG" and img.mode == "RGB":
            return data
        if img.mode in ("RGBA", "LA"):
            # Flatten transparency onto white
            if img.mode == "LA":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()


async def generate_images(
    scenario: Scenario,
    output_dir: str,
    reference_image_path: str,
    api_key: str = "",
    generator: Optional[ImageGenerator] = None,
    on_scene: Optional[Callable[[int, int], Awaitable[None]]] = None,
) -> List[str]:
    """Generate ``scene_<i>.png`` for every scene, in order.

    Any failure ends the stage with ImageSynthesisError; scenes are not retried.
    """
    try:
        with open(reference_image_path, "rb") as f:
            reference = to_png(f.read())
    except OSError as e:
        raise ImageSynthesisError(f"Reference image not readable: {reference_image_path}") from e

    if generator is None:
        async def generator(prompt: str, ref: bytes) -> Tuple[bytes, str]:
            return await generate_image(prompt, ref, api_key=api_key)

    total = len(scenario.scenes)
    paths: List[str] = []
    for i, scene in enumerate(scenario.scenes):
        logger.info(f"Generating image for scene {i + 1}/{total}: {scene.text[:30]}...")
        prompt = build_image_prompt(scene.text, i, scene.image_prompt)
        try:
            data, mime_type = await generator(prompt, reference)
            png = to_png(data)
        except Exception as e:
            logger.error(f"Image generation failed for scene {i}: {e}")
            raise ImageSynthesisError(f"Image generation failed for scene {i + 1}: {e}") from e
        path = os.path.join(output_dir, f"scene_{i}.png")
        write_bytes(path, png)
        paths.append(path)
        logger.info(f"Saved image to {path} ({len(png) / 1024:.1f}KB, source {mime_type})")
        if on_scene:
            await on_scene(i + 1, total)
    return paths
