import asyncio
import logging
import math
import os
import sys
from argparse import ArgumentParser
from dataclasses import dataclass
from pathlib import Path
from typing import Any

VERBOSE = False


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import numpy as np

# Imports for output
import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont
import imageio
import httpx

from julia_tiles import (
    DEFAULT_ENDPOINT,
    DEFAULT_TIMEOUT,
    TILE_SIZE,
    RenderConfig,
    RenderRequest,
    RenderSession,
    Surface,
    TileResult,
)

ENDPOINT_ENV = "JULIA_TILES_ENDPOINT"


@dataclass
class OutputConfig:
    image_path: Path | None
    gif_path: Path | None
    image_format: str
    show_bounds: bool


def build_parser():
    parser = ArgumentParser(description="Render a Julia set tile by tile from a remote compute service.")

    parser.add_argument('--endpoint', type=str,
                        dest='endpoint', help='URL of the compute service (default: $%s or %s)' % (ENDPOINT_ENV, DEFAULT_ENDPOINT),
                        metavar='URL', default=os.environ.get(ENDPOINT_ENV, DEFAULT_ENDPOINT))

    parser.add_argument('--min-x', type=float,
                        dest='min_x', help='left edge of the window in the complex plane',
                        metavar='MIN_X', default=-2.0)

    parser.add_argument('--max-x', type=float,
                        dest='max_x', help='right edge of the window in the complex plane',
                        metavar='MAX_X', default=2.0)

    parser.add_argument('--min-y', type=float,
                        dest='min_y', help='top edge of the window in the complex plane',
                        metavar='MIN_Y', default=-1.5)

    parser.add_argument('--max-y', type=float,
                        dest='max_y', help='bottom edge of the window in the complex plane',
                        metavar='MAX_Y', default=1.5)

    parser.add_argument('--c-real', type=float,
                        dest='c_real', help='real part of the Julia constant',
                        metavar='C_REAL', default=-0.7)

    parser.add_argument('--c-imag', type=float,
                        dest='c_imag', help='imaginary part of the Julia constant',
                        metavar='C_IMAG', default=0.27015)

    parser.add_argument('--width', type=int,
                        dest='width', help='width of the output surface in pixels',
                        metavar='WIDTH', default=1024)

    parser.add_argument('--height', type=int,
                        dest='height', help='height of the output surface in pixels',
                        metavar='HEIGHT', default=768)

    parser.add_argument('--tile-size', type=int,
                        dest='tile_size', help='edge length of each requested tile',
                        metavar='TILE_SIZE', default=TILE_SIZE)

    parser.add_argument('--max-concurrency', type=int, default=None,
                        help='Maximum number of tile requests in flight. Unlimited when omitted.')

    parser.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT,
                        help='Per-request timeout in seconds. Use 0 to wait indefinitely.')

    parser.add_argument('--max-iterations', type=int, default=None,
                        help='Iteration cap forwarded to the compute service (1-10000).')

    parser.add_argument('--colormap', type=str,
                        dest='colormap', help='matplotlib colormap used instead of the HSV hue wheel (e.g. "twilight")',
                        metavar='COLORMAP', default=None)

    parser.add_argument('--output', dest='output', type=str, default='julia.png',
                        help='Destination of the composited image.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for the image output. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--progress-gif', dest='progress_gif', type=str, default=None,
                        help='Record one GIF frame per settled tile at this path.')

    parser.add_argument('--show-bounds', help='overlay the domain bounds and Julia constant on the image',
                        dest='show_bounds', action='store_true')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including every tile request.')

    return parser


def build_config(opt) -> RenderConfig:
    timeout = opt.timeout if opt.timeout and opt.timeout > 0 else None
    return RenderConfig(
        endpoint=opt.endpoint,
        tile_size=opt.tile_size,
        max_concurrency=opt.max_concurrency,
        timeout=timeout,
        max_iterations=opt.max_iterations,
        colormap=opt.colormap,
    )


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    output_path = Path(opt.output).expanduser()
    if str(opt.output).endswith(tuple(filter(None, {os.sep, os.altsep}))):
        parser.error("--output must be a file path.")
    if output_path.exists() and output_path.is_dir():
        parser.error("--output must point to a file, not a directory.")
    expected_suffix = f".{image_format}"
    if output_path.suffix:
        if output_path.suffix.lower() != expected_suffix.lower():
            parser.error(f"--output extension {output_path.suffix} does not match --format {image_format}.")
    else:
        output_path = output_path.with_suffix(expected_suffix)

    gif_path: Path | None = None
    if opt.progress_gif:
        gif_path = Path(opt.progress_gif).expanduser()
        if gif_path.suffix:
            if gif_path.suffix.lower() != ".gif":
                parser.error("--progress-gif must end with .gif.")
        else:
            gif_path = gif_path.with_suffix(".gif")
        gif_path = gif_path.resolve()

    return OutputConfig(
        image_path=output_path.resolve(),
        gif_path=gif_path,
        image_format=image_format,
        show_bounds=bool(opt.show_bounds),
    )


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write ``image`` to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    if pil_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
)


def _load_font(image: PIL.Image.Image) -> PIL.ImageFont.ImageFont:
    size = max(12, int(round(max(min(image.size), 1) * 0.028)))
    for path in _FONT_CANDIDATES:
        if Path(path).exists():
            try:
                return PIL.ImageFont.truetype(path, size)
            except OSError:
                continue
    return PIL.ImageFont.load_default()


def annotate_with_bounds(image: PIL.Image.Image, request: RenderRequest) -> PIL.Image.Image:
    """Overlay the rendered window and the Julia constant on ``image``."""

    image = image.convert("RGBA")
    font = _load_font(image)
    text = "\n".join([
        f"X: [{request.min_x:.6g}, {request.max_x:.6g}]",
        f"Y: [{request.min_y:.6g}, {request.max_y:.6g}]",
        f"c: {request.c_real:.6g} {'-' if request.c_imag < 0 else '+'} {abs(request.c_imag):.6g}i",
    ])

    overlay = PIL.Image.new("RGBA", image.size, (0, 0, 0, 0))
    draw = PIL.ImageDraw.Draw(overlay)
    spacing = max(4, getattr(font, "size", 12) // 3)
    left, top, right, bottom = draw.multiline_textbbox((0, 0), text, font=font, spacing=spacing)
    padding = max(8, getattr(font, "size", 12) // 2)
    box = (12, 12, 12 + (right - left) + padding * 2, 12 + (bottom - top) + padding * 2)

    draw.rounded_rectangle(box, radius=padding, fill=(14, 18, 34, 190), outline=(255, 255, 255, 45))
    origin = (box[0] + padding - left, box[1] + padding - top)
    draw.multiline_text((origin[0] + 1, origin[1] + 1), text, font=font, fill=(0, 0, 0, 170), spacing=spacing)
    draw.multiline_text(origin, text, font=font, fill=(240, 244, 255, 255), spacing=spacing)

    return PIL.Image.alpha_composite(image, overlay)


@dataclass
class OutputWriters:
    config: OutputConfig
    surface: Surface
    total_tiles: int = 0

    def __post_init__(self) -> None:
        self._settled = 0
        self._gif_writer: Any = None
        if self.config.gif_path is not None:
            self.config.gif_path.parent.mkdir(parents=True, exist_ok=True)
            self._gif_writer = imageio.get_writer(str(self.config.gif_path), mode='I', duration=0.1, loop=0)

    def record_tile(self, result: TileResult) -> None:
        self._settled += 1
        status = "ok" if result.ok else "failed"
        log("tile ({0}, {1}) {2}".format(result.tile.col, result.tile.row, status))
        print("tile {0} out of {1}".format(self._settled, self.total_tiles), end='\r')
        if self._gif_writer is not None:
            self._gif_writer.append_data(np.asarray(self.surface.image.convert("RGB")))

    def finalize(self, request: RenderRequest) -> None:
        image = self.surface.image
        if self.config.show_bounds:
            image = annotate_with_bounds(image, request)
        if self.config.image_path is not None:
            write_single_image(image, self.config.image_path, self.config.image_format)
            log("wrote %s" % self.config.image_path)

    def close(self) -> None:
        if self._gif_writer is not None:
            self._gif_writer.close()
            self._gif_writer = None


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv=None, *, client: httpx.AsyncClient | None = None) -> int:
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)
    configure_logging(VERBOSE)

    try:
        config = build_config(opt)
        surface = Surface(opt.width, opt.height)
    except ValueError as exc:
        parser.error(str(exc))
    output_config = resolve_output_config(opt, parser)

    errors: list[str] = []
    writers = OutputWriters(output_config, surface)
    writers.total_tiles = math.ceil(opt.width / opt.tile_size) * math.ceil(opt.height / opt.tile_size)
    session = RenderSession(surface, config, client=client, on_tile=writers.record_tile, on_error=errors.append)

    log("rendering %dx%d from %s" % (opt.width, opt.height, config.endpoint))
    try:
        outcome = asyncio.run(
            session.render(opt.min_x, opt.max_x, opt.min_y, opt.max_y, opt.c_real, opt.c_imag)
        )
    finally:
        writers.close()

    if outcome.request is not None:
        print()
        writers.finalize(outcome.request)
        if len(outcome.failures) > 1:
            log("%d tiles failed" % len(outcome.failures))

    if errors:
        print("Error: %s" % errors[0], file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
