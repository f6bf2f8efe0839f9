from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict

from . import cards, images, layout, pagination


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cardbreak",
        description="Paginate a marked-up document into fixed-size cards.",
    )
    parser.add_argument(
        "--mode",
        choices=("paginate", "split", "strip"),
        default="paginate",
        help=(
            "paginate: re-flow page breaks (default); split: write cards as JSON; "
            "strip: remove all page breaks."
        ),
    )
    parser.add_argument(
        "--input",
        type=Path,
        help="Path to the source document.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Where to write the result (default: standard output).",
    )
    parser.add_argument(
        "--font-size",
        type=float,
        default=layout.DEFAULT_FONT_SIZE,
        help=f"Base font size in pixels (default: {layout.DEFAULT_FONT_SIZE}).",
    )
    parser.add_argument(
        "--line-height",
        type=float,
        default=layout.DEFAULT_LINE_HEIGHT,
        help=f"Line height multiplier (default: {layout.DEFAULT_LINE_HEIGHT}).",
    )
    parser.add_argument(
        "--paragraph-spacing",
        type=float,
        default=layout.DEFAULT_PARAGRAPH_SPACING,
        help=(
            "Space after each paragraph in em "
            f"(default: {layout.DEFAULT_PARAGRAPH_SPACING})."
        ),
    )
    parser.add_argument(
        "--letter-spacing",
        type=float,
        default=layout.DEFAULT_LETTER_SPACING,
        help=f"Letter spacing in em (default: {layout.DEFAULT_LETTER_SPACING}).",
    )
    parser.add_argument(
        "--clamp",
        action="store_true",
        help="Clamp typography to the ranges offered by the editor.",
    )
    parser.add_argument(
        "--images-dir",
        type=Path,
        help="Directory of images named after their [IMG:id] ids.",
    )
    parser.add_argument(
        "--image-manifest",
        type=Path,
        help='JSON file mapping image ids to paths or URLs, e.g. {"a1": "a1.png"}.',
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    return parser.parse_args(argv)


def build_typography(args: argparse.Namespace) -> layout.Typography:
    try:
        typography = layout.Typography(
            font_size=args.font_size,
            line_height=args.line_height,
            paragraph_spacing=args.paragraph_spacing,
            letter_spacing=args.letter_spacing,
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    return typography.clamped() if args.clamp else typography


def gather_image_meta(
    args: argparse.Namespace, text: str
) -> Dict[str, layout.ImageMeta]:
    sources: Dict[str, str] = {}
    base_dir = args.input.parent
    if args.images_dir:
        sources.update(images.scan_image_dir(args.images_dir))
    if args.image_manifest:
        if not args.image_manifest.exists():
            raise FileNotFoundError(f"Image manifest not found: {args.image_manifest}")
        manifest = json.loads(args.image_manifest.read_text(encoding="utf-8"))
        if not isinstance(manifest, dict):
            raise SystemExit("The image manifest must be a JSON object of id -> source.")
        sources.update({str(key): str(value) for key, value in manifest.items()})
        base_dir = args.image_manifest.parent
    sources = images.referenced_sources(text, sources)
    if args.debug:
        print(f"[DEBUG] Resolving {len(sources)} referenced images.")
    return images.load_image_meta(sources, base_dir=base_dir, debug=args.debug)


def _write_output(args: argparse.Namespace, content: str) -> None:
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(content, encoding="utf-8")
    else:
        sys.stdout.write(content)
        if not content.endswith("\n"):
            sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not args.input:
        raise SystemExit("--input is required.")
    if not args.input.exists():
        raise FileNotFoundError(f"Document not found: {args.input}")
    if args.mode != "paginate" and (args.images_dir or args.image_manifest):
        raise SystemExit("Image options only apply to --mode=paginate.")

    text = args.input.read_text(encoding="utf-8")

    if args.mode == "strip":
        _write_output(args, pagination.remove_page_breaks(text))
        return 0

    if args.mode == "split":
        result = cards.split_to_cards(text)
        if args.debug:
            print(f"[DEBUG] Split document into {len(result)} cards.")
        payload = json.dumps(
            [card.to_dict() for card in result], ensure_ascii=False, indent=2
        )
        _write_output(args, payload)
        return 0

    typography = build_typography(args)
    image_meta = gather_image_meta(args, text)
    paginated = pagination.recalculate_page_breaks(
        text, typography, image_meta, debug=args.debug
    )
    if args.debug:
        for index, card in enumerate(cards.split_to_cards(paginated), start=1):
            height = layout.estimate_height(card.text, typography, image_meta)
            blocks = ", ".join(
                f"{label}={value:.0f}"
                for label, value in layout.describe_blocks(
                    card.text, typography, image_meta
                )
            )
            print(
                f"[DEBUG] Card {index}: {height:.0f}/{layout.CONTENT_HEIGHT}px [{blocks}]"
            )
    _write_output(args, paginated)
    if args.output:
        total = len(cards.split_to_cards(paginated))
        print(f"Wrote {total} cards to {args.output.resolve()}")
    return 0
