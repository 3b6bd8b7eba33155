"""docsynth - template resolution and document synthesis

Simple CLI for inspecting templates and generating documents.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from docsynth.api.deps import get_acquirer, get_selector, get_synthesizer
from docsynth.errors import DocSynthError, DocumentUnreachable
from docsynth.models.interfaces import AccessStrategy, ImageConfig, LineItemColumn, LineItemConfig


def _load_json(path: str | None) -> dict:
    if not path:
        return {}
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _line_items_from(data: dict) -> LineItemConfig | None:
    if not data:
        return None
    columns = [
        LineItemColumn(label=c["label"], source_field=c.get("source_field") or c.get("sourceField", ""))
        for c in data.get("columns", [])
    ]
    return LineItemConfig(
        enabled=bool(data.get("enabled", True)),
        collection_field=data.get("collection_field") or data.get("collectionField", ""),
        columns=columns,
    )


async def run_inspect(url: str, strategy: str | None = None, diagnostics: bool = False):
    """Print the strategy recommendation and the placeholders a template carries."""
    selector = get_selector()
    check = selector.classify(url)
    print(f"Template: {url}")
    print("-" * 50)
    if not check.valid:
        print(f"[!] Invalid reference: {'; '.join(check.errors)}")
        return 2

    reference = await selector.resolve(url, override=strategy)
    print(f"Document ID: {reference.document_id}")
    print(f"Publicly shared: {check.is_publicly_shared}")
    print(f"Strategy: {reference.strategy.value}")

    acquirer = get_acquirer()
    fetch_strategy = reference.strategy
    if fetch_strategy == AccessStrategy.API_ACCESS:
        fetch_strategy = AccessStrategy.FALLBACK_FETCH
    acquisition = await acquirer.acquire(reference, strategy=fetch_strategy)
    report = acquirer.extractor.analyze(acquisition.content)

    print(f"Title: {acquisition.title}")
    print(f"Acquired via: {acquisition.method} ({len(acquisition.content)} chars, {acquisition.elapsed_ms}ms)")
    print(f"\n[*] Placeholders ({len(report.names)}):")
    for name in report.names:
        print(f"  - {name}")

    if diagnostics:
        print("\n[~] Recognizer matches:")
        for recognizer, count in report.recognizer_counts.items():
            print(f"  {recognizer}: {count}")
        print("\n[~] Candidate attempts:")
        for attempt in acquisition.attempts:
            status = "viable" if attempt.succeeded else f"rejected ({attempt.error})"
            print(f"  {attempt.priority}. {attempt.method}: score={attempt.score} tries={attempt.tries} {status}")
    return 0


async def run_generate(
    url: str,
    mapping_path: str,
    record_path: str,
    line_items_path: str | None = None,
    strategy: str | None = None,
    out: str | None = None,
    image_width: int | None = None,
    image_height: str | None = None,
):
    """Generate one document and write it to disk."""
    mapping = _load_json(mapping_path)
    record = _load_json(record_path)
    line_items = _line_items_from(_load_json(line_items_path))
    image_config = None
    if image_width or image_height:
        height = image_height or "auto"
        image_config = ImageConfig(
            width=image_width or 200,
            height="auto" if height == "auto" else int(height),
        )

    synthesizer = get_synthesizer()
    async with synthesizer.resources:
        result = await synthesizer.generate(
            url, mapping, record, line_items, image_config, strategy=strategy
        )

    metadata = result.metadata
    extension = "pdf" if metadata.strategy == AccessStrategy.API_ACCESS else "html"
    target = Path(out or f"{metadata.document_id}.{extension}")
    target.write_bytes(result.content)

    print(f"\n[*] Generated {target} ({metadata.output_size} bytes)")
    print(json.dumps(metadata.as_dict(), indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(description="docsynth template resolution and document synthesis")
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="Classify a template and list its placeholders")
    inspect_parser.add_argument("--url", "-u", required=True, help="Template document URL")
    inspect_parser.add_argument("--strategy", "-s", choices=[s.value for s in AccessStrategy], help="Override the recommended strategy")
    inspect_parser.add_argument("--diagnostics", "-d", action="store_true", help="Show recognizer counts and candidate attempts")

    generate_parser = subparsers.add_parser("generate", help="Fill a template with one record")
    generate_parser.add_argument("--url", "-u", required=True, help="Template document URL")
    generate_parser.add_argument("--mapping", "-m", required=True, help="JSON file: placeholder -> record field")
    generate_parser.add_argument("--record", "-r", required=True, help="JSON file: the data record")
    generate_parser.add_argument("--line-items", "-l", help="JSON file: line item configuration")
    generate_parser.add_argument("--strategy", "-s", choices=[s.value for s in AccessStrategy], help="Override the recommended strategy")
    generate_parser.add_argument("--image-width", type=int, help="Embedded image width in px")
    generate_parser.add_argument("--image-height", help="Embedded image height in px, or 'auto'")
    generate_parser.add_argument("--out", "-o", help="Output file (default: <document id>.<ext>)")

    args = parser.parse_args()

    try:
        if args.command == "inspect":
            code = asyncio.run(run_inspect(args.url, args.strategy, args.diagnostics))
        else:
            code = asyncio.run(
                run_generate(
                    args.url,
                    args.mapping,
                    args.record,
                    args.line_items,
                    args.strategy,
                    args.out,
                    args.image_width,
                    args.image_height,
                )
            )
    except DocumentUnreachable as exc:
        print(f"\n[!] {type(exc).__name__}: {exc.message}")
        for attempt in exc.diagnostics:
            print(f"  - {attempt.method}: {attempt.error} (tries={attempt.tries})")
        code = 1
    except DocSynthError as exc:
        print(f"\n[!] {type(exc).__name__}: {exc.message}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
