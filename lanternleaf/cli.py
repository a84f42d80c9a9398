"""Command-line interface for lanternleaf."""

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from lanternleaf import __version__
from lanternleaf.bookmarks import load_bookmark, save_bookmark
from lanternleaf.commands import parse_command
from lanternleaf.config import load_reader_settings
from lanternleaf.loader import LoadError
from lanternleaf.models import ReaderSnapshot
from lanternleaf.session import ReaderSession
from lanternleaf.text.normalizer import TextNormalizer


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="lanternleaf",
        description="Impagina un testo e guida il cursore di lettura e sintesi vocale",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "input_file",
        help="File di testo UTF-8 da leggere",
    )
    parser.add_argument(
        "audio_output",
        nargs="?",
        help="File JSONL in cui esportare le frasi audio (opzionale)",
    )
    parser.add_argument(
        "-c", "--command",
        action="append",
        default=[],
        dest="commands",
        help="Comando da applicare, per nome (next_page) o JSON "
             "('{\"type\": \"set_page\", \"page\": 3}'). Ripetibile",
    )
    parser.add_argument(
        "--lines-per-page",
        type=int,
        default=None,
        help="Righe per pagina (8-1000)",
    )
    parser.add_argument(
        "--font-size",
        type=int,
        default=None,
        help="Dimensione del testo (12-36)",
    )
    parser.add_argument(
        "--text-only",
        action="store_true",
        help="Avvia in modalità solo testo (cursore sulle frasi audio)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="File TOML con la tabella [reader]",
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Directory dei segnalibri (default: .cache)",
    )
    parser.add_argument(
        "--no-bookmark",
        action="store_true",
        help="Non leggere né salvare il segnalibro",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Stampa lo snapshot finale in JSON",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Abilita log dettagliati",
    )

    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        commands = [parse_command(value) for value in args.commands]
    except (ValidationError, ValueError) as e:
        logging.error("Comando non valido: %s", e)
        sys.exit(1)

    settings = load_reader_settings(Path(args.config) if args.config else None)
    if args.lines_per_page is not None:
        settings.lines_per_page = args.lines_per_page
    if args.font_size is not None:
        settings.font_size = args.font_size

    input_path = Path(args.input_file).resolve()
    cache_dir = Path(args.cache_dir) if args.cache_dir else None
    bookmark = None if args.no_bookmark else load_bookmark(input_path, cache_dir)

    try:
        session = ReaderSession.load(
            input_path,
            settings,
            bookmark,
            normalizer=TextNormalizer.load_default(),
        )
    except LoadError as e:
        logging.error("Errore: %s", e)
        sys.exit(1)

    if args.text_only:
        session.apply_command("toggle_text_only")
    event = session.apply_command("get_snapshot")
    for command in commands:
        event = session.apply_command(command)

    if args.json:
        print(json.dumps(
            {"action": event.action, "snapshot": dataclasses.asdict(event.snapshot)},
            ensure_ascii=False,
            indent=2,
        ))
    else:
        _print_summary(event.snapshot)

    if not args.no_bookmark:
        save_bookmark(input_path, session.to_bookmark(), cache_dir)

    if args.audio_output:
        _export(session, Path(args.audio_output), args.verbose)


def _export(session: ReaderSession, output_path: Path, verbose: bool) -> None:
    from lanternleaf.exporter import AudioExporter
    from lanternleaf.progress import ProgressReporter

    progress = {"reporter": None}

    def on_progress(current: int, total: int, units: int) -> None:
        if progress["reporter"] is None:
            progress["reporter"] = ProgressReporter(total)
        progress["reporter"].update(current, total, units)

    try:
        count = AudioExporter(session).export(output_path, on_progress=on_progress)
    except KeyboardInterrupt:
        print("\n\nEsportazione interrotta.")
        sys.exit(1)
    except OSError as e:
        logging.error("Errore: %s", e)
        if verbose:
            logging.exception("Dettagli:")
        sys.exit(1)
    finally:
        if progress["reporter"]:
            progress["reporter"].close()

    print(f"\nFrasi audio esportate: {count} in {output_path}")


def _print_summary(snapshot: ReaderSnapshot) -> None:
    stats = snapshot.stats
    tts = snapshot.tts
    mode = "solo testo" if snapshot.text_only_mode else "normale"
    print(f"\n{snapshot.source_name} - pagina {stats.page_index}/{stats.total_pages} ({mode})")
    print(f"  Frasi: {tts.sentence_count}, parole nella pagina: {stats.page_word_count}")

    idx = snapshot.highlighted_sentence_idx
    if idx is not None and idx < len(snapshot.sentences):
        print(f"  Frase {idx + 1}: {snapshot.sentences[idx]}")
    if snapshot.search_query.strip():
        print(f"  Ricerca '{snapshot.search_query}': {len(snapshot.search_matches)} risultati")

    print(f"  Sintesi: {tts.state.value}, avanzamento {tts.progress_pct:.1f}%")
    print(
        f"  Tempo residuo: pagina {_format_secs(stats.page_time_remaining_secs)}, "
        f"libro {_format_secs(stats.book_time_remaining_secs)}"
    )


def _format_secs(secs: float) -> str:
    minutes, seconds = divmod(int(round(secs)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    return f"{minutes}m{seconds:02d}s"


if __name__ == "__main__":
    main()
